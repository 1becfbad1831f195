"""
Mission persistence for MissionLedger
"""
from __future__ import annotations
import copy
import json
import logging
import os
from typing import Dict, List, Optional

from models import Mission
from config import dict_to_mission, mission_to_dict
from utils import app_dir, new_id, now_iso

logger = logging.getLogger(__name__)


class MissionStore:
    """In-memory mission collection; list() and get() hand out copies"""

    def __init__(self, missions: Optional[List[Mission]] = None):
        self._missions: Dict[str, Mission] = {}
        for m in missions or []:
            self._missions[m.id] = m

    def list(self) -> List[Mission]:
        return [copy.deepcopy(m) for m in self._missions.values()]

    def get(self, mission_id: str) -> Optional[Mission]:
        m = self._missions.get(mission_id)
        return copy.deepcopy(m) if m else None

    def upsert(self, mission: Mission) -> Mission:
        """Insert or replace a mission; the total is recomputed from its expenses"""
        m = copy.deepcopy(mission)
        if not m.id:
            m.id = new_id()
        if not m.created_at:
            m.created_at = now_iso()
        m.recompute_total()
        self._missions[m.id] = m
        self._changed()
        return copy.deepcopy(m)

    def delete(self, mission_id: str) -> bool:
        if self._missions.pop(mission_id, None) is None:
            return False
        self._changed()
        return True

    def replace_all(self, missions: List[Mission]) -> None:
        """
        Swap in a whole collection (import append/replace). Totals are recomputed
        for missions with expenses; a mission without any keeps its total, which
        only an imported summary row can make non-zero.
        """
        self._missions = {}
        for mission in missions:
            m = copy.deepcopy(mission)
            if m.expenses:
                m.recompute_total()
            self._missions[m.id] = m
        self._changed()

    def _changed(self) -> None:
        pass


InMemoryMissionStore = MissionStore


class JsonMissionStore(MissionStore):
    """Mission store saved to a JSON file after every change"""

    def __init__(self, path: Optional[str] = None):
        self.path = path or os.path.join(app_dir(), "missions.json")
        super().__init__(self._load())

    def _load(self) -> List[Mission]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        missions = [dict_to_mission(d) for d in data.get("missions", [])]
        logger.info("loaded %d missions from %s", len(missions), self.path)
        return missions

    def _changed(self) -> None:
        data = {"version": 1, "missions": [mission_to_dict(m) for m in self._missions.values()]}
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)
