"""
Configuration, reference data and mission (de)serialization for MissionLedger
"""
from __future__ import annotations
import json
import logging
import os
from dataclasses import asdict
from typing import Dict, List, Optional

from models import Bank, Employee, ExpenseItem, Mission
from utils import app_dir, parse_amount, parse_int

LOG_LEVEL_ENV = "MISSION_LEDGER_LOG_LEVEL"

DEFAULT_EMPLOYEES = [
    (62, "محمد مجدى السيد عبد الدايم", "20أ القاهرة"),
    (129, "نانسى يوسف عزيز يوسف", "المنصورة"),
    (20, "عبد العزيز صلاح عبد العزيز على حسن", "20أ القاهرة"),
    (675, "كريم خالد محمد محمود", "20أ القاهرة"),
    (545, "محمد الظافر محمد رفعت احمد إبراهيم", "20أ القاهرة"),
    (493, "محمود محمد محمود محمد", "20أ القاهرة"),
    (577, "عزيزه عبدالكريم حسين غنيم", "20أ القاهرة"),
    (507, "محمد حسن علي عباس", "المنصورة"),
    (544, "احمد منصور سليم منصور سليم", "20أ القاهرة"),
    (674, "احمد مختار عاشور", "20أ القاهرة"),
    (492, "اسامه محمد احمد عبد الحميد", "20أ القاهرة"),
    (612, "احمد محمد حسنى", "20أ القاهرة"),
    (503, "اسلام احمد محمود علي", "المنصورة"),
    (738, "محمد حسن تقى دشناوى", "20أ القاهرة"),
    (740, "حاتم احمد", "0"),
    (655, "احمد عبدالعزيز إبراهيم", "0"),
    (744, "الهام حسن عبدالمولي", "20أ القاهرة"),
]

DEFAULT_BANKS = [
    "كريدى", "مانى فيللوز", "اسكندرية", "اى اس", "فورى", "امان", "راية",
    "فاليو", "حالا", "وسيلة", "سهولة", "لا يوجد مامورية", "خدمات الشركة",
    "سفن", "نكست", "تنمية", "البركة", "EFS", "ميد تقسيط", "ميد بنك",
]


class ReferenceData:
    """Read-only employees (by code) and banks"""

    def __init__(self, employees: List[Employee], banks: List[Bank]):
        self._employees: Dict[int, Employee] = {e.code: e for e in employees}
        self._banks = list(banks)

    @property
    def employees(self) -> List[Employee]:
        return list(self._employees.values())

    @property
    def banks(self) -> List[Bank]:
        return list(self._banks)

    def bank_names(self) -> List[str]:
        return [b.name for b in self._banks]

    def employee_by_code(self, code: int) -> Optional[Employee]:
        return self._employees.get(code)


def load_employees(path: str) -> List[Employee]:
    """Load employees list from JSON file"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [
            Employee(parse_int(e.get("code")), str(e.get("name", "")), str(e.get("branch", "")))
            for e in data.get("employees", [])
        ]
    except FileNotFoundError:
        return []


def load_banks(path: str) -> List[Bank]:
    """Load banks list from JSON file (names or {"name": ...} objects)"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [Bank(b["name"] if isinstance(b, dict) else str(b)) for b in data.get("banks", [])]
    except FileNotFoundError:
        return []


def get_reference_data(base: Optional[str] = None) -> ReferenceData:
    """Reference data from the app directory, falling back to the built-in lists"""
    base = base or app_dir()
    employees = load_employees(os.path.join(base, "employees.json"))
    banks = load_banks(os.path.join(base, "banks.json"))

    if not employees:
        employees = [Employee(code, name, branch) for code, name, branch in DEFAULT_EMPLOYEES]
    if not banks:
        banks = [Bank(name) for name in DEFAULT_BANKS]

    return ReferenceData(employees, banks)


def mission_to_dict(mission: Mission) -> dict:
    """Convert Mission object to dictionary for JSON serialization"""
    return asdict(mission)


def dict_to_mission(d: dict) -> Mission:
    """Convert dictionary from JSON to Mission object"""
    exps = [
        ExpenseItem(
            id=str(e.get("id", "")),
            type=str(e.get("type", "")),
            amount=parse_amount(e.get("amount")),
            banks=list(e.get("banks") or []),
            bank_allocations=(
                {k: parse_amount(v) for k, v in e["bank_allocations"].items()}
                if e.get("bank_allocations") else None
            ),
        )
        for e in d.get("expenses", [])
    ]
    return Mission(
        id=str(d.get("id", "")),
        employee_code=parse_int(d.get("employee_code")),
        employee_name=str(d.get("employee_name") or ""),
        employee_branch=str(d.get("employee_branch") or ""),
        mission_date=str(d.get("mission_date") or ""),
        bank=d.get("bank") or None,
        statement=d.get("statement") or None,
        expenses=exps,
        total_amount=parse_amount(d.get("total_amount")),
        created_at=str(d.get("created_at") or ""),
    )


def configure_logging(level: Optional[str] = None) -> None:
    """Root logging setup for the application entry point"""
    name = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
