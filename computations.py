"""
Business logic and computations for MissionLedger
"""
from __future__ import annotations
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple, Union

from models import BankSlot, ExpenseItem, Mission, PeriodRow
from dates import normalize_date
from expense_types import normalize_expense_type

logger = logging.getLogger(__name__)

UNSPECIFIED_BANK = "غير محدد"
ALLOCATION_EPSILON = 0.01

DateLike = Union[date, str, None]


def clean_banks(banks: Optional[Iterable[str]]) -> List[str]:
    """Trimmed, non-empty bank names without duplicates, in original order"""
    out: List[str] = []
    for b in banks or []:
        name = str(b).strip() if b is not None else ""
        if name and name not in out:
            out.append(name)
    return out


def mission_fallback_bank(mission: Mission) -> Optional[str]:
    """Legacy primary bank of a mission, used for expenses without banks"""
    name = (mission.bank or "").strip()
    return name or None


def allocate_expense(expense: ExpenseItem, fallback_bank: Optional[str]) -> Dict[str, float]:
    """
    Amount attributed to each bank for one expense.

    Selected banks get their manual allocation when one exists, otherwise an
    equal share of the amount divided by the number of selected banks. An
    expense with no banks goes entirely to the fallback bank, or to the
    unspecified bucket.
    """
    amount = float(expense.amount)
    banks = clean_banks(expense.banks)
    if not banks:
        target = (fallback_bank or "").strip() or UNSPECIFIED_BANK
        return {target: amount}

    explicit = expense.bank_allocations or {}
    share = amount / len(banks)
    out: Dict[str, float] = {}
    for b in banks:
        out[b] = float(explicit[b]) if b in explicit else share
    return out


def allocation_warnings(expense: ExpenseItem) -> List[str]:
    """Inconsistencies between manual allocations and the expense itself"""
    if not expense.bank_allocations:
        return []
    warnings = []
    banks = clean_banks(expense.banks)
    stray = [b for b in expense.bank_allocations if b not in banks]
    if stray:
        warnings.append(
            f"expense {expense.id}: allocations for unselected banks {', '.join(stray)}"
        )
    allocated = sum(allocate_expense(expense, None).values()) if banks else 0.0
    if banks and abs(allocated - float(expense.amount)) > ALLOCATION_EPSILON:
        warnings.append(
            f"expense {expense.id}: bank allocations sum to {allocated:.2f}, "
            f"amount is {float(expense.amount):.2f}"
        )
    return warnings


def mission_bank_totals(mission: Mission) -> Dict[str, float]:
    """Total attributed to each bank across a mission's expenses (encounter order)"""
    fallback = mission_fallback_bank(mission)
    totals: Dict[str, float] = {}
    for e in mission.expenses:
        for bank, amt in allocate_expense(e, fallback).items():
            totals[bank] = totals.get(bank, 0.0) + amt
    return totals


def build_bank_slots(mission: Mission) -> List[BankSlot]:
    """
    Group a mission's allocated amounts by bank and expense type.
    Slots are sorted by bank name; a mission without any bank gets a single
    empty slot for its primary bank (or the unspecified bucket).
    """
    fallback = mission_fallback_bank(mission)
    slots: Dict[str, BankSlot] = {}
    for e in mission.expenses:
        etype = normalize_expense_type(e.type)
        for bank, amt in allocate_expense(e, fallback).items():
            slot = slots.get(bank)
            if slot is None:
                slot = slots[bank] = BankSlot(bank)
            slot.add(etype, amt)
    if not slots:
        name = fallback or UNSPECIFIED_BANK
        slots[name] = BankSlot(name)
    # sorted() is stable, so equal names keep encounter order
    return sorted(slots.values(), key=lambda s: s.bank_name)


def _bound(value: DateLike, label: str) -> Optional[str]:
    if value is None or value == "":
        return None
    iso = normalize_date(value)
    if iso is None:
        raise ValueError(f"Invalid {label} date: {value!r}")
    return iso


def filter_missions_by_date(
    missions: List[Mission],
    start: DateLike,
    end: DateLike
) -> List[Mission]:
    """Filter missions by inclusive date range (open bounds when None)"""
    lo = _bound(start, "start")
    hi = _bound(end, "end")
    out = []
    for m in missions:
        md = normalize_date(m.mission_date)
        if md is None:
            logger.warning("mission %s has unreadable date %r, skipped", m.id, m.mission_date)
            continue
        if lo and md < lo:
            continue
        if hi and md > hi:
            continue
        out.append(m)
    return out


def aggregate_period(
    missions: List[Mission],
    start: DateLike,
    end: DateLike
) -> List[PeriodRow]:
    """
    Sum allocated amounts per (employee code, bank) and expense type for the
    missions dated within [start, end].
    Returns rows sorted by employee code then bank name.
    """
    lo = _bound(start, "start")
    hi = _bound(end, "end")
    if lo and hi and lo > hi:
        raise ValueError(f"Start date {lo} is after end date {hi}")

    rows: Dict[Tuple[int, str], PeriodRow] = {}
    for m in filter_missions_by_date(missions, lo, hi):
        fallback = mission_fallback_bank(m)
        for e in m.expenses:
            etype = normalize_expense_type(e.type)
            for bank, amt in allocate_expense(e, fallback).items():
                key = (m.employee_code, bank)
                row = rows.get(key)
                if row is None:
                    row = rows[key] = PeriodRow(
                        employee_code=m.employee_code,
                        employee_name=m.employee_name,
                        employee_branch=m.employee_branch,
                        bank_name=bank,
                    )
                row.per_type[etype] = row.per_type.get(etype, 0.0) + amt

    return sorted(rows.values(), key=lambda r: (r.employee_code, r.bank_name))
