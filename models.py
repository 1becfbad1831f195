"""
Data models for MissionLedger application
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class Employee:
    """Employee reference record"""
    code: int
    name: str
    branch: str


@dataclass
class Bank:
    """Bank / company reference record"""
    name: str


@dataclass
class ExpenseItem:
    """Single categorized expense within a mission"""
    id: str
    type: str  # canonical expense-type key, or the raw label when unknown
    amount: float
    banks: List[str] = field(default_factory=list)
    bank_allocations: Optional[Dict[str, float]] = None  # manual per-bank override


@dataclass
class Mission:
    """Employee mission with its expense items"""
    id: str
    employee_code: int
    employee_name: str
    employee_branch: str
    mission_date: str  # YYYY-MM-DD
    bank: Optional[str] = None  # legacy primary bank, fallback for expenses without banks
    statement: Optional[str] = None
    expenses: List[ExpenseItem] = field(default_factory=list)
    total_amount: float = 0.0
    created_at: str = ""

    def recompute_total(self) -> float:
        """Refresh the cached total from the expense amounts"""
        self.total_amount = sum(float(e.amount) for e in self.expenses)
        return self.total_amount


@dataclass
class BankSlot:
    """Per-bank grouping of a mission's expenses, built for tabular export"""
    bank_name: str
    per_type: Dict[str, float] = field(default_factory=dict)
    total: float = 0.0

    def add(self, expense_type: str, amount: float) -> None:
        self.per_type[expense_type] = self.per_type.get(expense_type, 0.0) + amount
        self.total += amount


@dataclass
class PeriodRow:
    """One (employee, bank) line of the period report"""
    employee_code: int
    employee_name: str
    employee_branch: str
    bank_name: str
    per_type: Dict[str, float] = field(default_factory=dict)

    @property
    def total(self) -> float:
        return sum(self.per_type.values())


@dataclass
class ImportResult:
    """Missions reconstructed from a spreadsheet plus non-fatal warnings"""
    missions: List[Mission]
    warnings: List[str] = field(default_factory=list)
