"""
Excel import functionality for MissionLedger

Reads the detailed export layout (up to four bank slots per mission row) and
the older one-bank-per-row layouts, optionally joined to an itemized
expenses sheet.
"""
from __future__ import annotations
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from models import ExpenseItem, ImportResult, Mission
from computations import ALLOCATION_EPSILON, clean_banks
from dates import normalize_date
from excel_export import EMPTY_SLOT_BANK, MAX_BANK_SLOTS
from expense_types import EXPENSE_TYPES, expense_type_variants, normalize_expense_type
from utils import new_id, now_iso, parse_amount, parse_int, today_str

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm")
TOTAL_MISMATCH_EPSILON = 0.01

# damaged archives and malformed sheet XML (ElementTree and lxml errors are SyntaxErrors)
_UNREADABLE_WORKBOOK = (InvalidFileException, BadZipFile, KeyError, OSError, ValueError, SyntaxError)


class MissionImportError(ValueError):
    """The file cannot be imported at all (no partial import happens)"""


# ---------- Header matching ----------

_FOLD_TABLE = str.maketrans({"أ": "ا", "إ": "ا", "آ": "ا", "ى": "ي", "ة": "ه", "ـ": None})
_STRIP_RE = re.compile(r"[\s()_\-]+")
_NUMBERED_RE = re.compile(r"^(.*\D)([1-9])$")


def header_key(header: Any) -> str:
    """Fold a column header so decorated / re-spelled variants compare equal"""
    s = str(header).translate(_FOLD_TABLE).lower()
    return _STRIP_RE.sub("", s)


def _keys(*labels: str) -> Tuple[str, ...]:
    return tuple(header_key(x) for x in labels)


NAME_COLUMNS = _keys("اسم الموظف", "employeeName", "employee name", "name")
CODE_COLUMNS = _keys("الكود", "كود الموظف", "employeeCode", "code")
BRANCH_COLUMNS = _keys("فرع", "الفرع", "employeeBranch", "branch")
DATE_COLUMNS = _keys("التاريخ", "تاريخ المأمورية", "missionDate", "date")
STATEMENT_COLUMNS = _keys("بيان", "البيان", "statement")
BANK_COLUMNS = _keys("البنك", "البنك الرئيسي", "bank")
TOTAL_COLUMNS = _keys("الاجمالى", "إجمالي المصروفات", "إجمالي المبلغ", "totalAmount", "total")
SOURCE_ID_COLUMNS = _keys("رقم المأمورية", "missionId", "id")
DETAILS_COLUMNS = _keys("تفاصيل المصروفات", "expenseDetails")

EXPENSE_TYPE_COLUMNS = _keys("نوع المصروف", "type")
EXPENSE_AMOUNT_COLUMNS = _keys("المبلغ", "amount")
EXPENSE_BANKS_COLUMNS = _keys("البنوك", "banks")
EXPENSE_ALLOCATION_COLUMNS = _keys("التوزيع", "allocations")

SLOT_BANK_PREFIXES = _keys("بنك / شركة ( مامورية", "بنك / شركة", "بنك", "bank")
SLOT_TOTAL_PREFIXES = _keys("الاجمالى", "total")
TYPE_COLUMN_PREFIXES: Dict[str, str] = {
    header_key(label): canonical for label, canonical in expense_type_variants().items()
}

_NO_BANK_MARKERS = set(_keys("لا يوجد بنك", "no bank", "-"))
_EMPTY_SLOT_KEY = header_key(EMPTY_SLOT_BANK)
_BANK_SPLIT_RE = re.compile(r"[,،]")
_DETAIL_ITEM_RE = re.compile(r"^([^:]+):\s*([^(]+?)\s*\(([^)]*)\)$")


# ---------- Row shapes ----------

@dataclass
class RowIdentity:
    employee_name: str
    employee_code: int
    employee_branch: str
    raw_date: Any
    statement: Optional[str]
    source_id: Optional[str]


@dataclass
class SlotCells:
    bank: str
    amounts: Dict[str, float]
    stated_total: Optional[float]


@dataclass
class DetailedRow:
    """Row with numbered bank-slot / expense-type columns"""
    identity: RowIdentity
    slots: List[SlotCells]
    stated_total: Optional[float]


@dataclass
class SimpleRow:
    """Row with a single bank and an aggregate total"""
    identity: RowIdentity
    bank: Optional[str]
    stated_total: Optional[float]
    details: str = ""


RowShape = Union[DetailedRow, SimpleRow]


@dataclass
class _Pending:
    mission: Mission
    shape: RowShape
    label: str
    expenses: List[ExpenseItem] = field(default_factory=list)


def _text(value: Any) -> str:
    """Cell value as stripped text, undoing the formula-injection prefix"""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    s = str(value).strip()
    # mirror of excel_export.sanitize_cell: exactly one quote was added
    if s.startswith("'") and s.lstrip("'")[:1] in ("=", "+", "-", "@"):
        s = s[1:]
    return s


def _optional_amount(value: Any) -> Optional[float]:
    if value is None or _text(value) == "":
        return None
    return parse_amount(value)


def _fold_row(row: Dict[Any, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for h, v in row.items():
        if h is None:
            continue
        key = header_key(h)
        if key and key not in out:
            out[key] = v
    return out


def _pick(cells: Dict[str, Any], columns: Iterable[str]) -> Any:
    for c in columns:
        if c in cells and _text(cells[c]) != "":
            return cells[c]
    return None


def _numbered_columns(cells: Dict[str, Any]) -> Dict[int, Dict[str, Any]]:
    """slot n -> {"bank": value, "total": value, "<type>": value}"""
    slots: Dict[int, Dict[str, Any]] = {}
    for key, value in cells.items():
        m = _NUMBERED_RE.match(key)
        if not m:
            continue
        prefix, n = m.group(1), int(m.group(2))
        if n > MAX_BANK_SLOTS:
            continue
        if prefix in SLOT_BANK_PREFIXES:
            slots.setdefault(n, {})["bank"] = value
        elif prefix in TYPE_COLUMN_PREFIXES:
            slots.setdefault(n, {}).setdefault(TYPE_COLUMN_PREFIXES[prefix], value)
        elif prefix in SLOT_TOTAL_PREFIXES:
            slots.setdefault(n, {})["total"] = value
    return slots


def _identity(cells: Dict[str, Any]) -> RowIdentity:
    statement = _text(_pick(cells, STATEMENT_COLUMNS))
    source_id = _text(_pick(cells, SOURCE_ID_COLUMNS))
    return RowIdentity(
        employee_name=_text(_pick(cells, NAME_COLUMNS)),
        employee_code=parse_int(_pick(cells, CODE_COLUMNS)),
        employee_branch=_text(_pick(cells, BRANCH_COLUMNS)),
        raw_date=_pick(cells, DATE_COLUMNS),
        statement=statement or None,
        source_id=source_id or None,
    )


def detect_row_shape(row: Dict[Any, Any]) -> RowShape:
    """Classify a raw sheet row (header -> cell value) as detailed or simple"""
    cells = _fold_row(row)
    identity = _identity(cells)
    numbered = _numbered_columns(cells)
    has_slot_columns = any(
        "bank" in cols or any(t in cols for t in TYPE_COLUMN_PREFIXES.values())
        for cols in numbered.values()
    )

    if has_slot_columns:
        slots = []
        for n in sorted(numbered):
            cols = numbered[n]
            amounts = {
                k: parse_amount(v) for k, v in cols.items() if k not in ("bank", "total")
            }
            slots.append(SlotCells(
                bank=_text(cols.get("bank")),
                amounts=amounts,
                stated_total=_optional_amount(cols.get("total")),
            ))
        return DetailedRow(identity, slots, _optional_amount(_pick(cells, TOTAL_COLUMNS)))

    bank = _text(_pick(cells, BANK_COLUMNS))
    return SimpleRow(
        identity=identity,
        bank=bank if bank and header_key(bank) not in _NO_BANK_MARKERS else None,
        stated_total=_optional_amount(_pick(cells, TOTAL_COLUMNS)),
        details=_text(_pick(cells, DETAILS_COLUMNS)),
    )


# ---------- Expense reconstruction ----------

def _make_expense(etype: str, amount: float, banks: List[str],
                  contributions: Dict[str, float]) -> ExpenseItem:
    """Expense for one type; per-bank contributions are kept only when they
    differ from the equal split they would otherwise be derived from"""
    allocations: Optional[Dict[str, float]] = None
    if banks:
        share = amount / len(banks)
        if any(abs(contributions.get(b, 0.0) - share) > ALLOCATION_EPSILON for b in banks):
            allocations = {b: contributions.get(b, 0.0) for b in banks}
    return ExpenseItem(
        id=new_id("expense"),
        type=etype,
        amount=amount,
        banks=list(banks),
        bank_allocations=allocations,
    )


def _type_order(etype: str) -> int:
    return EXPENSE_TYPES.index(etype) if etype in EXPENSE_TYPES else len(EXPENSE_TYPES)


def _is_empty_slot(slot: SlotCells) -> bool:
    """A slot with no bank, or the placeholder bank with nothing in it.
    The placeholder name is also a selectable bank, so amounts decide."""
    if not slot.bank:
        return True
    if header_key(slot.bank) != _EMPTY_SLOT_KEY:
        return False
    return all(a == 0 for a in slot.amounts.values()) and not slot.stated_total


def _detailed_expenses(shape: DetailedRow, label: str, warnings: List[str]) -> List[ExpenseItem]:
    merged: Dict[str, dict] = {}
    for slot in shape.slots:
        if _is_empty_slot(slot):
            continue
        slot_sum = 0.0
        for etype, amt in slot.amounts.items():
            if amt <= 0:
                continue
            slot_sum += amt
            entry = merged.setdefault(etype, {"amount": 0.0, "banks": [], "by_bank": {}})
            entry["amount"] += amt
            if slot.bank not in entry["banks"]:
                entry["banks"].append(slot.bank)
            entry["by_bank"][slot.bank] = entry["by_bank"].get(slot.bank, 0.0) + amt
        if slot.stated_total is not None and abs(slot.stated_total - slot_sum) > TOTAL_MISMATCH_EPSILON:
            warnings.append(
                f"{label}: bank {slot.bank} subtotals sum to {slot_sum:.2f}, "
                f"slot total says {slot.stated_total:.2f}"
            )

    return [
        _make_expense(etype, entry["amount"], entry["banks"], entry["by_bank"])
        for etype, entry in sorted(merged.items(), key=lambda kv: _type_order(kv[0]))
    ]


def parse_expense_details(details: str, label: str, warnings: List[str]) -> List[ExpenseItem]:
    """
    Legacy single-cell format:
    "type: amount (bank1, bank2); type2: amount2 (لا يوجد بنك)"
    """
    expenses = []
    for item in (p.strip() for p in details.split(";")):
        if not item:
            continue
        m = _DETAIL_ITEM_RE.match(item)
        if not m:
            warnings.append(f"{label}: unreadable expense detail {item!r}, skipped")
            continue
        etype, amount_s, banks_s = m.groups()
        banks = [] if header_key(banks_s) in _NO_BANK_MARKERS else clean_banks(
            _BANK_SPLIT_RE.split(banks_s))
        expenses.append(ExpenseItem(
            id=new_id("expense"),
            type=normalize_expense_type(etype),
            amount=parse_amount(amount_s),
            banks=banks,
        ))
    return expenses


def parse_allocation_text(text: str) -> Optional[Dict[str, float]]:
    """"bank1:60;bank2:40" -> {"bank1": 60.0, "bank2": 40.0} (None when empty)"""
    allocations: Dict[str, float] = {}
    for pair in text.split(";"):
        if ":" in pair:
            k, v = pair.rsplit(":", 1)
            if k.strip():
                allocations[k.strip()] = parse_amount(v)
    return allocations or None


def _expense_from_row(cells: Dict[str, Any]) -> ExpenseItem:
    raw_type = _text(_pick(cells, EXPENSE_TYPE_COLUMNS))
    banks = clean_banks(_BANK_SPLIT_RE.split(_text(_pick(cells, EXPENSE_BANKS_COLUMNS))))
    return ExpenseItem(
        id=new_id("expense"),
        type=normalize_expense_type(raw_type) if raw_type else "transportation",
        amount=parse_amount(_pick(cells, EXPENSE_AMOUNT_COLUMNS)),
        banks=[b for b in banks if header_key(b) not in _NO_BANK_MARKERS],
        bank_allocations=parse_allocation_text(_text(_pick(cells, EXPENSE_ALLOCATION_COLUMNS))),
    )


# ---------- Mission reconstruction ----------

def _fresh_id(taken: set) -> str:
    mid = new_id("mission")
    while mid in taken:
        mid = new_id("mission")
    taken.add(mid)
    return mid


def _row_label(identity: RowIdentity, row_no: int) -> str:
    who = identity.employee_name or identity.employee_code or "?"
    return f"row {row_no} ({who})"


def _start_mission(shape: RowShape, row_no: int, taken: set, warnings: List[str]) -> _Pending:
    ident = shape.identity
    label = _row_label(ident, row_no)
    iso = normalize_date(ident.raw_date)
    if iso is None:
        iso = today_str()
        warnings.append(f"{label}: unreadable date {ident.raw_date!r}, using {iso}")
    mission = Mission(
        id=_fresh_id(taken),
        employee_code=ident.employee_code,
        employee_name=ident.employee_name,
        employee_branch=ident.employee_branch,
        mission_date=iso,
        bank=shape.bank if isinstance(shape, SimpleRow) else None,
        statement=ident.statement,
        created_at=now_iso(),
    )
    return _Pending(mission, shape, label)


def _finish_mission(p: _Pending, warnings: List[str]) -> Mission:
    m = p.mission
    m.expenses = p.expenses
    stated = p.shape.stated_total
    if isinstance(p.shape, SimpleRow) and not m.expenses:
        # summary-only legacy row: the stated total is all there is
        m.total_amount = stated or 0.0
        return m

    m.recompute_total()
    if stated is not None and abs(stated - m.total_amount) > TOTAL_MISMATCH_EPSILON:
        warnings.append(
            f"{p.label}: expenses sum to {m.total_amount:.2f}, sheet total says {stated:.2f}"
        )
    return m


def _link_expense_rows(
    expense_rows: List[Dict[Any, Any]],
    by_source_id: Dict[str, _Pending],
    warnings: List[str]
) -> None:
    dropped = 0
    for row in expense_rows:
        cells = _fold_row(row)
        source_id = _text(_pick(cells, SOURCE_ID_COLUMNS))
        if not source_id:
            continue
        target = by_source_id.get(source_id)
        if target is None:
            dropped += 1
            continue
        target.expenses.append(_expense_from_row(cells))
    if dropped:
        warnings.append(f"{dropped} expense rows reference no imported mission, dropped")


def parse_from_rows(
    rows: List[Dict[Any, Any]],
    existing_missions: Optional[List[Mission]] = None,
    expense_rows: Optional[List[Dict[Any, Any]]] = None,
    first_row_number: int = 2,
) -> ImportResult:
    """
    Rebuild missions from sheet rows (header -> value dicts).

    Every mission gets a new id, distinct from the ids in existing_missions.
    expense_rows, when given, are itemized expenses joined to the mission rows
    through the mission identifier column. Row-level problems are returned as
    warnings; only an empty input raises MissionImportError.
    """
    if not rows:
        raise MissionImportError("No mission rows found")

    taken = {m.id for m in existing_missions or []}
    warnings: List[str] = []
    pending: List[_Pending] = []
    by_source_id: Dict[str, _Pending] = {}

    for i, row in enumerate(rows):
        shape = detect_row_shape(row)
        p = _start_mission(shape, first_row_number + i, taken, warnings)
        if isinstance(shape, DetailedRow):
            p.expenses = _detailed_expenses(shape, p.label, warnings)
        elif isinstance(shape, SimpleRow):
            if shape.details:
                p.expenses = parse_expense_details(shape.details, p.label, warnings)
        else:
            raise TypeError(f"unhandled row shape {type(shape).__name__}")

        sid = shape.identity.source_id
        if sid:
            if sid in by_source_id:
                warnings.append(f"{p.label}: duplicate mission id {sid!r}, expenses join the first row")
            else:
                by_source_id[sid] = p
        pending.append(p)

    if expense_rows:
        _link_expense_rows(expense_rows, by_source_id, warnings)

    missions = [_finish_mission(p, warnings) for p in pending]
    for w in warnings:
        logger.warning(w)
    logger.info("parsed %d missions (%d warnings)", len(missions), len(warnings))
    return ImportResult(missions, warnings)


def merge_imported(existing: List[Mission], imported: List[Mission], replace: bool = False) -> List[Mission]:
    """Append imported missions to the existing collection, or replace it"""
    return list(imported) if replace else list(existing) + list(imported)


# ---------- Workbook reading ----------

def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def read_sheet_rows(ws) -> List[Dict[str, Any]]:
    """Rows of a worksheet as header -> value dicts; the first non-blank row is the header"""
    header: Optional[List[Optional[str]]] = None
    rows = []
    for values in ws.iter_rows(values_only=True):
        if header is None:
            if not all(_is_blank(v) for v in values):
                header = [str(v).strip() if not _is_blank(v) else None for v in values]
            continue
        if all(_is_blank(v) for v in values):
            continue
        rows.append({h: v for h, v in zip(header, values) if h})
    return rows


def _sheet_kind(title: str) -> Optional[str]:
    key = header_key(title)
    if "مصروف" in key or "expense" in key:
        return "expenses"
    if "مامور" in key or "mission" in key:
        return "missions"
    return None


def _has_name_column(rows: List[Dict[str, Any]]) -> bool:
    return bool(rows) and any(header_key(h) in NAME_COLUMNS for h in rows[0])


def validate_workbook_file(filepath: str) -> None:
    """Reject files openpyxl cannot or should not read"""
    ext = os.path.splitext(filepath)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise MissionImportError(
            f"Unsupported file type {ext or '(none)'}; expected {' or '.join(SUPPORTED_EXTENSIONS)}"
        )
    try:
        size = os.path.getsize(filepath)
    except OSError as ex:
        raise MissionImportError(f"Cannot read {filepath}: {ex}") from ex
    if size == 0:
        raise MissionImportError("The file is empty")
    if size > MAX_FILE_SIZE:
        raise MissionImportError("The file is larger than 10 MB")


def import_missions_excel(filepath: str, existing_missions: Optional[List[Mission]] = None) -> ImportResult:
    """
    Import missions from a workbook.

    The missions sheet is the one whose name mentions missions, else the first
    sheet with an employee-name column. An expenses sheet, when present, is
    joined through the mission identifier column.
    """
    validate_workbook_file(filepath)
    name = os.path.basename(filepath)
    try:
        wb = load_workbook(filepath, read_only=True, data_only=True)
    except _UNREADABLE_WORKBOOK as ex:
        raise MissionImportError(f"Cannot open workbook {name}: {ex}") from ex

    try:
        sheets = {ws.title: read_sheet_rows(ws) for ws in wb.worksheets}
    except _UNREADABLE_WORKBOOK as ex:
        raise MissionImportError(f"Cannot read workbook {name}: {ex}") from ex
    finally:
        wb.close()

    mission_rows = None
    expense_rows = None
    for title, rows in sheets.items():
        kind = _sheet_kind(title)
        if kind == "missions" and mission_rows is None:
            mission_rows = rows
        elif kind == "expenses" and expense_rows is None:
            expense_rows = rows
    if mission_rows is None:
        mission_rows = next(
            (rows for title, rows in sheets.items()
             if _sheet_kind(title) is None and _has_name_column(rows)),
            None,
        )
    if mission_rows is None:
        raise MissionImportError("No missions sheet found in the workbook")
    if not mission_rows:
        raise MissionImportError("The missions sheet has no data rows")

    result = parse_from_rows(mission_rows, existing_missions, expense_rows)
    logger.info("imported %d missions from %s", len(result.missions), filepath)
    return result
