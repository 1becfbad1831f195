"""
Excel export functionality for MissionLedger
"""
from __future__ import annotations
import logging
from datetime import date
from typing import Any, List, Union

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter

from models import Mission
from computations import (
    allocation_warnings,
    aggregate_period,
    build_bank_slots,
)
from dates import day_of_week, normalize_date
from expense_types import EXPENSE_TYPES, EXPENSE_TYPE_LABELS, is_known_type, normalize_expense_type

logger = logging.getLogger(__name__)

MAX_BANK_SLOTS = 4
EMPTY_SLOT_BANK = "لا يوجد مامورية"
MISSIONS_SHEET = "تقرير المأموريات"
PERIOD_SHEET = "تقرير الفترة"

LEADING_HEADERS = ["اسم الموظف", "الكود", "فرع", "التاريخ", "اليوم", "بيـــــــــــــــــــــــان"]
GRAND_TOTAL_HEADER = "الاجمالى"
SLOT_BANK_HEADER = "بنك / شركة ( مامورية{n})"

_FORMULA_PREFIXES = ("=", "+", "-", "@")


def slot_headers(n: int) -> List[str]:
    """Headers of bank slot n (1-based)"""
    return (
        [SLOT_BANK_HEADER.format(n=n)]
        + [f"{EXPENSE_TYPE_LABELS[t]}{n}" for t in EXPENSE_TYPES]
        + [f"{GRAND_TOTAL_HEADER}{n}"]
    )


def detailed_headers() -> List[str]:
    headers = list(LEADING_HEADERS)
    for n in range(1, MAX_BANK_SLOTS + 1):
        headers += slot_headers(n)
    headers.append(GRAND_TOTAL_HEADER)
    return headers


def sanitize_cell(value: Any) -> Any:
    """
    Prefix strings a spreadsheet would read as a formula so they stay literal text.
    Text that already looks escaped gets a second quote, so the import side can
    always strip exactly one.
    """
    if not isinstance(value, str):
        return value
    if value.startswith(_FORMULA_PREFIXES) or (
        value.startswith("'") and value.lstrip("'")[:1] in _FORMULA_PREFIXES
    ):
        return "'" + value
    return value


def _money(x: float) -> float:
    return round(float(x), 2)


def project_mission(mission: Mission) -> List[Any]:
    """One fixed-width detailed row for a mission"""
    iso = normalize_date(mission.mission_date)
    row: List[Any] = [
        sanitize_cell(mission.employee_name or ""),
        mission.employee_code,
        sanitize_cell(mission.employee_branch or ""),
        iso or sanitize_cell(str(mission.mission_date or "")),
        day_of_week(iso) if iso else "",
        sanitize_cell(mission.statement or ""),
    ]

    slots = build_bank_slots(mission)
    for i in range(MAX_BANK_SLOTS):
        if i < len(slots):
            slot = slots[i]
            row.append(sanitize_cell(slot.bank_name))
            row += [_money(slot.per_type.get(t, 0.0)) for t in EXPENSE_TYPES]
            row.append(_money(slot.total))
        else:
            row.append(EMPTY_SLOT_BANK)
            row += [0] * (len(EXPENSE_TYPES) + 1)

    # slots past the 4th have no columns but still count here
    row.append(_money(sum(s.total for s in slots)))
    return row


def project_to_rows(missions: List[Mission]) -> List[List[Any]]:
    """Detailed rows for a list of missions, values in detailed_headers() order"""
    return [project_mission(m) for m in missions]


def export_warnings(missions: List[Mission]) -> List[str]:
    """Problems that make a mission's exported row differ from its expenses"""
    warnings: List[str] = []
    for m in missions:
        who = f"{m.employee_name or m.employee_code} ({m.mission_date})"
        for e in m.expenses:
            for w in allocation_warnings(e):
                warnings.append(f"{who}: {w}")
            etype = normalize_expense_type(e.type)
            if not is_known_type(etype):
                warnings.append(
                    f"{who}: expense type {e.type!r} has no column, counted in totals only"
                )
        n_slots = len(build_bank_slots(m))
        if n_slots > MAX_BANK_SLOTS:
            warnings.append(
                f"{who}: {n_slots} banks, only the first {MAX_BANK_SLOTS} have columns"
            )
    return warnings


def _style_header(ws, row=1):
    """Apply header styling to worksheet row"""
    header_font = Font(bold=True, color="FFFFFF")
    fill = PatternFill("solid", fgColor="4F81BD")
    align = Alignment(horizontal="center", vertical="center", wrap_text=True)
    thin = Side(style="thin", color="A0A0A0")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    for cell in ws[row]:
        cell.font = header_font
        cell.fill = fill
        cell.alignment = align
        cell.border = border


def _autosize_columns(ws, min_width=8, max_width=40):
    """Auto-size columns based on content"""
    for col in range(1, ws.max_column + 1):
        letter = get_column_letter(col)
        max_len = 0
        for cell in ws[letter]:
            v = cell.value
            if v is None:
                continue
            max_len = max(max_len, len(str(v)))
        ws.column_dimensions[letter].width = max(min_width, min(max_width, max_len + 2))


def _money_format(ws, columns: List[int]):
    for r in range(2, ws.max_row + 1):
        for c in columns:
            ws.cell(r, c).number_format = "0.00"


def export_missions_excel(missions: List[Mission], filepath: str) -> List[str]:
    """
    Write missions to a workbook in the detailed layout: one row per mission,
    four bank-slot column groups and a grand total.
    Returns the export warnings (also logged).
    """
    wb = Workbook()
    ws = wb.active
    ws.title = MISSIONS_SHEET
    ws.sheet_view.rightToLeft = True

    headers = detailed_headers()
    ws.append(headers)
    _style_header(ws, 1)
    ws.freeze_panes = "A2"

    for row in project_to_rows(missions):
        ws.append(row)

    money_cols = [
        i + 1 for i, h in enumerate(headers)
        if i >= len(LEADING_HEADERS) and not h.startswith("بنك")
    ]
    _money_format(ws, money_cols)
    _autosize_columns(ws)

    wb.save(filepath)

    warnings = export_warnings(missions)
    for w in warnings:
        logger.warning(w)
    logger.info("exported %d missions to %s", len(missions), filepath)
    return warnings


def export_period_report(
    missions: List[Mission],
    start: Union[date, str],
    end: Union[date, str],
    filepath: str
) -> int:
    """
    Write the period report: one row per (employee, bank) with a subtotal per
    expense type and a total. Returns the number of rows written.
    """
    rows = aggregate_period(missions, start, end)

    wb = Workbook()
    ws = wb.active
    ws.title = PERIOD_SHEET
    ws.sheet_view.rightToLeft = True

    headers = (
        ["اسم الموظف", "الكود", "الفرع", "البنك / الشركة"]
        + [EXPENSE_TYPE_LABELS[t] for t in EXPENSE_TYPES]
        + [GRAND_TOTAL_HEADER]
    )
    ws.append(headers)
    _style_header(ws, 1)
    ws.freeze_panes = "A2"

    for r in rows:
        ws.append(
            [
                sanitize_cell(r.employee_name),
                r.employee_code,
                sanitize_cell(r.employee_branch),
                sanitize_cell(r.bank_name),
            ]
            + [_money(r.per_type.get(t, 0.0)) for t in EXPENSE_TYPES]
            + [_money(r.total)]
        )

    _money_format(ws, list(range(5, len(headers) + 1)))
    _autosize_columns(ws)
    wb.save(filepath)

    logger.info("period report %s..%s: %d rows written to %s", start, end, len(rows), filepath)
    return len(rows)
