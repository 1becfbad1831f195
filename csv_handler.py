"""
CSV export and import of itemized mission expenses
"""
from __future__ import annotations
import csv
import logging
from typing import Dict, List, Optional

from models import ImportResult, Mission
from excel_export import sanitize_cell
from excel_import import MissionImportError, parse_from_rows

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "رقم المأمورية", "كود الموظف", "اسم الموظف", "الفرع", "تاريخ المأمورية",
    "البنك", "البيان", "نوع المصروف", "المبلغ", "البنوك", "التوزيع",
]
_MISSION_FIELDS = CSV_HEADERS[:7]
_EXPENSE_FIELDS = ["رقم المأمورية"] + CSV_HEADERS[7:]


def export_expenses_to_csv(missions: List[Mission], filepath: str) -> int:
    """
    Export one line per expense, each carrying its mission's fields.
    Missions without expenses get a single line with empty expense columns.
    Text cells are escaped like the Excel export; the import side undoes it.
    Returns the number of lines written.
    """
    count = 0
    with open(filepath, "w", newline="", encoding="utf-8-sig") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADERS)
        for m in missions:
            head = [
                sanitize_cell(m.id), m.employee_code,
                sanitize_cell(m.employee_name), sanitize_cell(m.employee_branch),
                m.mission_date, sanitize_cell(m.bank or ""), sanitize_cell(m.statement or ""),
            ]
            if not m.expenses:
                writer.writerow(head + ["", "", "", ""])
                count += 1
                continue
            for e in m.expenses:
                alloc_str = ";".join(f"{k}:{v}" for k, v in (e.bank_allocations or {}).items())
                writer.writerow(head + [
                    sanitize_cell(e.type), e.amount,
                    sanitize_cell(", ".join(e.banks)), sanitize_cell(alloc_str),
                ])
                count += 1
    logger.info("exported %d expense lines to %s", count, filepath)
    return count


def import_expenses_from_csv(filepath: str, existing_missions: Optional[List[Mission]] = None) -> ImportResult:
    """
    Import missions from an itemized expenses CSV.
    Lines sharing a mission id form one mission with fresh ids.
    """
    mission_rows: List[Dict[str, str]] = []
    expense_rows: List[Dict[str, str]] = []
    seen = set()

    with open(filepath, "r", newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        if not reader.fieldnames or "رقم المأمورية" not in reader.fieldnames:
            raise MissionImportError("CSV file has no mission id column")
        for n, row in enumerate(reader, start=2):
            mid = (row.get("رقم المأمورية") or "").strip() or f"line-{n}"
            row["رقم المأمورية"] = mid
            if mid not in seen:
                seen.add(mid)
                mission_rows.append({k: row.get(k, "") for k in _MISSION_FIELDS})
            if (row.get("نوع المصروف") or "").strip() or (row.get("المبلغ") or "").strip():
                expense_rows.append({k: row.get(k, "") for k in _EXPENSE_FIELDS})

    return parse_from_rows(mission_rows, existing_missions, expense_rows)
