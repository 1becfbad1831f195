"""
Tests for the detailed row projection and the workbook writers.
"""

import shutil
import sys
import tempfile
import unittest
from pathlib import Path

from openpyxl import load_workbook

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from computations import UNSPECIFIED_BANK
from excel_export import (
    EMPTY_SLOT_BANK,
    MISSIONS_SHEET,
    PERIOD_SHEET,
    detailed_headers,
    export_missions_excel,
    export_period_report,
    export_warnings,
    project_mission,
    project_to_rows,
    sanitize_cell,
)
from models import ExpenseItem, Mission

HEADERS = detailed_headers()


def make_mission(expenses, statement=None, bank=None, date="2024-03-15"):
    m = Mission(
        id="m1",
        employee_code=62,
        employee_name="محمد مجدى السيد عبد الدايم",
        employee_branch="20أ القاهرة",
        mission_date=date,
        bank=bank,
        statement=statement,
        expenses=expenses,
    )
    m.recompute_total()
    return m


def as_dict(row):
    return dict(zip(HEADERS, row))


class TestProjection(unittest.TestCase):

    def test_row_width(self):
        self.assertEqual(len(HEADERS), 6 + 4 * 7 + 1)
        row = project_mission(make_mission([]))
        self.assertEqual(len(row), len(HEADERS))

    def test_leading_fields(self):
        row = as_dict(project_mission(make_mission([], statement="زيارة")))
        self.assertEqual(row["اسم الموظف"], "محمد مجدى السيد عبد الدايم")
        self.assertEqual(row["الكود"], 62)
        self.assertEqual(row["التاريخ"], "2024-03-15")
        self.assertEqual(row["اليوم"], "الجمعة")
        self.assertEqual(row[HEADERS[5]], "زيارة")

    def test_split_expense_fills_two_sorted_slots(self):
        m = make_mission([
            ExpenseItem("e1", "transportation", 100.0, ["فورى", "امان"]),
            ExpenseItem("e2", "hospitality", 15.5, ["امان"]),
        ])
        row = as_dict(project_mission(m))
        first, second = sorted(["فورى", "امان"])
        self.assertEqual(row["بنك / شركة ( مامورية1)"], first)
        self.assertEqual(row["بنك / شركة ( مامورية2)"], second)
        by_bank = {
            row[f"بنك / شركة ( مامورية{n})"]: n for n in (1, 2)
        }
        n = by_bank["امان"]
        self.assertEqual(row[f"انتقالات{n}"], 50.0)
        self.assertEqual(row[f"ضيافة{n}"], 15.5)
        self.assertEqual(row[f"الاجمالى{n}"], 65.5)
        self.assertEqual(row["بنك / شركة ( مامورية3)"], EMPTY_SLOT_BANK)
        self.assertEqual(row["انتقالات3"], 0)
        self.assertEqual(row["الاجمالى"], 115.5)

    def test_rounding_only_at_presentation(self):
        m = make_mission([ExpenseItem(f"e{i}", "fees", 0.333, ["A", "B", "C"]) for i in range(30)])
        row = as_dict(project_mission(m))
        self.assertEqual(row["رسوم1"], 3.33)
        self.assertEqual(row["الاجمالى"], 9.99)

    def test_fallback_and_unspecified_slots(self):
        row = as_dict(project_mission(make_mission([ExpenseItem("e1", "tips", 5.0, [])], bank="راية")))
        self.assertEqual(row["بنك / شركة ( مامورية1)"], "راية")
        row = as_dict(project_mission(make_mission([ExpenseItem("e1", "tips", 5.0, [])])))
        self.assertEqual(row["بنك / شركة ( مامورية1)"], UNSPECIFIED_BANK)
        self.assertEqual(row["اكراميات1"], 5.0)

    def test_fifth_bank_counts_in_grand_total_only(self):
        banks = ["A", "B", "C", "D", "E"]
        m = make_mission([
            ExpenseItem(f"e{i}", "fees", 10.0 * (i + 1), [b]) for i, b in enumerate(banks)
        ])
        row = as_dict(project_mission(m))
        shown = [row[f"بنك / شركة ( مامورية{n})"] for n in range(1, 5)]
        self.assertEqual(shown, ["A", "B", "C", "D"])
        self.assertNotIn("E", row.values())
        shown_total = sum(row[f"الاجمالى{n}"] for n in range(1, 5))
        self.assertEqual(shown_total, 100.0)
        self.assertEqual(row["الاجمالى"], 150.0)
        self.assertTrue(any("5 banks" in w for w in export_warnings([m])))

    def test_unknown_type_counts_in_totals(self):
        m = make_mission([
            ExpenseItem("e1", "مصروف غريب", 12.0, ["A"]),
            ExpenseItem("e2", "fees", 3.0, ["A"]),
        ])
        row = as_dict(project_mission(m))
        self.assertEqual(row["رسوم1"], 3.0)
        self.assertEqual(row["الاجمالى1"], 15.0)
        self.assertEqual(row["الاجمالى"], 15.0)
        self.assertTrue(any("مصروف غريب" in w for w in export_warnings([m])))

    def test_formula_injection_is_escaped(self):
        self.assertEqual(sanitize_cell("=1+1"), "'=1+1")
        self.assertEqual(sanitize_cell("+20"), "'+20")
        self.assertEqual(sanitize_cell("-x"), "'-x")
        self.assertEqual(sanitize_cell("@SUM(A1)"), "'@SUM(A1)")
        self.assertEqual(sanitize_cell("plain"), "plain")
        self.assertEqual(sanitize_cell("'=x"), "''=x")
        self.assertEqual(sanitize_cell("'quoted"), "'quoted")
        self.assertEqual(sanitize_cell(5), 5)
        row = as_dict(project_mission(make_mission([], statement="=1+1")))
        self.assertEqual(row[HEADERS[5]], "'=1+1")

    def test_project_to_rows_keeps_order(self):
        a = make_mission([], date="2024-03-01")
        b = make_mission([], date="2024-03-02")
        rows = project_to_rows([a, b])
        self.assertEqual([r[3] for r in rows], ["2024-03-01", "2024-03-02"])


class TestWorkbooks(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_export_missions_workbook(self):
        path = str(Path(self.test_dir) / "missions.xlsx")
        m = make_mission([ExpenseItem("e1", "fees", 20.0, ["A"])], statement="=1+1")
        warnings = export_missions_excel([m], path)
        self.assertEqual(warnings, [])

        wb = load_workbook(path)
        ws = wb[MISSIONS_SHEET]
        self.assertEqual([c.value for c in ws[1]], HEADERS)
        self.assertEqual(ws.max_row, 2)
        statement_cell = ws.cell(2, 6)
        self.assertEqual(statement_cell.data_type, "s")
        self.assertEqual(statement_cell.value, "'=1+1")
        self.assertEqual(ws.cell(2, len(HEADERS)).value, 20.0)

    def test_export_period_report(self):
        path = str(Path(self.test_dir) / "period.xlsx")
        missions = [
            make_mission([ExpenseItem("e1", "fees", 20.0, ["A", "B"])], date="2024-03-01"),
            make_mission([ExpenseItem("e2", "fees", 99.0, ["A"])], date="2024-05-01"),
        ]
        n = export_period_report(missions, "2024-03-01", "2024-03-31", path)
        self.assertEqual(n, 2)
        ws = load_workbook(path)[PERIOD_SHEET]
        self.assertEqual(ws.max_row, 3)
        self.assertEqual([ws.cell(r, 4).value for r in (2, 3)], ["A", "B"])
        self.assertEqual(ws.cell(2, 6).value, 10.0)
        self.assertEqual(ws.cell(2, ws.max_column).value, 10.0)


if __name__ == "__main__":
    unittest.main()
