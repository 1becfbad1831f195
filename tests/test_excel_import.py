"""
Tests for rebuilding missions from sheet rows and workbooks.
"""

import os
import shutil
import sys
import tempfile
import unittest
import zipfile
from pathlib import Path

from openpyxl import Workbook

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from excel_export import detailed_headers, export_missions_excel, project_to_rows
from excel_import import (
    DetailedRow,
    MissionImportError,
    SimpleRow,
    detect_row_shape,
    header_key,
    import_missions_excel,
    merge_imported,
    parse_allocation_text,
    parse_expense_details,
    parse_from_rows,
)
from models import ExpenseItem, Mission
from utils import today_str

HEADERS = detailed_headers()


def make_mission(mid, expenses, statement=None, date="2024-03-15"):
    m = Mission(
        id=mid,
        employee_code=62,
        employee_name="محمد مجدى السيد عبد الدايم",
        employee_branch="20أ القاهرة",
        mission_date=date,
        statement=statement,
        expenses=expenses,
    )
    m.recompute_total()
    return m


def exported_rows(missions):
    return [dict(zip(HEADERS, row)) for row in project_to_rows(missions)]


def by_type(mission):
    return {e.type: e for e in mission.expenses}


class TestHeaderKey(unittest.TestCase):

    def test_folds_spelling_and_decoration(self):
        self.assertEqual(header_key("بيـــــــــــــــــــان"), header_key("بيان"))
        self.assertEqual(header_key("الاجمالى"), header_key("الاجمالي"))
        self.assertEqual(header_key("أدوات مكتبية"), header_key("ادوات مكتبيه"))
        self.assertEqual(header_key("بنك / شركة ( مامورية1)"), header_key("بنك / شركة (مامورية 1)"))
        self.assertEqual(header_key("Employee_Name"), header_key("employee name"))


class TestRowShape(unittest.TestCase):

    def test_detailed_row(self):
        shape = detect_row_shape(exported_rows([make_mission("m1", [])])[0])
        self.assertIsInstance(shape, DetailedRow)
        self.assertEqual(len(shape.slots), 4)
        self.assertEqual(shape.identity.employee_code, 62)

    def test_simple_row(self):
        shape = detect_row_shape({
            "اسم الموظف": "حاتم احمد", "الكود": "740", "البنك": "فورى", "الاجمالى": 10,
        })
        self.assertIsInstance(shape, SimpleRow)
        self.assertEqual(shape.bank, "فورى")
        self.assertEqual(shape.stated_total, 10.0)
        self.assertEqual(shape.identity.employee_code, 740)

    def test_english_aliases(self):
        result = parse_from_rows([{
            "employeeName": "x", "employeeCode": 5, "missionDate": "2024-03-15",
            "bank1": "A", "transportation1": 10, "total1": 10,
            "بنك2": "B", "fees2": 4, "totalAmount": 14,
        }])
        self.assertEqual(result.warnings, [])
        m = result.missions[0]
        self.assertEqual(m.employee_code, 5)
        exps = by_type(m)
        self.assertEqual(exps["transportation"].banks, ["A"])
        self.assertEqual(exps["fees"].banks, ["B"])
        self.assertEqual(m.total_amount, 14.0)

    def test_no_bank_marker_is_none(self):
        shape = detect_row_shape({"اسم الموظف": "x", "البنك": "لا يوجد بنك"})
        self.assertIsNone(shape.bank)
        shape = detect_row_shape({"اسم الموظف": "x", "البنك": "لا يوجد مامورية"})
        self.assertEqual(shape.bank, "لا يوجد مامورية")


class TestDetailedImport(unittest.TestCase):

    def test_round_trip_of_split_expense(self):
        original = make_mission("m1", [
            ExpenseItem("e1", "transportation", 100.0, ["فورى", "امان"]),
            ExpenseItem("e2", "hospitality", 15.5, ["امان"]),
        ], statement="زيارة")
        result = parse_from_rows(exported_rows([original]))
        self.assertEqual(result.warnings, [])
        self.assertEqual(len(result.missions), 1)

        m = result.missions[0]
        self.assertEqual(m.employee_code, 62)
        self.assertEqual(m.mission_date, "2024-03-15")
        self.assertEqual(m.statement, "زيارة")
        self.assertAlmostEqual(m.total_amount, 115.5)
        self.assertEqual([e.type for e in m.expenses], ["transportation", "hospitality"])

        exps = by_type(m)
        self.assertAlmostEqual(exps["transportation"].amount, 100.0)
        self.assertEqual(sorted(exps["transportation"].banks), sorted(["فورى", "امان"]))
        self.assertIsNone(exps["transportation"].bank_allocations)
        self.assertEqual(exps["hospitality"].banks, ["امان"])

    def test_uneven_split_keeps_allocations(self):
        original = make_mission("m1", [
            ExpenseItem("e1", "fees", 100.0, ["A", "B"], {"A": 70.0, "B": 30.0}),
        ])
        m = parse_from_rows(exported_rows([original])).missions[0]
        fees = by_type(m)["fees"]
        self.assertEqual(fees.banks, ["A", "B"])
        self.assertEqual(fees.bank_allocations, {"A": 70.0, "B": 30.0})
        self.assertAlmostEqual(m.total_amount, 100.0)

    def test_new_ids_avoid_existing(self):
        existing = [make_mission("m1", [])]
        result = parse_from_rows(exported_rows(existing), existing_missions=existing)
        self.assertNotEqual(result.missions[0].id, "m1")
        self.assertTrue(result.missions[0].id)

    def test_total_mismatch_warns(self):
        rows = exported_rows([make_mission("m1", [ExpenseItem("e1", "tips", 20.0, ["A"])])])
        rows[0]["الاجمالى"] = 999
        result = parse_from_rows(rows)
        self.assertAlmostEqual(result.missions[0].total_amount, 20.0)
        self.assertTrue(any("999.00" in w for w in result.warnings))

    def test_slot_total_mismatch_warns(self):
        rows = exported_rows([make_mission("m1", [ExpenseItem("e1", "tips", 20.0, ["A"])])])
        rows[0]["الاجمالى1"] = 25
        result = parse_from_rows(rows)
        self.assertTrue(any("bank A" in w for w in result.warnings))

    def test_unreadable_date_uses_today(self):
        rows = exported_rows([make_mission("m1", [])])
        rows[0]["التاريخ"] = "غير معروف"
        result = parse_from_rows(rows)
        self.assertEqual(result.missions[0].mission_date, today_str())
        self.assertTrue(any("unreadable date" in w for w in result.warnings))

    def test_escaped_statement_is_restored(self):
        rows = exported_rows([make_mission("m1", [], statement="=1+1")])
        self.assertEqual(parse_from_rows(rows).missions[0].statement, "=1+1")

    def test_quoted_text_survives_round_trip(self):
        rows = exported_rows([make_mission("m1", [], statement="'=x")])
        self.assertEqual(rows[0][HEADERS[5]], "''=x")
        self.assertEqual(parse_from_rows(rows).missions[0].statement, "'=x")

    def test_bank_named_like_empty_slot_keeps_amounts(self):
        original = make_mission("m1", [
            ExpenseItem("e1", "fees", 100.0, ["لا يوجد مامورية"]),
        ])
        result = parse_from_rows(exported_rows([original]))
        self.assertEqual(result.warnings, [])
        m = result.missions[0]
        self.assertAlmostEqual(m.total_amount, 100.0)
        self.assertEqual(m.expenses[0].type, "fees")
        self.assertEqual(m.expenses[0].banks, ["لا يوجد مامورية"])

    def test_bank_named_like_empty_slot_next_to_other_banks(self):
        original = make_mission("m1", [
            ExpenseItem("e1", "tips", 30.0, ["لا يوجد مامورية", "امان"]),
        ])
        m = parse_from_rows(exported_rows([original])).missions[0]
        self.assertAlmostEqual(m.total_amount, 30.0)
        self.assertEqual(sorted(m.expenses[0].banks), sorted(["لا يوجد مامورية", "امان"]))
        self.assertIsNone(m.expenses[0].bank_allocations)

    def test_empty_rows_raise(self):
        with self.assertRaises(MissionImportError):
            parse_from_rows([])


class TestSimpleImport(unittest.TestCase):

    def test_summary_row_keeps_stated_total(self):
        result = parse_from_rows([{
            "اسم الموظف": "نانسى يوسف عزيز يوسف",
            "الكود": 129,
            "الفرع": "المنصورة",
            "التاريخ": "15/03/2024",
            "البنك": "فورى",
            "إجمالي المصروفات": 250,
        }])
        m = result.missions[0]
        self.assertEqual(m.bank, "فورى")
        self.assertEqual(m.mission_date, "2024-03-15")
        self.assertEqual(m.expenses, [])
        self.assertEqual(m.total_amount, 250.0)

    def test_details_string(self):
        result = parse_from_rows([{
            "اسم الموظف": "x",
            "التاريخ": "2024-03-15",
            "تفاصيل المصروفات": "انتقالات: 100 (فورى, امان); رسوم: 50 (لا يوجد بنك)",
            "إجمالي المصروفات": 150,
        }])
        self.assertEqual(result.warnings, [])
        m = result.missions[0]
        exps = by_type(m)
        self.assertEqual(exps["transportation"].banks, ["فورى", "امان"])
        self.assertEqual(exps["fees"].banks, [])
        self.assertEqual(m.total_amount, 150.0)

    def test_unreadable_detail_item_warns(self):
        warnings = []
        exps = parse_expense_details("رسوم: 5 (A); garbage", "row 2", warnings)
        self.assertEqual(len(exps), 1)
        self.assertEqual(len(warnings), 1)

    def test_allocation_text(self):
        self.assertEqual(parse_allocation_text("A:60;B:40"), {"A": 60.0, "B": 40.0})
        self.assertIsNone(parse_allocation_text(""))

    def test_linked_expense_rows(self):
        missions = [{
            "رقم المأمورية": "src1",
            "اسم الموظف": "x",
            "التاريخ": "2024-03-15",
            "البنك": "راية",
            "إجمالي المصروفات": 40,
        }]
        expenses = [
            {"رقم المأمورية": "src1", "نوع المصروف": "رسوم", "المبلغ": 40,
             "البنوك": "A, B", "التوزيع": "A:30;B:10"},
            {"رقم المأمورية": "missing", "نوع المصروف": "رسوم", "المبلغ": 5},
            {"رقم المأمورية": "missing", "نوع المصروف": "رسوم", "المبلغ": 6},
        ]
        result = parse_from_rows(missions, expense_rows=expenses)
        m = result.missions[0]
        self.assertEqual(len(m.expenses), 1)
        fee = m.expenses[0]
        self.assertEqual(fee.type, "fees")
        self.assertEqual(fee.banks, ["A", "B"])
        self.assertEqual(fee.bank_allocations, {"A": 30.0, "B": 10.0})
        self.assertEqual(m.total_amount, 40.0)
        self.assertTrue(any("2 expense rows" in w for w in result.warnings))


class TestMerge(unittest.TestCase):

    def test_append_and_replace(self):
        a, b = make_mission("a", []), make_mission("b", [])
        self.assertEqual([m.id for m in merge_imported([a], [b])], ["a", "b"])
        self.assertEqual([m.id for m in merge_imported([a], [b], replace=True)], ["b"])


class TestWorkbookImport(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def path(self, name):
        return os.path.join(self.test_dir, name)

    def test_exported_file_round_trip(self):
        path = self.path("missions.xlsx")
        originals = [
            make_mission("m1", [
                ExpenseItem("e1", "transportation", 90.0, ["A", "B", "C"]),
                ExpenseItem("e2", "office-supplies", 12.25, ["B"]),
            ], statement="=HYPERLINK(1)"),
            make_mission("m2", [], date="2024-04-01"),
        ]
        export_missions_excel(originals, path)
        result = import_missions_excel(path)
        self.assertEqual(len(result.missions), 2)

        first, second = result.missions
        self.assertEqual(first.statement, "=HYPERLINK(1)")
        self.assertAlmostEqual(first.total_amount, 102.25)
        exps = by_type(first)
        self.assertEqual(exps["transportation"].banks, ["A", "B", "C"])
        self.assertIsNone(exps["transportation"].bank_allocations)
        self.assertEqual(exps["office-supplies"].banks, ["B"])
        self.assertEqual(second.mission_date, "2024-04-01")
        self.assertEqual(second.expenses, [])

    def test_two_sheet_layout(self):
        path = self.path("legacy.xlsx")
        wb = Workbook()
        ws = wb.active
        ws.title = "المأموريات"
        ws.append(["رقم المأمورية", "اسم الموظف", "كود الموظف", "تاريخ المأمورية", "البنك الرئيسي"])
        ws.append(["src1", "x", 62, "2024-03-15", "فورى"])
        ws2 = wb.create_sheet("المصروفات")
        ws2.append(["رقم المأمورية", "نوع المصروف", "المبلغ", "البنوك"])
        ws2.append(["src1", "ضيافة", 30, "فورى"])
        wb.save(path)

        result = import_missions_excel(path)
        m = result.missions[0]
        self.assertEqual(m.bank, "فورى")
        self.assertEqual(m.expenses[0].type, "hospitality")
        self.assertEqual(m.total_amount, 30.0)

    def test_no_missions_sheet(self):
        path = self.path("other.xlsx")
        wb = Workbook()
        wb.active.append(["foo", "bar"])
        wb.active.append([1, 2])
        wb.save(path)
        with self.assertRaises(MissionImportError):
            import_missions_excel(path)

    def test_damaged_sheet_xml(self):
        good = self.path("good.xlsx")
        export_missions_excel([make_mission("m1", [])], good)
        damaged = self.path("damaged.xlsx")
        with zipfile.ZipFile(good) as src, zipfile.ZipFile(damaged, "w") as dst:
            for item in src.infolist():
                data = src.read(item.filename)
                if item.filename == "xl/worksheets/sheet1.xml":
                    data = data[: len(data) // 2]
                dst.writestr(item, data)
        with self.assertRaises(MissionImportError):
            import_missions_excel(damaged)

    def test_rejects_unsupported_and_empty_files(self):
        with self.assertRaises(MissionImportError):
            import_missions_excel(self.path("missions.csv"))
        empty = self.path("empty.xlsx")
        open(empty, "wb").close()
        with self.assertRaises(MissionImportError):
            import_missions_excel(empty)


if __name__ == "__main__":
    unittest.main()
