"""
Main application window for MissionLedger GUI
"""
from __future__ import annotations
import logging
from typing import Optional, Tuple

try:
    import tkinter as tk
    from tkinter import ttk, messagebox, filedialog
except ModuleNotFoundError:
    tk = None
    ttk = None
    messagebox = None
    filedialog = None

from config import get_reference_data
from storage import JsonMissionStore, MissionStore
from computations import aggregate_period
from dates import day_of_week, normalize_date
from excel_export import export_missions_excel, export_period_report
from excel_import import MissionImportError, import_missions_excel, merge_imported
from csv_handler import export_expenses_to_csv, import_expenses_from_csv
from expense_types import EXPENSE_TYPES, EXPENSE_TYPE_LABELS
from gui_dialogs import MissionDialog

logger = logging.getLogger(__name__)


class MissionLedgerApp(ttk.Frame):
    """Main application window"""

    def __init__(self, master: tk.Tk, store: Optional[MissionStore] = None):
        super().__init__(master, padding=8)
        self.master = master
        self.master.title("MissionLedger")
        self.master.geometry("1200x680")
        self.grid(row=0, column=0, sticky="nsew")
        self.master.rowconfigure(0, weight=1)
        self.master.columnconfigure(0, weight=1)

        self.store = store or JsonMissionStore()
        self.reference = get_reference_data()

        self._build_menu()
        self._build_ui()
        self.refresh_all()

    # ---------- Menu ----------
    def _build_menu(self):
        """Build application menu bar"""
        menubar = tk.Menu(self.master)
        filem = tk.Menu(menubar, tearoff=0)
        filem.add_command(label="Import Excel…", command=self.import_excel_dialog)
        filem.add_command(label="Export Excel…", command=self.export_excel_dialog)
        filem.add_separator()
        filem.add_command(label="Import CSV…", command=self.import_csv_dialog)
        filem.add_command(label="Export CSV…", command=self.export_csv_dialog)
        filem.add_separator()
        filem.add_command(label="Exit", command=self.master.destroy)
        menubar.add_cascade(label="File", menu=filem)
        self.master.config(menu=menubar)

    # ---------- UI ----------
    def _build_ui(self):
        """Build main UI with tabs"""
        nb = ttk.Notebook(self)
        nb.grid(row=0, column=0, sticky="nsew")
        self.rowconfigure(0, weight=1)
        self.columnconfigure(0, weight=1)

        self.tab_missions = ttk.Frame(nb, padding=8)
        self.tab_employees = ttk.Frame(nb, padding=8)
        self.tab_banks = ttk.Frame(nb, padding=8)
        self.tab_reports = ttk.Frame(nb, padding=8)

        nb.add(self.tab_missions, text="Missions")
        nb.add(self.tab_employees, text="Employees")
        nb.add(self.tab_banks, text="Banks")
        nb.add(self.tab_reports, text="Period Report")

        self._build_missions_tab()
        self._build_employees_tab()
        self._build_banks_tab()
        self._build_reports_tab()

    def _build_missions_tab(self):
        """Build missions tab"""
        top = ttk.Frame(self.tab_missions)
        top.grid(row=0, column=0, sticky="ew")
        self.tab_missions.columnconfigure(0, weight=1)

        ttk.Button(top, text="Add", command=self.add_mission).pack(side="left", padx=3)
        ttk.Button(top, text="Edit", command=self.edit_selected_mission).pack(side="left", padx=3)
        ttk.Button(top, text="Delete", command=self.delete_selected_mission).pack(side="left", padx=3)

        ttk.Separator(self.tab_missions, orient="horizontal").grid(row=1, column=0, sticky="ew", pady=6)

        cols = ("date", "day", "code", "employee", "branch", "bank", "items", "total", "statement")
        self.mission_tree = ttk.Treeview(self.tab_missions, columns=cols, show="headings", height=20)
        for c, w in zip(cols, [95, 80, 60, 240, 120, 120, 60, 90, 400]):
            self.mission_tree.heading(c, text=c)
            self.mission_tree.column(c, width=w, anchor="w")
        self.mission_tree.grid(row=2, column=0, sticky="nsew")
        self.tab_missions.rowconfigure(2, weight=1)
        self.mission_tree.bind("<Double-1>", lambda _e: self.edit_selected_mission())

        yscroll = ttk.Scrollbar(self.tab_missions, orient="vertical", command=self.mission_tree.yview)
        self.mission_tree.configure(yscroll=yscroll.set)
        yscroll.grid(row=2, column=1, sticky="ns")

    def _build_employees_tab(self):
        """Build employees lookup tab"""
        self.tab_employees.columnconfigure(0, weight=1)
        filt = ttk.Frame(self.tab_employees)
        filt.grid(row=0, column=0, sticky="ew")
        ttk.Label(filt, text="Code").pack(side="left")
        self.lookup_code = tk.StringVar(value="")
        ttk.Entry(filt, textvariable=self.lookup_code, width=10).pack(side="left", padx=4)
        ttk.Button(filt, text="Find", command=self.find_employee).pack(side="left", padx=4)

        cols = ("code", "name", "branch")
        self.emp_tree = ttk.Treeview(self.tab_employees, columns=cols, show="headings", height=20)
        for c, w in zip(cols, [80, 320, 160]):
            self.emp_tree.heading(c, text=c)
            self.emp_tree.column(c, width=w, anchor="w")
        self.emp_tree.grid(row=1, column=0, sticky="nsew", pady=6)
        self.tab_employees.rowconfigure(1, weight=1)

    def _build_banks_tab(self):
        """Build banks list tab"""
        self.tab_banks.columnconfigure(0, weight=1)
        ttk.Label(self.tab_banks, text="Banks / companies:").grid(row=0, column=0, sticky="w")
        self.bank_list = tk.Listbox(self.tab_banks, height=20)
        self.bank_list.grid(row=1, column=0, sticky="nsew", pady=6)
        self.tab_banks.rowconfigure(1, weight=1)

    def _build_reports_tab(self):
        """Build period report tab"""
        self.tab_reports.columnconfigure(0, weight=1)

        filt = ttk.Frame(self.tab_reports)
        filt.grid(row=0, column=0, sticky="ew")
        ttk.Label(filt, text="From").pack(side="left")
        self.rep_start = tk.StringVar(value="")
        ttk.Entry(filt, textvariable=self.rep_start, width=12).pack(side="left", padx=4)
        ttk.Label(filt, text="To").pack(side="left")
        self.rep_end = tk.StringVar(value="")
        ttk.Entry(filt, textvariable=self.rep_end, width=12).pack(side="left", padx=4)

        ttk.Button(filt, text="Refresh", command=self.refresh_reports).pack(side="left", padx=8)
        ttk.Button(filt, text="Export Excel…", command=self.export_period_dialog).pack(side="left", padx=3)

        self.report_note = tk.StringVar(value="")
        ttk.Label(self.tab_reports, textvariable=self.report_note).grid(row=1, column=0, sticky="w", pady=(6, 0))

        cols = ("code", "employee", "branch", "bank") + tuple(EXPENSE_TYPES) + ("total",)
        self.rep_tree = ttk.Treeview(self.tab_reports, columns=cols, show="headings", height=18)
        headings = ["code", "employee", "branch", "bank"] + [EXPENSE_TYPE_LABELS[t] for t in EXPENSE_TYPES] + ["total"]
        for c, h, w in zip(cols, headings, [60, 220, 110, 120] + [90] * len(EXPENSE_TYPES) + [100]):
            self.rep_tree.heading(c, text=h)
            self.rep_tree.column(c, width=w, anchor="w")
        self.rep_tree.grid(row=2, column=0, sticky="nsew", pady=6)
        self.tab_reports.rowconfigure(2, weight=1)

    # ---------- CRUD: Missions ----------
    def add_mission(self):
        """Add new mission"""
        dlg = MissionDialog(self.master, self.reference, None)
        self.master.wait_window(dlg)
        if dlg.result:
            self.store.upsert(dlg.result)
            self.refresh_all()

    def edit_selected_mission(self):
        """Edit selected mission"""
        sel = self.mission_tree.selection()
        if not sel:
            messagebox.showinfo("Edit", "Select a mission row first.")
            return
        m = self.store.get(sel[0])
        if not m:
            return
        dlg = MissionDialog(self.master, self.reference, m)
        self.master.wait_window(dlg)
        if dlg.result:
            self.store.upsert(dlg.result)
            self.refresh_all()

    def delete_selected_mission(self):
        """Delete selected mission"""
        sel = self.mission_tree.selection()
        if not sel:
            messagebox.showinfo("Delete", "Select a mission row first.")
            return
        if len(self.store.list()) <= 1:
            messagebox.showerror("Delete", "At least one mission must remain.")
            return
        if messagebox.askyesno("Delete", "Delete selected mission?"):
            self.store.delete(sel[0])
            self.refresh_all()

    def find_employee(self):
        """Select the employee row matching the typed code"""
        code = self.lookup_code.get().strip()
        for iid in self.emp_tree.get_children():
            if iid == code:
                self.emp_tree.selection_set(iid)
                self.emp_tree.see(iid)
                return
        messagebox.showinfo("Employee", f"No employee with code {code}.")

    # ---------- File ops ----------
    def export_excel_dialog(self):
        """Export all missions to the detailed Excel layout"""
        fp = filedialog.asksaveasfilename(
            title="Export Excel",
            defaultextension=".xlsx",
            filetypes=[("Excel Workbook", "*.xlsx")]
        )
        if not fp:
            return
        try:
            warnings = export_missions_excel(self.store.list(), fp)
        except Exception as ex:
            logger.exception("export failed")
            messagebox.showerror("Export failed", str(ex))
            return
        msg = f"Exported: {fp}"
        if warnings:
            msg += f"\n\n{len(warnings)} warnings:\n" + "\n".join(warnings[:10])
        messagebox.showinfo("Export", msg)

    def _apply_import(self, imported, warnings, source: str):
        """Append or replace after asking the user"""
        choice = messagebox.askyesnocancel(
            "Import",
            f"Found {len(imported)} missions in {source}.\n\n"
            "Yes: Append to current missions\n"
            "No: Replace current missions\n"
            "Cancel: Cancel import"
        )
        if choice is None:
            return
        self.store.replace_all(merge_imported(self.store.list(), imported, replace=not choice))
        self.refresh_all()
        msg = f"Imported {len(imported)} missions."
        if warnings:
            msg += f"\n\n{len(warnings)} warnings:\n" + "\n".join(warnings[:10])
        messagebox.showinfo("Import", msg)

    def import_excel_dialog(self):
        """Import missions from an Excel workbook"""
        fp = filedialog.askopenfilename(
            title="Import Excel",
            filetypes=[("Excel Workbook", "*.xlsx *.xlsm"), ("All files", "*.*")]
        )
        if not fp:
            return
        try:
            result = import_missions_excel(fp, self.store.list())
        except MissionImportError as ex:
            messagebox.showerror("Import failed", str(ex))
            return
        except Exception as ex:
            logger.exception("import failed")
            messagebox.showerror("Import failed", str(ex))
            return
        self._apply_import(result.missions, result.warnings, "the workbook")

    def export_csv_dialog(self):
        """Export itemized expenses to CSV file"""
        missions = self.store.list()
        if not missions:
            messagebox.showinfo("Export CSV", "No missions to export.")
            return
        fp = filedialog.asksaveasfilename(
            title="Export Expenses to CSV",
            defaultextension=".csv",
            filetypes=[("CSV files", "*.csv"), ("All files", "*.*")]
        )
        if not fp:
            return
        try:
            n = export_expenses_to_csv(missions, fp)
            messagebox.showinfo("Export CSV", f"Exported {n} lines to:\n{fp}")
        except OSError as ex:
            messagebox.showerror("Export failed", str(ex))

    def import_csv_dialog(self):
        """Import missions from an itemized expenses CSV file"""
        fp = filedialog.askopenfilename(
            title="Import Expenses from CSV",
            filetypes=[("CSV files", "*.csv"), ("All files", "*.*")]
        )
        if not fp:
            return
        try:
            result = import_expenses_from_csv(fp, self.store.list())
        except (MissionImportError, OSError, UnicodeDecodeError) as ex:
            messagebox.showerror("Import failed", str(ex))
            return
        self._apply_import(result.missions, result.warnings, "the CSV file")

    def export_period_dialog(self):
        """Export the period report to Excel"""
        start, end = self._get_report_dates()
        if not start or not end:
            messagebox.showerror("Period", "Enter both From and To dates.")
            return
        fp = filedialog.asksaveasfilename(
            title="Export Period Report",
            defaultextension=".xlsx",
            initialfile=f"period-report-{start}-to-{end}.xlsx",
            filetypes=[("Excel Workbook", "*.xlsx")]
        )
        if not fp:
            return
        try:
            n = export_period_report(self.store.list(), start, end, fp)
            messagebox.showinfo("Export", f"Exported {n} rows: {fp}")
        except ValueError as ex:
            messagebox.showerror("Period", str(ex))
        except OSError as ex:
            messagebox.showerror("Export failed", str(ex))

    # ---------- Refresh ----------
    def refresh_all(self):
        """Refresh all UI elements"""
        self.refresh_missions()
        self.refresh_employees()
        self.refresh_banks()
        self.refresh_reports()

    def refresh_missions(self):
        """Refresh missions tree view"""
        for iid in self.mission_tree.get_children():
            self.mission_tree.delete(iid)

        missions = self.store.list()
        missions.sort(key=lambda m: (m.mission_date, m.employee_code))
        for m in missions:
            values = (
                m.mission_date, day_of_week(m.mission_date), m.employee_code, m.employee_name,
                m.employee_branch, m.bank or "", len(m.expenses), f"{m.total_amount:.2f}",
                m.statement or "",
            )
            self.mission_tree.insert("", "end", iid=m.id, values=values)

    def refresh_employees(self):
        """Refresh employees tree view"""
        for iid in self.emp_tree.get_children():
            self.emp_tree.delete(iid)
        for e in sorted(self.reference.employees, key=lambda e: e.code):
            self.emp_tree.insert("", "end", iid=str(e.code), values=(e.code, e.name, e.branch))

    def refresh_banks(self):
        """Refresh banks list"""
        self.bank_list.delete(0, tk.END)
        for name in self.reference.bank_names():
            self.bank_list.insert(tk.END, name)

    def _get_report_dates(self) -> Tuple[Optional[str], Optional[str]]:
        """Parse report date range from inputs"""
        s = self.rep_start.get().strip()
        e = self.rep_end.get().strip()
        start = normalize_date(s) if s else None
        end = normalize_date(e) if e else None
        if s and start is None:
            messagebox.showerror("Invalid date", f"Cannot read From date {s!r}.")
        if e and end is None:
            messagebox.showerror("Invalid date", f"Cannot read To date {e!r}.")
        return start, end

    def refresh_reports(self):
        """Refresh period report tab"""
        for iid in self.rep_tree.get_children():
            self.rep_tree.delete(iid)

        start, end = self._get_report_dates()
        self.report_note.set(f"Period: {start or 'any'} to {end or 'any'}")
        try:
            rows = aggregate_period(self.store.list(), start, end)
        except ValueError as ex:
            self.report_note.set(str(ex))
            return
        for r in rows:
            self.rep_tree.insert("", "end", values=(
                r.employee_code, r.employee_name, r.employee_branch, r.bank_name,
                *[f"{r.per_type.get(t, 0.0):.2f}" for t in EXPENSE_TYPES],
                f"{r.total:.2f}",
            ))
