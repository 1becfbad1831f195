"""
Dialog windows for MissionLedger GUI
"""
from __future__ import annotations
from typing import Dict, List, Optional

try:
    import tkinter as tk
    from tkinter import ttk, messagebox
except ModuleNotFoundError:
    tk = None
    ttk = None
    messagebox = None

from models import ExpenseItem, Mission
from config import ReferenceData
from computations import allocate_expense, clean_banks, mission_bank_totals
from dates import normalize_date
from expense_types import EXPENSE_TYPES, EXPENSE_TYPE_LABELS, expense_type_label, normalize_expense_type
from utils import evaluate_amount, new_id, now_iso, parse_int, today_str


class BankAllocationEditor(tk.Toplevel):
    """Dialog for overriding the equal split of an expense across its banks"""

    def __init__(self, master, banks: List[str], amount: float, alloc: Optional[Dict[str, float]]):
        super().__init__(master)
        self.title("Bank Allocation")
        self.resizable(False, False)
        self.banks = banks
        self.amount = amount
        self.vars: Dict[str, tk.StringVar] = {}
        self.result: Optional[Dict[str, float]] = None

        frm = ttk.Frame(self, padding=10)
        frm.grid(row=0, column=0, sticky="nsew")

        ttk.Label(frm, text=f"Amount per bank (expense total {amount:.2f}). Formulas like =100/3 work.").grid(
            row=0, column=0, columnspan=3, sticky="w", pady=(0, 8)
        )

        share = amount / len(banks) if banks else 0.0
        for i, b in enumerate(banks):
            ttk.Label(frm, text=b).grid(row=i + 1, column=0, sticky="w")
            v = tk.StringVar(value=str((alloc or {}).get(b, round(share, 2))))
            self.vars[b] = v
            ttk.Entry(frm, textvariable=v, width=12).grid(row=i + 1, column=1, sticky="w")

        self.sum_var = tk.StringVar(value="")
        ttk.Label(frm, textvariable=self.sum_var).grid(row=1, column=2, rowspan=len(banks), sticky="n")

        btns = ttk.Frame(frm)
        btns.grid(row=len(banks) + 2, column=0, columnspan=3, sticky="ew", pady=(10, 0))
        ttk.Button(btns, text="Equal", command=self._equal).grid(row=0, column=0, padx=3)
        ttk.Button(btns, text="OK", command=self._ok).grid(row=0, column=1, padx=12)
        ttk.Button(btns, text="Cancel", command=self._cancel).grid(row=0, column=2, padx=3)

        for b in banks:
            self.vars[b].trace_add("write", lambda *_: self._update_sum())
        self._update_sum()

        self.grab_set()
        self.transient(master)

    def _read(self) -> Dict[str, Optional[float]]:
        """Read current allocation values from inputs"""
        return {b: evaluate_amount(v.get()) for b, v in self.vars.items()}

    def _update_sum(self):
        """Update sum label"""
        s = sum(v for v in self._read().values() if v is not None)
        diff = s - self.amount
        note = "" if abs(diff) <= 0.01 else f"  (differs by {diff:+.2f})"
        self.sum_var.set(f"Sum: {s:.2f}{note}")

    def _equal(self):
        """Drop the overrides and go back to the equal split"""
        self.result = {}
        self.destroy()

    def _ok(self):
        """Save and close"""
        d = self._read()
        bad = [b for b, v in d.items() if v is None or v < 0]
        if bad:
            messagebox.showerror("Invalid amount", f"Invalid amount for: {', '.join(bad)}")
            return
        self.result = {b: float(v) for b, v in d.items()}
        self.destroy()

    def _cancel(self):
        """Cancel and close"""
        self.result = None
        self.destroy()


class ExpenseDialog(tk.Toplevel):
    """Dialog for adding/editing an expense item"""

    def __init__(self, master, bank_names: List[str], expense: Optional[ExpenseItem] = None,
                 expense_type: str = "transportation"):
        super().__init__(master)
        self.title("Add Expense" if expense is None else "Edit Expense")
        self.resizable(False, False)
        self.expense = expense
        self.result: Optional[ExpenseItem] = None

        self._bind_enter_to_ok()

        frm = ttk.Frame(self, padding=10)
        frm.grid(row=0, column=0, sticky="nsew")

        etype = normalize_expense_type(expense.type) if expense else expense_type
        self.type_labels = [EXPENSE_TYPE_LABELS[t] for t in EXPENSE_TYPES]
        self.v_type = tk.StringVar(value=expense_type_label(etype))
        self.v_amount = tk.StringVar(value=str(expense.amount) if expense else "0")

        r = 0
        ttk.Label(frm, text="Type").grid(row=r, column=0, sticky="w")
        ttk.Combobox(frm, textvariable=self.v_type, values=self.type_labels,
                     width=20).grid(row=r, column=1, sticky="w")
        r += 1

        ttk.Label(frm, text="Amount (or =formula)").grid(row=r, column=0, sticky="w", pady=2)
        ttk.Entry(frm, textvariable=self.v_amount, width=18).grid(row=r, column=1, sticky="w")
        r += 1

        ttk.Label(frm, text="Banks").grid(row=r, column=0, sticky="nw", pady=2)
        self.bank_list = tk.Listbox(frm, selectmode="multiple", height=10, exportselection=False)
        names = list(bank_names)
        for b in (expense.banks if expense else []):
            if b not in names:
                names.append(b)
        self.bank_names = names
        for i, b in enumerate(names):
            self.bank_list.insert(tk.END, b)
            if expense and b in expense.banks:
                self.bank_list.selection_set(i)
        self.bank_list.grid(row=r, column=1, sticky="w")
        r += 1

        self.alloc: Optional[Dict[str, float]] = (
            dict(expense.bank_allocations) if expense and expense.bank_allocations else None
        )
        alloc_frame = ttk.Frame(frm)
        alloc_frame.grid(row=r, column=0, columnspan=2, sticky="ew", pady=(8, 0))
        ttk.Button(alloc_frame, text="Edit Allocation…", command=self._edit_alloc).grid(
            row=0, column=0, sticky="w")
        self.alloc_label = ttk.Label(alloc_frame, text=self._alloc_text())
        self.alloc_label.grid(row=0, column=1, padx=8, sticky="w")
        r += 1

        btns = ttk.Frame(frm)
        btns.grid(row=r, column=0, columnspan=2, sticky="e", pady=(10, 0))
        ttk.Button(btns, text="OK", command=self._ok).grid(row=0, column=0, padx=4)
        ttk.Button(btns, text="Cancel", command=self._cancel).grid(row=0, column=1, padx=4)

        self.grab_set()
        self.transient(master)

    def _bind_enter_to_ok(self):
        """Bind Enter/Return to OK"""

        def on_enter(event=None):
            self._ok()
            return "break"

        self.bind("<Return>", on_enter)
        self.bind("<KP_Enter>", on_enter)

    def _selected_banks(self) -> List[str]:
        return [self.bank_names[i] for i in self.bank_list.curselection()]

    def _alloc_text(self) -> str:
        """Format allocation for display"""
        if not self.alloc:
            return "equal split"
        return "  ".join(f"{b}:{v:.2f}" for b, v in self.alloc.items())

    def _edit_alloc(self):
        """Open allocation editor dialog"""
        banks = self._selected_banks()
        if not banks:
            messagebox.showinfo("Allocation", "Select at least one bank first.")
            return
        amt = evaluate_amount(self.v_amount.get())
        dlg = BankAllocationEditor(self, banks, amt or 0.0, self.alloc)
        self.wait_window(dlg)
        if dlg.result is not None:
            self.alloc = dlg.result or None
            self.alloc_label.config(text=self._alloc_text())

    def _ok(self):
        """Validate and save expense"""
        amt = evaluate_amount(self.v_amount.get())
        if amt is None or amt < 0:
            messagebox.showerror("Invalid amount", "Amount must be a non-negative number or formula.")
            return

        label = self.v_type.get().strip()
        if not label:
            messagebox.showerror("Missing type", "Please choose an expense type.")
            return

        banks = self._selected_banks()
        alloc = None
        if self.alloc:
            alloc = {b: v for b, v in self.alloc.items() if b in banks} or None

        self.result = ExpenseItem(
            id=self.expense.id if self.expense else new_id("expense"),
            type=normalize_expense_type(label),
            amount=float(amt),
            banks=banks,
            bank_allocations=alloc,
        )
        self.destroy()

    def _cancel(self):
        """Cancel and close"""
        self.result = None
        self.destroy()


class MissionDialog(tk.Toplevel):
    """Dialog for adding/editing a mission and its expenses"""

    def __init__(self, master, reference: ReferenceData, mission: Optional[Mission] = None):
        super().__init__(master)
        self.title("Add Mission" if mission is None else "Edit Mission")
        self.resizable(False, False)
        self.reference = reference
        self.mission = mission
        self.result: Optional[Mission] = None
        self.expenses: List[ExpenseItem] = [
            ExpenseItem(e.id, e.type, e.amount, list(e.banks),
                        dict(e.bank_allocations) if e.bank_allocations else None)
            for e in (mission.expenses if mission else [])
        ]

        frm = ttk.Frame(self, padding=10)
        frm.grid(row=0, column=0, sticky="nsew")

        self.v_code = tk.StringVar(value=str(mission.employee_code) if mission else "")
        self.v_name = tk.StringVar(value=mission.employee_name if mission else "")
        self.v_branch = tk.StringVar(value=mission.employee_branch if mission else "")
        self.v_date = tk.StringVar(value=mission.mission_date if mission else today_str())
        self.v_bank = tk.StringVar(value=(mission.bank or "") if mission else "")
        self.v_statement = tk.StringVar(value=(mission.statement or "") if mission else "")

        r = 0
        ttk.Label(frm, text="Employee code").grid(row=r, column=0, sticky="w")
        code_frame = ttk.Frame(frm)
        code_frame.grid(row=r, column=1, sticky="w")
        ttk.Entry(code_frame, textvariable=self.v_code, width=10).pack(side="left")
        ttk.Button(code_frame, text="Lookup", command=self._lookup).pack(side="left", padx=4)
        r += 1

        ttk.Label(frm, text="Name").grid(row=r, column=0, sticky="w", pady=2)
        ttk.Entry(frm, textvariable=self.v_name, width=36).grid(row=r, column=1, sticky="w")
        r += 1

        ttk.Label(frm, text="Branch").grid(row=r, column=0, sticky="w", pady=2)
        ttk.Entry(frm, textvariable=self.v_branch, width=24).grid(row=r, column=1, sticky="w")
        r += 1

        ttk.Label(frm, text="Date").grid(row=r, column=0, sticky="w", pady=2)
        ttk.Entry(frm, textvariable=self.v_date, width=14).grid(row=r, column=1, sticky="w")
        r += 1

        ttk.Label(frm, text="Primary bank").grid(row=r, column=0, sticky="w", pady=2)
        ttk.Combobox(frm, textvariable=self.v_bank, values=[""] + reference.bank_names(),
                     width=22).grid(row=r, column=1, sticky="w")
        r += 1

        ttk.Label(frm, text="Statement").grid(row=r, column=0, sticky="w", pady=2)
        ttk.Entry(frm, textvariable=self.v_statement, width=48).grid(row=r, column=1, sticky="w")
        r += 1

        # Expenses
        exp_btns = ttk.Frame(frm)
        exp_btns.grid(row=r, column=0, columnspan=2, sticky="w", pady=(10, 2))
        for t in EXPENSE_TYPES:
            ttk.Button(exp_btns, text=f"+ {EXPENSE_TYPE_LABELS[t]}",
                       command=lambda t=t: self._add_expense(t)).pack(side="left", padx=2)
        ttk.Button(exp_btns, text="Edit", command=self._edit_expense).pack(side="left", padx=(12, 2))
        ttk.Button(exp_btns, text="Remove", command=self._remove_expense).pack(side="left", padx=2)
        r += 1

        cols = ("type", "amount", "banks", "allocation")
        self.exp_tree = ttk.Treeview(frm, columns=cols, show="headings", height=7)
        for c, w in zip(cols, [120, 90, 260, 220]):
            self.exp_tree.heading(c, text=c)
            self.exp_tree.column(c, width=w, anchor="w")
        self.exp_tree.grid(row=r, column=0, columnspan=2, sticky="ew")
        r += 1

        self.total_var = tk.StringVar(value="")
        ttk.Label(frm, textvariable=self.total_var, font=("TkDefaultFont", 10, "bold")).grid(
            row=r, column=0, columnspan=2, sticky="w", pady=(6, 0))
        r += 1

        self.dist_var = tk.StringVar(value="")
        ttk.Label(frm, textvariable=self.dist_var, justify="left").grid(
            row=r, column=0, columnspan=2, sticky="w")
        r += 1

        btns = ttk.Frame(frm)
        btns.grid(row=r, column=0, columnspan=2, sticky="e", pady=(10, 0))
        ttk.Button(btns, text="OK", command=self._ok).grid(row=0, column=0, padx=4)
        ttk.Button(btns, text="Cancel", command=self._cancel).grid(row=0, column=1, padx=4)

        self._refresh_expenses()
        self.grab_set()
        self.transient(master)

    def _lookup(self):
        """Fill name and branch from the employee code"""
        code = parse_int(self.v_code.get(), -1)
        emp = self.reference.employee_by_code(code)
        if emp is None:
            messagebox.showinfo("Employee", f"No employee with code {self.v_code.get().strip()}.")
            return
        self.v_name.set(emp.name)
        self.v_branch.set(emp.branch)

    def _current(self) -> Mission:
        m = Mission(
            id="", employee_code=0, employee_name="", employee_branch="",
            mission_date="", bank=self.v_bank.get().strip() or None,
            expenses=self.expenses,
        )
        m.recompute_total()
        return m

    def _refresh_expenses(self):
        """Refresh expenses table, total and bank distribution"""
        for iid in self.exp_tree.get_children():
            self.exp_tree.delete(iid)
        fallback = self.v_bank.get().strip() or None
        for e in self.expenses:
            alloc = allocate_expense(e, fallback)
            alloc_txt = ", ".join(f"{b}:{v:.2f}" for b, v in alloc.items())
            self.exp_tree.insert("", "end", iid=e.id, values=(
                expense_type_label(e.type), f"{e.amount:.2f}", ", ".join(e.banks), alloc_txt,
            ))

        m = self._current()
        self.total_var.set(f"Total: {m.total_amount:.2f}   Items: {len(self.expenses)}")
        totals = mission_bank_totals(m)
        lines = []
        for bank, amt in totals.items():
            pct = (amt / m.total_amount * 100) if m.total_amount > 0 else 0.0
            lines.append(f"{bank}: {amt:.2f} ({pct:.1f}%)")
        self.dist_var.set("\n".join(lines) or "Add expenses to see the bank distribution.")

    def _add_expense(self, expense_type: str):
        dlg = ExpenseDialog(self, self.reference.bank_names(), None, expense_type)
        self.wait_window(dlg)
        if dlg.result:
            self.expenses.append(dlg.result)
            self._refresh_expenses()

    def _edit_expense(self):
        sel = self.exp_tree.selection()
        if not sel:
            messagebox.showinfo("Edit", "Select an expense row first.")
            return
        e = next((x for x in self.expenses if x.id == sel[0]), None)
        if not e:
            return
        dlg = ExpenseDialog(self, self.reference.bank_names(), e)
        self.wait_window(dlg)
        if dlg.result:
            for i, x in enumerate(self.expenses):
                if x.id == dlg.result.id:
                    self.expenses[i] = dlg.result
                    break
            self._refresh_expenses()

    def _remove_expense(self):
        sel = self.exp_tree.selection()
        if not sel:
            return
        self.expenses = [e for e in self.expenses if e.id != sel[0]]
        self._refresh_expenses()

    def _ok(self):
        """Validate and save mission"""
        iso = normalize_date(self.v_date.get())
        if iso is None:
            messagebox.showerror("Invalid date", "Enter a valid date, e.g. 2024-03-15 or 15/03/2024.")
            return

        code = parse_int(self.v_code.get(), -1)
        if code < 0:
            messagebox.showerror("Invalid code", "Employee code must be a number.")
            return

        name = self.v_name.get().strip()
        if not name:
            messagebox.showerror("Missing employee", "Look up the employee or type a name.")
            return

        m = Mission(
            id=self.mission.id if self.mission else new_id(),
            employee_code=code,
            employee_name=name,
            employee_branch=self.v_branch.get().strip(),
            mission_date=iso,
            bank=self.v_bank.get().strip() or None,
            statement=self.v_statement.get().strip() or None,
            expenses=[
                ExpenseItem(e.id, e.type, e.amount, clean_banks(e.banks), e.bank_allocations)
                for e in self.expenses
            ],
            created_at=self.mission.created_at if self.mission else now_iso(),
        )
        m.recompute_total()
        self.result = m
        self.destroy()

    def _cancel(self):
        """Cancel and close"""
        self.result = None
        self.destroy()
