"""
MissionLedger GUI
- Record employee missions and their expenses, split across banks / companies.
- Export / import the detailed Excel layout and a period report.

Run:
  python mission_ledger_gui.py

Dependencies:
  pip install openpyxl
(Tkinter ships with most Python distributions; on some Linux you may need: sudo apt-get install python3-tk)
"""
from __future__ import annotations

try:
    import tkinter as tk
except ModuleNotFoundError:
    tk = None

from config import configure_logging


def main():
    """Main entry point for the application"""
    if tk is None:
        raise RuntimeError(
            'tkinter is not available. Install it (e.g., on Ubuntu: sudo apt-get install python3-tk) '
            'and re-run to use the GUI.'
        )

    from main_app import MissionLedgerApp

    configure_logging()
    root = tk.Tk()
    app = MissionLedgerApp(root)
    root.mainloop()


if __name__ == "__main__":
    main()
