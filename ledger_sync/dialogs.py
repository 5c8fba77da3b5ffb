from __future__ import annotations

import tkinter as tk
from pathlib import Path
from tkinter import filedialog
from typing import Optional

from .ledger_file import LEDGER_SUFFIXES


def pick_ledger_file(initial_dir: Optional[Path] = None) -> Optional[Path]:
    """Ask for a ledger workbook; None when the user cancels."""
    root = tk.Tk()
    root.withdraw()
    try:
        root.attributes("-topmost", True)
        selected = filedialog.askopenfilename(
            title="Select ledger workbook",
            initialdir=str(initial_dir) if initial_dir else None,
            filetypes=[("Excel", " ".join(f"*{s}" for s in LEDGER_SUFFIXES))],
        )
    finally:
        root.destroy()
    return Path(selected) if selected else None
