from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from .config import Config
from .errors import AccessDeniedError, MissingSheetError, PersistFailureError, ReadFailureError
from .logs import log_event

LEDGER_SUFFIXES = (".xlsx", ".xlsm")


def _as_path(p: Union[str, Path]) -> Path:
    return p if isinstance(p, Path) else Path(p)


def check_ledger_access(path: Union[str, Path]) -> Path:
    """
    Verify the ledger can be opened for writing. This is a check, not a lock:
    another program may still open the file before the final save.
    """
    path = _as_path(path)
    if not path.exists():
        raise AccessDeniedError(f"Ledger file does not exist: {path}")
    try:
        with open(path, "r+b"):
            pass
    except OSError as exc:
        raise AccessDeniedError(f"Access denied, is the ledger open in another program? ({exc})") from exc
    return path


def backup_path_for(path: Union[str, Path]) -> Path:
    path = _as_path(path)
    return path.with_name(path.name + ".bak")


def create_backup(path: Path, cfg: Optional[Config] = None) -> Optional[Path]:
    backup = backup_path_for(path)
    try:
        shutil.copy2(path, backup)
    except OSError as exc:
        log_event(cfg, f"backup of {path.name} failed: {exc}")
        return None
    return backup


def remove_backup(backup: Optional[Path], cfg: Optional[Config] = None) -> None:
    if backup is None or not backup.exists():
        return
    try:
        backup.unlink()
    except OSError as exc:
        log_event(cfg, f"could not remove backup {backup.name}: {exc}")


def load_ledger(path: Union[str, Path]) -> Workbook:
    path = _as_path(path)
    try:
        return load_workbook(path, keep_vba=path.suffix.lower() == ".xlsm")
    except (InvalidFileException, BadZipFile, KeyError, ValueError, OSError) as exc:
        raise ReadFailureError(f"Could not read ledger {path.name}: {exc}") from exc


def first_sheet(wb: Workbook) -> Worksheet:
    if not wb.worksheets:
        raise MissingSheetError("No worksheet found in the ledger.")
    return wb.worksheets[0]


def _atomic_save(wb: Workbook, target_path: Path) -> None:
    target_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=target_path.stem + "_", suffix=".tmp", dir=str(target_path.parent))
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        wb.save(tmp_path)
        os.replace(tmp_path, target_path)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


def atomic_save_workbook(wb: Workbook, target_path: Union[str, Path]) -> None:
    target_path = _as_path(target_path)
    try:
        _atomic_save(wb, target_path)
    except OSError as exc:
        raise PersistFailureError(f"Could not write ledger {target_path.name}: {exc}") from exc
