from __future__ import annotations

import re
import zipfile
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional, Union

from openpyxl import Workbook
from openpyxl.utils.datetime import CALENDAR_MAC_1904
from openpyxl.worksheet.worksheet import Worksheet

# Day zero of serial dates in the 1900 date system (Excel's leap-year quirk
# included) and in the 1904 system. They are 1462 days apart.
CANONICAL_BASE = date(1899, 12, 30)
LEGACY_BASE = date(1904, 1, 1)

UNKNOWN_DATE = date.max

_TEXT_FORMATS = ("%d.%m.%Y", "%d/%m/%Y", "%Y-%m-%d")
_DATE1904_RE = re.compile(r'date1904\s*=\s*"(1|true)"', re.IGNORECASE)


def _from_offset(days: int, base: date) -> Optional[date]:
    try:
        return base + timedelta(days=days)
    except OverflowError:
        return None


def parse_date(value: object, base: Optional[date] = None) -> Optional[date]:
    """Convert a ledger cell or extracted text into a date; returns None on failure."""
    base = base or CANONICAL_BASE
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return _from_offset(int(value), base)

    text = str(value).strip()
    if not text:
        return None
    for fmt in _TEXT_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    if re.fullmatch(r"[+-]?\d+", text):
        return _from_offset(int(text), base)
    return None


def sort_date(value: object, base: Optional[date] = None) -> date:
    """Like parse_date, but unparseable values sort after every real date."""
    parsed = parse_date(value, base)
    return parsed if parsed is not None else UNKNOWN_DATE


def is_legacy_epoch(source: Union[Workbook, str, Path]) -> bool:
    """True when the workbook stores dates in the 1904 system."""
    if isinstance(source, Workbook):
        return source.epoch == CALENDAR_MAC_1904
    try:
        with zipfile.ZipFile(source) as archive:
            contents = archive.read("xl/workbook.xml").decode("utf-8", errors="replace")
    except (OSError, KeyError, zipfile.BadZipFile):
        return False
    return bool(_DATE1904_RE.search(contents))


def migrate_legacy_dates(
    ws: Worksheet,
    start_row: int,
    columns: Iterable[int],
    threshold: float,
    offset_days: int,
) -> int:
    """Shift raw numeric date cells from the 1904 base to the 1900 base in place."""
    columns = list(columns)
    migrated = 0
    for row in range(start_row, ws.max_row + 1):
        for col in columns:
            cell = ws.cell(row=row, column=col)
            value = cell.value
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if value > threshold:
                cell.value = value + offset_days
                migrated += 1
    return migrated
