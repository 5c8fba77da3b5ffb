from __future__ import annotations

from datetime import date
from typing import List

from openpyxl.worksheet.worksheet import Worksheet

from .dates import CANONICAL_BASE, parse_date
from .matcher import ExistingRow, MatchResult, NoMatch, PendingMerge
from .records import DATE_FIELDS, IncomingRecord, PendingRecord


def cell_value_for(name: str, value: object, base: date = CANONICAL_BASE) -> object:
    """Dates go into the sheet as real dates when they parse, raw text otherwise."""
    if name in DATE_FIELDS:
        parsed = parse_date(value, base)
        if parsed is not None:
            return parsed
    return value


def write_record(ws: Worksheet, row: int, record: IncomingRecord, base: date = CANONICAL_BASE) -> None:
    """Write every populated field onto the row; absent fields keep the existing cell."""
    for column, name, value in record.cell_values():
        ws.cell(row=row, column=column, value=cell_value_for(name, value, base))


def merge_into_pending(pending: PendingRecord, record: IncomingRecord) -> PendingRecord:
    """
    Promote an order-stage pending record with the invoice data of `record`.

    The delivered quantity is taken from the invoice; invoice number, invoice
    date and notes only fill fields that are still empty.
    """
    pending.delivered_qty = record.delivered_qty
    if pending.invoice_date is None:
        pending.invoice_date = record.invoice_date
    if pending.invoice_number is None:
        pending.invoice_number = record.invoice_number
    if pending.notes is None:
        pending.notes = record.notes
    return pending


def apply_match(
    result: MatchResult,
    record: IncomingRecord,
    ws: Worksheet,
    pending: List[PendingRecord],
    base: date = CANONICAL_BASE,
) -> bool:
    """Apply a match decision. Returns True when it counts as an updated row."""
    if isinstance(result, ExistingRow):
        write_record(ws, result.row, record, base)
        return True
    if isinstance(result, PendingMerge):
        merge_into_pending(pending[result.index], record)
        return True
    if isinstance(result, NoMatch):
        pending.append(record)
        return False
    raise TypeError(f"Unknown match result: {result!r}")
