from __future__ import annotations

from copy import copy
from datetime import date
from typing import Dict, Iterable, List, Sequence

from openpyxl.formatting.formatting import ConditionalFormattingList
from openpyxl.worksheet.cell_range import CellRange, MultiCellRange
from openpyxl.worksheet.worksheet import Worksheet

from .config import Config
from .dates import CANONICAL_BASE, sort_date
from .formulas import adjust_formula, shift_formula_rows
from .ledger_index import LedgerConfig, LedgerRow
from .merge import write_record
from .records import PendingRecord


def sort_pending(records: Iterable[PendingRecord], base: date = CANONICAL_BASE) -> List[PendingRecord]:
    """Stable sort by supplier, order number, then order date (unknown dates last)."""
    return sorted(
        records,
        key=lambda r: (r.supplier_key, r.order_key, sort_date(r.order_date, base)),
    )


def find_insertion_row(
    record: PendingRecord,
    snapshot: Sequence[LedgerRow],
    end_row: int,
    start_data_row: int,
    base: date = CANONICAL_BASE,
) -> int:
    """
    Row index a new record belongs at, judged against the rows that existed
    before this run. Falls back to end_row (never above the first data row).
    """
    target_supplier = record.supplier_key
    target_order = record.order_key
    target_date = sort_date(record.order_date, base)

    insert_at = max(end_row, start_data_row)
    in_block = False
    for entry in snapshot:
        if entry.supplier == target_supplier:
            in_block = True
            if entry.order_number > target_order:
                return entry.row
            if entry.order_number == target_order and entry.date > target_date:
                return entry.row
        elif in_block:
            return entry.row
        elif entry.supplier > target_supplier:
            return entry.row
    return insert_at


def plan_insertions(
    records: Sequence[PendingRecord],
    snapshot: Sequence[LedgerRow],
    end_row: int,
    start_data_row: int,
    base: date = CANONICAL_BASE,
) -> Dict[int, List[PendingRecord]]:
    """Group sorted records by target row; each group keeps the sorted order."""
    batches: Dict[int, List[PendingRecord]] = {}
    for record in records:
        row = find_insertion_row(record, snapshot, end_row, start_data_row, base)
        batches.setdefault(row, []).append(record)
    return batches


def _shift_row_dimensions(ws: Worksheet, at_row: int, count: int) -> None:
    # openpyxl moves cells on insert but leaves row heights where they were.
    moved = sorted((idx for idx in list(ws.row_dimensions.keys()) if idx >= at_row), reverse=True)
    for idx in moved:
        source = ws.row_dimensions[idx]
        target = ws.row_dimensions[idx + count]
        target.height = source.height
        target.hidden = source.hidden
        target.outlineLevel = source.outlineLevel
        del ws.row_dimensions[idx]


def _shift_formulas(ws: Worksheet, at_row: int, count: int) -> None:
    # Neither are formulas rewritten by openpyxl.
    for row in ws.iter_rows():
        for cell in row:
            if cell.data_type == "f" and isinstance(cell.value, str):
                cell.value = shift_formula_rows(cell.value, at_row, count)


def _move_bounds(rng: CellRange, at_row: int, count: int) -> None:
    # Ranges below the insertion move down; ranges spanning it grow.
    if rng.min_row >= at_row:
        rng.shift(row_shift=count)
    elif rng.max_row >= at_row:
        rng.expand(down=count)


def _shift_sqref(sqref: MultiCellRange, at_row: int, count: int) -> MultiCellRange:
    shifted = []
    for rng in sqref.ranges:
        moved = CellRange(rng.coord)
        _move_bounds(moved, at_row, count)
        shifted.append(moved)
    return MultiCellRange(shifted)


def _shift_merged_cells(ws: Worksheet, at_row: int, count: int) -> None:
    for merged in list(ws.merged_cells.ranges):
        if merged.max_row < at_row:
            continue
        ws.merged_cells.remove(merged)
        _move_bounds(merged, at_row, count)
        ws.merged_cells.add(merged)


def _shift_conditional_formatting(ws: Worksheet, at_row: int, count: int) -> None:
    current = ws.conditional_formatting
    if not current:
        return
    rebuilt = ConditionalFormattingList()
    for cf in current:
        sqref = _shift_sqref(cf.sqref, at_row, count)
        for rule in cf.rules:
            rebuilt.add(str(sqref), rule)
    rebuilt.max_priority = current.max_priority
    ws.conditional_formatting = rebuilt


def _shift_data_validations(ws: Worksheet, at_row: int, count: int) -> None:
    for validation in ws.data_validations.dataValidation:
        validation.sqref = _shift_sqref(validation.sqref, at_row, count)


def insert_rows(ws: Worksheet, at_row: int, count: int) -> None:
    """
    Insert blank rows and move everything openpyxl leaves behind: row heights,
    formula references, merged ranges, conditional formats and validations.
    """
    if count <= 0:
        return
    ws.insert_rows(at_row, count)
    _shift_row_dimensions(ws, at_row, count)
    _shift_formulas(ws, at_row, count)
    _shift_merged_cells(ws, at_row, count)
    _shift_conditional_formatting(ws, at_row, count)
    _shift_data_validations(ws, at_row, count)


def template_row_for(start_row: int, count: int, start_data_row: int) -> int:
    """Row above when appending below existing data, otherwise the row after the new block."""
    if start_row > start_data_row:
        return start_row - 1
    return start_row + count


def write_batch(
    ws: Worksheet,
    start_row: int,
    batch: Sequence[PendingRecord],
    ledger_cfg: LedgerConfig,
    cfg: Config,
) -> None:
    count = len(batch)
    insert_rows(ws, start_row, count)

    template_row = template_row_for(start_row, count, ledger_cfg.start_data_row)
    styles = [
        copy(ws.cell(row=template_row, column=col)._style)
        for col in range(1, cfg.styled_columns + 1)
    ]
    template_dim = ws.row_dimensions.get(template_row)
    template_height = template_dim.height if template_dim is not None else None

    template_formula = ws.cell(row=template_row, column=cfg.formula_column).value
    if not (isinstance(template_formula, str) and template_formula.startswith("=")):
        template_formula = None

    for offset, record in enumerate(batch):
        row = start_row + offset
        if template_height:
            ws.row_dimensions[row].height = template_height
        # Style first so date values keep the template's date format.
        for col, style in enumerate(styles, start=1):
            ws.cell(row=row, column=col)._style = copy(style)
        write_record(ws, row, record, ledger_cfg.date_base)
        if template_formula:
            ws.cell(row=row, column=cfg.formula_column).value = adjust_formula(
                template_formula, template_row, row
            )


def write_batches(
    ws: Worksheet,
    batches: Dict[int, List[PendingRecord]],
    ledger_cfg: LedgerConfig,
    cfg: Config,
) -> int:
    """
    Insert every batch, highest target row first so targets computed against
    the pre-insert layout stay valid. Returns the number of rows inserted.
    """
    inserted = 0
    for start_row in sorted(batches, reverse=True):
        batch = batches[start_row]
        write_batch(ws, start_row, batch, ledger_cfg, cfg)
        inserted += len(batch)
    return inserted
