from __future__ import annotations

import traceback
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Union

from openpyxl import Workbook

from .config import Config, load_config
from .corrections import CorrectionStore
from .errors import EmptyInputError, LedgerSyncError
from .insertion import plan_insertions, sort_pending, write_batches
from .ledger_file import (
    atomic_save_workbook,
    check_ledger_access,
    create_backup,
    first_sheet,
    load_ledger,
    remove_backup,
)
from .ledger_index import LedgerIndex, scan_ledger
from .logs import log_event
from .matcher import RecordMatcher
from .merge import apply_match
from .records import IncomingRecord, PendingRecord, order_stage_first
from .source_files import move_files

CANCELLED_MESSAGE = "Cancelled by user."

RecordInput = Union[IncomingRecord, Mapping[str, object]]


@dataclass
class ProgressEvent:
    current: int
    total: int


ProgressCallback = Callable[[ProgressEvent], None]
FilePicker = Callable[[], Optional[Path]]


@dataclass
class ReconcileSummary:
    updated: int = 0
    inserted: int = 0
    legacy_epoch: bool = False

    def message(self) -> str:
        return f"Finished: {self.updated} updated, {self.inserted} inserted."


def _emit(on_progress: Optional[ProgressCallback], current: int, total: int, cfg: Optional[Config]) -> None:
    # Progress is advisory; a failing observer must not abort the run.
    if on_progress is None:
        return
    try:
        on_progress(ProgressEvent(current=current, total=total))
    except Exception:
        log_event(cfg, f"progress callback failed\n{traceback.format_exc()}")


def reconcile_workbook(
    wb: Workbook,
    records: Iterable[IncomingRecord],
    cfg: Optional[Config] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ReconcileSummary:
    """
    Reconcile records against the first sheet of an in-memory workbook.

    Existing rows are updated in place; the rest are inserted at their sorted
    position. Nothing is written to disk here.
    """
    cfg = cfg or Config()
    ws = first_sheet(wb)
    ledger_cfg = scan_ledger(wb, ws, cfg)
    if ledger_cfg.legacy_epoch:
        log_event(cfg, "ledger uses the 1904 date system; dates migrated to the 1900 system")

    index = LedgerIndex.build(ws, ledger_cfg)
    matcher = RecordMatcher(index, cfg)
    summary = ReconcileSummary(legacy_epoch=ledger_cfg.legacy_epoch)

    ordered = order_stage_first(records)
    total = len(ordered)
    pending: List[PendingRecord] = []
    for current, record in enumerate(ordered, start=1):
        result = matcher.match(record, pending)
        if apply_match(result, record, ws, pending, ledger_cfg.date_base):
            summary.updated += 1
        if current % cfg.progress_every == 0:
            _emit(on_progress, current, total, cfg)

    if pending:
        sorted_pending = sort_pending(pending, ledger_cfg.date_base)
        batches = plan_insertions(
            sorted_pending,
            index.snapshot,
            index.last_row + 1,
            ledger_cfg.start_data_row,
            ledger_cfg.date_base,
        )
        summary.inserted = write_batches(ws, batches, ledger_cfg, cfg)

    _emit(on_progress, total, total, cfg)
    return summary


def _coerce_records(records: Iterable[RecordInput]) -> List[IncomingRecord]:
    # Copies, so merging into pending records never mutates the caller's data.
    result: List[IncomingRecord] = []
    for item in records:
        if isinstance(item, IncomingRecord):
            result.append(replace(item))
        else:
            result.append(IncomingRecord.from_dict(item))
    return result


def _resolve_target(
    file_path: Optional[Union[str, Path]],
    cfg: Config,
    pick_file: Optional[FilePicker],
) -> Optional[Path]:
    if file_path:
        return Path(file_path)
    if cfg.default_ledger_path:
        return Path(cfg.default_ledger_path)
    if pick_file is None:
        from .dialogs import pick_ledger_file

        pick_file = pick_ledger_file
    selected = pick_file()
    return Path(selected) if selected else None


def _move_sources(records: List[IncomingRecord], cfg: Config) -> None:
    if not cfg.move_processed_files or cfg.processed_dir is None:
        return
    paths = sorted({r.source_path for r in records if r.source_path and r.product})
    if not paths:
        return
    try:
        moved = move_files(paths, cfg.processed_dir)
        log_event(cfg, f"moved {len(moved)} source documents to {cfg.processed_dir}")
    except OSError as exc:
        log_event(cfg, f"moving source documents failed: {exc}")


def export_to_ledger(
    records: Iterable[RecordInput],
    file_path: Optional[Union[str, Path]] = None,
    cfg: Optional[Config] = None,
    pick_file: Optional[FilePicker] = None,
    on_progress: Optional[ProgressCallback] = None,
    corrections: Optional[CorrectionStore] = None,
) -> str:
    """
    Reconcile records into a ledger file and write it back once.

    Returns the summary message, or CANCELLED_MESSAGE when no file was chosen.
    Raises a LedgerSyncError subclass on failure; the .bak copy is kept when
    the final save fails.
    """
    batch = _coerce_records(records)
    if not batch:
        raise EmptyInputError("No records selected.")

    cfg = (cfg or load_config()).resolve_paths()
    path = _resolve_target(file_path, cfg, pick_file)
    if path is None:
        return CANCELLED_MESSAGE

    try:
        check_ledger_access(path)
        backup = create_backup(path, cfg)
        wb = load_ledger(path)

        if corrections is None and cfg.corrections_path is not None:
            corrections = CorrectionStore(cfg.corrections_path)
        if corrections is not None:
            renamed = corrections.apply(batch)
            if renamed:
                log_event(cfg, f"applied {renamed} product corrections")

        summary = reconcile_workbook(wb, batch, cfg, on_progress)
        atomic_save_workbook(wb, path)
    except LedgerSyncError as exc:
        log_event(cfg, f"export to {path.name} failed: {exc}")
        raise

    remove_backup(backup, cfg)
    _move_sources(batch, cfg)

    message = summary.message()
    log_event(cfg, f"{path.name}: {message}")
    return message
