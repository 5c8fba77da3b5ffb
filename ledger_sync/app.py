from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from .config import load_config
from .corrections import CorrectionStore
from .errors import LedgerSyncError
from .reconcile import ProgressEvent, export_to_ledger
from .records import IncomingRecord, load_records


def _print_progress(event: ProgressEvent) -> None:
    print(f"  {event.current}/{event.total} records processed")


def _read_records(path: Path) -> List[IncomingRecord]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("records", [])
    if not isinstance(data, list):
        raise ValueError("records file must contain a JSON array")
    if not all(isinstance(item, dict) for item in data):
        raise ValueError("every record must be a JSON object")
    return load_records(data)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-sync",
        description="Merge extracted order and invoice records into a spreadsheet ledger.",
    )
    parser.add_argument("records", type=Path, nargs="?", help="JSON file with the extracted records")
    parser.add_argument("ledger", type=Path, nargs="?", help="ledger workbook (.xlsx/.xlsm)")
    parser.add_argument("--config", type=Path, help="config.json to use instead of the per-user one")
    parser.add_argument("--learn", nargs=2, metavar=("WRONG", "CORRECT"), help="store a product rename and exit")
    parser.add_argument("--forget", metavar="WRONG", help="remove a product rename and exit")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    cfg = load_config(args.config)
    assert cfg.corrections_path is not None

    if args.learn or args.forget:
        store = CorrectionStore(cfg.corrections_path)
        if args.learn:
            store.learn(*args.learn)
        if args.forget:
            store.remove(args.forget)
        return 0
    if args.records is None:
        parser.error("the records file is required")

    try:
        records = _read_records(args.records)
    except (OSError, ValueError) as exc:
        print(f"Could not read records: {exc}", file=sys.stderr)
        return 1

    try:
        message = export_to_ledger(records, file_path=args.ledger, cfg=cfg, on_progress=_print_progress)
    except LedgerSyncError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(message)
    return 0


if __name__ == "__main__":
    sys.exit(main())
