from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from openpyxl import Workbook
from openpyxl.utils.datetime import CALENDAR_WINDOWS_1900
from openpyxl.worksheet.worksheet import Worksheet

from .config import Config
from .dates import CANONICAL_BASE, is_legacy_epoch, migrate_legacy_dates, sort_date
from .records import (
    COL_DELIVERED_QTY,
    COL_ORDER_DATE,
    COL_ORDER_NUMBER,
    COL_PRICE,
    COL_PRODUCT,
    COL_QUANTITY,
    COL_SUPPLIER,
    parse_number,
)


def cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def cell_number(value: object, default: float = 0.0) -> float:
    # Malformed numeric cells count as zero so one bad row never stops a run.
    number = parse_number(value)
    return default if number is None else number


@dataclass(frozen=True)
class LedgerConfig:
    header_row: int
    start_data_row: int
    legacy_epoch: bool
    date_base: date = CANONICAL_BASE


def find_header_row(ws: Worksheet, marker: str, column: int = COL_SUPPLIER, max_scan: int = 100) -> int:
    """First row whose marker column equals the label (case-insensitive); defaults to 1."""
    target = marker.strip().casefold()
    for row in range(1, min(max_scan, ws.max_row) + 1):
        if cell_text(ws.cell(row=row, column=column).value).casefold() == target:
            return row
    return 1


def scan_ledger(wb: Workbook, ws: Worksheet, cfg: Config) -> LedgerConfig:
    """
    Pre-scan the ledger once per run: locate the header and normalize the
    date system so every later comparison uses the 1900 base.
    """
    header_row = find_header_row(ws, cfg.header_marker, cfg.header_column, cfg.header_scan_rows)
    start_row = header_row + 1
    legacy = is_legacy_epoch(wb)
    if legacy:
        migrate_legacy_dates(
            ws,
            start_row,
            cfg.date_columns,
            cfg.legacy_epoch_threshold,
            cfg.legacy_epoch_offset_days,
        )
        # Date-typed cells were already converted on load; saving under the
        # 1900 system keeps them on the same calendar day.
        wb.epoch = CALENDAR_WINDOWS_1900
    return LedgerConfig(header_row=header_row, start_data_row=start_row, legacy_epoch=legacy)


@dataclass
class LedgerRow:
    row: int
    supplier: str
    order_number: str
    date: date
    product: str = ""
    quantity: float = 0.0
    price: float = 0.0


@dataclass
class MatchCandidate:
    row: int
    product: str
    quantity: float
    price: float
    delivered_qty: float = 0.0

    @property
    def reference_quantity(self) -> float:
        """Ordered quantity, or the delivered one for rows entered from an invoice alone."""
        return self.quantity if self.quantity > 0 else self.delivered_qty


@dataclass
class LedgerIndex:
    order_map: Dict[str, List[MatchCandidate]] = field(default_factory=dict)
    snapshot: List[LedgerRow] = field(default_factory=list)
    last_row: int = 0

    @classmethod
    def build(cls, ws: Worksheet, ledger_cfg: LedgerConfig) -> "LedgerIndex":
        order_map: Dict[str, List[MatchCandidate]] = defaultdict(list)
        snapshot: List[LedgerRow] = []
        last_row = ws.max_row
        for row in range(ledger_cfg.start_data_row, last_row + 1):
            order_number = cell_text(ws.cell(row=row, column=COL_ORDER_NUMBER).value).casefold()
            entry = LedgerRow(
                row=row,
                supplier=cell_text(ws.cell(row=row, column=COL_SUPPLIER).value).casefold(),
                order_number=order_number,
                date=sort_date(ws.cell(row=row, column=COL_ORDER_DATE).value, ledger_cfg.date_base),
                product=cell_text(ws.cell(row=row, column=COL_PRODUCT).value),
                quantity=cell_number(ws.cell(row=row, column=COL_QUANTITY).value),
                price=cell_number(ws.cell(row=row, column=COL_PRICE).value),
            )
            snapshot.append(entry)
            if order_number:
                order_map[order_number].append(
                    MatchCandidate(
                        row=row,
                        product=entry.product,
                        quantity=entry.quantity,
                        price=entry.price,
                        delivered_qty=cell_number(ws.cell(row=row, column=COL_DELIVERED_QTY).value),
                    )
                )
        return cls(order_map=dict(order_map), snapshot=snapshot, last_row=last_row)

    def candidates(self, order_key: Optional[str]) -> List[MatchCandidate]:
        if not order_key:
            return []
        return self.order_map.get(order_key, [])
