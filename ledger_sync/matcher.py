from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Set, Union

from .config import Config
from .ledger_index import LedgerIndex
from .records import IncomingRecord, PendingRecord
from .similarity import similarity

QUANTITY_WEIGHT = 10.0
NAME_WEIGHT = 5.0

# Floating point slack so a price exactly on the tolerance is still accepted.
_EPSILON = 1e-9


@dataclass(frozen=True)
class ExistingRow:
    row: int


@dataclass(frozen=True)
class PendingMerge:
    index: int


@dataclass(frozen=True)
class NoMatch:
    pass


MatchResult = Union[ExistingRow, PendingMerge, NoMatch]


def relative_quantity_diff(reference: float, quantity: float) -> float:
    if reference > 0:
        return abs(reference - quantity) / reference
    return 1.0


@dataclass
class RecordMatcher:
    """Scores incoming records against ledger rows and pending records."""

    index: LedgerIndex
    cfg: Config = field(default_factory=Config)
    consumed: Set[int] = field(default_factory=set)

    def _score(self, record: IncomingRecord, product: str, quantity: float, price: float) -> Optional[float]:
        assert record.price is not None and record.delivered_qty is not None
        if abs(price - record.price) > self.cfg.price_tolerance + _EPSILON:
            return None
        qty_diff = relative_quantity_diff(quantity, record.delivered_qty)
        if qty_diff > self.cfg.quantity_tolerance + _EPSILON:
            return None
        qty_score = max(0.0, 1.0 - qty_diff)
        name_sim = similarity(record.product, product, self.cfg.token_threshold)
        return qty_score * QUANTITY_WEIGHT + name_sim * NAME_WEIGHT

    def _best_ledger_row(self, record: IncomingRecord) -> Optional[int]:
        best_row: Optional[int] = None
        best_score = -1.0
        for cand in self.index.candidates(record.order_key):
            if cand.row in self.consumed:
                continue
            score = self._score(record, cand.product, cand.reference_quantity, cand.price)
            # Strictly greater keeps the first (lowest) row on ties.
            if score is not None and score > best_score:
                best_score = score
                best_row = cand.row
        return best_row

    def _best_pending(self, record: IncomingRecord, pending: Sequence[PendingRecord]) -> Optional[int]:
        order_key = record.order_key
        if not order_key:
            return None
        best_idx: Optional[int] = None
        best_score = -1.0
        for idx, item in enumerate(pending):
            if item.delivered_qty is not None or item.order_key != order_key:
                continue
            score = self._score(record, item.product or "", item.quantity or 0.0, item.price or 0.0)
            if score is not None and score > best_score:
                best_score = score
                best_idx = idx
        return best_idx

    def _exact_ledger_row(self, record: IncomingRecord) -> Optional[int]:
        product = (record.product or "").strip().casefold()
        for cand in self.index.candidates(record.order_key):
            if cand.row in self.consumed:
                continue
            if cand.product.strip().casefold() == product:
                return cand.row
        return None

    def match(self, record: IncomingRecord, pending: Sequence[PendingRecord] = ()) -> MatchResult:
        if record.can_score:
            row = self._best_ledger_row(record)
            if row is None:
                pending_idx = self._best_pending(record, pending)
                if pending_idx is not None:
                    return PendingMerge(pending_idx)
        else:
            row = self._exact_ledger_row(record)

        if row is None:
            return NoMatch()
        if self.cfg.consume_matched_rows:
            self.consumed.add(row)
        return ExistingRow(row)
