from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

# Fixed positional layout of the ledger sheet. Column 9 is reserved.
COL_ORDER_DATE = 1
COL_ORDER_NUMBER = 2
COL_CUSTOMER = 3
COL_SUPPLIER = 4
COL_PRODUCT = 5
COL_QUANTITY = 6
COL_CURRENCY = 7
COL_PRICE = 8
COL_INVOICE_DATE = 10
COL_INVOICE_NUMBER = 11
COL_DELIVERED_QTY = 12
COL_NOTES = 18

FIELD_COLUMNS: Dict[str, int] = {
    "order_date": COL_ORDER_DATE,
    "order_number": COL_ORDER_NUMBER,
    "customer": COL_CUSTOMER,
    "supplier": COL_SUPPLIER,
    "product": COL_PRODUCT,
    "quantity": COL_QUANTITY,
    "currency": COL_CURRENCY,
    "price": COL_PRICE,
    "invoice_date": COL_INVOICE_DATE,
    "invoice_number": COL_INVOICE_NUMBER,
    "delivered_qty": COL_DELIVERED_QTY,
    "notes": COL_NOTES,
}

DATE_FIELDS = ("order_date", "invoice_date")
NUMERIC_FIELDS = ("quantity", "price", "delivered_qty")

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key.strip()).lower()


def _to_text(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_number(value: object) -> Optional[float]:
    """
    Lenient number parsing for extracted fields and ledger cells.

    Accepts "12.5", "12,5", "1.234,56" and "1,234.56"; the separator that
    comes last is taken as the decimal mark. Returns None when unusable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(" ", "").replace("\u00a0", "")
    if not text:
        return None
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return None


@dataclass
class IncomingRecord:
    order_date: Optional[str] = None
    order_number: Optional[str] = None
    customer: Optional[str] = None
    supplier: Optional[str] = None
    product: Optional[str] = None
    quantity: Optional[float] = None
    currency: Optional[str] = None
    price: Optional[float] = None
    invoice_date: Optional[str] = None
    invoice_number: Optional[str] = None
    delivered_qty: Optional[float] = None
    notes: Optional[str] = None
    source_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "IncomingRecord":
        known = {f.name for f in fields(cls)}
        values: Dict[str, object] = {}
        for raw_key, raw_value in data.items():
            key = _snake(str(raw_key))
            if key not in known:
                continue
            if key in NUMERIC_FIELDS:
                values[key] = parse_number(raw_value)
            else:
                values[key] = _to_text(raw_value)
        return cls(**values)  # type: ignore[arg-type]

    @property
    def is_invoice_stage(self) -> bool:
        return self.delivered_qty is not None or self.invoice_number is not None

    @property
    def can_score(self) -> bool:
        """Price and delivered quantity are both known, so fuzzy scoring applies."""
        return self.price is not None and self.delivered_qty is not None

    @property
    def order_key(self) -> str:
        return (self.order_number or "").strip().casefold()

    @property
    def supplier_key(self) -> str:
        return (self.supplier or "").strip().casefold()

    def cell_values(self) -> Iterator[Tuple[int, str, object]]:
        """Yield (column, field name, value) for every populated ledger field."""
        for name, column in FIELD_COLUMNS.items():
            value = getattr(self, name)
            if value is None:
                continue
            yield column, name, value


# A pending record is an incoming record that has not been placed yet; it stays
# mutable so a later invoice can be merged into it.
PendingRecord = IncomingRecord


def load_records(items: Iterable[Mapping[str, object]]) -> List[IncomingRecord]:
    return [IncomingRecord.from_dict(item) for item in items]


def order_stage_first(records: Iterable[IncomingRecord]) -> List[IncomingRecord]:
    """Stable sort placing records without a delivered quantity first."""
    return sorted(records, key=lambda r: r.delivered_qty is not None)
