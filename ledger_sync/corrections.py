from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable

from .records import IncomingRecord


class CorrectionStore:
    """Persisted rename table for product names the extractor keeps getting wrong."""

    def __init__(self, path: Path) -> None:
        # Normalise to Path in case callers pass strings
        self.path = Path(path)
        self.corrections: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self.corrections = dict(data.get("product_corrections", {}))
        except (OSError, ValueError, AttributeError):
            self.corrections = {}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "product_corrections": self.corrections,
            "updated_at": datetime.now().isoformat(timespec="seconds"),
        }
        self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    def all(self) -> Dict[str, str]:
        return dict(self.corrections)

    def learn(self, wrong: str, correct: str) -> bool:
        wrong, correct = wrong.strip(), correct.strip()
        if not wrong or not correct or wrong == correct:
            return False
        self.corrections[wrong] = correct
        self._save()
        return True

    def remove(self, wrong: str) -> bool:
        if self.corrections.pop(wrong, None) is None:
            return False
        self._save()
        return True

    def apply(self, records: Iterable[IncomingRecord]) -> int:
        """Rename products with an exact entry in the table; returns how many changed."""
        changed = 0
        for record in records:
            if record.product is None:
                continue
            replacement = self.corrections.get(record.product)
            if replacement is not None:
                record.product = replacement
                changed += 1
        return changed
