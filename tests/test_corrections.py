from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from ledger_sync.corrections import CorrectionStore
from ledger_sync.records import IncomingRecord


class CorrectionStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "state" / "corrections.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_learn_persists_and_reloads(self) -> None:
        store = CorrectionStore(self.path)
        self.assertTrue(store.learn("  Widgit ", "Widget"))

        data = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(data["product_corrections"], {"Widgit": "Widget"})
        self.assertIn("updated_at", data)
        self.assertEqual(CorrectionStore(self.path).all(), {"Widgit": "Widget"})

    def test_blank_or_identical_pairs_are_ignored(self) -> None:
        store = CorrectionStore(self.path)
        self.assertFalse(store.learn("", "Widget"))
        self.assertFalse(store.learn("Widget", "  "))
        self.assertFalse(store.learn("Widget", "Widget"))
        self.assertFalse(self.path.exists())

    def test_remove(self) -> None:
        store = CorrectionStore(self.path)
        store.learn("Widgit", "Widget")
        self.assertTrue(store.remove("Widgit"))
        self.assertFalse(store.remove("Widgit"))
        self.assertEqual(CorrectionStore(self.path).all(), {})

    def test_apply_renames_exact_matches_only(self) -> None:
        store = CorrectionStore(self.path)
        store.learn("Widgit", "Widget")
        records = [
            IncomingRecord(product="Widgit"),
            IncomingRecord(product="widgit"),
            IncomingRecord(product=None),
        ]

        self.assertEqual(store.apply(records), 1)
        self.assertEqual([r.product for r in records], ["Widget", "widgit", None])

    def test_corrupt_file_starts_empty(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")
        self.assertEqual(CorrectionStore(self.path).all(), {})


if __name__ == "__main__":
    unittest.main()
