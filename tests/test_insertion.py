from __future__ import annotations

import unittest
from datetime import date

from openpyxl import Workbook
from openpyxl.formatting.rule import CellIsRule
from openpyxl.styles import Font
from openpyxl.worksheet.datavalidation import DataValidation

from ledger_sync.config import Config
from ledger_sync.ledger_index import LedgerConfig, LedgerRow
from ledger_sync.insertion import (
    find_insertion_row,
    insert_rows,
    plan_insertions,
    sort_pending,
    template_row_for,
    write_batch,
    write_batches,
)
from ledger_sync.records import IncomingRecord


def _row(row: int, supplier: str, order: str, day: date = date(2024, 1, 1)) -> LedgerRow:
    return LedgerRow(row=row, supplier=supplier, order_number=order, date=day)


def _ledger() -> Workbook:
    """Header in row 1, two styled data rows with a line-total formula."""
    wb = Workbook()
    ws = wb.active
    ws.cell(row=1, column=4, value="Supplier")
    for row, supplier, order in [(2, "Acme", "A1"), (3, "Zeta", "Z1")]:
        ws.cell(row=row, column=2, value=order)
        ws.cell(row=row, column=4, value=supplier)
        ws.cell(row=row, column=6, value=5)
        ws.cell(row=row, column=8, value=2.0)
        ws.cell(row=row, column=13, value=f"=F{row}*H{row}")
    ws.cell(row=2, column=1).font = Font(bold=True)
    ws.row_dimensions[2].height = 30
    return wb


LEDGER = LedgerConfig(header_row=1, start_data_row=2, legacy_epoch=False)


class SortPendingTests(unittest.TestCase):
    def test_supplier_then_order_then_date(self) -> None:
        records = [
            IncomingRecord(supplier="beta", order_number="2", order_date="01.01.2024"),
            IncomingRecord(supplier="Alpha", order_number="9"),
            IncomingRecord(supplier="beta", order_number="1", order_date="05.01.2024"),
            IncomingRecord(supplier="beta", order_number="1", order_date="02.01.2024"),
        ]
        ordered = sort_pending(records)
        self.assertEqual(
            [(r.supplier, r.order_number, r.order_date) for r in ordered],
            [
                ("Alpha", "9", None),
                ("beta", "1", "02.01.2024"),
                ("beta", "1", "05.01.2024"),
                ("beta", "2", "01.01.2024"),
            ],
        )

    def test_unknown_dates_sort_last(self) -> None:
        records = [
            IncomingRecord(supplier="a", order_number="1", order_date="soon"),
            IncomingRecord(supplier="a", order_number="1", order_date="01.01.2030"),
        ]
        self.assertEqual(sort_pending(records)[0].order_date, "01.01.2030")


class FindInsertionRowTests(unittest.TestCase):
    snapshot = [
        _row(5, "acme", "a1", date(2024, 1, 1)),
        _row(6, "acme", "a3", date(2024, 1, 1)),
        _row(7, "acme", "a3", date(2024, 3, 1)),
        _row(8, "delta", "d1"),
        _row(9, "zeta", "z1"),
    ]

    def _find(self, **fields) -> int:
        return find_insertion_row(IncomingRecord(**fields), self.snapshot, 10, 5)

    def test_before_greater_order_number_in_block(self) -> None:
        self.assertEqual(self._find(supplier="Acme", order_number="A2"), 6)

    def test_same_order_before_later_date(self) -> None:
        self.assertEqual(self._find(supplier="acme", order_number="a3", order_date="01.02.2024"), 7)

    def test_end_of_block(self) -> None:
        self.assertEqual(self._find(supplier="acme", order_number="a9"), 8)

    def test_before_first_greater_supplier(self) -> None:
        self.assertEqual(self._find(supplier="Bravo", order_number="b1"), 8)
        self.assertEqual(self._find(supplier="aaa", order_number="x"), 5)

    def test_appends_after_last_row(self) -> None:
        self.assertEqual(self._find(supplier="zulu", order_number="1"), 10)

    def test_empty_ledger_uses_first_data_row(self) -> None:
        self.assertEqual(find_insertion_row(IncomingRecord(supplier="x"), [], 2, 5), 5)

    def test_plan_groups_by_target_row(self) -> None:
        records = sort_pending(
            [
                IncomingRecord(supplier="acme", order_number="a2"),
                IncomingRecord(supplier="zulu", order_number="1"),
                IncomingRecord(supplier="acme", order_number="a2", order_date="01.01.2024"),
            ]
        )
        batches = plan_insertions(records, self.snapshot, 10, 5)
        self.assertEqual(sorted(batches), [6, 10])
        self.assertEqual([r.order_date for r in batches[6]], ["01.01.2024", None])


class TemplateRowTests(unittest.TestCase):
    def test_row_above_when_below_first_data_row(self) -> None:
        self.assertEqual(template_row_for(8, 3, 5), 7)

    def test_row_after_block_at_first_data_row(self) -> None:
        self.assertEqual(template_row_for(5, 3, 5), 8)


class InsertRowsTests(unittest.TestCase):
    def test_heights_and_formulas_follow_moved_rows(self) -> None:
        wb = _ledger()
        ws = wb.active
        ws.cell(row=5, column=13, value="=SUM(M2:M3)")

        insert_rows(ws, 2, 2)

        self.assertEqual(ws.cell(row=4, column=4).value, "Acme")
        self.assertEqual(ws.row_dimensions[4].height, 30)
        self.assertIsNone(ws.row_dimensions[2].height)
        self.assertEqual(ws.cell(row=4, column=13).value, "=F4*H4")
        self.assertEqual(ws.cell(row=5, column=13).value, "=F5*H5")
        self.assertEqual(ws.cell(row=7, column=13).value, "=SUM(M4:M5)")

    def test_merged_ranges_move_with_rows(self) -> None:
        wb = _ledger()
        ws = wb.active
        ws.merge_cells("A1:C1")
        ws.merge_cells("N3:P3")
        ws.merge_cells("Q2:Q3")

        insert_rows(ws, 3, 2)

        self.assertEqual({str(r) for r in ws.merged_cells.ranges}, {"A1:C1", "N5:P5", "Q2:Q5"})

    def test_conditional_formats_and_validations_follow_rows(self) -> None:
        wb = _ledger()
        ws = wb.active
        ws.conditional_formatting.add("M2:M3", CellIsRule(operator="lessThan", formula=["0"], font=Font(color="FF0000")))
        ws.conditional_formatting.add("H3", CellIsRule(operator="greaterThan", formula=["100"], font=Font(bold=True)))
        validation = DataValidation(type="list", formula1='"EUR,USD"')
        validation.add("G3:G9")
        ws.add_data_validation(validation)

        insert_rows(ws, 3, 1)

        ranges = sorted(str(cf.sqref) for cf in ws.conditional_formatting)
        self.assertEqual(ranges, ["H4", "M2:M4"])
        self.assertEqual(sum(len(cf.rules) for cf in ws.conditional_formatting), 2)
        self.assertEqual(str(ws.data_validations.dataValidation[0].sqref), "G4:G10")

    def test_zero_count_is_noop(self) -> None:
        wb = _ledger()
        insert_rows(wb.active, 2, 0)
        self.assertEqual(wb.active.cell(row=2, column=4).value, "Acme")


class WriteBatchTests(unittest.TestCase):
    def test_copies_style_height_and_formula_from_row_above(self) -> None:
        wb = _ledger()
        ws = wb.active
        record = IncomingRecord(supplier="Acme", order_number="B2", quantity=3, price=4.0)

        write_batch(ws, 3, [record], LEDGER, Config())

        self.assertEqual(ws.cell(row=3, column=2).value, "B2")
        self.assertEqual(ws.cell(row=3, column=6).value, 3.0)
        self.assertTrue(ws.cell(row=3, column=1).font.b)
        self.assertEqual(ws.row_dimensions[3].height, 30)
        self.assertEqual(ws.cell(row=3, column=13).value, "=F3*H3")
        self.assertEqual(ws.cell(row=4, column=4).value, "Zeta")
        self.assertEqual(ws.cell(row=4, column=13).value, "=F4*H4")

    def test_block_at_first_data_row_uses_row_after(self) -> None:
        wb = _ledger()
        ws = wb.active
        records = [IncomingRecord(supplier="Aaa", order_number="1"), IncomingRecord(supplier="Aab", order_number="2")]

        write_batch(ws, 2, records, LEDGER, Config())

        self.assertEqual(ws.cell(row=2, column=4).value, "Aaa")
        self.assertEqual(ws.cell(row=3, column=4).value, "Aab")
        self.assertEqual(ws.cell(row=4, column=4).value, "Acme")
        for row in (2, 3):
            self.assertTrue(ws.cell(row=row, column=1).font.b)
            self.assertEqual(ws.row_dimensions[row].height, 30)
            self.assertEqual(ws.cell(row=row, column=13).value, f"=F{row}*H{row}")

    def test_dates_are_written_as_dates(self) -> None:
        wb = _ledger()
        ws = wb.active
        record = IncomingRecord(supplier="Zeta", order_number="Z2", order_date="05.03.2024", invoice_date="n/a")

        write_batch(ws, 4, [record], LEDGER, Config())

        self.assertEqual(ws.cell(row=4, column=1).value, date(2024, 3, 5))
        self.assertEqual(ws.cell(row=4, column=10).value, "n/a")

    def test_write_batches_bottom_up(self) -> None:
        wb = _ledger()
        ws = wb.active
        batches = {
            3: [IncomingRecord(supplier="Acme", order_number="B2")],
            4: [IncomingRecord(supplier="Zulu", order_number="1")],
        }

        inserted = write_batches(ws, batches, LEDGER, Config())

        self.assertEqual(inserted, 2)
        self.assertEqual(
            [ws.cell(row=r, column=4).value for r in range(2, 6)],
            ["Acme", "Acme", "Zeta", "Zulu"],
        )
        self.assertEqual(ws.cell(row=5, column=13).value, "=F5*H5")


if __name__ == "__main__":
    unittest.main()
