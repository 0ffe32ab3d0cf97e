import tempfile
import unittest
from pathlib import Path

import pandas as pd
from openpyxl import load_workbook

from catalog_doctor.engine.batch import SourceTable, merge_batch
from catalog_doctor.engine.duplicates import detect
from catalog_doctor.engine.shared import SOURCE_FILE_COLUMN
from catalog_doctor.workbook import (
    DUPLICATE_HEADERS,
    DUPLICATES_SHEET,
    ENRICHED_SHEET,
    STATS_SHEET,
    duplicate_rows,
    write_duplicates_workbook,
    write_enriched_csv,
    write_enriched_workbook,
)


def sample_batch():
    return merge_batch(
        [
            SourceTable("loja-a.csv", [{"Nome": "Mouse Gamer", "Preço": "10"}, {"Nome": "Teclado", "Preço": "20"}]),
            SourceTable("loja-b.csv", [{"Nome": "mouse gamer", "Preço": "11"}]),
        ]
    )


class EnrichedExportTests(unittest.TestCase):
    def test_workbook_without_metadata(self):
        batch = sample_batch()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "out.xlsx"
            write_enriched_workbook(batch.records, batch.columns, path, stats={"camposPreenchidos": 3})
            wb = load_workbook(path)
            ws = wb[ENRICHED_SHEET]
            self.assertEqual([c.value for c in ws[1]], ["Nome", "Preço"])
            self.assertEqual([c.value for c in ws[2]], ["Mouse Gamer", "10"])
            self.assertEqual(ws.freeze_panes, "A2")
            self.assertEqual([c.value for c in wb[STATS_SHEET][2]], ["camposPreenchidos", 3])

    def test_workbook_with_metadata(self):
        batch = sample_batch()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "out.xlsx"
            write_enriched_workbook(batch.records, batch.columns, path, include_metadata=True)
            ws = load_workbook(path)[ENRICHED_SHEET]
            self.assertEqual(ws.cell(1, 1).value, SOURCE_FILE_COLUMN)
            self.assertEqual(ws.cell(4, 1).value, "loja-b.csv")
            self.assertEqual(ws.cell(4, 2).value, 1)

    def test_csv_export(self):
        batch = sample_batch()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "out.csv"
            write_enriched_csv(batch.records, batch.columns, path)
            frame = pd.read_csv(path, dtype=str, encoding="utf-8-sig")
        self.assertEqual(list(frame.columns), ["Nome", "Preço"])
        self.assertEqual(frame["Preço"].tolist(), ["10", "20", "11"])


class DuplicateExportTests(unittest.TestCase):
    def test_rows_join_back_to_table(self):
        batch = sample_batch()
        results = detect(batch.records, {"Preço": {"action": "ignore", "isProtected": True}})
        rows = duplicate_rows(results, batch.records)
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0][:6], [1, "Nome idêntico", "Nome", "Mouse Gamer", 100.0, 2])
        self.assertEqual(rows[1][5], 4)
        self.assertEqual(rows[1][6:], ["loja-b.csv", "1", "sim"])

    def test_duplicates_workbook(self):
        batch = sample_batch()
        results = detect(batch.records, {})
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "duplicates.xlsx"
            write_duplicates_workbook(results, batch.records, path)
            ws = load_workbook(path)[DUPLICATES_SHEET]
            self.assertEqual([c.value for c in ws[1]], DUPLICATE_HEADERS)
            self.assertEqual(ws.max_row, 3)

    def test_empty_report_still_writes_headers(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "duplicates.xlsx"
            write_duplicates_workbook([], [], path)
            ws = load_workbook(path)[DUPLICATES_SHEET]
            self.assertEqual(ws.max_row, 1)


if __name__ == "__main__":
    unittest.main()
