import unittest

from catalog_doctor.engine.batch import SourceTable, merge_batch, strip_metadata
from catalog_doctor.engine.shared import (
    BATCH_INDEX_COLUMN,
    METADATA_COLUMNS,
    SOURCE_FILE_COLUMN,
    SOURCE_ROW_COLUMN,
    BatchLimitError,
)


class MergeBatchTests(unittest.TestCase):
    def setUp(self):
        self.sources = [
            SourceTable("loja-a.csv", [{"Nome": "Mouse", "Preço": "10"}, {"Nome": "Teclado", "Preço": "20"}]),
            SourceTable("loja-b.xlsx", [{"Nome": "Monitor", "Marca": "Acme"}]),
        ]

    def test_columns_are_first_appearance_union(self):
        batch = merge_batch(self.sources)
        self.assertEqual(batch.columns, ["Nome", "Preço", "Marca"])
        self.assertEqual(batch.source_names, ["loja-a.csv", "loja-b.xlsx"])
        self.assertTrue(batch.is_multi_file)

    def test_records_carry_origin_metadata_first(self):
        batch = merge_batch(self.sources)
        self.assertEqual(list(batch.records[0])[:3], list(METADATA_COLUMNS))
        self.assertEqual(
            [(r[SOURCE_FILE_COLUMN], r[SOURCE_ROW_COLUMN], r[BATCH_INDEX_COLUMN]) for r in batch.records],
            [("loja-a.csv", 1, 0), ("loja-a.csv", 2, 0), ("loja-b.xlsx", 1, 1)],
        )

    def test_missing_columns_are_padded(self):
        batch = merge_batch(self.sources)
        self.assertEqual(batch.records[0]["Marca"], "")
        self.assertEqual(batch.records[2]["Preço"], "")
        self.assertEqual(batch.padded_cells, 3)
        self.assertEqual(batch.rows_per_source, {"loja-a.csv": 2, "loja-b.xlsx": 1})

    def test_colliding_source_names_stay_distinct(self):
        batch = merge_batch(
            [
                SourceTable("produtos.csv", [{"Nome": "Mouse"}]),
                SourceTable("outro.csv", [{"Nome": "Cabo"}]),
                SourceTable("produtos.csv", [{"Nome": "Teclado"}, {"Nome": "Monitor"}]),
            ]
        )
        self.assertEqual(batch.source_names, ["produtos.csv #1", "outro.csv", "produtos.csv #3"])
        self.assertEqual(batch.rows_per_source, {"produtos.csv #1": 1, "outro.csv": 1, "produtos.csv #3": 2})
        self.assertEqual(batch.records[3][SOURCE_FILE_COLUMN], "produtos.csv #3")

    def test_declared_columns_keep_empty_sources_visible(self):
        batch = merge_batch([SourceTable("vazio.csv", [], columns=["Nome", "SKU"])])
        self.assertEqual(batch.columns, ["Nome", "SKU"])
        self.assertEqual(batch.records, [])
        self.assertFalse(batch.is_multi_file)

    def test_incoming_metadata_columns_are_replaced(self):
        source = SourceTable("x.csv", [{SOURCE_FILE_COLUMN: "old.csv", "Nome": "Mouse"}])
        batch = merge_batch([source])
        self.assertEqual(batch.columns, ["Nome"])
        self.assertEqual(batch.records[0][SOURCE_FILE_COLUMN], "x.csv")

    def test_strip_metadata(self):
        batch = merge_batch(self.sources)
        self.assertEqual(strip_metadata(batch.records[2]), {"Nome": "Monitor", "Preço": "", "Marca": "Acme"})

    def test_empty_batch(self):
        batch = merge_batch([])
        self.assertEqual(batch.records, [])
        self.assertEqual(batch.columns, [])


class BatchLimitTests(unittest.TestCase):
    def test_too_many_files(self):
        sources = [SourceTable(f"{i}.csv", [{"Nome": "x"}]) for i in range(3)]
        with self.assertRaisesRegex(BatchLimitError, "At most 2 files"):
            merge_batch(sources, max_files=2)

    def test_too_many_items(self):
        sources = [SourceTable("a.csv", [{"Nome": str(i)} for i in range(5)])]
        with self.assertRaises(BatchLimitError):
            merge_batch(sources, max_total_items=4)

    def test_limits_can_be_disabled(self):
        sources = [SourceTable(f"{i}.csv", [{"Nome": "x"}]) for i in range(25)]
        batch = merge_batch(sources, max_files=None, max_total_items=None)
        self.assertEqual(len(batch.records), 25)


if __name__ == "__main__":
    unittest.main()
