import unittest

from catalog_doctor.engine.oracle import merge_oracle_output, resolve_targets
from catalog_doctor.engine.shared import SOURCE_FILE_COLUMN, ColumnPolicy

PROTECTED = ColumnPolicy(action="ignore", is_protected=True)


class OracleMergeTests(unittest.TestCase):
    def test_answers_fill_first_existing_target(self):
        table = [{"Nome Produto": "mouse gamer", "Marca": "", "Preço": "10"}]
        outputs = [{"nome_padronizado": "Mouse Gamer RGB", "marca_inferida": "Acme"}]
        merged, stats = merge_oracle_output(table, outputs, {"Preço": PROTECTED})
        self.assertEqual(merged[0]["Nome Produto"], "Mouse Gamer RGB")
        self.assertEqual(merged[0]["Marca"], "Acme")
        self.assertEqual(merged[0]["Preço"], "10")
        self.assertEqual(stats.applied, 2)
        self.assertEqual(table[0]["Marca"], "")

    def test_target_column_found_in_later_records(self):
        table = [{"Nome": "mouse"}, {"Nome": "cabo", "Marca": ""}]
        outputs = [{"marca_inferida": "Acme"}, {"marca_inferida": "Voltz"}]
        merged, stats = merge_oracle_output(table, outputs, {})
        self.assertEqual([row.get("Marca") for row in merged], ["Acme", "Voltz"])
        self.assertEqual(stats.applied, 2)

    def test_protected_and_ignored_columns_are_never_written(self):
        table = [{"Nome": "Mouse", "Categoria": "Periféricos"}]
        outputs = [{"nome_padronizado": "Mouse Óptico", "categoria_inferida": "Informática"}]
        policies = {"Nome": PROTECTED, "Categoria": ColumnPolicy(action="ignore")}
        merged, stats = merge_oracle_output(table, outputs, policies)
        self.assertEqual(merged, table)
        self.assertEqual(stats.blocked_protected, 1)
        self.assertEqual(stats.blocked_ignored, 1)

    def test_empty_answers_never_overwrite(self):
        table = [{"Marca": "Acme", "Origem": "Nacional"}]
        merged, stats = merge_oracle_output(table, [{"marca_inferida": "  ", "origem_inferida": None}], {})
        self.assertEqual(merged, table)
        self.assertEqual(stats.skipped_empty, 2)

    def test_missing_rows_and_unknown_fields(self):
        table = [{"Nome": "a"}, {"Nome": "b"}]
        merged, stats = merge_oracle_output(table, [None, {"cor_inferida": "azul", "nome_padronizado": "b"}], {})
        self.assertEqual(merged, table)
        self.assertEqual(stats.unmapped, 1)
        self.assertEqual(stats.unchanged, 1)

    def test_metadata_targets_are_refused(self):
        table = [{SOURCE_FILE_COLUMN: "a.csv", "Nome": "x"}]
        merged, stats = merge_oracle_output(
            table,
            [{"nome_padronizado": "outro.csv"}],
            {},
            field_map={"nome_padronizado": (SOURCE_FILE_COLUMN,)},
        )
        self.assertEqual(merged[0][SOURCE_FILE_COLUMN], "a.csv")
        self.assertEqual(stats.unmapped, 1)

    def test_output_count_must_match_rows(self):
        with self.assertRaises(ValueError):
            merge_oracle_output([{"Nome": "a"}], [], {})

    def test_resolve_targets_prefers_first_candidate(self):
        targets = resolve_targets(["Descrição Curta", "Descrição", "Fabricante"])
        self.assertEqual(targets["descricao_enriquecida"], "Descrição")
        self.assertEqual(targets["marca_inferida"], "Fabricante")
        self.assertNotIn("origem_inferida", targets)


if __name__ == "__main__":
    unittest.main()
