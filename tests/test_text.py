import math
import unittest

from catalog_doctor.engine.text import (
    cell_text,
    expand_abbreviations,
    first_token,
    is_empty,
    normalization_key,
    normalize_abbreviations,
    similarity,
)


class NormalizationKeyTests(unittest.TestCase):
    def test_whitespace_and_case_collapse(self):
        self.assertEqual(normalization_key(" Mouse   Gamer "), "mouse gamer")
        self.assertEqual(normalization_key("MOUSE GAMER"), normalization_key("mouse gamer"))

    def test_accents_and_punctuation_are_stripped(self):
        self.assertEqual(normalization_key("Café-Açúcar, 500g!"), "cafe acucar 500g")
        self.assertEqual(normalization_key("Cabo_USB"), "cabo usb")

    def test_empty_values_have_empty_key(self):
        self.assertEqual(normalization_key(None), "")
        self.assertEqual(normalization_key("   "), "")
        self.assertEqual(normalization_key(float("nan")), "")

    def test_numbers_become_text(self):
        self.assertEqual(normalization_key(123), "123")

    def test_first_token(self):
        self.assertEqual(first_token("produto abc"), "produto")
        self.assertEqual(first_token(""), "")


class EmptinessTests(unittest.TestCase):
    def test_is_empty(self):
        self.assertTrue(is_empty(None))
        self.assertTrue(is_empty(""))
        self.assertTrue(is_empty(" \t "))
        self.assertTrue(is_empty(math.nan))
        self.assertFalse(is_empty(0))
        self.assertFalse(is_empty(False))
        self.assertFalse(is_empty("x"))

    def test_cell_text(self):
        self.assertEqual(cell_text(None), "")
        self.assertEqual(cell_text(True), "true")
        self.assertEqual(cell_text(12.5), "12.5")


class SimilarityTests(unittest.TestCase):
    def test_identical_strings_score_one(self):
        self.assertEqual(similarity("mouse gamer", "mouse gamer"), 1.0)

    def test_score_is_symmetric_and_bounded(self):
        a, b = "produto abc", "produto abd"
        self.assertEqual(similarity(a, b), similarity(b, a))
        self.assertGreater(similarity(a, b), 0.0)
        self.assertLess(similarity(a, b), 1.0)

    def test_one_edit_over_eleven_chars(self):
        self.assertAlmostEqual(similarity("produto abc", "produto abd"), 1 - 1 / 11)


class AbbreviationTests(unittest.TestCase):
    TABLE = {"un": "unidade", "c/": "com", "pcs": "peças", "cx": "caixa", "kit": "kit"}

    def test_tokens_are_replaced_and_counted(self):
        text, count = expand_abbreviations("Caixa c/ 10 un", self.TABLE)
        self.assertEqual(text, "Caixa com 10 unidade")
        self.assertEqual(count, 2)

    def test_prefix_key_glued_to_next_word(self):
        text, count = expand_abbreviations("Kit c/3 pcs", self.TABLE)
        self.assertEqual(text, "Kit com 3 peças")
        self.assertEqual(count, 2)

    def test_keys_inside_words_are_left_alone(self):
        text, count = expand_abbreviations("unidade caixote", self.TABLE)
        self.assertEqual(text, "unidade caixote")
        self.assertEqual(count, 0)

    def test_casing_follows_the_token(self):
        self.assertEqual(expand_abbreviations("CX", self.TABLE), ("CAIXA", 1))
        self.assertEqual(expand_abbreviations("Cx", self.TABLE), ("Caixa", 1))
        self.assertEqual(expand_abbreviations("cx", self.TABLE), ("caixa", 1))

    def test_identity_mappings_are_not_counted(self):
        self.assertEqual(expand_abbreviations("Kit ferramentas", self.TABLE), ("Kit ferramentas", 0))

    def test_expansions_are_not_rescanned(self):
        table = {"un": "un kit", "kit": "conjunto"}
        text, count = expand_abbreviations("1 un", table)
        self.assertEqual(text, "1 un kit")
        self.assertEqual(count, 1)

    def test_longest_key_wins(self):
        table = {"tam": "tamanho", "tam-g": "tamanho grande"}
        self.assertEqual(expand_abbreviations("Camisa tam-g", table), ("Camisa tamanho grande", 1))

    def test_empty_table_is_a_no_op(self):
        self.assertEqual(expand_abbreviations("Caixa c/ 10 un", {}), ("Caixa c/ 10 un", 0))

    def test_normalize_abbreviations_drops_blank_entries(self):
        table = normalize_abbreviations({" UN ": "unidade", "": "x", "cx": "  "})
        self.assertEqual(table, {"un": "unidade"})


if __name__ == "__main__":
    unittest.main()
