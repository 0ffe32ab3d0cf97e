from __future__ import annotations

import unittest
from pathlib import Path

from catalog_doctor import __version__
from catalog_doctor.contracts import CONTRACT_VERSIONS, build_contract, build_run_summary
from catalog_doctor.engine.batch import SourceTable, merge_batch
from catalog_doctor.engine.duplicates import CancellationToken, run_detection
from catalog_doctor.engine.policy import enrich
from catalog_doctor.summary import (
    build_duplicate_report,
    build_enrich_summary,
    render_duplicates_text,
    render_enrich_text,
)

INPUTS = [Path("loja-a.csv"), Path("loja-b.csv")]


def sample_batch():
    return merge_batch(
        [
            SourceTable("loja-a.csv", [{"Nome": "Mouse Gamer c/ fio"}, {"Nome": "Produto Alfa 1"}]),
            SourceTable("loja-b.csv", [{"Nome": "mouse gamer c/ fio"}, {"Nome": "Produto Alfa 2"}]),
        ]
    )


class ContractTests(unittest.TestCase):
    def test_contract_names_are_versioned(self):
        for name in CONTRACT_VERSIONS:
            contract = build_contract(name)
            self.assertEqual(contract["name"], name)
            self.assertRegex(contract["version"], r"^\d+\.\d+\.\d+$")

    def test_unknown_contract_raises(self):
        with self.assertRaises(KeyError):
            build_contract("catalog_doctor.unknown")

    def test_run_summary_shape(self):
        summary = build_run_summary(
            tool="catalog-doctor",
            command="enrich",
            input_paths=INPUTS,
            output_path=Path("out.xlsx"),
            warnings=["a"],
        )
        self.assertEqual(summary["input_files"], ["loja-a.csv", "loja-b.csv"])
        self.assertEqual(summary["output_file"], "out.xlsx")
        self.assertEqual(summary["warnings_count"], 1)
        self.assertEqual(summary["status"], "ok")
        self.assertTrue(summary["generated_at"].endswith("Z"))


class EnrichSummaryTests(unittest.TestCase):
    def test_enrich_summary_carries_stats_and_sources(self):
        batch = sample_batch()
        _, stats = enrich(batch.records, {}, {"c/": "com"})
        summary = build_enrich_summary(
            batch, stats, input_paths=INPUTS, output_path=None, preset_name="Teste"
        )
        self.assertEqual(summary["contract"]["name"], "catalog_doctor.enrich_summary")
        self.assertEqual(summary["tool_version"], __version__)
        self.assertEqual(summary["stats"]["abreviaturasCorrigidas"], 2)
        self.assertEqual(summary["sources"]["files"], ["loja-a.csv", "loja-b.csv"])
        self.assertTrue(summary["sources"]["multi_file"])
        self.assertEqual(summary["run_summary"]["metrics"]["rows"], 4)
        self.assertIn("Abbreviations corrected: 2", render_enrich_text(summary, None))


class DuplicateReportTests(unittest.TestCase):
    def test_report_counts_groups_and_cross_file(self):
        batch = sample_batch()
        outcome = run_detection(batch.records, {})
        report = build_duplicate_report(
            batch, outcome, input_paths=INPUTS, output_path=None, threshold=0.8, preset_name=None
        )
        self.assertEqual(report["contract"]["name"], "catalog_doctor.duplicate_report")
        self.assertFalse(report["partial"])
        self.assertEqual(report["groups"]["total"], 2)
        self.assertEqual(report["groups"]["cross_file"], 2)
        self.assertEqual(report["groups"]["duplicated_rows"], 4)
        self.assertEqual(report["results"][0]["linhas"], [0, 2])
        self.assertEqual(report["run_summary"]["status"], "ok")
        text = render_duplicates_text(report)
        self.assertIn("linhas 2, 4", text)

    def test_partial_report_is_flagged(self):
        batch = sample_batch()
        token = CancellationToken()
        token.cancel()
        outcome = run_detection(batch.records, {}, cancel_token=token)
        report = build_duplicate_report(
            batch, outcome, input_paths=INPUTS, output_path=None, threshold=0.8, preset_name=None
        )
        self.assertTrue(report["partial"])
        self.assertEqual(report["run_summary"]["status"], "partial")
        self.assertEqual(report["groups"]["total"], 1)
        self.assertTrue(any("stopped early" in warning for warning in report["warnings"]))
        self.assertIn("PARTIAL", render_duplicates_text(report))


if __name__ == "__main__":
    unittest.main()
