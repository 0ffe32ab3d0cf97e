from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Sequence

from catalog_doctor import __version__ as TOOL_VERSION
from catalog_doctor.contracts import build_contract, build_run_summary
from catalog_doctor.engine.batch import MergedBatch
from catalog_doctor.engine.shared import DetectionOutcome, ProcessingStats


def _sources_block(batch: MergedBatch) -> dict:
    return {
        "files": list(batch.source_names),
        "rows_per_file": dict(batch.rows_per_source),
        "padded_cells": batch.padded_cells,
        "multi_file": batch.is_multi_file,
    }


def build_enrich_summary(
    batch: MergedBatch,
    stats: ProcessingStats,
    *,
    input_paths: list[Path],
    output_path: Path | None,
    preset_name: str | None,
    warnings: list[str] | None = None,
) -> dict:
    contract = build_contract("catalog_doctor.enrich_summary")
    stats_payload = stats.to_dict()
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "preset": preset_name,
        "output_file": str(output_path) if output_path else None,
        "rows": len(batch.records),
        "columns": list(batch.columns),
        "sources": _sources_block(batch),
        "stats": stats_payload,
        "warnings": list(warnings or []),
        "run_summary": build_run_summary(
            tool="catalog-doctor",
            command="enrich",
            input_paths=input_paths,
            output_path=output_path,
            metrics={"rows": len(batch.records), **stats_payload},
            warnings=warnings,
        ),
    }


def build_duplicate_report(
    batch: MergedBatch,
    outcome: DetectionOutcome,
    *,
    input_paths: list[Path],
    output_path: Path | None,
    threshold: float,
    preset_name: str | None,
    warnings: list[str] | None = None,
) -> dict:
    contract = build_contract("catalog_doctor.duplicate_report")
    kind_counts = Counter(result.kind for result in outcome.results)
    cross_file = sum(1 for result in outcome.results if result.is_cross_file)
    duplicated_rows = len({row for result in outcome.results for row in result.rows})
    warnings = list(warnings or [])
    if outcome.partial:
        warnings.append(
            f"Fuzzy comparison stopped early: {outcome.buckets_completed} of "
            f"{outcome.buckets_total} blocks completed."
        )
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "preset": preset_name,
        "threshold": threshold,
        "partial": outcome.partial,
        "rows": len(batch.records),
        "sources": _sources_block(batch),
        "groups": {
            "total": len(outcome.results),
            "by_kind": dict(sorted(kind_counts.items())),
            "cross_file": cross_file,
            "duplicated_rows": duplicated_rows,
        },
        "fuzzy": {
            "blocks_total": outcome.buckets_total,
            "blocks_completed": outcome.buckets_completed,
            "comparisons": outcome.comparisons,
        },
        "results": [result.to_dict() for result in outcome.results],
        "warnings": warnings,
        "run_summary": build_run_summary(
            tool="catalog-doctor",
            command="duplicates",
            input_paths=input_paths,
            output_path=output_path,
            status="partial" if outcome.partial else "ok",
            metrics={
                "rows": len(batch.records),
                "groups": len(outcome.results),
                "cross_file_groups": cross_file,
                "partial": outcome.partial,
            },
            warnings=warnings,
        ),
    }


def render_enrich_text(summary: dict, output_path: Path | None) -> str:
    stats = summary["stats"]
    lines = [
        "catalog-doctor enrich",
        f"Inputs: {', '.join(summary['sources']['files'])}",
        f"Preset: {summary.get('preset') or '[none]'}",
        f"Rows: {summary['rows']}",
        f"Fields filled: {stats['camposPreenchidos']}",
        f"Abbreviations corrected: {stats['abreviaturasCorrigidas']}",
        f"Protected cells: {stats['camposProtegidos']}",
    ]
    if output_path:
        lines.append(f"Output: {output_path}")
    return "\n".join(lines) + "\n"


def render_duplicates_text(report: dict, limit: int = 20) -> str:
    groups = report["groups"]
    lines = [
        "catalog-doctor duplicates",
        f"Inputs: {', '.join(report['sources']['files'])}",
        f"Rows: {report['rows']}",
        f"Groups: {groups['total']} ({groups['cross_file']} across files)",
    ]
    for kind, count in groups["by_kind"].items():
        lines.append(f"- {kind}: {count}")
    results: Sequence[dict] = report["results"]
    for item in results[:limit]:
        rows = ", ".join(str(row + 2) for row in item["linhas"])
        lines.append(
            f"  [{item['tipo']}] {item['valor']!r} ({round(item['similaridade'] * 100)}%) linhas {rows}"
        )
    if len(results) > limit:
        lines.append(f"  ... {len(results) - limit} more")
    if report["partial"]:
        lines.append("Result is PARTIAL: fuzzy comparison was cancelled.")
    return "\n".join(lines) + "\n"
