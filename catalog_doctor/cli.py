from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from catalog_doctor import __version__ as TOOL_VERSION
from catalog_doctor.engine.batch import MergedBatch, SourceTable, merge_batch
from catalog_doctor.engine.duplicates import CancellationToken, run_detection
from catalog_doctor.engine.policy import enrich
from catalog_doctor.engine.presets import (
    BUILTIN_PRESETS,
    ConfigPreset,
    apply_preset_to_columns,
    get_builtin_preset,
    load_preset,
    preset_to_dict,
)
from catalog_doctor.engine.shared import (
    DEFAULT_SIMILARITY_THRESHOLD,
    BatchLimitError,
    ColumnPolicy,
    InvalidPolicyError,
    InvalidPresetError,
)
from catalog_doctor.loader import load_table
from catalog_doctor.logging_config import setup_logging
from catalog_doctor.summary import (
    build_duplicate_report,
    build_enrich_summary,
    render_duplicates_text,
    render_enrich_text,
)
from catalog_doctor.workbook import write_duplicates_workbook, write_enriched_csv, write_enriched_workbook

DEFAULT_BUILTIN = "bling-54"

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_DUPLICATES_FOUND = 3
EXIT_INVALID_CONFIG = 5
EXIT_PARTIAL = 6


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class CatalogDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get("CATALOG_DOCTOR_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "catalog-doctor-output" / f"{input_path.stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, input_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(input_path)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def remove_generated_at(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key in {"generated_at", "exportedAt"}:
                result[key] = "1970-01-01T00:00:00Z"
            else:
                result[key] = remove_generated_at(item)
        return result
    if isinstance(value, list):
        return [remove_generated_at(item) for item in value]
    return value


def normalize_report_for_cli(payload: Any) -> Any:
    if os.environ.get("CATALOG_DOCTOR_OUTPUT_STAMP"):
        return remove_generated_at(payload)
    return payload


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(path: Path) -> Path:
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, (InvalidPolicyError, InvalidPresetError)):
        return EXIT_INVALID_CONFIG
    if isinstance(exc, BatchLimitError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def build_parser() -> argparse.ArgumentParser:
    parser = CatalogDoctorArgumentParser(prog="catalog-doctor", description="Enrich and deduplicate product spreadsheets.")
    subparsers = parser.add_subparsers(dest="command", required=True, parser_class=CatalogDoctorArgumentParser)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("inputs", nargs="+", help="Input file paths (merged as one batch)")
        sub.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
        presets = sub.add_mutually_exclusive_group()
        presets.add_argument("--preset", help="JSON config preset path")
        presets.add_argument("--builtin", choices=sorted(BUILTIN_PRESETS), help=f"Built-in preset (default {DEFAULT_BUILTIN})")
        sub.add_argument("-o", "--out", dest="out_dir", help="Output directory")
        sub.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
        sub.add_argument("--dry-run", action="store_true", help="Run without writing outputs")
        sub.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
        sub.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    enrich_cmd = subparsers.add_parser("enrich", help="Apply column policies and expand abbreviations.")
    add_common(enrich_cmd)
    enrich_cmd.add_argument("--output", help="Explicit output path")
    enrich_cmd.add_argument("--format", choices=["xlsx", "csv"], default="xlsx", help="Output format")
    enrich_cmd.add_argument("--include-metadata", action="store_true", help="Keep __source_file/__source_row/__batch_index columns")

    duplicates = subparsers.add_parser("duplicates", help="Detect exact and similar duplicate products.")
    add_common(duplicates)
    duplicates.add_argument("--output", help="Explicit duplicates workbook path")
    duplicates.add_argument("--threshold", type=float, default=DEFAULT_SIMILARITY_THRESHOLD, help="Fuzzy similarity threshold in [0, 1]")
    duplicates.add_argument("--timeout", type=float, default=None, help="Stop fuzzy comparison after this many seconds")
    duplicates.add_argument("--workers", type=int, default=None, help="Worker threads for fuzzy comparison")
    duplicates.add_argument("--identity-column", dest="identity_columns", action="append", help="Column to compare (repeatable)")

    preset = subparsers.add_parser("preset", help="Export or inspect config presets.")
    preset_subparsers = preset.add_subparsers(dest="preset_command", required=True, parser_class=CatalogDoctorArgumentParser)
    preset_export = preset_subparsers.add_parser("export", help="Write a built-in preset as JSON.")
    preset_export.add_argument("--builtin", choices=sorted(BUILTIN_PRESETS), default=DEFAULT_BUILTIN)
    preset_export.add_argument("--path", required=True, help="Preset output path")
    preset_show = preset_subparsers.add_parser("show", help="Validate and summarize a preset file.")
    preset_show.add_argument("path", help="Preset path")
    preset_show.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def resolve_preset(args: argparse.Namespace) -> ConfigPreset:
    if args.preset:
        return load_preset(Path(args.preset))
    return get_builtin_preset(args.builtin or DEFAULT_BUILTIN)


def load_batch(args: argparse.Namespace) -> tuple[list[Path], MergedBatch, list[str]]:
    input_paths = [Path(item) for item in args.inputs]
    missing = [path for path in input_paths if not path.exists()]
    if missing:
        raise CliError(f"File not found: {missing[0]}", EXIT_COMMAND_ERROR)
    warnings: list[str] = []
    sources = []
    for path in input_paths:
        loaded = load_table(path, sheet_name=args.sheet_name)
        warnings.extend(f"{loaded.name}: {warning}" for warning in loaded.warnings)
        sources.append(SourceTable(name=loaded.name, records=loaded.records, columns=loaded.columns))
    batch = merge_batch(sources)
    if batch.padded_cells:
        warnings.append(f"{batch.padded_cells} cell(s) padded with empty values while merging files.")
    return input_paths, batch, warnings


def resolve_policies(preset: ConfigPreset, columns: list[str]) -> dict[str, ColumnPolicy]:
    return apply_preset_to_columns(columns, preset)


def run_enrich(args: argparse.Namespace) -> int:
    try:
        input_paths, batch, warnings = load_batch(args)
        preset = resolve_preset(args)
        warnings.extend(preset.warnings)
        policies = resolve_policies(preset, batch.columns)
        records, stats = enrich(batch.records, policies, preset.abbreviations)

        out_dir = determine_output_dir(args, input_paths[0])
        suffix = ".csv" if args.format == "csv" else ".xlsx"
        output_path = Path(args.output) if args.output else out_dir / f"{input_paths[0].stem}-enriched{suffix}"
        summary_path = out_dir / "enrich-summary.json"
        if not args.dry_run:
            safe_output_path(output_path)
            safe_output_path(summary_path)

        summary = build_enrich_summary(
            batch,
            stats,
            input_paths=input_paths,
            output_path=None if args.dry_run else output_path,
            preset_name=preset.name,
            warnings=warnings,
        )
        summary = normalize_report_for_cli(summary)
        if not args.dry_run:
            if args.format == "csv":
                write_enriched_csv(records, batch.columns, output_path, include_metadata=args.include_metadata)
            else:
                write_enriched_workbook(
                    records,
                    batch.columns,
                    output_path,
                    include_metadata=args.include_metadata,
                    stats=stats.to_dict(),
                )
            write_json(summary_path, summary)
        if args.json:
            maybe_emit_json_stdout(summary, True)
        else:
            emit_human(render_enrich_text(summary, None if args.dry_run else output_path).rstrip(), quiet=args.quiet)
            if not args.dry_run:
                emit_human(f"Enrich summary: {summary_path}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_duplicates(args: argparse.Namespace) -> int:
    if not 0.0 <= args.threshold <= 1.0:
        eprint(f"--threshold must be within [0, 1], got {args.threshold}")
        return EXIT_COMMAND_ERROR
    if args.workers is not None and args.workers < 1:
        eprint("--workers must be at least 1")
        return EXIT_COMMAND_ERROR
    try:
        input_paths, batch, warnings = load_batch(args)
        preset = resolve_preset(args)
        warnings.extend(preset.warnings)
        policies = resolve_policies(preset, batch.columns)
        if args.identity_columns:
            unknown = [c for c in args.identity_columns if c not in batch.columns]
            if unknown:
                raise CliError(f"Unknown identity column(s): {', '.join(unknown)}", EXIT_COMMAND_ERROR)

        out_dir = determine_output_dir(args, input_paths[0])
        output_path = Path(args.output) if args.output else out_dir / "duplicates.xlsx"
        report_path = out_dir / "duplicate-report.json"
        if not args.dry_run:
            safe_output_path(output_path)
            safe_output_path(report_path)

        token = CancellationToken(timeout=args.timeout)
        try:
            outcome = run_detection(
                batch.records,
                policies,
                threshold=args.threshold,
                identity_columns=args.identity_columns,
                max_workers=args.workers,
                cancel_token=token,
            )
        except KeyboardInterrupt:
            raise CliError("Interrupted.", EXIT_COMMAND_ERROR) from None

        report = build_duplicate_report(
            batch,
            outcome,
            input_paths=input_paths,
            output_path=None if args.dry_run else output_path,
            threshold=args.threshold,
            preset_name=preset.name,
            warnings=warnings,
        )
        report = normalize_report_for_cli(report)
        if not args.dry_run:
            write_duplicates_workbook(outcome.results, batch.records, output_path)
            write_json(report_path, report)
        if args.json:
            maybe_emit_json_stdout(report, True)
        else:
            emit_human(render_duplicates_text(report).rstrip(), quiet=args.quiet)
            if not args.dry_run:
                emit_human(f"Duplicates workbook: {output_path}", quiet=args.quiet)
                emit_human(f"Duplicate report: {report_path}", quiet=args.quiet)
        if outcome.partial:
            return EXIT_PARTIAL
        if outcome.results:
            return EXIT_DUPLICATES_FOUND
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_preset_export(args: argparse.Namespace) -> int:
    path = Path(args.path)
    if path.exists():
        eprint(f"Refusing to overwrite existing preset: {path}")
        return EXIT_COMMAND_ERROR
    payload = normalize_report_for_cli(preset_to_dict(get_builtin_preset(args.builtin)))
    write_json(path, payload)
    emit_human(f"Preset written: {path}")
    return EXIT_SUCCESS


def run_preset_show(args: argparse.Namespace) -> int:
    try:
        preset = load_preset(Path(args.path))
    except InvalidPresetError as exc:
        eprint(str(exc))
        return EXIT_INVALID_CONFIG
    protected = sorted(column for column, policy in preset.column_config.items() if policy.is_protected)
    payload = {
        "name": preset.name,
        "version": preset.version,
        "exported_at": preset.exported_at,
        "abbreviation_count": len(preset.abbreviations),
        "column_count": len(preset.column_config),
        "protected_columns": protected,
        "warnings": list(preset.warnings),
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Preset: {preset.name}",
                    f"Version: {preset.version}",
                    f"Abbreviations: {payload['abbreviation_count']}",
                    f"Columns configured: {payload['column_count']}",
                    f"Protected columns: {len(protected)}",
                ]
                + [f"Warning: {warning}" for warning in preset.warnings]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if getattr(args, "verbose", False):
            setup_logging("INFO")
        elif getattr(args, "quiet", False):
            setup_logging("ERROR")
        else:
            setup_logging()
        if args.command == "enrich":
            return run_enrich(args)
        if args.command == "duplicates":
            return run_duplicates(args)
        if args.command == "preset":
            if args.preset_command == "export":
                return run_preset_export(args)
            if args.preset_command == "show":
                return run_preset_show(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
