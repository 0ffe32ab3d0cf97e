"""
loader.py: file ingestion for catalog-doctor

Supports: .csv .tsv .txt .xlsx .xlsm .xls .json .jsonl

Public API:
    loaded = load_table("path/to/produtos.xlsx")
    loaded.records  : list of ordered dicts, every cell a string ("" when blank)
    loaded.columns  : header order as found in the file

Every cell is read as text so that prices, stock and codes reach the engines
exactly as written in the source file.
"""

from __future__ import annotations

import csv
import io
import json as _json
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import chardet
import pandas as pd

from catalog_doctor.engine.shared import Record
from catalog_doctor.logging_config import get_logger

logger = get_logger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS  = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm", ".xls"}
JSON_FORMATS  = {".json"}
JSONL_FORMATS = {".jsonl"}
ALL_FORMATS   = TEXT_FORMATS | EXCEL_FORMATS | JSON_FORMATS | JSONL_FORMATS


@dataclass
class LoadedTable:
    name: str
    records: list[Record]
    columns: list[str]
    detected_format: str
    detected_encoding: Optional[str] = None
    delimiter: Optional[str] = None
    sheet_name: Optional[str] = None
    sheet_names: Optional[list[str]] = None
    warnings: list[str] = field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING + DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    detected = result.get("encoding") or "utf-8"
    if detected.upper().replace("-", "") == "ASCII":
        return "utf-8"
    return detected


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Each line tries UTF-8, then the detected encoding, then latin-1. Null
    bytes and a leading BOM are dropped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def _detect_delimiter(text: str) -> str:
    """Infer the delimiter with csv.Sniffer, falling back to column-count consistency."""
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])
    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in [",", ";", "\t", "|"]:
        rows = [row for row in csv.reader(io.StringIO(sample), delimiter=delim) if any(c.strip() for c in row)]
        if len(rows) < 2:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score, best_delim = score, delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _frame_to_table(df: pd.DataFrame, path: Path, fmt: str, **extra) -> LoadedTable:
    df = df.fillna("")
    df.columns = [str(c).strip() for c in df.columns]
    columns = list(df.columns)
    records: list[Record] = [
        {column: ("" if value is None else str(value)) for column, value in row.items()}
        for row in df.to_dict(orient="records")
    ]
    return LoadedTable(name=path.name, records=records, columns=columns, detected_format=fmt, **extra)


def _load_text(path: Path, suffix: str) -> LoadedTable:
    raw = path.read_bytes()
    encoding = _detect_encoding(raw)
    text = _read_text_safely(raw, encoding)
    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    sep = r"\|" if delimiter == "|" else delimiter
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            on_bad_lines="skip",
            sep=sep,
            engine="python",
        )
    except Exception as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc
    return _frame_to_table(
        df, path, suffix.lstrip("."), detected_encoding=encoding, delimiter=delimiter
    )


def _load_excel(path: Path, suffix: str, sheet_name: Optional[str]) -> LoadedTable:
    engine = "xlrd" if suffix == ".xls" else "openpyxl"
    try:
        with pd.ExcelFile(path, engine=engine) as workbook:
            sheet_names = [str(name) for name in workbook.sheet_names]
            if not sheet_names:
                raise ValueError("Workbook has no sheets.")
            chosen = sheet_name if sheet_name is not None else sheet_names[0]
            if chosen not in sheet_names:
                raise ValueError(f"Sheet '{chosen}' not found. Available sheets: {sheet_names}")
            df = pd.read_excel(workbook, sheet_name=chosen, dtype=str, keep_default_na=False)
    except ImportError:
        raise
    except ValueError:
        raise
    except Exception as exc:
        raise ValueError(f"Could not read workbook: {exc}") from exc

    warnings = []
    if len(sheet_names) > 1 and sheet_name is None:
        warnings.append(f"Workbook has {len(sheet_names)} sheets; using the first one ('{chosen}').")
    return _frame_to_table(
        df, path, suffix.lstrip("."), sheet_name=chosen, sheet_names=sheet_names, warnings=warnings
    )


def _load_json(path: Path) -> LoadedTable:
    """Load a JSON array of objects, or an object holding one under records/data/rows/items."""
    try:
        payload = _json.loads(path.read_text(encoding="utf-8-sig"))
    except _json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc}") from exc
    if isinstance(payload, dict):
        payload = next(
            (payload[key] for key in ("records", "data", "rows", "items") if isinstance(payload.get(key), list)),
            None,
        )
    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        raise ValueError("JSON input must be an array of objects (or hold one under records/data/rows/items).")
    return _frame_to_table(pd.json_normalize(payload), path, "json")


def _load_jsonl(path: Path) -> LoadedTable:
    records = []
    warnings = []
    for line_no, line in enumerate(path.read_text(encoding="utf-8-sig").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            item = _json.loads(line)
        except _json.JSONDecodeError:
            warnings.append(f"line {line_no}: invalid JSON skipped")
            continue
        if isinstance(item, dict):
            records.append(item)
        else:
            warnings.append(f"line {line_no}: not an object, skipped")
    df = pd.json_normalize(records) if records else pd.DataFrame()
    return _frame_to_table(df, path, "jsonl", warnings=warnings)


def load_table(path: Path | str, sheet_name: Optional[str] = None) -> LoadedTable:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in ALL_FORMATS:
        raise ValueError(
            f"Unsupported file type '{suffix or '[missing extension]'}'. "
            f"Supported: {', '.join(sorted(ALL_FORMATS))}"
        )

    if suffix in TEXT_FORMATS:
        loaded = _load_text(path, suffix)
    elif suffix in EXCEL_FORMATS:
        loaded = _load_excel(path, suffix, sheet_name)
    elif suffix in JSON_FORMATS:
        loaded = _load_json(path)
    else:
        loaded = _load_jsonl(path)

    logger.debug("loader.loaded", file=path.name, rows=len(loaded.records), columns=len(loaded.columns))
    return loaded
