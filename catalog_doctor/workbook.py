from __future__ import annotations

from pathlib import Path
from typing import Sequence

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from catalog_doctor.engine.shared import (
    METADATA_COLUMNS,
    SOURCE_FILE_COLUMN,
    SOURCE_ROW_COLUMN,
    DuplicateResult,
    Record,
)
from catalog_doctor.engine.text import cell_text

ENRICHED_SHEET = "Produtos"
DUPLICATES_SHEET = "Duplicatas"
STATS_SHEET = "Resumo"

DUPLICATE_HEADERS = [
    "Grupo",
    "Tipo",
    "Coluna",
    "Valor",
    "Similaridade (%)",
    "Linha na planilha",
    "Arquivo de origem",
    "Linha no arquivo",
    "Entre arquivos",
]

FILL_CROSS_FILE = PatternFill("solid", fgColor="FCE4D6")   # soft orange
FILL_GROUP_ALT  = PatternFill("solid", fgColor="F2F2F2")   # light grey


def _style_sheet(ws, col_widths: list[int], header_color: str) -> None:
    """Apply bold header, color, frozen row, and column widths."""
    fill = PatternFill("solid", fgColor=header_color)
    font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(v)) + 2)) for v in rows[0]]
    for row in rows[1 : sample + 1]:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(val)) + 2))
    return widths


def export_columns(columns: Sequence[str], include_metadata: bool) -> list[str]:
    data_columns = [c for c in columns if c not in METADATA_COLUMNS]
    if include_metadata:
        return list(METADATA_COLUMNS) + data_columns
    return data_columns


def _rows(records: list[Record], headers: list[str]) -> list[list]:
    return [[record.get(column, "") for column in headers] for record in records]


def write_enriched_workbook(
    records: list[Record],
    columns: Sequence[str],
    output_path: Path,
    *,
    include_metadata: bool = False,
    stats: dict[str, int] | None = None,
) -> None:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = ENRICHED_SHEET
    headers = export_columns(columns, include_metadata)
    rows = _rows(records, headers)
    ws.append(headers)
    for row in rows:
        ws.append(row)
    _style_sheet(ws, _infer_col_widths([headers] + rows), "4CAF50")   # green

    if stats:
        ws_stats = wb.create_sheet(STATS_SHEET)
        stat_rows = [["Métrica", "Total"]] + [[key, value] for key, value in stats.items()]
        for row in stat_rows:
            ws_stats.append(row)
        _style_sheet(ws_stats, _infer_col_widths(stat_rows), "1565C0")   # blue

    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)


def write_enriched_csv(
    records: list[Record],
    columns: Sequence[str],
    output_path: Path,
    *,
    include_metadata: bool = False,
) -> None:
    headers = export_columns(columns, include_metadata)
    frame = pd.DataFrame(_rows(records, headers), columns=headers)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(output_path, index=False, encoding="utf-8-sig")


def duplicate_rows(results: Sequence[DuplicateResult], records: list[Record]) -> list[list]:
    """One sheet row per group member, joined back to the table by row index."""
    out: list[list] = []
    for group_number, result in enumerate(results, start=1):
        for row in result.rows:
            record = records[row] if 0 <= row < len(records) else {}
            out.append(
                [
                    group_number,
                    result.kind,
                    result.column,
                    result.value,
                    round(result.similarity * 100, 1),
                    row + 2,
                    cell_text(record.get(SOURCE_FILE_COLUMN)),
                    cell_text(record.get(SOURCE_ROW_COLUMN)),
                    "sim" if result.is_cross_file else "não",
                ]
            )
    return out


def write_duplicates_workbook(
    results: Sequence[DuplicateResult],
    records: list[Record],
    output_path: Path,
) -> None:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = DUPLICATES_SHEET
    rows = duplicate_rows(results, records)
    ws.append(DUPLICATE_HEADERS)
    for row in rows:
        ws.append(row)
        # alternate shading per group, orange when a group spans files
        last = ws.max_row
        if row[-1] == "sim":
            fill = FILL_CROSS_FILE
        elif row[0] % 2 == 0:
            fill = FILL_GROUP_ALT
        else:
            continue
        for cell in ws[last]:
            cell.fill = fill
    _style_sheet(ws, _infer_col_widths([DUPLICATE_HEADERS] + rows), "E53935")   # red

    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
