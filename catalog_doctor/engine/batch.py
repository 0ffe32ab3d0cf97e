from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Sequence

from catalog_doctor.engine.shared import (
    BATCH_INDEX_COLUMN,
    METADATA_COLUMNS,
    SOURCE_FILE_COLUMN,
    SOURCE_ROW_COLUMN,
    BatchLimitError,
    Record,
    collect_columns,
    is_metadata_column,
)
from catalog_doctor.logging_config import get_logger

logger = get_logger(__name__)

MAX_FILES = 20
MAX_TOTAL_ITEMS = 20_000


@dataclass
class SourceTable:
    name: str
    records: list[Record]
    columns: Optional[list[str]] = None

    def resolved_columns(self) -> list[str]:
        if self.columns is not None:
            return [c for c in self.columns if not is_metadata_column(c)]
        return [c for c in collect_columns(self.records) if not is_metadata_column(c)]


@dataclass
class MergedBatch:
    records: list[Record]
    columns: list[str]
    source_names: list[str]
    padded_cells: int = 0
    rows_per_source: dict[str, int] = field(default_factory=dict)

    @property
    def is_multi_file(self) -> bool:
        return len(self.source_names) > 1


def unique_source_names(names: Sequence[str]) -> list[str]:
    """Suffix every colliding name with its 1-based batch position: "produtos.csv #2"."""
    counts = Counter(names)
    return [
        f"{name} #{position}" if counts[name] > 1 else name
        for position, name in enumerate(names, start=1)
    ]


def merge_batch(
    sources: Sequence[SourceTable],
    *,
    max_files: Optional[int] = MAX_FILES,
    max_total_items: Optional[int] = MAX_TOTAL_ITEMS,
) -> MergedBatch:
    """
    Merge several parsed tables into one, tagging each record with its origin.

    Columns are the union of every source's columns in order of first
    appearance. Records missing a column from another source get an empty
    string, which is expected for heterogeneous exports. Sources sharing a
    name (same file name in different folders) are told apart by position.
    """
    if max_files is not None and len(sources) > max_files:
        raise BatchLimitError(f"At most {max_files} files can be merged; got {len(sources)}.")
    total_items = sum(len(source.records) for source in sources)
    if max_total_items is not None and total_items > max_total_items:
        raise BatchLimitError(f"At most {max_total_items} items can be merged; got {total_items}.")

    seen: dict[str, None] = {}
    for source in sources:
        for column in source.resolved_columns():
            seen.setdefault(column, None)
    columns = list(seen)

    source_names = unique_source_names([source.name for source in sources])
    merged: list[Record] = []
    padded = 0
    rows_per_source: dict[str, int] = {}
    for batch_index, (source, source_name) in enumerate(zip(sources, source_names)):
        for row_number, record in enumerate(source.records, start=1):
            out: Record = {
                SOURCE_FILE_COLUMN: source_name,
                SOURCE_ROW_COLUMN: row_number,
                BATCH_INDEX_COLUMN: batch_index,
            }
            for column in columns:
                if column in record:
                    out[column] = record[column]
                else:
                    out[column] = ""
                    padded += 1
            merged.append(out)
        rows_per_source[source_name] = len(source.records)

    if padded:
        logger.info("batch.padded_cells", padded_cells=padded, sources=len(sources))
    logger.debug("batch.merged", rows=len(merged), columns=len(columns), sources=len(sources))
    return MergedBatch(
        records=merged,
        columns=columns,
        source_names=source_names,
        padded_cells=padded,
        rows_per_source=rows_per_source,
    )


def strip_metadata(record: Record) -> Record:
    return {column: value for column, value in record.items() if column not in METADATA_COLUMNS}
