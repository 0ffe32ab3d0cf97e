"""Column policy enrichment: defaults, abbreviation expansion and protected fields."""

from __future__ import annotations

from typing import Any, Mapping

from catalog_doctor.engine.shared import (
    ACTION_DEFAULT_ALL,
    ACTION_DEFAULT_EMPTY,
    ACTION_IGNORE,
    DEFAULTING_ACTIONS,
    VALID_ACTIONS,
    ColumnPolicy,
    InvalidPolicyError,
    MalformedRecordError,
    ProcessingStats,
    Record,
    Scalar,
    coerce_policies,
    collect_columns,
    is_metadata_column,
    policy_for,
)
from catalog_doctor.engine.text import expand_abbreviations, is_empty, normalize_abbreviations
from catalog_doctor.logging_config import get_logger

logger = get_logger(__name__)


def validate_policies(policies: Mapping[str, Any] | None) -> dict[str, ColumnPolicy]:
    """Coerce and check a policy map; raises InvalidPolicyError on the first defect."""
    coerced = coerce_policies(policies)
    for column, policy in coerced.items():
        if policy.action not in VALID_ACTIONS:
            raise InvalidPolicyError(
                column,
                f"unknown action '{policy.action}' (expected one of {', '.join(VALID_ACTIONS)})",
            )
        if policy.is_protected:
            continue
        if policy.action in DEFAULTING_ACTIONS and not (policy.default_value or "").strip():
            raise InvalidPolicyError(
                column,
                f"action '{policy.action}' requires a non-empty default value",
            )
    return coerced


def _apply_policy(
    value: Scalar,
    policy: ColumnPolicy,
    abbreviations: dict[str, str],
    stats: ProcessingStats,
) -> Scalar:
    if policy.is_protected:
        stats.fields_protected += 1
        return value
    if policy.action == ACTION_IGNORE:
        stats.fields_ignored += 1
        return value
    if policy.action == ACTION_DEFAULT_ALL:
        if is_empty(value):
            stats.fields_filled += 1
        return policy.default_value
    if policy.action == ACTION_DEFAULT_EMPTY:
        if is_empty(value):
            stats.fields_filled += 1
            return policy.default_value
        return value
    # analyze: numbers and booleans pass through, empty cells stay empty
    if not isinstance(value, str) or is_empty(value):
        return value
    expanded, count = expand_abbreviations(value, abbreviations)
    stats.abbreviations_corrected += count
    return expanded


def enrich(
    table: list[Record],
    policies: Mapping[str, Any] | None,
    abbreviations: Mapping[str, str] | None,
    *,
    columns: list[str] | None = None,
) -> tuple[list[Record], ProcessingStats]:
    """
    Apply column policies to every cell and return (enriched_table, stats).

    Protected columns are returned as the very same value objects. When
    ``columns`` is given, every record must carry each declared column;
    otherwise the column list is the first-appearance union and gaps are
    padded with empty strings before their column policy applies.
    """
    checked = validate_policies(policies)
    table_abbreviations = normalize_abbreviations(abbreviations)
    stats = ProcessingStats()
    if not table:
        return [], stats

    strict = columns is not None
    column_list = list(columns) if strict else collect_columns(table)
    padded = 0
    enriched: list[Record] = []

    for row_index, record in enumerate(table):
        if strict:
            missing = [column for column in column_list if column not in record]
            if missing:
                raise MalformedRecordError(row_index, missing)

        out: Record = {}
        # strict tables keep each record's own key order
        for column in (list(record) if strict else column_list):
            if column in record:
                value = record[column]
            else:
                # padded cells still go through their column's policy
                padded += 1
                value = ""
            if is_metadata_column(column):
                out[column] = value
                continue
            out[column] = _apply_policy(value, policy_for(checked, column), table_abbreviations, stats)
        enriched.append(out)

    if padded:
        logger.info("enrich.padded_cells", padded_cells=padded)
    logger.debug(
        "enrich.completed",
        rows=len(enriched),
        columns=len(column_list),
        **stats.to_dict(),
    )
    return enriched, stats
