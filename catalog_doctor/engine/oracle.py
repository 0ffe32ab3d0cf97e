"""
Merge output of the external AI enrichment service into a table.

The service itself is never called here. Its per-row answers are merged
under the same column policies as the enrichment engine: protected and
ignored columns are never written and empty answers never overwrite data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from catalog_doctor.engine.shared import (
    ACTION_IGNORE,
    Record,
    coerce_policies,
    collect_columns,
    is_metadata_column,
    policy_for,
)
from catalog_doctor.engine.text import cell_text, is_empty
from catalog_doctor.logging_config import get_logger

logger = get_logger(__name__)

ORACLE_FIELD_TARGETS: dict[str, tuple[str, ...]] = {
    "nome_padronizado": ("Nome", "Nome Produto", "Título"),
    "descricao_enriquecida": ("Descrição", "Descrição Curta", "Descrição Completa", "Descrição do Produto"),
    "categoria_inferida": ("Categoria", "Categoria do Produto"),
    "marca_inferida": ("Marca", "Fabricante"),
    "origem_inferida": ("Origem",),
}


@dataclass
class OracleMergeStats:
    applied: int = 0
    unchanged: int = 0
    blocked_protected: int = 0
    blocked_ignored: int = 0
    skipped_empty: int = 0
    unmapped: int = 0


def resolve_targets(
    columns: Sequence[str],
    field_map: Optional[Mapping[str, Sequence[str]]] = None,
) -> dict[str, str]:
    """Pick, for each oracle field, the first candidate column present in the table."""
    available = set(columns)
    targets: dict[str, str] = {}
    for oracle_field, candidates in (field_map or ORACLE_FIELD_TARGETS).items():
        column = next((c for c in candidates if c in available), None)
        if column is not None:
            targets[oracle_field] = column
    return targets


def merge_oracle_output(
    table: list[Record],
    outputs: Sequence[Optional[Mapping[str, Any]]],
    policies: Mapping[str, Any] | None,
    *,
    field_map: Optional[Mapping[str, Sequence[str]]] = None,
) -> tuple[list[Record], OracleMergeStats]:
    """
    Return a new table with oracle answers applied row by row.

    ``outputs`` is aligned with ``table`` by row index; ``None`` entries mean
    the service returned nothing for that row.
    """
    if len(outputs) != len(table):
        raise ValueError(f"Expected {len(table)} oracle outputs, got {len(outputs)}")
    checked = coerce_policies(policies)
    stats = OracleMergeStats()
    targets = resolve_targets(collect_columns(table), field_map)

    merged: list[Record] = []
    for record, answer in zip(table, outputs):
        out = dict(record)
        for oracle_field, value in (answer or {}).items():
            column = targets.get(oracle_field)
            if column is None or is_metadata_column(column):
                stats.unmapped += 1
                continue
            policy = policy_for(checked, column)
            if policy.is_protected:
                stats.blocked_protected += 1
                continue
            if policy.action == ACTION_IGNORE:
                stats.blocked_ignored += 1
                continue
            if is_empty(value):
                stats.skipped_empty += 1
                continue
            new_value = cell_text(value).strip()
            if cell_text(out.get(column)) == new_value:
                stats.unchanged += 1
                continue
            out[column] = new_value
            stats.applied += 1
        merged.append(out)

    logger.debug("oracle.merged", rows=len(merged), applied=stats.applied)
    return merged, stats
