from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

Scalar = Union[str, int, float, bool, None]
Record = dict[str, Scalar]

ACTION_IGNORE = "ignore"
ACTION_ANALYZE = "analyze"
ACTION_DEFAULT_ALL = "default_all"
ACTION_DEFAULT_EMPTY = "default_empty"
VALID_ACTIONS = (ACTION_IGNORE, ACTION_ANALYZE, ACTION_DEFAULT_ALL, ACTION_DEFAULT_EMPTY)
DEFAULTING_ACTIONS = (ACTION_DEFAULT_ALL, ACTION_DEFAULT_EMPTY)

SOURCE_FILE_COLUMN = "__source_file"
SOURCE_ROW_COLUMN = "__source_row"
BATCH_INDEX_COLUMN = "__batch_index"
METADATA_COLUMNS = (SOURCE_FILE_COLUMN, SOURCE_ROW_COLUMN, BATCH_INDEX_COLUMN)

DEFAULT_SIMILARITY_THRESHOLD = 0.8

KIND_EXACT_NAME = "Nome idêntico"
KIND_EXACT_CODE = "Código idêntico"
KIND_FUZZY_NAME = "Nome similar"

BASIS_NAME = "name"
BASIS_CODE = "code"

IDENTITY_HEADER_HINTS = {
    BASIS_CODE: ("codigo", "cod", "sku", "ref", "referencia", "part number", "code"),
    BASIS_NAME: ("nome", "name", "titulo", "title", "produto", "product"),
}


class CatalogDoctorError(Exception):
    """Base class for catalog-doctor errors."""


class InvalidPolicyError(CatalogDoctorError, ValueError):
    """A column policy cannot be applied as configured."""

    def __init__(self, column: str, message: str) -> None:
        super().__init__(f"Invalid policy for column '{column}': {message}")
        self.column = column


class MalformedRecordError(CatalogDoctorError, ValueError):
    """A record lacks columns declared for its table."""

    def __init__(self, row_index: int, missing: list[str]) -> None:
        super().__init__(
            f"Record at row {row_index} is missing declared column(s): {', '.join(missing)}"
        )
        self.row_index = row_index
        self.missing = missing


class InvalidPresetError(CatalogDoctorError, ValueError):
    """A config preset payload is not usable."""


class BatchLimitError(CatalogDoctorError, ValueError):
    """A batch merge exceeds the configured file or item limits."""


@dataclass(frozen=True)
class ColumnPolicy:
    action: str = ACTION_ANALYZE
    default_value: str = ""
    is_protected: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ColumnPolicy":
        default_value = payload.get("defaultValue", payload.get("default_value", ""))
        is_protected = payload.get("isProtected", payload.get("is_protected", False))
        if not isinstance(is_protected, bool):
            raise InvalidPresetError(f"isProtected must be true or false, got {is_protected!r}")
        return cls(
            action=str(payload.get("action", ACTION_ANALYZE)),
            default_value="" if default_value is None else str(default_value),
            is_protected=is_protected,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "defaultValue": self.default_value,
            "isProtected": self.is_protected,
        }


DEFAULT_POLICY = ColumnPolicy()


@dataclass
class ProcessingStats:
    fields_filled: int = 0
    abbreviations_corrected: int = 0
    fields_protected: int = 0
    fields_ignored: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "camposPreenchidos": self.fields_filled,
            "abreviaturasCorrigidas": self.abbreviations_corrected,
            "camposProtegidos": self.fields_protected,
            "camposIgnorados": self.fields_ignored,
        }


@dataclass(frozen=True)
class DuplicateResult:
    kind: str
    value: str
    rows: tuple[int, ...]
    similarity: float
    column: str
    source_files: tuple[str, ...] = ()

    @property
    def is_cross_file(self) -> bool:
        return len(self.source_files) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "tipo": self.kind,
            "valor": self.value,
            "linhas": list(self.rows),
            "similaridade": self.similarity,
            "coluna": self.column,
            "arquivosOrigem": list(self.source_files),
            "isCrossFile": self.is_cross_file,
        }


@dataclass
class DetectionOutcome:
    results: list[DuplicateResult] = field(default_factory=list)
    partial: bool = False
    buckets_total: int = 0
    buckets_completed: int = 0
    comparisons: int = 0


def is_metadata_column(column: str) -> bool:
    return column in METADATA_COLUMNS


def policy_for(policies: Mapping[str, ColumnPolicy], column: str) -> ColumnPolicy:
    return policies.get(column, DEFAULT_POLICY)


def coerce_policies(policies: Mapping[str, Any] | None) -> dict[str, ColumnPolicy]:
    """Accept ColumnPolicy objects or their JSON dict form."""
    coerced: dict[str, ColumnPolicy] = {}
    for column, policy in (policies or {}).items():
        if isinstance(policy, ColumnPolicy):
            coerced[column] = policy
        elif isinstance(policy, Mapping):
            try:
                coerced[column] = ColumnPolicy.from_dict(policy)
            except InvalidPresetError as exc:
                raise InvalidPolicyError(column, str(exc)) from exc
        else:
            raise InvalidPolicyError(column, f"expected a policy mapping, got {type(policy).__name__}")
    return coerced


def collect_columns(records: list[Record]) -> list[str]:
    """Union of record keys in order of first appearance."""
    seen: dict[str, None] = {}
    for record in records:
        for column in record:
            if column not in seen:
                seen[column] = None
    return list(seen)
