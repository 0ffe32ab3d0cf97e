"""Pure table engines: column-policy enrichment, batch merging and duplicate detection."""

from catalog_doctor.engine.batch import MergedBatch, SourceTable, merge_batch, strip_metadata
from catalog_doctor.engine.duplicates import CancellationToken, detect, run_detection
from catalog_doctor.engine.policy import enrich, validate_policies
from catalog_doctor.engine.shared import (
    BatchLimitError,
    CatalogDoctorError,
    ColumnPolicy,
    DetectionOutcome,
    DuplicateResult,
    InvalidPolicyError,
    InvalidPresetError,
    MalformedRecordError,
    ProcessingStats,
)

__all__ = [
    "BatchLimitError",
    "CancellationToken",
    "CatalogDoctorError",
    "ColumnPolicy",
    "DetectionOutcome",
    "DuplicateResult",
    "InvalidPolicyError",
    "InvalidPresetError",
    "MalformedRecordError",
    "MergedBatch",
    "ProcessingStats",
    "SourceTable",
    "detect",
    "enrich",
    "merge_batch",
    "run_detection",
    "strip_metadata",
    "validate_policies",
]
