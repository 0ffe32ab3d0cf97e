"""
Duplicate detection over product tables.

Phase 1 buckets rows by the normalisation key of each identity column and
reports every bucket with two or more rows as an exact duplicate.

Phase 2 compares the remaining rows of name-like columns pairwise inside
blocks that share the first key token. Blocks are scored on a thread pool;
each worker returns its own edge list and the main thread merges them in
block order, so results never depend on thread scheduling. A cancellation
token stops the fuzzy phase early and the outcome is marked partial.
"""

from __future__ import annotations

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from catalog_doctor.engine.shared import (
    ACTION_ANALYZE,
    BASIS_CODE,
    BASIS_NAME,
    DEFAULT_SIMILARITY_THRESHOLD,
    IDENTITY_HEADER_HINTS,
    KIND_EXACT_CODE,
    KIND_EXACT_NAME,
    KIND_FUZZY_NAME,
    SOURCE_FILE_COLUMN,
    DetectionOutcome,
    DuplicateResult,
    Record,
    coerce_policies,
    collect_columns,
    is_metadata_column,
    policy_for,
)
from catalog_doctor.engine.text import cell_text, first_token, normalization_key, similarity
from catalog_doctor.logging_config import get_logger

logger = get_logger(__name__)

MAX_DEFAULT_WORKERS = 8
LENGTH_BOUND_SLACK = 1e-9

Edge = tuple[int, int, float]


class CancellationToken:
    """Cooperative stop signal for the fuzzy phase, optionally with a deadline."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False


@dataclass(frozen=True)
class IdentityBasis:
    column: str
    kind: str


@dataclass
class _Block:
    basis_index: int
    members: list[tuple[int, str]]


class _UnionFind:
    def __init__(self) -> None:
        self._parent: dict[int, int] = {}

    def find(self, item: int) -> int:
        root = self._parent.setdefault(item, item)
        while self._parent[root] != root:
            root = self._parent[root]
        while item != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        # lowest row index stays root
        if root_b < root_a:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a


def participating_columns(columns: Iterable[str], policies: Mapping[str, Any] | None) -> list[str]:
    """Columns eligible for comparison: analyze action, not protected, not metadata."""
    checked = coerce_policies(policies)
    eligible = []
    for column in columns:
        if is_metadata_column(column):
            continue
        policy = policy_for(checked, column)
        if policy.is_protected or policy.action != ACTION_ANALYZE:
            continue
        eligible.append(column)
    return eligible


def classify_header(column: str) -> Optional[str]:
    key = normalization_key(column)
    if not key:
        return None
    for kind in (BASIS_CODE, BASIS_NAME):
        for hint in IDENTITY_HEADER_HINTS[kind]:
            if key == hint or key.startswith(hint + " "):
                return kind
    return None


def identity_bases(
    columns: Iterable[str],
    policies: Mapping[str, Any] | None,
    identity_columns: Optional[Iterable[str]] = None,
) -> list[IdentityBasis]:
    eligible = participating_columns(columns, policies)
    if identity_columns is not None:
        wanted = list(identity_columns)
        return [
            IdentityBasis(column, classify_header(column) or BASIS_NAME)
            for column in wanted
            if column in eligible
        ]
    bases = []
    for column in eligible:
        kind = classify_header(column)
        if kind is not None:
            bases.append(IdentityBasis(column, kind))
    if not bases and eligible:
        bases.append(IdentityBasis(eligible[0], BASIS_NAME))
    return bases


def _row_keys(table: list[Record], column: str) -> list[str]:
    return [normalization_key(record.get(column)) for record in table]


def _exact_buckets(keys: list[str]) -> dict[str, list[int]]:
    buckets: dict[str, list[int]] = {}
    for row, key in enumerate(keys):
        if key:
            buckets.setdefault(key, []).append(row)
    return buckets


def _source_files(table: list[Record], rows: Iterable[int]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for row in rows:
        origin = cell_text(table[row].get(SOURCE_FILE_COLUMN))
        if origin and origin not in seen:
            seen[origin] = None
    return tuple(seen)


def _display_value(table: list[Record], row: int, column: str) -> str:
    return cell_text(table[row].get(column)).strip()


def _score_block(
    members: list[tuple[int, str]],
    threshold: float,
    cancel_token: Optional[CancellationToken],
) -> tuple[list[Edge], int, bool]:
    """Score all pairs in one block; returns (edges, comparisons, completed)."""
    edges: list[Edge] = []
    comparisons = 0
    for position, (row_a, key_a) in enumerate(members):
        if cancel_token is not None and cancel_token.cancelled:
            return edges, comparisons, False
        len_a = len(key_a)
        for row_b, key_b in members[position + 1:]:
            len_b = len(key_b)
            # similarity can never exceed the length ratio
            if min(len_a, len_b) / max(len_a, len_b) < threshold - LENGTH_BOUND_SLACK:
                continue
            comparisons += 1
            score = similarity(key_a, key_b)
            if score >= threshold:
                edges.append((row_a, row_b, score))
    return edges, comparisons, True


def _build_blocks(
    basis_keys: list[list[str]],
    excluded: list[set[int]],
    fuzzy_bases: list[int],
) -> list[_Block]:
    blocks: list[_Block] = []
    for basis_index in fuzzy_bases:
        by_token: dict[str, list[tuple[int, str]]] = {}
        for row, key in enumerate(basis_keys[basis_index]):
            if not key or row in excluded[basis_index]:
                continue
            by_token.setdefault(first_token(key), []).append((row, key))
        for members in by_token.values():
            if len(members) > 1:
                blocks.append(_Block(basis_index, members))
    return blocks


def _run_blocks(
    blocks: list[_Block],
    threshold: float,
    max_workers: int,
    cancel_token: Optional[CancellationToken],
) -> list[tuple[list[Edge], int, bool]]:
    if max_workers <= 1 or len(blocks) <= 1:
        return [_score_block(block.members, threshold, cancel_token) for block in blocks]
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(_score_block, block.members, threshold, cancel_token)
            for block in blocks
        ]
        return [future.result() for future in futures]


def _fuzzy_groups(edges: list[Edge]) -> list[tuple[tuple[int, ...], float]]:
    union_find = _UnionFind()
    for row_a, row_b, _ in edges:
        union_find.union(row_a, row_b)
    members: dict[int, set[int]] = {}
    weakest: dict[int, float] = {}
    for row_a, row_b, score in edges:
        root = union_find.find(row_a)
        members.setdefault(root, set()).update((row_a, row_b))
        weakest[root] = min(weakest.get(root, 1.0), score)
    return [(tuple(sorted(members[root])), weakest[root]) for root in sorted(members)]


def run_detection(
    table: list[Record],
    policies: Mapping[str, Any] | None,
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    identity_columns: Optional[Iterable[str]] = None,
    max_workers: Optional[int] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> DetectionOutcome:
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"Similarity threshold must be within [0, 1], got {threshold}")
    outcome = DetectionOutcome()
    if not table:
        return outcome

    bases = identity_bases(collect_columns(table), policies, identity_columns)
    if not bases:
        logger.info("duplicates.no_identity_columns", rows=len(table))
        return outcome

    basis_keys = [_row_keys(table, basis.column) for basis in bases]
    excluded: list[set[int]] = [set() for _ in bases]

    for basis_index, basis in enumerate(bases):
        kind = KIND_EXACT_CODE if basis.kind == BASIS_CODE else KIND_EXACT_NAME
        for rows in _exact_buckets(basis_keys[basis_index]).values():
            if len(rows) < 2:
                continue
            excluded[basis_index].update(rows)
            outcome.results.append(
                DuplicateResult(
                    kind=kind,
                    value=_display_value(table, rows[0], basis.column),
                    rows=tuple(rows),
                    similarity=1.0,
                    column=basis.column,
                    source_files=_source_files(table, rows),
                )
            )

    fuzzy_bases = [index for index, basis in enumerate(bases) if basis.kind == BASIS_NAME]
    blocks = _build_blocks(basis_keys, excluded, fuzzy_bases)
    outcome.buckets_total = len(blocks)
    workers = max_workers if max_workers is not None else min(MAX_DEFAULT_WORKERS, os.cpu_count() or 1)
    scored = _run_blocks(blocks, threshold, workers, cancel_token)

    edges_by_basis: dict[int, list[Edge]] = {index: [] for index in fuzzy_bases}
    for block, (edges, comparisons, completed) in zip(blocks, scored):
        outcome.comparisons += comparisons
        if not completed:
            outcome.partial = True
            continue
        outcome.buckets_completed += 1
        edges_by_basis[block.basis_index].extend(edges)

    for basis_index in fuzzy_bases:
        column = bases[basis_index].column
        for rows, weakest in _fuzzy_groups(edges_by_basis[basis_index]):
            outcome.results.append(
                DuplicateResult(
                    kind=KIND_FUZZY_NAME,
                    value=_display_value(table, rows[0], column),
                    rows=rows,
                    similarity=weakest,
                    column=column,
                    source_files=_source_files(table, rows),
                )
            )

    if outcome.partial:
        logger.warning(
            "duplicates.fuzzy_cancelled",
            buckets_total=outcome.buckets_total,
            buckets_completed=outcome.buckets_completed,
        )
    logger.debug(
        "duplicates.completed",
        rows=len(table),
        groups=len(outcome.results),
        comparisons=outcome.comparisons,
        partial=outcome.partial,
    )
    return outcome


def detect(
    table: list[Record],
    policies: Mapping[str, Any] | None,
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    identity_columns: Optional[Iterable[str]] = None,
    max_workers: Optional[int] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> list[DuplicateResult]:
    """Return duplicate groups for ``table``; see run_detection for the partial flag."""
    return run_detection(
        table,
        policies,
        threshold=threshold,
        identity_columns=identity_columns,
        max_workers=max_workers,
        cancel_token=cancel_token,
    ).results
