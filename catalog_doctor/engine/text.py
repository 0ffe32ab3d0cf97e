"""String normalisation, abbreviation expansion and similarity primitives."""

from __future__ import annotations

import math
import re
import unicodedata
from functools import lru_cache
from typing import Mapping

from rapidfuzz.distance import Levenshtein

from catalog_doctor.engine.shared import Scalar

_PUNCTUATION_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")


def is_empty(value: Scalar) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def cell_text(value: Scalar) -> str:
    if is_empty(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalization_key(value: Scalar) -> str:
    """
    Canonical form used for exact-match bucketing.

    Accents are stripped, text is lowercased, punctuation becomes a space and
    runs of whitespace collapse to one space.
    """
    text = cell_text(value)
    if not text:
        return ""
    text = strip_accents(text).lower()
    text = _PUNCTUATION_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def first_token(key: str) -> str:
    return key.split(" ", 1)[0] if key else ""


def similarity(a: str, b: str) -> float:
    """Normalised Levenshtein similarity, 1.0 for identical strings."""
    return Levenshtein.normalized_similarity(a, b)


def normalize_abbreviations(mapping: Mapping[str, str] | None) -> dict[str, str]:
    table: dict[str, str] = {}
    for key, expansion in (mapping or {}).items():
        clean_key = str(key or "").strip().lower()
        clean_expansion = str(expansion or "").strip()
        if clean_key and clean_expansion:
            table[clean_key] = clean_expansion
    return table


def _boundary_pattern(key: str) -> str:
    escaped = re.escape(key)
    lead = r"(?<!\w)" if re.match(r"\w", key) else r"(?<!\S)"
    tail = r"(?!\w)" if re.search(r"\w$", key) else ""
    return f"{lead}{escaped}{tail}"


@lru_cache(maxsize=32)
def _compile_table(keys: tuple[str, ...]) -> re.Pattern[str] | None:
    if not keys:
        return None
    ordered = sorted(keys, key=lambda k: (-len(k), k))
    return re.compile("|".join(f"(?:{_boundary_pattern(k)})" for k in ordered), re.IGNORECASE)


def _match_case(token: str, expansion: str) -> str:
    letters = [c for c in token if c.isalpha()]
    if len(letters) > 1 and all(c.isupper() for c in letters):
        return expansion.upper()
    if letters and letters[0].isupper():
        return expansion[:1].upper() + expansion[1:]
    return expansion


def expand_abbreviations(text: str, table: Mapping[str, str]) -> tuple[str, int]:
    """
    Replace abbreviation tokens in one pass, longest key first.

    Expansions are not rescanned, so the result does not depend on table
    order. Returns the new text and the number of substituted tokens.
    """
    if not text or not table:
        return text, 0
    active = tuple(sorted(k for k, v in table.items() if v.lower() != k))
    pattern = _compile_table(active)
    if pattern is None:
        return text, 0

    substituted = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal substituted
        token = match.group(0)
        expansion = table.get(token.lower())
        if expansion is None:
            return token
        substituted += 1
        replacement = _match_case(token, expansion)
        # keys such as "c/" are written glued to the next word
        end = match.end()
        if not re.search(r"\w$", token) and end < len(text) and text[end].isalnum():
            replacement += " "
        return replacement

    return pattern.sub(_replace, text), substituted
