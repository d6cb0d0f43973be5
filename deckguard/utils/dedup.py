"""
deckguard/utils/dedup.py — Content canonicalization and dedupe keys
Submission dedupe: fingerprint + SHA-256(normalized name | description | category).
Report dedupe: SHA-256(fingerprint | feature id).
Both are checked through the rate-limit store under their own scope.
"""
from __future__ import annotations

import re

from deckguard.utils.identity import hash_value

_NON_WORD_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_content(value: str) -> str:
    """Lowercase, drop everything but letters/digits/whitespace, collapse whitespace."""
    value = _NON_WORD_RE.sub(" ", value.lower())
    return _WHITESPACE_RE.sub(" ", value).strip()


def compute_content_hash(name: str, description: str, category: str) -> str:
    combined = "|".join(
        (
            normalize_content(name),
            normalize_content(description),
            category.strip().lower(),
        )
    )
    return hash_value(combined)


def build_content_dedupe_key(
    fingerprint: str,
    name: str,
    description: str,
    category: str,
) -> str:
    return f"{fingerprint}:{compute_content_hash(name, description, category)}"


def build_report_dedupe_key(fingerprint: str, feature_id: str) -> str:
    return hash_value(f"{fingerprint}|{feature_id}")
