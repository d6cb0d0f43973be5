"""
deckguard/utils/validators.py — Payload field validation helpers
Pure checks; the guard decides which rejection reason each failure maps to.
"""
from __future__ import annotations

import re
from typing import Any, Optional

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def clean_text(value: Optional[str]) -> str:
    """Trim a possibly-missing string field. None → ""."""
    if value is None:
        return ""
    return str(value).strip()


def within_bounds(value: str, min_len: int, max_len: int) -> bool:
    return min_len <= len(value) <= max_len


def normalize_email(value: Optional[str]) -> str:
    return clean_text(value).lower()


def is_valid_email(email: str, max_length: int = 254) -> bool:
    if not email or len(email) > max_length:
        return False
    return bool(_EMAIL_RE.match(email))


def is_too_fast(
    client_time_ms: Optional[float],
    min_elapsed_ms: int,
    require_client_time: bool,
) -> bool:
    """
    Elapsed-time bot heuristic. A missing value fails only when the action
    requires the client to report one.
    """
    if client_time_ms is None:
        return require_client_time
    return client_time_ms < min_elapsed_ms


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp a float value between min and max."""
    return max(min_val, min(max_val, value))


def parse_int(value: Any, default: int) -> int:
    """Lenient int parse for query params. Non-numeric → default."""
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
