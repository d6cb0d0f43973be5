"""
deckguard/utils/timezone.py — UTC clock helpers and client timezone handling
All stored timestamps are naive UTC, matching the database columns.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import pytz

UTC = pytz.utc

# IANA names are short; anything longer is junk from the client
_MAX_TIMEZONE_LENGTH = 64


def utc_now() -> datetime:
    """Return current UTC datetime as a naive value."""
    return datetime.now(UTC).replace(tzinfo=None)


def as_naive_utc(dt: datetime) -> datetime:
    """Convert an aware datetime to naive UTC. Naive input is assumed UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def is_within(dt: Optional[datetime], now: datetime, span: timedelta) -> bool:
    """True if `dt` lies no further than `span` before `now`. Unknown timestamps are never within."""
    if dt is None:
        return False
    return now - as_naive_utc(dt) <= span


def normalize_client_timezone(value: Optional[str]) -> str:
    """
    Return the client-declared IANA zone if pytz knows it, else "".
    Every unknown value fingerprints the same as a missing one.
    """
    if not value:
        return ""
    candidate = value.strip()
    if not candidate or len(candidate) > _MAX_TIMEZONE_LENGTH:
        return ""
    if candidate in pytz.all_timezones_set:
        return candidate
    return ""
