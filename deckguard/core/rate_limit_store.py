"""
deckguard/core/rate_limit_store.py — Persistent sliding-window counters
Counters live in the shared `rate_limits` table so every server process sees
the same state. Increments are read-then-write: concurrent bursts from one
key can under-count. This is a deterrent, not exact enforcement.

Contract:
  get      → live entry for the window, or a fresh zero entry
  evaluate → cooldown / cap rejection or None
  commit   → single upsert of count+1 after the guarded write succeeded
  prune    → amortized delete of expired rows, throttled per scope
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from deckguard.clients.database import RateLimitRow, StoreUnavailableError, session_scope
from deckguard.core import logging as app_logging
from deckguard.models import RateLimitEntry, RateLimitPolicy, RejectReason


def evaluate_entry(
    entry: RateLimitEntry,
    now: datetime,
    cooldown: timedelta,
    max_count: int,
) -> Optional[RejectReason]:
    """
    Cooldown is checked before the cap: a key inside its cooldown is told to
    wait even when it still has quota left.
    """
    if entry.last_seen is not None and now - entry.last_seen < cooldown:
        return RejectReason.RATE_LIMITED_COOLDOWN
    if entry.count >= max_count:
        return RejectReason.RATE_LIMITED_DAILY_CAP
    return None


def stricter(*reasons: Optional[RejectReason]) -> Optional[RejectReason]:
    """Daily cap outranks cooldown; None means allowed."""
    present = [r for r in reasons if r is not None]
    if RejectReason.RATE_LIMITED_DAILY_CAP in present:
        return RejectReason.RATE_LIMITED_DAILY_CAP
    return present[0] if present else None


class RateLimitStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        # Prune throttle only; never consulted for limit decisions
        self._last_cleanup: dict[str, datetime] = {}

    def get(
        self,
        scope: str,
        key: str,
        now: datetime,
        window: timedelta,
    ) -> RateLimitEntry:
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(RateLimitRow, (scope, key))
                snapshot = (
                    None if row is None
                    else (row.count, row.first_seen, row.last_seen)
                )
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"rate limit lookup failed for scope {scope!r}") from exc

        fresh = RateLimitEntry(scope=scope, key=key, count=0, first_seen=now, last_seen=None)
        if snapshot is None:
            return fresh

        count, first_seen, last_seen = snapshot
        entry = RateLimitEntry(
            scope=scope,
            key=key,
            count=count or 0,
            first_seen=first_seen,
            last_seen=last_seen,
        )
        if entry.is_expired(now, window):
            return fresh
        return entry

    def get_for_policy(self, policy: RateLimitPolicy, key: str, now: datetime) -> RateLimitEntry:
        return self.get(policy.scope, key, now, policy.window)

    def evaluate(
        self,
        entry: RateLimitEntry,
        now: datetime,
        policy: RateLimitPolicy,
    ) -> Optional[RejectReason]:
        return evaluate_entry(entry, now, policy.cooldown, policy.max_count)

    def commit(self, entry: RateLimitEntry, now: datetime) -> bool:
        """
        Upsert `count + 1` with `last_seen = now`.
        Failures are logged and reported as False, never raised.
        """
        count = entry.count + 1
        try:
            with session_scope(self._session_factory) as session:
                session.merge(
                    RateLimitRow(
                        scope=entry.scope,
                        key=entry.key,
                        count=count,
                        first_seen=entry.first_seen,
                        last_seen=now,
                    )
                )
        except SQLAlchemyError as exc:
            app_logging.log_rate_limit_commit(
                entry.scope, entry.key, count, success=False, error=str(exc)
            )
            return False

        app_logging.log_rate_limit_commit(entry.scope, entry.key, count, success=True)
        return True

    def prune(
        self,
        scope: str,
        window: timedelta,
        now: datetime,
        cleanup_interval: timedelta,
    ) -> int:
        """Delete rows whose window has fully elapsed. Returns rows deleted (0 when throttled)."""
        last_cleanup = self._last_cleanup.get(scope)
        if last_cleanup is not None and now - last_cleanup < cleanup_interval:
            return 0
        self._last_cleanup[scope] = now

        cutoff = now - window
        try:
            with session_scope(self._session_factory) as session:
                result = session.execute(
                    delete(RateLimitRow)
                    .where(RateLimitRow.scope == scope)
                    .where(RateLimitRow.first_seen < cutoff)
                )
                deleted = result.rowcount or 0
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"rate limit prune failed for scope {scope!r}") from exc

        app_logging.log_prune(scope, deleted, cutoff)
        return deleted
