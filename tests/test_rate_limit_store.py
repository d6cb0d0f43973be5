"""
tests/test_rate_limit_store.py — Unit tests for persistent sliding-window counters
"""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from deckguard.clients.database import StoreUnavailableError
from deckguard.core.rate_limit_store import RateLimitStore, evaluate_entry, stricter
from deckguard.models import RateLimitEntry, RateLimitPolicy, RejectReason

START = datetime(2024, 6, 1, 12, 0, 0)
DAY = timedelta(days=1)


def _policy(**overrides) -> RateLimitPolicy:
    values = dict(scope="test-scope", window=DAY, cooldown=timedelta(seconds=30), max_count=2)
    values.update(overrides)
    return RateLimitPolicy(**values)


def test_missing_key_returns_fresh_entry(rate_limits):
    entry = rate_limits.get("test-scope", "k1", START, DAY)
    assert entry.count == 0
    assert entry.first_seen == START
    assert entry.last_seen is None


def test_commit_increments_and_records_last_seen(rate_limits):
    entry = rate_limits.get("test-scope", "k1", START, DAY)
    assert rate_limits.commit(entry, START) is True

    later = START + timedelta(minutes=1)
    stored = rate_limits.get("test-scope", "k1", later, DAY)
    assert stored.count == 1
    assert stored.first_seen == START
    assert stored.last_seen == START

    assert rate_limits.commit(stored, later) is True
    again = rate_limits.get("test-scope", "k1", later, DAY)
    assert again.count == 2
    assert again.first_seen == START
    assert again.last_seen == later


def test_expired_entry_resets_window(rate_limits):
    rate_limits.commit(rate_limits.get("test-scope", "k1", START, DAY), START)
    after_window = START + DAY + timedelta(seconds=1)
    entry = rate_limits.get("test-scope", "k1", after_window, DAY)
    assert entry.count == 0
    assert entry.first_seen == after_window


def test_entry_exactly_at_window_edge_is_still_live(rate_limits):
    rate_limits.commit(rate_limits.get("test-scope", "k1", START, DAY), START)
    entry = rate_limits.get("test-scope", "k1", START + DAY, DAY)
    assert entry.count == 1


def test_scopes_are_independent(rate_limits):
    rate_limits.commit(rate_limits.get("scope-a", "k1", START, DAY), START)
    assert rate_limits.get("scope-b", "k1", START, DAY).count == 0


def test_cooldown_checked_before_cap():
    entry = RateLimitEntry(scope="s", key="k", count=5, first_seen=START, last_seen=START)
    reason = evaluate_entry(entry, START + timedelta(seconds=5), timedelta(seconds=30), 5)
    assert reason == RejectReason.RATE_LIMITED_COOLDOWN


def test_cap_applies_after_cooldown_elapsed():
    entry = RateLimitEntry(scope="s", key="k", count=5, first_seen=START, last_seen=START)
    reason = evaluate_entry(entry, START + timedelta(minutes=5), timedelta(seconds=30), 5)
    assert reason == RejectReason.RATE_LIMITED_DAILY_CAP


def test_under_cap_and_outside_cooldown_is_allowed():
    entry = RateLimitEntry(scope="s", key="k", count=1, first_seen=START, last_seen=START)
    assert evaluate_entry(entry, START + timedelta(minutes=1), timedelta(seconds=30), 5) is None


def test_stricter_prefers_daily_cap():
    assert stricter(
        RejectReason.RATE_LIMITED_COOLDOWN, RejectReason.RATE_LIMITED_DAILY_CAP
    ) == RejectReason.RATE_LIMITED_DAILY_CAP
    assert stricter(None, RejectReason.RATE_LIMITED_COOLDOWN) == RejectReason.RATE_LIMITED_COOLDOWN
    assert stricter(None, None) is None


def test_evaluate_uses_policy(rate_limits):
    policy = _policy(cooldown=timedelta(0), max_count=1)
    entry = rate_limits.get_for_policy(policy, "k1", START)
    assert rate_limits.evaluate(entry, START, policy) is None
    rate_limits.commit(entry, START)
    entry = rate_limits.get_for_policy(policy, "k1", START)
    assert rate_limits.evaluate(entry, START, policy) == RejectReason.RATE_LIMITED_DAILY_CAP


def test_prune_deletes_only_expired_rows(rate_limits):
    rate_limits.commit(rate_limits.get("test-scope", "old", START, DAY), START)
    later = START + timedelta(hours=30)
    rate_limits.commit(rate_limits.get("test-scope", "new", later, DAY), later)

    deleted = rate_limits.prune("test-scope", DAY, later, timedelta(minutes=5))
    assert deleted == 1
    assert rate_limits.get("test-scope", "new", later, DAY).count == 1


def test_prune_is_throttled_per_scope(rate_limits):
    interval = timedelta(minutes=5)
    assert rate_limits.prune("test-scope", DAY, START, interval) == 0
    rate_limits.commit(rate_limits.get("test-scope", "old", START, DAY), START)

    # Inside the interval: skipped even though the row has since expired
    soon = START + DAY + timedelta(minutes=1)
    rate_limits._last_cleanup["test-scope"] = soon - timedelta(minutes=1)
    assert rate_limits.prune("test-scope", DAY, soon, interval) == 0

    assert rate_limits.prune("test-scope", DAY, soon + interval, interval) == 1


def test_commit_failure_is_reported_not_raised(failing_session_factory):
    store = RateLimitStore(failing_session_factory)
    entry = RateLimitEntry(scope="s", key="k", count=0, first_seen=START)
    assert store.commit(entry, START) is False


def test_read_failure_raises_store_unavailable(failing_session_factory):
    store = RateLimitStore(failing_session_factory)
    with pytest.raises(StoreUnavailableError):
        store.get("s", "k", START, DAY)


def test_prune_failure_raises_store_unavailable(failing_session_factory):
    store = RateLimitStore(failing_session_factory)
    with pytest.raises(StoreUnavailableError):
        store.prune("s", DAY, START, timedelta(minutes=5))
