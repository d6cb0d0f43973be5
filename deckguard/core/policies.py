"""
deckguard/core/policies.py — Per-action guard policies
Scopes, windows, cooldowns, caps and user-facing messages for each guarded
write, derived from Settings.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional

from deckguard.config import Settings, get_settings
from deckguard.models import ActionPolicy, RateLimitPolicy

# ── Scope names: one row namespace each in rate_limits ──────────────────────
SUBMISSION_IP_SCOPE = "community-submission-ip"
SUBMISSION_FINGERPRINT_SCOPE = "community-submission-fingerprint"
SUBMISSION_DEDUPE_SCOPE = "community-submission-dedupe"
REPORT_IP_SCOPE = "community-report-ip"
REPORT_FINGERPRINT_SCOPE = "community-report-fingerprint"
REPORT_DEDUPE_SCOPE = "community-report-dedupe"
WAITLIST_IP_SCOPE = "waitlist-ip"
WAITLIST_FINGERPRINT_SCOPE = "waitlist-fingerprint"


def submission_policy(settings: Optional[Settings] = None) -> ActionPolicy:
    s = settings or get_settings()
    window = timedelta(seconds=s.submission_window_seconds)
    cooldown = timedelta(seconds=s.submission_cooldown_seconds)
    messages = {
        "cooldown_message": "Too many submissions. Please wait a moment and try again.",
        "max_message": "Daily submission limit reached. Please try again tomorrow.",
    }
    return ActionPolicy(
        action="community_submission",
        ip=RateLimitPolicy(
            scope=SUBMISSION_IP_SCOPE,
            window=window,
            cooldown=cooldown,
            max_count=s.submission_max_per_day,
            **messages,
        ),
        fingerprint=RateLimitPolicy(
            scope=SUBMISSION_FINGERPRINT_SCOPE,
            window=window,
            cooldown=cooldown,
            max_count=s.submission_max_per_day,
            **messages,
        ),
        dedupe=RateLimitPolicy(
            scope=SUBMISSION_DEDUPE_SCOPE,
            window=timedelta(seconds=s.submission_dedupe_window_seconds),
            max_count=1,
            max_message="Duplicate submission detected.",
        ),
        min_elapsed_ms=s.submission_min_elapsed_ms,
        require_client_time=True,
        cleanup_interval=timedelta(seconds=s.cleanup_interval_seconds),
    )


def report_policy(settings: Optional[Settings] = None) -> ActionPolicy:
    s = settings or get_settings()
    window = timedelta(seconds=s.report_window_seconds)
    cooldown = timedelta(seconds=s.report_cooldown_seconds)
    messages = {
        "cooldown_message": "Too many reports. Please wait a moment.",
        "max_message": "Report limit reached. Please try again tomorrow.",
    }
    return ActionPolicy(
        action="community_report",
        ip=RateLimitPolicy(
            scope=REPORT_IP_SCOPE,
            window=window,
            cooldown=cooldown,
            max_count=s.report_max_per_day,
            **messages,
        ),
        fingerprint=RateLimitPolicy(
            scope=REPORT_FINGERPRINT_SCOPE,
            window=window,
            cooldown=cooldown,
            max_count=s.report_max_per_day,
            **messages,
        ),
        dedupe=RateLimitPolicy(
            scope=REPORT_DEDUPE_SCOPE,
            window=timedelta(seconds=s.report_dedupe_window_seconds),
            max_count=1,
            max_message="You've already reported this feature.",
        ),
        cleanup_interval=timedelta(seconds=s.cleanup_interval_seconds),
    )


def waitlist_policy(settings: Optional[Settings] = None) -> ActionPolicy:
    s = settings or get_settings()
    window = timedelta(seconds=s.waitlist_window_seconds)
    cooldown = timedelta(seconds=s.waitlist_cooldown_seconds)
    messages = {
        "cooldown_message": "Please wait a moment before trying again.",
        "max_message": "Daily waitlist limit reached. Please try again later.",
    }
    return ActionPolicy(
        action="waitlist_signup",
        ip=RateLimitPolicy(
            scope=WAITLIST_IP_SCOPE,
            window=window,
            cooldown=cooldown,
            max_count=s.waitlist_max_per_day,
            **messages,
        ),
        fingerprint=RateLimitPolicy(
            scope=WAITLIST_FINGERPRINT_SCOPE,
            window=window,
            cooldown=cooldown,
            max_count=s.waitlist_max_per_day,
            **messages,
        ),
        min_elapsed_ms=s.waitlist_min_elapsed_ms,
        require_client_time=False,
        cleanup_interval=timedelta(seconds=s.cleanup_interval_seconds),
    )
