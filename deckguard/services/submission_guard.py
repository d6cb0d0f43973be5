"""
deckguard/services/submission_guard.py — Guard in front of every user write
Stage order for free-text submissions:
  honeypot → elapsed time → payload / length → profanity → link spam
  → rate limit (IP + fingerprint, stricter wins) → dedupe → persist → commit
Reports: payload → dedupe (one report per fingerprint+item) → rate limit
  → increment reported_count / hide → commit
Waitlist: honeypot → elapsed time → email → rate limit → insert → commit

Each stage short-circuits with its own reason. Counters are only committed
after the primary write succeeded, and a failed commit never fails the action.
Store outages before the write fail closed (retryable storage_unavailable).
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from deckguard.clients.community_repository import CommunityRepository
from deckguard.clients.database import StoreUnavailableError
from deckguard.config import Settings, get_settings
from deckguard.core import logging as app_logging
from deckguard.core.policies import report_policy, submission_policy, waitlist_policy
from deckguard.core.rate_limit_store import RateLimitStore, stricter
from deckguard.models import (
    ActionPolicy,
    CommunityFeaturePayload,
    GuardResult,
    RateLimitEntry,
    RejectReason,
    ReportPayload,
    RequestIdentity,
    WaitlistPayload,
)
from deckguard.services.link_spam import any_link_spam
from deckguard.services.profanity import ProfanityDetector, get_detector
from deckguard.utils.dedup import build_content_dedupe_key, build_report_dedupe_key
from deckguard.utils.timezone import utc_now
from deckguard.utils.validators import (
    clean_text,
    is_too_fast,
    is_valid_email,
    normalize_email,
    within_bounds,
)

PROFANITY_MESSAGE = "Let's keep it constructive - please rephrase and try again."
LINK_SPAM_MESSAGE = "Links are not allowed in submissions."
TOO_FAST_MESSAGE = "Submission was too fast."


class SubmissionGuard:
    def __init__(
        self,
        rate_limits: RateLimitStore,
        repository: CommunityRepository,
        settings: Optional[Settings] = None,
        detector: Optional[ProfanityDetector] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        self.rate_limits = rate_limits
        self.repository = repository
        self.detector = detector or get_detector()
        self.clock = clock
        self.submission_policy = submission_policy(self.settings)
        self.report_policy = report_policy(self.settings)
        self.waitlist_policy = waitlist_policy(self.settings)

    # ──────────────────────────────────────────────────────────────────────────
    # Community feature submission
    # ──────────────────────────────────────────────────────────────────────────

    def submit_feature(
        self,
        payload: CommunityFeaturePayload,
        identity: RequestIdentity,
        now: Optional[datetime] = None,
    ) -> GuardResult:
        policy = self.submission_policy
        s = self.settings
        now = now or self.clock()

        # Bot trap: look successful, write nothing
        if clean_text(payload.honeypot):
            app_logging.log_guard_decision(policy.action, True, "honeypot", identity.fingerprint)
            return GuardResult.accepted(status_code=201)

        if is_too_fast(payload.client_time_ms, policy.min_elapsed_ms, policy.require_client_time):
            return self._reject(policy, identity, RejectReason.TOO_FAST, TOO_FAST_MESSAGE)

        name = clean_text(payload.name)
        description = clean_text(payload.description)
        category = clean_text(payload.category)
        if not name or not description or category not in s.allowed_categories:
            return self._reject(
                policy, identity, RejectReason.INVALID_PAYLOAD, "Invalid submission payload."
            )
        if not (
            within_bounds(name, s.submission_name_min, s.submission_name_max)
            and within_bounds(description, s.submission_description_min, s.submission_description_max)
        ):
            return self._reject(
                policy, identity, RejectReason.LENGTH_OUT_OF_BOUNDS, "Submission length is invalid."
            )

        if self.detector.any_profane((name, description)):
            return self._reject(policy, identity, RejectReason.PROFANE_CONTENT, PROFANITY_MESSAGE)
        if any_link_spam((name, description)):
            return self._reject(policy, identity, RejectReason.LINK_SPAM, LINK_SPAM_MESSAGE)

        dedupe_key = build_content_dedupe_key(identity.fingerprint, name, description, category)
        try:
            ip_entry, fp_entry, dedupe_entry = self._load_entries(policy, identity, now, dedupe_key)
        except StoreUnavailableError as exc:
            return self._unavailable(policy, identity, exc, "Unable to process submission right now.")

        rejection = self._rate_limit_rejection(policy, ip_entry, fp_entry, now)
        if rejection is not None:
            return self._reject(policy, identity, rejection.reason, rejection.message)

        if self.rate_limits.evaluate(dedupe_entry, now, policy.dedupe) is not None:
            return self._reject(
                policy, identity, RejectReason.DUPLICATE_CONTENT, policy.dedupe.max_message
            )

        try:
            feature = self.repository.insert_feature(name, description, category, now=now)
        except StoreUnavailableError as exc:
            return self._unavailable(policy, identity, exc, "Failed to save submission.")

        self._commit_all((ip_entry, fp_entry, dedupe_entry), now)
        app_logging.log_guard_decision(policy.action, True, None, identity.fingerprint, persisted=True)
        return GuardResult.accepted(status_code=201, feature_id=feature.id)

    # ──────────────────────────────────────────────────────────────────────────
    # Abuse report
    # ──────────────────────────────────────────────────────────────────────────

    def report_feature(
        self,
        payload: ReportPayload,
        identity: RequestIdentity,
        now: Optional[datetime] = None,
    ) -> GuardResult:
        policy = self.report_policy
        now = now or self.clock()

        feature_id = clean_text(payload.feature_id)
        if not feature_id:
            return self._reject(
                policy, identity, RejectReason.INVALID_PAYLOAD, "Invalid report payload."
            )

        report_key = build_report_dedupe_key(identity.fingerprint, feature_id)
        try:
            ip_entry, fp_entry, dedupe_entry = self._load_entries(policy, identity, now, report_key)
        except StoreUnavailableError as exc:
            return self._unavailable(policy, identity, exc, "Unable to process report right now.")

        if self.rate_limits.evaluate(dedupe_entry, now, policy.dedupe) is not None:
            return self._reject(
                policy, identity, RejectReason.DUPLICATE_REPORT, policy.dedupe.max_message
            )

        rejection = self._rate_limit_rejection(policy, ip_entry, fp_entry, now)
        if rejection is not None:
            return self._reject(policy, identity, rejection.reason, rejection.message)

        threshold = self.settings.report_hide_threshold
        try:
            feature = self.repository.apply_report(feature_id, threshold)
        except StoreUnavailableError as exc:
            return self._unavailable(policy, identity, exc, "Failed to process report.")
        if feature is None:
            return self._reject(
                policy, identity, RejectReason.FEATURE_NOT_FOUND, "Feature not found."
            )

        self._commit_all((ip_entry, fp_entry, dedupe_entry), now)

        removed = not feature.is_publicly_visible
        app_logging.log_report(feature.id, feature.reported_count, removed)
        app_logging.log_guard_decision(policy.action, True, None, identity.fingerprint, persisted=True)
        return GuardResult.accepted(removed=removed, reported_count=feature.reported_count)

    # ──────────────────────────────────────────────────────────────────────────
    # Waitlist signup
    # ──────────────────────────────────────────────────────────────────────────

    def join_waitlist(
        self,
        payload: WaitlistPayload,
        identity: RequestIdentity,
        now: Optional[datetime] = None,
    ) -> GuardResult:
        policy = self.waitlist_policy
        now = now or self.clock()

        if clean_text(payload.honeypot):
            app_logging.log_guard_decision(policy.action, True, "honeypot", identity.fingerprint)
            return GuardResult.accepted(status_code=201)

        if is_too_fast(payload.client_time_ms, policy.min_elapsed_ms, policy.require_client_time):
            return self._reject(policy, identity, RejectReason.TOO_FAST, TOO_FAST_MESSAGE)

        email = normalize_email(payload.email)
        if not is_valid_email(email, self.settings.waitlist_email_max):
            return self._reject(
                policy, identity, RejectReason.INVALID_PAYLOAD, "Please enter a valid email address."
            )

        try:
            ip_entry, fp_entry, _ = self._load_entries(policy, identity, now)
        except StoreUnavailableError as exc:
            return self._unavailable(policy, identity, exc, "Unable to process your request right now.")

        rejection = self._rate_limit_rejection(policy, ip_entry, fp_entry, now)
        if rejection is not None:
            return self._reject(policy, identity, rejection.reason, rejection.message)

        try:
            inserted = self.repository.add_waitlist_email(email)
        except StoreUnavailableError as exc:
            return self._unavailable(policy, identity, exc, "Failed to save email.")

        if not inserted:
            app_logging.log_guard_decision(policy.action, True, "already_registered", identity.fingerprint)
            return GuardResult.accepted(duplicate=True)

        self._commit_all((ip_entry, fp_entry), now)
        app_logging.log_guard_decision(policy.action, True, None, identity.fingerprint, persisted=True)
        return GuardResult.accepted(status_code=201)

    # ──────────────────────────────────────────────────────────────────────────
    # Shared stages
    # ──────────────────────────────────────────────────────────────────────────

    def _load_entries(
        self,
        policy: ActionPolicy,
        identity: RequestIdentity,
        now: datetime,
        dedupe_key: Optional[str] = None,
    ) -> tuple[RateLimitEntry, RateLimitEntry, Optional[RateLimitEntry]]:
        """Prune (throttled) and read every counter before any write. Raises StoreUnavailableError."""
        limits = [policy.ip, policy.fingerprint]
        if policy.dedupe is not None and dedupe_key is not None:
            limits.append(policy.dedupe)
        for limit in limits:
            self.rate_limits.prune(limit.scope, limit.window, now, policy.cleanup_interval)

        ip_entry = self.rate_limits.get_for_policy(policy.ip, identity.ip_hash, now)
        fp_entry = self.rate_limits.get_for_policy(policy.fingerprint, identity.fingerprint, now)
        dedupe_entry = None
        if policy.dedupe is not None and dedupe_key is not None:
            dedupe_entry = self.rate_limits.get_for_policy(policy.dedupe, dedupe_key, now)
        return ip_entry, fp_entry, dedupe_entry

    def _rate_limit_rejection(
        self,
        policy: ActionPolicy,
        ip_entry: RateLimitEntry,
        fp_entry: RateLimitEntry,
        now: datetime,
    ) -> Optional[GuardResult]:
        reason = stricter(
            self.rate_limits.evaluate(ip_entry, now, policy.ip),
            self.rate_limits.evaluate(fp_entry, now, policy.fingerprint),
        )
        if reason is None:
            return None
        if reason is RejectReason.RATE_LIMITED_COOLDOWN:
            return GuardResult.rejected(reason, policy.ip.cooldown_message)
        return GuardResult.rejected(reason, policy.ip.max_message)

    def _commit_all(self, entries: tuple[Optional[RateLimitEntry], ...], now: datetime) -> None:
        # Best effort: RateLimitStore.commit logs and returns False on failure
        for entry in entries:
            if entry is not None:
                self.rate_limits.commit(entry, now)

    def _reject(
        self,
        policy: ActionPolicy,
        identity: RequestIdentity,
        reason: RejectReason,
        message: str,
    ) -> GuardResult:
        app_logging.log_guard_decision(policy.action, False, reason.value, identity.fingerprint)
        return GuardResult.rejected(reason, message)

    def _unavailable(
        self,
        policy: ActionPolicy,
        identity: RequestIdentity,
        exc: Exception,
        message: str,
    ) -> GuardResult:
        app_logging.log_error("submission_guard", policy.action, exc)
        return self._reject(policy, identity, RejectReason.STORAGE_UNAVAILABLE, message)
