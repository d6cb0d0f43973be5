"""
deckguard/models.py — All Pydantic data schemas
Rate-limit entries, guard results, community/official items, deck items
and the API request/response bodies.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────────────────

class RejectReason(str, Enum):
    INVALID_PAYLOAD = "invalid_payload"
    LENGTH_OUT_OF_BOUNDS = "length_out_of_bounds"
    TOO_FAST = "too_fast"
    PROFANE_CONTENT = "profane_content"
    LINK_SPAM = "link_spam"
    RATE_LIMITED_COOLDOWN = "rate_limited_cooldown"
    RATE_LIMITED_DAILY_CAP = "rate_limited_daily_cap"
    DUPLICATE_CONTENT = "duplicate_content"
    DUPLICATE_REPORT = "duplicate_report"
    FEATURE_NOT_FOUND = "feature_not_found"
    STORAGE_UNAVAILABLE = "storage_unavailable"

    @property
    def status_code(self) -> int:
        return _REASON_STATUS.get(self, 400)

    @property
    def retryable(self) -> bool:
        return self is RejectReason.STORAGE_UNAVAILABLE


_REASON_STATUS: dict[RejectReason, int] = {
    RejectReason.RATE_LIMITED_COOLDOWN: 429,
    RejectReason.RATE_LIMITED_DAILY_CAP: 429,
    RejectReason.DUPLICATE_CONTENT: 409,
    RejectReason.DUPLICATE_REPORT: 409,
    RejectReason.FEATURE_NOT_FOUND: 404,
    RejectReason.STORAGE_UNAVAILABLE: 503,
}


class DeckSource(str, Enum):
    OFFICIAL = "official"
    COMMUNITY = "community"


# ──────────────────────────────────────────────────────────────────────────────
# Rate limiting
# ──────────────────────────────────────────────────────────────────────────────

class RateLimitEntry(BaseModel):
    """One counter per (scope, key). Outside its window it is logically absent."""
    scope: str
    key: str
    count: int = 0
    first_seen: datetime
    last_seen: Optional[datetime] = None

    def is_expired(self, now: datetime, window: timedelta) -> bool:
        return now - self.first_seen > window


class RateLimitPolicy(BaseModel):
    scope: str
    window: timedelta
    cooldown: timedelta = timedelta(0)
    max_count: int
    cooldown_message: str = "Please wait a moment before trying again."
    max_message: str = "Limit reached. Please try again later."


class ActionPolicy(BaseModel):
    """Everything the guard needs to protect one write action."""
    action: str
    ip: RateLimitPolicy
    fingerprint: RateLimitPolicy
    dedupe: Optional[RateLimitPolicy] = None
    min_elapsed_ms: int = 0
    require_client_time: bool = False
    cleanup_interval: timedelta = timedelta(minutes=5)


class RequestIdentity(BaseModel):
    """Opaque digests only. Raw IP / user agent never leave identity.py."""
    ip_hash: str
    fingerprint: str


# ──────────────────────────────────────────────────────────────────────────────
# Guard outcome
# ──────────────────────────────────────────────────────────────────────────────

class GuardResult(BaseModel):
    ok: bool
    reason: Optional[RejectReason] = None
    message: Optional[str] = None
    retryable: bool = False
    status_code: int = 200
    data: dict[str, Any] = {}

    @classmethod
    def accepted(cls, status_code: int = 200, **data: Any) -> "GuardResult":
        return cls(ok=True, status_code=status_code, data=data)

    @classmethod
    def rejected(cls, reason: RejectReason, message: str) -> "GuardResult":
        return cls(
            ok=False,
            reason=reason,
            message=message,
            retryable=reason.retryable,
            status_code=reason.status_code,
        )


# ──────────────────────────────────────────────────────────────────────────────
# Content items
# ──────────────────────────────────────────────────────────────────────────────

class OfficialFeature(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None


class CommunityFeature(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    category: str
    created_at: Optional[datetime] = None
    reported_count: int = 0
    allowed: bool = True
    greenlit: Optional[bool] = None  # None = undecided, defer to `allowed`

    @property
    def is_publicly_visible(self) -> bool:
        if self.greenlit is not None:
            return self.greenlit
        return self.allowed


class DeckItem(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    source: DeckSource
    created_at: Optional[datetime] = None
    reported_count: Optional[int] = None


# ──────────────────────────────────────────────────────────────────────────────
# API Request / Response models
# ──────────────────────────────────────────────────────────────────────────────

class _CamelPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CommunityFeaturePayload(_CamelPayload):
    """POST /api/community-features request body"""
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    honeypot: Optional[str] = None
    client_time_ms: Optional[float] = Field(default=None, alias="clientTimeMs")
    timezone: Optional[str] = None


class ReportPayload(_CamelPayload):
    """POST /api/community-features/report request body"""
    feature_id: Optional[str] = Field(default=None, alias="featureId")
    timezone: Optional[str] = None


class WaitlistPayload(_CamelPayload):
    """POST /api/waitlist request body"""
    email: Optional[str] = None
    honeypot: Optional[str] = None
    client_time_ms: Optional[float] = Field(default=None, alias="clientTimeMs")
    timezone: Optional[str] = None


class ModerationRequest(_CamelPayload):
    """POST /admin/moderation/{greenlight,reject} request body"""
    feature_id: str = Field(alias="featureId", min_length=1)


class CommunityListResponse(BaseModel):
    features: list[CommunityFeature] = []


class DeckResponse(BaseModel):
    rotation_step: int
    items: list[DeckItem] = []
