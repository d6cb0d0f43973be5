"""
deckguard/core/dependencies.py — FastAPI dependency providers
One RateLimitStore per process so the prune throttle is shared across
requests; counters themselves live in the database.
"""
from __future__ import annotations

from functools import lru_cache

from deckguard.clients.community_repository import CommunityRepository
from deckguard.clients.database import get_session_factory
from deckguard.core.rate_limit_store import RateLimitStore
from deckguard.services.submission_guard import SubmissionGuard


@lru_cache
def get_rate_limit_store() -> RateLimitStore:
    return RateLimitStore(get_session_factory())


@lru_cache
def get_repository() -> CommunityRepository:
    return CommunityRepository(get_session_factory())


@lru_cache
def get_guard() -> SubmissionGuard:
    return SubmissionGuard(get_rate_limit_store(), get_repository())
