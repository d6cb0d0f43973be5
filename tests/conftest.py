"""
tests/conftest.py — Shared pytest fixtures
"""
from __future__ import annotations

import random
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from deckguard.clients.community_repository import CommunityRepository
from deckguard.clients.database import create_db_engine, create_session_factory, init_db
from deckguard.config import Settings
from deckguard.core.dependencies import get_guard, get_repository
from deckguard.core.rate_limit_store import RateLimitStore
from deckguard.models import (
    CommunityFeature,
    CommunityFeaturePayload,
    OfficialFeature,
    RequestIdentity,
)
from deckguard.services.profanity import get_detector
from deckguard.services.submission_guard import SubmissionGuard
from deckguard.utils.identity import build_identity

START = datetime(2024, 6, 1, 12, 0, 0)

SAFE_NAME = "Weekly prayer group scheduler"
SAFE_DESCRIPTION = "A shared calendar for small groups to plan events together"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, environment="testing")


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def failing_session_factory():
    """Every session open fails the way a dropped database connection does."""
    def factory():
        raise OperationalError("SELECT 1", {}, Exception("database is unavailable"))
    return factory


@pytest.fixture
def rate_limits(session_factory) -> RateLimitStore:
    return RateLimitStore(session_factory)


@pytest.fixture
def repository(session_factory) -> CommunityRepository:
    return CommunityRepository(session_factory)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture(scope="session")
def detector():
    return get_detector()


@pytest.fixture
def guard(rate_limits, repository, settings, detector, clock) -> SubmissionGuard:
    return SubmissionGuard(rate_limits, repository, settings=settings, detector=detector, clock=clock)


@pytest.fixture
def identity() -> RequestIdentity:
    return build_identity("203.0.113.7", "Mozilla/5.0 (test)", "Europe/London")


@pytest.fixture
def other_identity() -> RequestIdentity:
    return build_identity("198.51.100.22", "Mozilla/5.0 (other)", "America/New_York")


@pytest.fixture
def feature_payload() -> CommunityFeaturePayload:
    return CommunityFeaturePayload(
        name=SAFE_NAME,
        description=SAFE_DESCRIPTION,
        category="Community",
        client_time_ms=5000,
    )


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def official_features() -> list[OfficialFeature]:
    return [
        OfficialFeature(id=f"official-{i}", name=f"Official {i}", category="Learning")
        for i in range(6)
    ]


@pytest.fixture
def community_features() -> list[CommunityFeature]:
    return [
        CommunityFeature(
            id=f"community-{i}",
            name=f"Community {i}",
            description="Shared by a member of the group",
            category="Community",
            created_at=START - timedelta(days=i * 3),
            reported_count=0,
        )
        for i in range(4)
    ]


@pytest.fixture
def client(guard, repository):
    from deckguard.core.rate_limiter import limiter
    from deckguard.main import app

    app.dependency_overrides[get_guard] = lambda: guard
    app.dependency_overrides[get_repository] = lambda: repository
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        limiter.enabled = True
        app.dependency_overrides.clear()
