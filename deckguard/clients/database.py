"""
deckguard/clients/database.py — SQLAlchemy engine, session factory and tables
Tables: rate_limits, community_features, features (official), waitlist_emails.
Stores receive a session factory; nothing here holds request state.
"""
from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache
from typing import Iterator, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Engine,
    Index,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from deckguard.config import get_settings
from deckguard.utils.timezone import utc_now


class StoreUnavailableError(Exception):
    """The backing store could not be read or written."""


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


class RateLimitRow(Base):
    """One counter per (scope, key); see RateLimitEntry."""
    __tablename__ = "rate_limits"

    scope: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_seen: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_seen: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_rate_limits_scope_first_seen", "scope", "first_seen"),
    )


class CommunityFeatureRow(Base):
    __tablename__ = "community_features"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    reported_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    greenlit: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=None)

    __table_args__ = (
        Index("ix_community_features_created_at", "created_at"),
        Index("ix_community_features_moderation", "allowed", "greenlit"),
    )


class FeatureRow(Base):
    """Official features, served in `position` order."""
    __tablename__ = "features"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class WaitlistEmailRow(Base):
    __tablename__ = "waitlist_emails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)


# ──────────────────────────────────────────────────────────────────────────────
# Engine / sessions
# ──────────────────────────────────────────────────────────────────────────────

def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Build an engine. In-memory SQLite shares one connection across threads."""
    kwargs: dict = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@lru_cache
def get_engine() -> Engine:
    """Returns a cached instance of the engine."""
    settings = get_settings()
    return create_db_engine(settings.database_url, echo=settings.database_echo)


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    """Returns a cached instance of the session factory."""
    return create_session_factory(get_engine())


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Commit on success, roll back on error, always close."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine or get_engine())
