"""
deckguard/clients/community_repository.py — Content rows: community items,
official features and waitlist emails.
Every SQLAlchemy failure surfaces as StoreUnavailableError.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from deckguard.clients.database import (
    CommunityFeatureRow,
    FeatureRow,
    StoreUnavailableError,
    WaitlistEmailRow,
    session_scope,
)
from deckguard.models import CommunityFeature, OfficialFeature
from deckguard.utils.timezone import utc_now


class ModerationOutcome:
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    ALREADY_DECIDED = "already_decided"


# (allowed and undecided) or explicitly greenlit
_PUBLICLY_VISIBLE = or_(
    and_(CommunityFeatureRow.allowed.is_(True), CommunityFeatureRow.greenlit.is_(None)),
    CommunityFeatureRow.greenlit.is_(True),
)


class CommunityRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"{operation} failed") from exc

    # ──────────────────────────────────────────────────────────────────────────
    # Community features
    # ──────────────────────────────────────────────────────────────────────────

    def insert_feature(
        self,
        name: str,
        description: str,
        category: str,
        now: Optional[datetime] = None,
    ) -> CommunityFeature:
        with self._session("insert_feature") as session:
            row = CommunityFeatureRow(
                name=name,
                description=description,
                category=category,
                created_at=now or utc_now(),
                reported_count=0,
                allowed=True,
                greenlit=None,
            )
            session.add(row)
            session.flush()
            return CommunityFeature.model_validate(row)

    def get_feature(self, feature_id: str) -> Optional[CommunityFeature]:
        with self._session("get_feature") as session:
            row = session.get(CommunityFeatureRow, feature_id)
            return None if row is None else CommunityFeature.model_validate(row)

    def apply_report(self, feature_id: str, hide_threshold: int) -> Optional[CommunityFeature]:
        """
        Increment reported_count; once it reaches `hide_threshold` the item is
        no longer allowed. Returns None when the feature does not exist.
        Read-then-write, like the counters.
        """
        with self._session("apply_report") as session:
            row = session.get(CommunityFeatureRow, feature_id)
            if row is None:
                return None
            row.reported_count = (row.reported_count or 0) + 1
            if row.reported_count >= hide_threshold:
                row.allowed = False
            session.flush()
            return CommunityFeature.model_validate(row)

    def list_visible(self, limit: int) -> list[CommunityFeature]:
        """Publicly visible items, newest first."""
        with self._session("list_visible") as session:
            rows = session.scalars(
                select(CommunityFeatureRow)
                .where(_PUBLICLY_VISIBLE)
                .order_by(CommunityFeatureRow.created_at.desc())
                .limit(limit)
            ).all()
            return [CommunityFeature.model_validate(r) for r in rows]

    def list_moderation_queue(self) -> list[CommunityFeature]:
        """Hidden and undecided: most reported first, then oldest."""
        with self._session("list_moderation_queue") as session:
            rows = session.scalars(
                select(CommunityFeatureRow)
                .where(CommunityFeatureRow.allowed.is_(False))
                .where(CommunityFeatureRow.greenlit.is_(None))
                .order_by(
                    CommunityFeatureRow.reported_count.desc(),
                    CommunityFeatureRow.created_at.asc(),
                )
            ).all()
            return [CommunityFeature.model_validate(r) for r in rows]

    def set_greenlit(self, feature_id: str, greenlit: bool) -> str:
        """Record an admin decision. Decisions are terminal. Returns a ModerationOutcome value."""
        with self._session("set_greenlit") as session:
            row = session.get(CommunityFeatureRow, feature_id)
            if row is None:
                return ModerationOutcome.NOT_FOUND
            if row.greenlit is not None:
                return ModerationOutcome.ALREADY_DECIDED
            row.greenlit = greenlit
            return ModerationOutcome.APPLIED

    # ──────────────────────────────────────────────────────────────────────────
    # Official features
    # ──────────────────────────────────────────────────────────────────────────

    def add_official_feature(
        self,
        name: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
        position: int = 0,
    ) -> OfficialFeature:
        with self._session("add_official_feature") as session:
            row = FeatureRow(
                name=name,
                description=description,
                category=category,
                position=position,
            )
            session.add(row)
            session.flush()
            return OfficialFeature.model_validate(row)

    def list_official_features(self) -> list[OfficialFeature]:
        with self._session("list_official_features") as session:
            rows = session.scalars(
                select(FeatureRow).order_by(FeatureRow.position.asc(), FeatureRow.id.asc())
            ).all()
            return [OfficialFeature.model_validate(r) for r in rows]

    # ──────────────────────────────────────────────────────────────────────────
    # Waitlist
    # ──────────────────────────────────────────────────────────────────────────

    def add_waitlist_email(self, email: str) -> bool:
        """Insert an email. Returns False when it is already registered."""
        try:
            with session_scope(self._session_factory) as session:
                session.add(WaitlistEmailRow(email=email, created_at=utc_now()))
        except IntegrityError:
            return False
        except SQLAlchemyError as exc:
            raise StoreUnavailableError("add_waitlist_email failed") from exc
        return True
