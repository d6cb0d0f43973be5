"""
deckguard/routers/api.py — Public endpoints
Endpoints: /api/community-features (POST, GET), /api/community-features/report,
           /api/waitlist, /api/deck
Thin adapter: every write goes through SubmissionGuard, which returns a
GuardResult; this module only turns it into a JSON response.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from deckguard.clients.community_repository import CommunityRepository
from deckguard.clients.database import StoreUnavailableError
from deckguard.config import get_settings
from deckguard.core import logging as app_logging
from deckguard.core.dependencies import get_guard, get_repository
from deckguard.core.rate_limiter import ROUTE_LIMITS, limiter
from deckguard.models import (
    CommunityFeaturePayload,
    CommunityListResponse,
    DeckResponse,
    GuardResult,
    ReportPayload,
    RequestIdentity,
    WaitlistPayload,
)
from deckguard.services.deck_scheduler import build_deck, normalize_rotation_step
from deckguard.services.submission_guard import SubmissionGuard
from deckguard.utils.identity import identity_from_headers
from deckguard.utils.validators import clamp, parse_int

router = APIRouter()
settings = get_settings()


def _identity(request: Request, timezone: Optional[str]) -> RequestIdentity:
    peer = request.client.host if request.client else None
    return identity_from_headers(request.headers, peer, timezone)


def _guard_response(result: GuardResult) -> JSONResponse:
    if result.ok:
        return JSONResponse(status_code=result.status_code, content={"ok": True, **result.data})
    return JSONResponse(
        status_code=result.status_code,
        content={
            "error": result.message,
            "reason": result.reason.value if result.reason else None,
            "retryable": result.retryable,
        },
    )


# ──────────────────────────────────────────────────────────────────────────────
# Community features
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/community-features")
@limiter.limit(ROUTE_LIMITS["submit"])
def submit_community_feature(
    request: Request,
    payload: CommunityFeaturePayload,
    guard: SubmissionGuard = Depends(get_guard),
) -> JSONResponse:
    result = guard.submit_feature(payload, _identity(request, payload.timezone))
    return _guard_response(result)


@router.get("/community-features", response_model=CommunityListResponse)
@limiter.limit(ROUTE_LIMITS["read"])
def list_community_features(
    request: Request,
    limit: Optional[str] = None,
    repository: CommunityRepository = Depends(get_repository),
) -> CommunityListResponse:
    """Publicly visible items, newest first. `limit` is clamped to 1..50."""
    size = int(clamp(
        parse_int(limit, settings.community_batch_size), 1, settings.community_list_max
    ))
    try:
        features = repository.list_visible(size)
    except StoreUnavailableError as exc:
        app_logging.log_error("api", "list_community_features", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to load community features.",
        ) from exc
    return CommunityListResponse(features=features)


@router.post("/community-features/report")
@limiter.limit(ROUTE_LIMITS["report"])
def report_community_feature(
    request: Request,
    payload: ReportPayload,
    guard: SubmissionGuard = Depends(get_guard),
) -> JSONResponse:
    result = guard.report_feature(payload, _identity(request, payload.timezone))
    return _guard_response(result)


# ──────────────────────────────────────────────────────────────────────────────
# Waitlist
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/waitlist")
@limiter.limit(ROUTE_LIMITS["waitlist"])
def join_waitlist(
    request: Request,
    payload: WaitlistPayload,
    guard: SubmissionGuard = Depends(get_guard),
) -> JSONResponse:
    result = guard.join_waitlist(payload, _identity(request, payload.timezone))
    return _guard_response(result)


# ──────────────────────────────────────────────────────────────────────────────
# Deck
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/deck", response_model=DeckResponse)
@limiter.limit(ROUTE_LIMITS["read"])
def get_deck(
    request: Request,
    rotation_step: Optional[str] = None,
    voted: list[str] = Query(default=[]),
    repository: CommunityRepository = Depends(get_repository),
) -> DeckResponse:
    """
    Serving order for one session. `voted` repeats once per already-voted id;
    `rotation_step` is the client's persisted step and is echoed back normalized.
    """
    step = normalize_rotation_step(rotation_step, settings.rotation_cycle)
    try:
        official = repository.list_official_features()
        community = repository.list_visible(settings.community_batch_size)
    except StoreUnavailableError as exc:
        app_logging.log_error("api", "get_deck", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to load features.",
        ) from exc

    items = build_deck(official, community, rotation_step=step, voted_ids=voted, settings=settings)
    return DeckResponse(rotation_step=step, items=items)
