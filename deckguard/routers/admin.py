"""
deckguard/routers/admin.py — Moderation endpoints
Review queue of auto-hidden items, plus greenlight / reject decisions.
A decision is final: a second decision on the same item returns 409.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from deckguard.clients.community_repository import CommunityRepository, ModerationOutcome
from deckguard.clients.database import StoreUnavailableError
from deckguard.core import logging as app_logging
from deckguard.core.auth import admin_auth
from deckguard.core.dependencies import get_repository
from deckguard.core.rate_limiter import ROUTE_LIMITS, limiter
from deckguard.models import CommunityListResponse, ModerationRequest

router = APIRouter(dependencies=[Depends(admin_auth)])


def _decide(repository: CommunityRepository, feature_id: str, greenlit: bool) -> dict:
    decision = "greenlight" if greenlit else "reject"
    try:
        outcome = repository.set_greenlit(feature_id, greenlit)
    except StoreUnavailableError as exc:
        app_logging.log_error("admin", decision, exc, {"feature_id": feature_id})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to update feature.",
        ) from exc

    app_logging.log_moderation_action(feature_id, decision, outcome == ModerationOutcome.APPLIED)
    if outcome == ModerationOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Feature not found.")
    if outcome == ModerationOutcome.ALREADY_DECIDED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Feature has already been moderated.",
        )
    return {"ok": True, "feature_id": feature_id, "greenlit": greenlit}


@router.get("/moderation", response_model=CommunityListResponse)
@limiter.limit(ROUTE_LIMITS["admin"])
def moderation_queue(
    request: Request,
    repository: CommunityRepository = Depends(get_repository),
) -> CommunityListResponse:
    """Hidden and undecided items: most-reported first, then oldest."""
    try:
        features = repository.list_moderation_queue()
    except StoreUnavailableError as exc:
        app_logging.log_error("admin", "moderation_queue", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to load moderation queue.",
        ) from exc
    return CommunityListResponse(features=features)


@router.post("/moderation/greenlight")
@limiter.limit(ROUTE_LIMITS["admin"])
def greenlight_feature(
    request: Request,
    body: ModerationRequest,
    repository: CommunityRepository = Depends(get_repository),
) -> dict:
    return _decide(repository, body.feature_id, True)


@router.post("/moderation/reject")
@limiter.limit(ROUTE_LIMITS["admin"])
def reject_feature(
    request: Request,
    body: ModerationRequest,
    repository: CommunityRepository = Depends(get_repository),
) -> dict:
    return _decide(repository, body.feature_id, False)
