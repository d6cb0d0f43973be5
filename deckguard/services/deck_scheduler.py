"""
deckguard/services/deck_scheduler.py — Blend official and community cards
Community items are split into recent (≤ N days) and older, each side is
weighted-shuffled (more reports → sinks toward the back, never removed), and
the two queues are interleaved one-for-one. The official list is then walked
in order; whenever the rotation step lands on the community slot, the next
community card takes the position instead. Community cards are capped at
floor(official / 2) + 1.

The rotation step (0..2) lives on the client and advances on every dismissed
card, so the community slot phase survives page reloads.
"""
from __future__ import annotations

import random
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Sequence

from deckguard.config import Settings, get_settings
from deckguard.models import CommunityFeature, DeckItem, DeckSource, OfficialFeature
from deckguard.utils.timezone import is_within, utc_now
from deckguard.utils.validators import parse_int

# ──────────────────────────────────────────────────────────────────────────────
# Rotation step
# ──────────────────────────────────────────────────────────────────────────────

def normalize_rotation_step(value: Any, cycle: Optional[int] = None) -> int:
    """Any client-supplied value → 0..cycle-1. Non-numeric → 0."""
    cycle = cycle or get_settings().rotation_cycle
    return parse_int(value, 0) % cycle


def advance_rotation_step(step: int, cycle: Optional[int] = None) -> int:
    """Called once per dismissed card, official or community."""
    cycle = cycle or get_settings().rotation_cycle
    return (normalize_rotation_step(step, cycle) + 1) % cycle


def max_community_slots(official_count: int) -> int:
    return official_count // 2 + 1


# ──────────────────────────────────────────────────────────────────────────────
# Community queue
# ──────────────────────────────────────────────────────────────────────────────

def community_weight(reported_count: Optional[int], min_weight: Optional[float] = None) -> float:
    floor = get_settings().min_community_weight if min_weight is None else min_weight
    reports = max(0, reported_count or 0)
    return max(floor, 1.0 / (1 + reports))


def weighted_shuffle(
    items: Sequence[CommunityFeature],
    rng: random.Random,
    min_weight: Optional[float] = None,
) -> list[CommunityFeature]:
    """
    Efraimidis–Spirakis ordering: key = r ** (1 / w), highest key first.
    Heavily reported items tend to land late but can still come first.
    """
    scored = [
        (rng.random() ** (1.0 / community_weight(item.reported_count, min_weight)), item)
        for item in items
    ]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored]


def partition_by_recency(
    items: Iterable[CommunityFeature],
    now: datetime,
    recent_span: timedelta,
) -> tuple[list[CommunityFeature], list[CommunityFeature]]:
    """Items with no creation time count as older."""
    recent: list[CommunityFeature] = []
    older: list[CommunityFeature] = []
    for item in items:
        if is_within(item.created_at, now, recent_span):
            recent.append(item)
        else:
            older.append(item)
    return recent, older


def build_community_queue(
    items: Sequence[CommunityFeature],
    rng: random.Random,
    now: datetime,
    recent_span: Optional[timedelta] = None,
    min_weight: Optional[float] = None,
) -> list[CommunityFeature]:
    span = timedelta(days=get_settings().community_recent_days) if recent_span is None else recent_span
    recent, older = partition_by_recency(items, now, span)
    recent_queue = deque(weighted_shuffle(recent, rng, min_weight))
    older_queue = deque(weighted_shuffle(older, rng, min_weight))

    blended: list[CommunityFeature] = []
    while recent_queue or older_queue:
        if recent_queue:
            blended.append(recent_queue.popleft())
        if older_queue:
            blended.append(older_queue.popleft())
    return blended


# ──────────────────────────────────────────────────────────────────────────────
# Deck
# ──────────────────────────────────────────────────────────────────────────────

def _official_card(feature: OfficialFeature) -> DeckItem:
    return DeckItem(
        id=feature.id,
        name=feature.name,
        description=feature.description,
        category=feature.category,
        source=DeckSource.OFFICIAL,
    )


def _community_card(feature: CommunityFeature) -> DeckItem:
    return DeckItem(
        id=feature.id,
        name=feature.name,
        description=feature.description,
        category=feature.category,
        source=DeckSource.COMMUNITY,
        created_at=feature.created_at,
        reported_count=feature.reported_count,
    )


def build_deck(
    official: Sequence[OfficialFeature],
    community: Sequence[CommunityFeature],
    rotation_step: Any = 0,
    voted_ids: Iterable[str] = (),
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> list[DeckItem]:
    """
    Compose one serving sequence for a session. Already-voted ids are dropped
    from both sources. Pass a seeded `rng` for reproducible orderings.
    Slot cadence, recency cutoff and weight floor come from `settings`.
    """
    s = settings or get_settings()
    rng = rng or random.Random()
    now = now or utc_now()
    voted = set(voted_ids)
    available_official = [f for f in official if f.id not in voted]
    available_community = [f for f in community if f.id not in voted]

    if not available_community:
        return [_official_card(f) for f in available_official]

    queue = deque(build_community_queue(
        available_community,
        rng,
        now,
        recent_span=timedelta(days=s.community_recent_days),
        min_weight=s.min_community_weight,
    ))
    cycle = s.rotation_cycle
    step = normalize_rotation_step(rotation_step, cycle)
    cap = max_community_slots(len(available_official))
    community_used = 0
    deck: list[DeckItem] = []

    official_index = 0
    while official_index < len(available_official):
        wants_community = step == s.community_slot_step
        if wants_community and queue and community_used < cap:
            deck.append(_community_card(queue.popleft()))
            community_used += 1
        else:
            deck.append(_official_card(available_official[official_index]))
            official_index += 1
        step = (step + 1) % cycle

    # Official cards ran out under quota: one more community card closes the deck
    if queue and community_used < cap:
        deck.append(_community_card(queue.popleft()))

    return deck
