"""
deckguard/utils/identity.py — Pseudonymous request identity
Derives the IP hash and device fingerprint used as rate-limit and dedupe keys.
Raw IPs and user agents are hashed here and never stored or logged.
"""
from __future__ import annotations

import hashlib
from typing import Mapping, Optional

from deckguard.models import RequestIdentity
from deckguard.utils.timezone import normalize_client_timezone

# Hashed in place of a missing IP: all unattributable traffic shares one bucket
UNKNOWN_IP = "unknown"


def hash_value(value: str) -> str:
    """SHA-256 hex digest of a UTF-8 string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def resolve_client_ip(
    headers: Mapping[str, str],
    peer_host: Optional[str] = None,
) -> str:
    """
    Pick the client IP from proxy headers in priority order:
    x-forwarded-for (first hop) → x-real-ip → cf-connecting-ip → transport peer.
    Returns "" when nothing usable is present.
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = (headers.get(header) or "").strip()
        if value:
            return value
    return (peer_host or "").strip()


def compute_fingerprint(ip: str, user_agent: str, timezone: str) -> str:
    return hash_value(f"{ip}|{user_agent}|{timezone}")


def build_identity(
    ip: Optional[str],
    user_agent: Optional[str],
    timezone: Optional[str],
) -> RequestIdentity:
    ip_or_sentinel = ip or UNKNOWN_IP
    return RequestIdentity(
        ip_hash=hash_value(ip_or_sentinel),
        fingerprint=compute_fingerprint(
            ip_or_sentinel,
            user_agent or "",
            normalize_client_timezone(timezone),
        ),
    )


def identity_from_headers(
    headers: Mapping[str, str],
    peer_host: Optional[str],
    timezone: Optional[str],
) -> RequestIdentity:
    """Convenience for routers: headers + peer address + declared timezone → identity."""
    return build_identity(
        resolve_client_ip(headers, peer_host),
        headers.get("user-agent"),
        timezone,
    )
