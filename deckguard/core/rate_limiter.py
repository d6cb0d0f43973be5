"""
deckguard/core/rate_limiter.py — slowapi per-route burst limits
A coarse outer limit keyed by the proxy-resolved client IP. The per-identity
daily caps, cooldowns and dedupe live in SubmissionGuard / RateLimitStore;
this only blunts request floods before they reach the database.
"""
from __future__ import annotations

from fastapi import Request
from slowapi import Limiter

from deckguard.config import get_settings
from deckguard.utils.identity import UNKNOWN_IP, hash_value, resolve_client_ip

settings = get_settings()


def client_ip_key(request: Request) -> str:
    """Bucket key: hashed client IP, read through the same proxy headers as the guard."""
    peer_host = request.client.host if request.client else None
    return hash_value(resolve_client_ip(request.headers, peer_host) or UNKNOWN_IP)


# Single shared limiter instance, imported by main.py and routers
limiter = Limiter(
    key_func=client_ip_key,
    storage_uri=settings.rate_limit_storage_uri,
)

ROUTE_LIMITS = settings.route_limits
