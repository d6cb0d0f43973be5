"""
tests/test_identity.py — Unit tests for client IP resolution and fingerprints
"""
from __future__ import annotations

from deckguard.utils.identity import (
    UNKNOWN_IP,
    build_identity,
    hash_value,
    identity_from_headers,
    resolve_client_ip,
)
from deckguard.utils.timezone import normalize_client_timezone


def test_forwarded_for_first_hop_wins():
    headers = {
        "x-forwarded-for": "203.0.113.7, 10.0.0.1",
        "x-real-ip": "198.51.100.1",
        "cf-connecting-ip": "192.0.2.9",
    }
    assert resolve_client_ip(headers, "127.0.0.1") == "203.0.113.7"


def test_header_priority_falls_through():
    assert resolve_client_ip({"x-real-ip": "198.51.100.1", "cf-connecting-ip": "192.0.2.9"}) == "198.51.100.1"
    assert resolve_client_ip({"cf-connecting-ip": "192.0.2.9"}) == "192.0.2.9"
    assert resolve_client_ip({}, "127.0.0.1") == "127.0.0.1"


def test_blank_forwarded_for_is_ignored():
    assert resolve_client_ip({"x-forwarded-for": " , 10.0.0.1"}, "127.0.0.1") == "127.0.0.1"


def test_no_ip_resolves_to_empty():
    assert resolve_client_ip({}, None) == ""


def test_missing_ip_uses_shared_sentinel():
    identity = build_identity(None, "ua", "UTC")
    assert identity.ip_hash == hash_value(UNKNOWN_IP)
    assert identity == build_identity("", "ua", "UTC")


def test_fingerprint_is_stable():
    a = build_identity("203.0.113.7", "Mozilla/5.0", "Europe/Paris")
    b = build_identity("203.0.113.7", "Mozilla/5.0", "Europe/Paris")
    assert a == b
    assert len(a.fingerprint) == 64


def test_fingerprint_changes_with_user_agent_or_timezone():
    base = build_identity("203.0.113.7", "Mozilla/5.0", "Europe/Paris")
    assert build_identity("203.0.113.7", "curl/8.0", "Europe/Paris").fingerprint != base.fingerprint
    assert build_identity("203.0.113.7", "Mozilla/5.0", "Asia/Tokyo").fingerprint != base.fingerprint
    # Same IP → same IP bucket regardless of device
    assert build_identity("203.0.113.7", "curl/8.0", "Asia/Tokyo").ip_hash == base.ip_hash


def test_unknown_timezone_fingerprints_like_missing():
    missing = build_identity("203.0.113.7", "Mozilla/5.0", None)
    junk = build_identity("203.0.113.7", "Mozilla/5.0", "Not/AZone")
    assert missing.fingerprint == junk.fingerprint


def test_normalize_client_timezone():
    assert normalize_client_timezone(" Europe/Berlin ") == "Europe/Berlin"
    assert normalize_client_timezone("Mars/Olympus_Mons") == ""
    assert normalize_client_timezone("x" * 100) == ""
    assert normalize_client_timezone(None) == ""


def test_identity_from_headers_uses_user_agent():
    headers = {"x-forwarded-for": "203.0.113.7", "user-agent": "Mozilla/5.0"}
    assert identity_from_headers(headers, "10.0.0.1", "UTC") == build_identity(
        "203.0.113.7", "Mozilla/5.0", "UTC"
    )
