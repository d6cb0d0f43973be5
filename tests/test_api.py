"""
tests/test_api.py — HTTP surface via FastAPI TestClient
"""
from __future__ import annotations

import base64

import pytest
from fastapi import Request

from deckguard.config import get_settings
from deckguard.core.rate_limiter import client_ip_key

SUBMISSION = {
    "name": "Weekly prayer group scheduler",
    "description": "A shared calendar for small groups to plan events together",
    "category": "Prayer",
    "clientTimeMs": 4200,
    "timezone": "Europe/London",
}


@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.setattr(get_settings(), "admin_api_key", "test-admin-key")
    return {"X-API-Key": "test-admin-key"}


def test_ping(client):
    response = client.get("/api/ping")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_submit_and_list(client):
    response = client.post("/api/community-features", json=SUBMISSION)
    assert response.status_code == 201
    body = response.json()
    assert body["ok"] is True
    feature_id = body["feature_id"]

    listing = client.get("/api/community-features").json()
    assert [f["id"] for f in listing["features"]] == [feature_id]


def test_too_fast_submission_maps_to_400(client):
    payload = {"name": "AA", "description": "short", "category": "Prayer", "clientTimeMs": 100}
    response = client.post("/api/community-features", json=payload)
    assert response.status_code == 400
    assert response.json() == {
        "error": "Submission was too fast.",
        "reason": "too_fast",
        "retryable": False,
    }
    assert client.get("/api/community-features").json()["features"] == []


def test_malformed_body_is_invalid_payload(client):
    response = client.post(
        "/api/community-features",
        content="not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_payload"


def test_cooldown_maps_to_429(client):
    assert client.post("/api/community-features", json=SUBMISSION).status_code == 201
    second = dict(SUBMISSION, category="Other")
    response = client.post("/api/community-features", json=second)
    assert response.status_code == 429
    assert response.json()["reason"] == "rate_limited_cooldown"


def test_forwarded_ip_separates_identities(client):
    first = client.post("/api/community-features", json=SUBMISSION, headers={"X-Forwarded-For": "203.0.113.1"})
    second = client.post("/api/community-features", json=SUBMISSION, headers={"X-Forwarded-For": "203.0.113.2"})
    assert first.status_code == 201
    assert second.status_code == 201


def test_report_hides_feature(client):
    feature_id = client.post("/api/community-features", json=SUBMISSION).json()["feature_id"]

    response = client.post("/api/community-features/report", json={"featureId": feature_id})
    assert response.status_code == 200
    assert response.json() == {"ok": True, "removed": True, "reported_count": 1}
    assert client.get("/api/community-features").json()["features"] == []


def test_report_unknown_feature_is_404(client):
    response = client.post("/api/community-features/report", json={"featureId": "nope"})
    assert response.status_code == 404
    assert response.json()["reason"] == "feature_not_found"


def test_list_limit_is_clamped(client, repository):
    for i in range(3):
        repository.insert_feature(f"Shared idea {i}", "Something for the whole group", "Other")
    assert len(client.get("/api/community-features", params={"limit": "0"}).json()["features"]) == 1
    assert len(client.get("/api/community-features", params={"limit": "999"}).json()["features"]) == 3
    assert len(client.get("/api/community-features", params={"limit": "abc"}).json()["features"]) == 3


def test_waitlist_signup_and_duplicate(client, clock):
    first = client.post("/api/waitlist", json={"email": "person@example.org"})
    assert first.status_code == 201

    clock.advance(seconds=16)
    again = client.post("/api/waitlist", json={"email": "PERSON@example.org"})
    assert again.status_code == 200
    assert again.json() == {"ok": True, "duplicate": True}


def test_waitlist_invalid_email(client):
    response = client.post("/api/waitlist", json={"email": "nope"})
    assert response.status_code == 400
    assert response.json()["error"] == "Please enter a valid email address."


def test_deck_blends_sources(client, repository):
    for i in range(4):
        repository.add_official_feature(f"Official {i}", position=i)
    repository.insert_feature("Shared idea", "Something for the whole group", "Other")

    response = client.get("/api/deck", params={"rotation_step": "5"})
    assert response.status_code == 200
    body = response.json()
    assert body["rotation_step"] == 2
    assert body["items"][0]["source"] == "community"
    assert len(body["items"]) == 5


def test_deck_excludes_voted(client, repository):
    kept = repository.add_official_feature("Kept", position=0)
    voted = repository.add_official_feature("Voted", position=1)

    response = client.get("/api/deck", params=[("voted", voted.id)])
    assert [item["id"] for item in response.json()["items"]] == [kept.id]


def test_admin_requires_credentials(client):
    response = client.get("/admin/moderation")
    assert response.status_code == 401


def test_admin_basic_auth(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "admin_user", "moderator")
    monkeypatch.setattr(get_settings(), "admin_pass", "s3cret")
    token = base64.b64encode(b"moderator:s3cret").decode()
    response = client.get("/admin/moderation", headers={"Authorization": f"Basic {token}"})
    assert response.status_code == 200

    wrong = base64.b64encode(b"moderator:nope").decode()
    response = client.get("/admin/moderation", headers={"Authorization": f"Basic {wrong}"})
    assert response.status_code == 401


def test_admin_moderation_flow(client, admin_key):
    feature_id = client.post("/api/community-features", json=SUBMISSION).json()["feature_id"]
    client.post("/api/community-features/report", json={"featureId": feature_id})

    queue = client.get("/admin/moderation", headers=admin_key).json()
    assert [f["id"] for f in queue["features"]] == [feature_id]

    response = client.post("/admin/moderation/greenlight", json={"featureId": feature_id}, headers=admin_key)
    assert response.status_code == 200
    assert [f["id"] for f in client.get("/api/community-features").json()["features"]] == [feature_id]

    again = client.post("/admin/moderation/reject", json={"featureId": feature_id}, headers=admin_key)
    assert again.status_code == 409


def test_admin_unknown_feature(client, admin_key):
    response = client.post("/admin/moderation/reject", json={"featureId": "missing"}, headers=admin_key)
    assert response.status_code == 404


# ──────────────────────────────────────────────────────────────────────────────
# Burst limiter keying
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def limited_client(client):
    from deckguard.core.rate_limiter import limiter

    limiter.enabled = True
    limiter.reset()
    yield client
    limiter.reset()


def _request(headers: dict, peer: str = "10.0.0.1") -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/api/waitlist",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": (peer, 40000),
    })


def test_burst_key_follows_forwarded_ip():
    proxied_a = client_ip_key(_request({"X-Forwarded-For": "198.51.100.1, 10.0.0.1"}))
    proxied_b = client_ip_key(_request({"X-Forwarded-For": "198.51.100.2, 10.0.0.1"}))
    direct = client_ip_key(_request({}, peer="198.51.100.1"))

    assert proxied_a != proxied_b
    assert proxied_a == direct


def test_burst_key_without_any_address_uses_shared_bucket():
    request = _request({})
    request.scope["client"] = None
    assert client_ip_key(request) == client_ip_key(_request({}, peer=""))


def test_burst_limit_is_per_forwarded_ip(limited_client):
    limit = int(get_settings().route_limits["waitlist"].split("/")[0])
    codes = [
        limited_client.post(
            "/api/waitlist",
            json={"email": f"member{i}@example.org"},
            headers={"X-Forwarded-For": f"198.51.100.{i}"},
        ).status_code
        for i in range(limit + 1)
    ]
    assert codes == [201] * (limit + 1)
