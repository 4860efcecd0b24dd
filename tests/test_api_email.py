import re

import pytest

from expresstrafic.services.notification_service import NotificationService
from factories import FailingTransport, auth_header, make_user

LINK_RE = re.compile(r"token=([0-9a-f]{96})&amp;uid=(\d+)")

REGISTRATION = {
    "email": "Amina.Diallo@Example.com",
    "password": "Str0ng!Pass",
    "prenom": "Amina",
    "nom": "Diallo",
    "telephone": "0612345678",
    "indicatif": "+33",
}


def _link(transport):
    match = LINK_RE.search(transport.sent[-1]["body"])
    assert match
    return match.group(1), int(match.group(2))


@pytest.mark.asyncio
async def test_register_sends_verification(client, transport):
    resp = await client.post("/auth/register", json=REGISTRATION)

    assert resp.status_code == 201
    body = resp.json()
    assert body["user"]["email"] == "amina.diallo@example.com"
    assert body["user"]["statut"] == "pending"
    assert body["user"]["email_verified"] is False
    assert body["verification"]["success"] is True
    assert body["verification"]["methods"] == ["email"]
    assert transport.sent[-1]["to"] == "amina.diallo@example.com"
    assert transport.sent[-1]["subject"] == "Confirm your email address"


@pytest.mark.asyncio
async def test_register_rejects_duplicate_and_invalid(client):
    assert (await client.post("/auth/register", json=REGISTRATION)).status_code == 201

    dup = await client.post("/auth/register", json={**REGISTRATION, "email": "amina.diallo@example.com"})
    assert dup.status_code == 400
    assert dup.json()["code"] == "EMAIL_ALREADY_REGISTERED"

    bad = await client.post("/auth/register", json={**REGISTRATION, "email": "other@example.com", "password": "weak", "prenom": "A"})
    assert bad.status_code == 400
    body = bad.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert "Invalid first name" in body["errors"]
    assert len(body["errors"]) == 2


@pytest.mark.asyncio
async def test_verify_link_once_then_already_verified(client, transport):
    await client.post("/auth/register", json=REGISTRATION)
    token, uid = _link(transport)

    first = await client.get(f"/email/verify-email/{token}", params={"uid": uid})
    assert first.status_code == 200
    assert first.json() == {
        "success": True,
        "code": "VERIFIED",
        "message": "Email verified",
        "redirect": "/login?verified=true",
    }

    second = await client.get(f"/email/verify-email/{token}", params={"uid": uid})
    assert second.status_code == 400
    assert second.json()["code"] == "ALREADY_VERIFIED"


@pytest.mark.asyncio
async def test_verify_unknown_token(client):
    resp = await client.get("/email/verify-email/" + "ab" * 48)
    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "message": "Verification link is invalid or has expired",
        "code": "INVALID_TOKEN",
    }


@pytest.mark.asyncio
async def test_resend_limited_to_three_per_hour(client, db, transport):
    user = await make_user(db, email="pending@example.com")
    headers = auth_header(user)

    for _ in range(3):
        resp = await client.post("/email/resend-verification", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["verification_sent"] is True

    limited = await client.post("/email/resend-verification", headers=headers)
    assert limited.status_code == 429
    assert limited.json()["code"] == "RATE_LIMITED"
    assert len(transport.sent) == 3


@pytest.mark.asyncio
async def test_registered_user_gets_three_resends(client, transport):
    assert (await client.post("/auth/register", json=REGISTRATION)).status_code == 201
    login = await client.post("/auth/login", data={"username": REGISTRATION["email"], "password": REGISTRATION["password"]})
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    statuses = [(await client.post("/email/resend-verification", headers=headers)).status_code for _ in range(3)]
    assert statuses == [200, 200, 200]

    fourth = await client.post("/email/resend-verification", headers=headers)
    assert fourth.status_code == 429
    assert fourth.json()["code"] == "RATE_LIMITED"
    assert len(transport.sent) == 4


@pytest.mark.asyncio
async def test_resend_for_verified_user(client, db):
    user = await make_user(db, verified=True)
    resp = await client.post("/email/resend-verification", headers=auth_header(user))
    assert resp.status_code == 200
    assert resp.json()["already_verified"] is True


@pytest.mark.asyncio
async def test_resend_delivery_failure_exposes_debug_token(client, db):
    from expresstrafic.main import app
    from expresstrafic.services.notification_service import get_notification_service

    app.dependency_overrides[get_notification_service] = lambda: NotificationService(FailingTransport())
    user = await make_user(db)

    resp = await client.post("/email/resend-verification", headers=auth_header(user))

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "INTERNAL_ERROR"
    assert body["debug_token"].startswith("dev_")


@pytest.mark.asyncio
async def test_resend_requires_login(client):
    resp = await client.post("/email/resend-verification")
    assert resp.status_code == 401
