import re
from datetime import timedelta

import pytest
from sqlalchemy import func, select as sa_select, update as sa_update

from expresstrafic.config import Settings
from expresstrafic.db.base import utcnow
from expresstrafic.models.models import VerificationToken
from expresstrafic.services.email_verification import EmailVerificationService, VerificationStatus, hash_token
from expresstrafic.services.notification_service import NotificationService
from factories import FailingSmsSender, FailingTransport, RecordingSmsSender, RecordingTransport, make_user

TOKEN_RE = re.compile(r"token=([0-9a-f]{96})&amp;uid=(\d+)")


def _token_from(transport):
    match = TOKEN_RE.search(transport.sent[-1]["body"])
    assert match, "verification link missing from email body"
    return match.group(1)


def _settings(**overrides):
    return Settings(DATABASE_URL="sqlite+aiosqlite://", FRONTEND_URL="http://frontend.test", **overrides)


async def _token_rows(db, user_id):
    res = await db.execute(sa_select(VerificationToken).where(VerificationToken.user_id == user_id).order_by(VerificationToken.id))
    return list(res.scalars().all())


@pytest.mark.asyncio
async def test_send_stores_only_the_hash(db, notifications, transport):
    user = await make_user(db)
    service = EmailVerificationService(db, notifications, _settings())

    result = await service.send_verification_email(user.id, user.email, {"prenom": "Amina", "ip": "10.0.0.1"})

    assert result["success"] is True
    assert result["methods"] == ["email"]
    token = _token_from(transport)
    assert "http://frontend.test/verify-email?token=" in transport.sent[-1]["body"]

    rows = await _token_rows(db, user.id)
    assert len(rows) == 1
    assert rows[0].token_hash == hash_token(token)
    assert rows[0].token_hash != token
    assert rows[0].meta["ip"] == "10.0.0.1"


@pytest.mark.asyncio
async def test_new_token_revokes_previous_one(db, notifications, transport):
    user = await make_user(db)
    service = EmailVerificationService(db, notifications, _settings())

    await service.send_verification_email(user.id, user.email)
    first = _token_from(transport)
    await service.send_verification_email(user.id, user.email)
    second = _token_from(transport)

    rows = await _token_rows(db, user.id)
    active = [r for r in rows if r.revoked_at is None and not r.used]
    assert len(rows) == 2
    assert len(active) == 1 and active[0].token_hash == hash_token(second)

    result = await service.verify_email_token(first)
    assert result["code"] == VerificationStatus.INVALID_TOKEN.value


@pytest.mark.asyncio
async def test_token_verifies_exactly_once(db, notifications, transport):
    user = await make_user(db)
    service = EmailVerificationService(db, notifications, _settings())
    await service.send_verification_email(user.id, user.email, {"prenom": "Amina"})
    token = _token_from(transport)

    first = await service.verify_email_token(token)
    assert first["success"] is True
    assert first["code"] == VerificationStatus.VERIFIED.value
    assert first["data"]["user_id"] == user.id
    assert first["data"]["redirect_to"] == "/dashboard"

    await db.refresh(user)
    assert user.email_verified is True
    assert user.status == "active"
    assert user.email_verified_at is not None
    assert transport.sent[-1]["subject"] == "Welcome to ExpressTrafic"

    second = await service.verify_email_token(token)
    assert second["success"] is False
    assert second["code"] == VerificationStatus.ALREADY_VERIFIED.value


@pytest.mark.asyncio
async def test_expired_token_is_invalid(db, notifications, transport):
    user = await make_user(db)
    service = EmailVerificationService(db, notifications, _settings())
    await service.send_verification_email(user.id, user.email)
    token = _token_from(transport)

    await db.execute(
        sa_update(VerificationToken)
        .where(VerificationToken.user_id == user.id)
        .values(expires_at=utcnow() - timedelta(hours=25), created_at=utcnow() - timedelta(hours=49))
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()

    result = await service.verify_email_token(token)
    assert result == {
        "success": False,
        "code": VerificationStatus.INVALID_TOKEN.value,
        "message": "Verification link is invalid or has expired",
    }


@pytest.mark.asyncio
async def test_token_scoped_to_other_user_is_invalid(db, notifications, transport):
    user = await make_user(db)
    service = EmailVerificationService(db, notifications, _settings())
    await service.send_verification_email(user.id, user.email)
    token = _token_from(transport)

    result = await service.verify_email_token(token, user_id=user.id + 1)
    assert result["code"] == VerificationStatus.INVALID_TOKEN.value
    assert (await service.verify_email_token(token, user_id=user.id))["code"] == VerificationStatus.VERIFIED.value


@pytest.mark.asyncio
async def test_used_token_of_other_user_is_invalid_not_already_verified(db, notifications, transport):
    owner = await make_user(db, email="owner@example.com")
    other = await make_user(db, email="other@example.com")
    service = EmailVerificationService(db, notifications, _settings())
    await service.send_verification_email(owner.id, owner.email)
    token = _token_from(transport)
    assert (await service.verify_email_token(token))["code"] == VerificationStatus.VERIFIED.value

    result = await service.verify_email_token(token, user_id=other.id)
    assert result["success"] is False
    assert result["code"] == VerificationStatus.INVALID_TOKEN.value

    own = await service.verify_email_token(token, user_id=owner.id)
    assert own["code"] == VerificationStatus.ALREADY_VERIFIED.value


@pytest.mark.asyncio
async def test_signup_token_does_not_count_towards_resend_limit(db, notifications):
    user = await make_user(db)
    service = EmailVerificationService(db, notifications, _settings())
    signup = await service.send_verification_email(user.id, user.email, {"prenom": "Amina"})
    assert signup["success"] is True

    for _ in range(3):
        assert (await service.resend_verification(user.email))["success"] is True

    fourth = await service.resend_verification(user.email)
    assert fourth["code"] == VerificationStatus.RATE_LIMITED.value

    rows = await _token_rows(db, user.id)
    assert [r.meta["reason"] for r in rows] == ["signup", "resend", "resend", "resend"]


@pytest.mark.asyncio
async def test_resend_rate_limit_fourth_attempt(db, notifications):
    user = await make_user(db)
    service = EmailVerificationService(db, notifications, _settings())

    for _ in range(3):
        result = await service.resend_verification(user.email)
        assert result["success"] is True
        assert result["verification_sent"] is True

    fourth = await service.resend_verification(user.email)
    assert fourth["success"] is False
    assert fourth["code"] == VerificationStatus.RATE_LIMITED.value

    count = await db.execute(sa_select(func.count(VerificationToken.id)).where(VerificationToken.user_id == user.id))
    assert count.scalar_one() == 3


@pytest.mark.asyncio
async def test_resend_window_is_one_hour(db, notifications):
    user = await make_user(db)
    service = EmailVerificationService(db, notifications, _settings())
    for _ in range(3):
        await service.resend_verification(user.email)

    await db.execute(
        sa_update(VerificationToken)
        .values(created_at=utcnow() - timedelta(minutes=61))
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()

    result = await service.resend_verification(user.email)
    assert result["success"] is True


@pytest.mark.asyncio
async def test_resend_unknown_email_does_not_leak(db, notifications, transport):
    service = EmailVerificationService(db, notifications, _settings())

    result = await service.resend_verification("nobody@example.com")

    assert result["success"] is True
    assert result["security"] is True
    assert transport.sent == []


@pytest.mark.asyncio
async def test_resend_for_verified_account(db, notifications, transport):
    user = await make_user(db, verified=True)
    service = EmailVerificationService(db, notifications, _settings())

    result = await service.resend_verification(user.email)
    assert result == {"success": True, "message": "Your email is already verified", "already_verified": True}
    assert transport.sent == []


@pytest.mark.asyncio
async def test_sms_sent_when_enabled_and_phone_present(db):
    user = await make_user(db, phone="0612345678")
    sms = RecordingSmsSender()
    service = EmailVerificationService(
        db, NotificationService(RecordingTransport(), sms), _settings(SMS_ENABLED=True)
    )

    result = await service.send_verification_email(user.id, user.email, {"phone": "0612345678", "phone_code": "+33"})

    assert result["methods"] == ["email", "sms"]
    assert sms.sent[0]["to"] == "+33612345678"


@pytest.mark.asyncio
async def test_sms_skipped_when_disabled(db):
    user = await make_user(db, phone="0612345678")
    sms = RecordingSmsSender()
    service = EmailVerificationService(db, NotificationService(RecordingTransport(), sms), _settings(SMS_ENABLED=False))

    result = await service.send_verification_email(user.id, user.email, {"phone": "0612345678"})
    assert result["methods"] == ["email"]
    assert sms.sent == []


@pytest.mark.asyncio
async def test_sms_failure_is_not_fatal(db):
    user = await make_user(db, phone="0612345678")
    service = EmailVerificationService(
        db, NotificationService(RecordingTransport(), FailingSmsSender()), _settings(SMS_ENABLED=True)
    )

    result = await service.send_verification_email(user.id, user.email, {"phone": "0612345678"})
    assert result["success"] is True
    assert result["methods"] == ["email"]


@pytest.mark.asyncio
async def test_email_failure_returns_debug_token_outside_production(db):
    user = await make_user(db)
    user_id, email = user.id, user.email
    service = EmailVerificationService(db, NotificationService(FailingTransport()), _settings(ENVIRONMENT="development"))

    result = await service.send_verification_email(user_id, email)

    # the rollback expired ``user``; only the captured values are used below
    assert result["success"] is False
    assert "smtp unreachable" in result["error"]
    assert re.fullmatch(rf"dev_\d+_{user_id}", result["debug_token"])
    assert await _token_rows(db, user_id) == []


@pytest.mark.asyncio
async def test_email_failure_in_production_has_no_debug_token(db):
    user = await make_user(db)
    user_id, email = user.id, user.email
    service = EmailVerificationService(db, NotificationService(FailingTransport()), _settings(ENVIRONMENT="production"))

    result = await service.send_verification_email(user_id, email)
    assert result["success"] is False
    assert "debug_token" not in result
