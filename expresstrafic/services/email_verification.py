"""Token based email verification.

Only the SHA-256 digest of a token is stored. Issuing a new token revokes the
previous active ones of the same user and type, but keeps their rows so the
hourly resend limit can count them. Only tokens tagged ``reason="resend"`` in
``meta`` count towards that limit; the one issued at signup does not.
"""
import hashlib
import logging
import secrets
import time
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import func, select as sa_select, update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession

from expresstrafic.config import Settings, settings as default_settings
from expresstrafic.db.base import utcnow
from expresstrafic.metrics import VERIFICATION_EMAILS_SENT, VERIFICATION_RESULTS
from expresstrafic.models.models import TokenType, User, UserStatus, VerificationToken
from expresstrafic.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

TOKEN_BYTES = 48
RESEND_WINDOW = timedelta(hours=1)
RESEND_REASON = "resend"


class VerificationStatus(str, Enum):
    VERIFIED = "VERIFIED"
    ALREADY_VERIFIED = "ALREADY_VERIFIED"
    INVALID_TOKEN = "INVALID_TOKEN"
    RATE_LIMITED = "RATE_LIMITED"


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class EmailVerificationService:
    def __init__(self, db: AsyncSession, notifications: NotificationService, settings: Optional[Settings] = None):
        self.db = db
        self.notifications = notifications
        self.settings = settings or default_settings
        self.token_type = TokenType.EMAIL_VERIFICATION.value

    async def send_verification_email(self, user_id: int, email: str, user_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        user_data = user_data or {}
        try:
            token = secrets.token_hex(TOKEN_BYTES)
            now = utcnow()
            expires_at = now + timedelta(hours=self.settings.VERIFICATION_TOKEN_TTL_HOURS)

            await self.db.execute(
                sa_update(VerificationToken)
                .where(VerificationToken.user_id == user_id)
                .where(VerificationToken.type == self.token_type)
                .where(VerificationToken.used.is_(False))
                .where(VerificationToken.revoked_at.is_(None))
                .values(revoked_at=now)
                .execution_options(synchronize_session="fetch")
            )
            self.db.add(
                VerificationToken(
                    user_id=user_id,
                    token_hash=hash_token(token),
                    type=self.token_type,
                    expires_at=expires_at,
                    meta={
                        "ip": user_data.get("ip"),
                        "user_agent": user_data.get("user_agent"),
                        "reason": user_data.get("reason") or "signup",
                    },
                    created_at=now,
                )
            )
            await self.db.flush()

            link = f"{self.settings.FRONTEND_URL}/verify-email?token={token}&uid={user_id}"
            await self.notifications.send_email(
                to=email,
                subject="Confirm your email address",
                template_name="email_verification.html",
                context={
                    "prenom": user_data.get("prenom") or "there",
                    "verification_link": link,
                    "expires_in": f"{self.settings.VERIFICATION_TOKEN_TTL_HOURS} hours",
                    "support_email": self.settings.SUPPORT_EMAIL,
                },
                meta={"category": "account_verification"},
            )
            await self.db.commit()
        except Exception as exc:
            await self.db.rollback()
            logger.exception("Verification email failed for user_id=%s", user_id)
            result: Dict[str, Any] = {"success": False, "error": str(exc)}
            if not self.settings.is_production:
                result["debug_token"] = f"dev_{int(time.time() * 1000)}_{user_id}"
                result["note"] = "Development mode: email delivery failed, token simulated"
            return result

        methods = ["email"]
        phone = user_data.get("phone")
        if phone and self.settings.SMS_ENABLED:
            phone_code = user_data.get("phone_code") or self.settings.DEFAULT_PHONE_CODE
            try:
                await self.notifications.send_sms(
                    to=f"{phone_code}{phone.lstrip('0')}",
                    template_name="verification_sms.txt",
                    context={"prenom": user_data.get("prenom") or "there"},
                )
                methods.append("sms")
            except Exception:
                logger.warning("Verification SMS failed for user_id=%s", user_id, exc_info=True)

        VERIFICATION_EMAILS_SENT.inc()
        logger.info("Verification email sent user_id=%s token_preview=%s", user_id, token[:8])
        return {
            "success": True,
            "verification_sent": True,
            "methods": methods,
            "expires_at": expires_at.isoformat(),
        }

    async def verify_email_token(self, token: str, user_id: Optional[int] = None) -> Dict[str, Any]:
        try:
            result = await self._verify(token, user_id)
        except Exception as exc:
            await self.db.rollback()
            logger.exception("Email verification failed")
            return {"success": False, "error": str(exc)}
        if result.get("code"):
            VERIFICATION_RESULTS.labels(code=result["code"]).inc()
        return result

    async def _verify(self, token: str, user_id: Optional[int]) -> Dict[str, Any]:
        token_hash = hash_token(token)
        stmt = (
            sa_select(VerificationToken)
            .where(VerificationToken.token_hash == token_hash)
            .where(VerificationToken.type == self.token_type)
            .where(VerificationToken.used.is_(False))
            .where(VerificationToken.revoked_at.is_(None))
            .where(VerificationToken.expires_at > utcnow())
        )
        if user_id is not None:
            stmt = stmt.where(VerificationToken.user_id == user_id)
        res = await self.db.execute(stmt)
        record = res.scalars().first()

        if record is None:
            used_stmt = (
                sa_select(VerificationToken.id)
                .where(VerificationToken.token_hash == token_hash)
                .where(VerificationToken.type == self.token_type)
                .where(VerificationToken.used.is_(True))
            )
            if user_id is not None:
                used_stmt = used_stmt.where(VerificationToken.user_id == user_id)
            used = await self.db.execute(used_stmt)
            if used.first() is not None:
                return {
                    "success": False,
                    "code": VerificationStatus.ALREADY_VERIFIED.value,
                    "message": "Email already verified",
                }
            return {
                "success": False,
                "code": VerificationStatus.INVALID_TOKEN.value,
                "message": "Verification link is invalid or has expired",
            }

        user = record.user
        if user.email_verified:
            return {
                "success": True,
                "code": VerificationStatus.ALREADY_VERIFIED.value,
                "message": "Email already verified",
                "email": user.email,
            }

        now = utcnow()
        user.email_verified = True
        user.email_verified_at = now
        user.status = UserStatus.ACTIVE.value
        record.used = True
        record.used_at = now
        data = {
            "email": user.email,
            "user_id": user.id,
            "prenom": user.first_name,
            "redirect_to": "/dashboard",
        }
        await self.db.commit()

        try:
            await self.notifications.send_email(
                to=data["email"],
                subject="Welcome to ExpressTrafic",
                template_name="welcome_verified.html",
                context={
                    "prenom": data["prenom"] or "there",
                    "login_link": f"{self.settings.FRONTEND_URL}/login",
                    "support_email": self.settings.SUPPORT_EMAIL,
                },
            )
        except Exception:
            logger.warning("Welcome email failed for user_id=%s", data["user_id"], exc_info=True)

        logger.info("Email verified user_id=%s", data["user_id"])
        return {
            "success": True,
            "code": VerificationStatus.VERIFIED.value,
            "message": "Email verified",
            "data": data,
        }

    async def resend_verification(self, email: str, ip: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, Any]:
        try:
            res = await self.db.execute(sa_select(User).where(User.email == email.strip().lower()))
            user = res.scalars().first()
            if user is None:
                # same answer whether or not the account exists
                return {
                    "success": True,
                    "message": "If an account exists for this email, a new link has been sent",
                    "security": True,
                }
            if user.email_verified:
                return {"success": True, "message": "Your email is already verified", "already_verified": True}

            recent = await self.db.execute(
                sa_select(func.count(VerificationToken.id))
                .where(VerificationToken.user_id == user.id)
                .where(VerificationToken.type == self.token_type)
                .where(VerificationToken.created_at > utcnow() - RESEND_WINDOW)
                .where(VerificationToken.meta["reason"].as_string() == RESEND_REASON)
            )
            if recent.scalar_one() >= self.settings.VERIFICATION_RESEND_MAX_PER_HOUR:
                VERIFICATION_RESULTS.labels(code=VerificationStatus.RATE_LIMITED.value).inc()
                return {
                    "success": False,
                    "code": VerificationStatus.RATE_LIMITED.value,
                    "message": "Too many requests. Please try again in an hour.",
                }

            user_id, user_email = user.id, user.email
            user_data = {
                "prenom": user.first_name,
                "phone": user.phone,
                "phone_code": user.phone_code,
                "ip": ip,
                "user_agent": user_agent,
                "reason": RESEND_REASON,
            }
        except Exception as exc:
            logger.exception("Resend verification failed")
            return {"success": False, "error": str(exc)}

        result = await self.send_verification_email(user_id, user_email, user_data)
        if not result.get("success"):
            return result
        return {"message": "A new verification link has been sent", **result}
