from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from expresstrafic.auth.deps import require_client
from expresstrafic.db.session import get_session
from expresstrafic.errors import ErrorCode, api_error, error_body
from expresstrafic.models.models import User
from expresstrafic.services.email_verification import EmailVerificationService, VerificationStatus
from expresstrafic.services.notification_service import NotificationService, get_notification_service
from expresstrafic.services.rate_limit import client_ip

router = APIRouter(tags=["email"])


@router.get("/verify-email/{token}")
async def verify_email(
    token: str,
    uid: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
):
    result = await EmailVerificationService(db, notifications).verify_email_token(token, user_id=uid)
    if result.get("success"):
        return {
            "success": True,
            "code": result["code"],
            "message": result.get("message", "Email verified"),
            "redirect": "/login?verified=true",
        }
    if result.get("code"):
        api_error(status.HTTP_400_BAD_REQUEST, result.get("message", "Invalid link"), code=result["code"])
    api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server error", code=ErrorCode.INTERNAL_ERROR)


@router.post("/resend-verification")
async def resend_verification(
    request: Request,
    current_user: User = Depends(require_client),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
):
    email = current_user.email
    result = await EmailVerificationService(db, notifications).resend_verification(
        email, ip=client_ip(request), user_agent=request.headers.get("user-agent")
    )
    if result.get("success"):
        return result
    if result.get("code") == VerificationStatus.RATE_LIMITED.value:
        api_error(status.HTTP_429_TOO_MANY_REQUESTS, result["message"], code=ErrorCode.RATE_LIMITED)
    extra = {k: result[k] for k in ("debug_token", "note") if k in result}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Could not send the verification email", code=ErrorCode.INTERNAL_ERROR, **extra),
    )
