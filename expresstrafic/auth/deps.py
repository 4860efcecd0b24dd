from typing import List

from fastapi import Depends, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession

from expresstrafic.db.session import get_session
from expresstrafic.errors import ErrorCode, api_error
from expresstrafic.logging_setup import log_security_event
from expresstrafic.models.models import User
from expresstrafic.services import auth as auth_service


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(token: str = Depends(oauth2_scheme), db: AsyncSession = Depends(get_session)) -> User:
    try:
        user_id = auth_service.verify_access_token(token)
    except JWTError:
        api_error(
            status.HTTP_401_UNAUTHORIZED,
            "Invalid authentication credentials",
            code=ErrorCode.UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    res = await db.execute(sa_select(User).where(User.id == int(user_id)))
    user = res.scalars().first()
    if not user or not user.is_active:
        api_error(status.HTTP_401_UNAUTHORIZED, "User not found or inactive", code=ErrorCode.UNAUTHORIZED)
    return user


def role_required(allowed: List[str]):
    async def _dep(request: Request, current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed and not current_user.is_superuser:
            event = "UNAUTHORIZED_ADMIN_ACCESS" if "admin" in allowed else "FORBIDDEN_ACCESS"
            log_security_event(event, ip=request.client.host if request.client else None, user_id=current_user.id, path=request.url.path)
            api_error(status.HTTP_403_FORBIDDEN, "Insufficient permissions", code=ErrorCode.FORBIDDEN)
        return current_user

    return _dep


require_client = role_required(["client"])
