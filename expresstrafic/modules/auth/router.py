from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession

from expresstrafic.auth.deps import get_current_user
from expresstrafic.db.session import get_session
from expresstrafic.errors import ErrorCode, api_error, validation_error
from expresstrafic.logging_setup import log_security_event
from expresstrafic.models.models import User, UserStatus
from expresstrafic.schemas.auth import RefreshIn, RegisterIn, TokenOut, UserOut
from expresstrafic.services import auth as auth_service
from expresstrafic.services import rate_limit
from expresstrafic.services.email_verification import EmailVerificationService
from expresstrafic.services.notification_service import NotificationService, get_notification_service
from expresstrafic.services.rate_limit import client_ip
from expresstrafic.services.validators import is_valid_email, is_valid_name, is_valid_password, is_valid_phone

router = APIRouter(tags=["auth"])


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        prenom=user.first_name,
        nom=user.last_name,
        telephone=user.phone,
        role=user.role,
        email_verified=user.email_verified,
        statut=user.status,
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterIn,
    request: Request,
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
):
    errors = []
    if not is_valid_email(payload.email):
        errors.append("Invalid email address")
    if not is_valid_password(payload.password):
        errors.append("Password must be at least 8 characters with upper case, lower case, a digit and a special character")
    if not is_valid_name(payload.first_name):
        errors.append("Invalid first name")
    if not is_valid_name(payload.last_name):
        errors.append("Invalid last name")
    if payload.phone and not is_valid_phone(payload.phone):
        errors.append("Invalid phone number")
    if errors:
        validation_error(errors)

    email = payload.email.strip().lower()
    res = await db.execute(sa_select(User).where(User.email == email))
    if res.scalars().first():
        api_error(status.HTTP_400_BAD_REQUEST, "Email already registered", code=ErrorCode.EMAIL_ALREADY_REGISTERED)

    user = User(
        email=email,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        phone=payload.phone,
        phone_code=payload.phone_code,
        hashed_password=auth_service.hash_password(payload.password),
        status=UserStatus.PENDING.value,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    out = _user_out(user)

    verification = await EmailVerificationService(db, notifications).send_verification_email(
        out.id,
        out.email,
        {
            "prenom": out.prenom,
            "phone": user.phone,
            "phone_code": user.phone_code,
            "ip": client_ip(request),
            "user_agent": request.headers.get("user-agent"),
        },
    )
    return {"success": True, "user": out, "verification": verification}


@router.post("/login", response_model=TokenOut)
async def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_session)):
    identifier = form_data.username.strip().lower()
    if await rate_limit.login_blocked(identifier):
        log_security_event("BRUTEFORCE_ATTEMPT", ip=client_ip(request), identifier=identifier)
        api_error(status.HTTP_429_TOO_MANY_REQUESTS, "Too many login attempts, try later", code=ErrorCode.LOGIN_BLOCKED)

    res = await db.execute(sa_select(User).where(User.email == identifier))
    user = res.scalars().first()
    if not user or not auth_service.verify_password(form_data.password, user.hashed_password):
        await rate_limit.record_login_failure(identifier)
        log_security_event("LOGIN_FAILED", ip=client_ip(request), identifier=identifier)
        api_error(status.HTTP_401_UNAUTHORIZED, "Invalid credentials", code=ErrorCode.INVALID_CREDENTIALS)

    await rate_limit.reset_login_failures(identifier)
    access = auth_service.create_access_token(user.id, user.role)
    refresh_token, _ = await auth_service.create_refresh_token(user.id)
    return {"access_token": access, "refresh_token": refresh_token}


@router.post("/refresh", response_model=TokenOut)
async def refresh(payload: RefreshIn, db: AsyncSession = Depends(get_session)):
    try:
        user_id, old_jti = await auth_service.verify_refresh_token(payload.refresh_token)
    except JWTError:
        api_error(status.HTTP_401_UNAUTHORIZED, "Invalid refresh token", code=ErrorCode.UNAUTHORIZED)
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        api_error(status.HTTP_401_UNAUTHORIZED, "User not found or inactive", code=ErrorCode.UNAUTHORIZED)
    new_refresh, _ = await auth_service.rotate_refresh_token(old_jti, user_id)
    access = auth_service.create_access_token(user_id, user.role)
    return {"access_token": access, "refresh_token": new_refresh}


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(payload: RefreshIn):
    try:
        _, jti = await auth_service.verify_refresh_token(payload.refresh_token)
    except JWTError:
        # already invalid / revoked
        return None
    await auth_service.revoke_refresh_token(jti)
    return None


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": _user_out(current_user)}
