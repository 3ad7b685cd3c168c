import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from jose import JWTError
from sqlalchemy import delete as sa_delete
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession

from farmeely.auth.deps import get_current_user
from farmeely.config import settings
from farmeely.db.session import get_session
from farmeely.models.models import Otp, ResetOtp, User, UserTemp
from farmeely.notifications.tasks import queue_email
from farmeely.redis_client import redis_client
from farmeely.schemas.user import (
    CreateUserRequest,
    LoginRequest,
    RefreshRequest,
    ResetPasswordRequest,
    TokenOut,
    UpdateUserRequest,
    UserOut,
)
from farmeely.services import auth as auth_service
from farmeely.services.otp import generate_otp, is_expired
from farmeely.services.wallet import create_wallet
from farmeely.validation import (
    create_user_validation,
    ensure_valid,
    forgot_password_validation,
    resend_otp_validation,
    reset_password_validation,
    update_user_validation,
    validate_body,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.post("/signup")
async def signup(payload: CreateUserRequest = Depends(validate_body(create_user_validation)), db: AsyncSession = Depends(get_session)):
    res = await db.execute(sa_select(User).where(User.email == payload.email))
    if res.scalars().first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already exist")

    # a repeated signup replaces the unverified one
    await db.execute(sa_delete(UserTemp).where(UserTemp.email == payload.email))
    await db.execute(sa_delete(Otp).where(Otp.email == payload.email))
    db.add(
        UserTemp(
            user_id=str(uuid4()),
            surname=payload.surname,
            othernames=payload.othernames,
            email=payload.email,
            phone_number=payload.phone_number,
            location=payload.location,
            address=payload.address,
            hashed_password=auth_service.hash_password(payload.password),
        )
    )
    otp, expires_at = generate_otp()
    db.add(Otp(email=payload.email, otp=otp, expires_at=expires_at))
    await db.commit()

    queue_email(payload.email, "otp.txt", {"name": payload.othernames, "otp": otp, "minutes": settings.OTP_EXPIRE_MINUTES})
    return {"status": "success", "message": "An OTP has been sent to your email"}


@router.post("/verify-email/{email}/{otp}")
async def verify_email(email: str, otp: str, db: AsyncSession = Depends(get_session)):
    email = email.lower()
    res = await db.execute(sa_select(Otp).where(Otp.email == email, Otp.otp == otp))
    record = res.scalars().first()
    if record is None or is_expired(record.expires_at):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or Expired otp")

    res = await db.execute(sa_select(UserTemp).where(UserTemp.email == email))
    temp = res.scalars().first()
    if temp is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User record not found")

    res = await db.execute(sa_select(User).where(User.user_id == temp.user_id))
    user = res.scalars().first()
    if user is None:
        user = User(
            user_id=temp.user_id,
            surname=temp.surname,
            othernames=temp.othernames,
            email=temp.email,
            phone_number=temp.phone_number,
            location=temp.location,
            address=temp.address,
            hashed_password=temp.hashed_password,
            is_email_verified=True,
            role="user",
        )
        db.add(user)
        await db.flush()
        await create_wallet(db, user.user_id)

    await db.delete(record)
    await db.delete(temp)
    await db.commit()
    logger.info("User %s verified", user.user_id)

    tokens = await auth_service.issue_tokens(user)
    return {"status": "success", "message": "Email Verified and User created successfully", "data": tokens}


@router.post("/resend-otp/{email}")
async def resend_otp(email: str, db: AsyncSession = Depends(get_session)):
    email = ensure_valid(resend_otp_validation({"email": email})).email.lower()
    res = await db.execute(sa_select(Otp).where(Otp.email == email))
    record = res.scalars().first()
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No active OTP found for this email. Please ensure you have signed up",
        )
    if not is_expired(record.expires_at):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current OTP is still valid. Please wait before requesting a new one",
        )
    record.otp, record.expires_at = generate_otp()
    await db.commit()

    queue_email(email, "otp.txt", {"name": email, "otp": record.otp, "minutes": settings.OTP_EXPIRE_MINUTES})
    return {"status": "success", "message": "New OTP generated and sent successfully."}


@router.post("/login")
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_session)):
    identifier = payload.email.strip().lower()
    if not identifier or not payload.password.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and password are required")

    rl_key = f"rl:login:{identifier}"
    attempts = await redis_client.get(rl_key)
    if attempts and int(attempts) >= settings.LOGIN_RATE_LIMIT_ATTEMPTS:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many login attempts, try later")

    res = await db.execute(sa_select(User).where(User.email == identifier))
    user = res.scalars().first()
    if not user or not auth_service.verify_password(payload.password, user.hashed_password):
        await redis_client.incr(rl_key)
        await redis_client.expire(rl_key, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_email_verified:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Email not verified. Please verify your email to log in.")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account deactivated")

    await redis_client.delete(rl_key)
    tokens = await auth_service.issue_tokens(user)
    return {"status": "success", "message": "User logged in successfully", "data": tokens}


@router.post("/refresh-token")
async def refresh_token(payload: RefreshRequest, db: AsyncSession = Depends(get_session)):
    try:
        user_id, old_jti = await auth_service.verify_refresh_token(payload.refresh_token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    res = await db.execute(sa_select(User).where(User.user_id == user_id))
    user = res.scalars().first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    new_refresh, _ = await auth_service.rotate_refresh_token(old_jti, user_id)
    tokens = TokenOut(
        access_token=auth_service.create_access_token(user.user_id, user.email, user.role),
        refresh_token=new_refresh,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return {"status": "success", "message": "Tokens refreshed successfully", "data": tokens.model_dump()}


@router.post("/logout", status_code=204)
async def logout(payload: RefreshRequest):
    try:
        _, jti = await auth_service.verify_refresh_token(payload.refresh_token)
    except JWTError:
        # already invalid / revoked
        return None
    await auth_service.revoke_refresh_token(jti)
    return None


@router.post("/forgot-password/{email}")
async def forgot_password(email: str, db: AsyncSession = Depends(get_session)):
    email = ensure_valid(forgot_password_validation({"email": email})).email.lower()
    res = await db.execute(sa_select(User).where(User.email == email))
    if res.scalars().first() is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found with this email")

    otp, expires_at = generate_otp()
    res = await db.execute(sa_select(ResetOtp).where(ResetOtp.email == email))
    record = res.scalars().first()
    if record is None:
        db.add(ResetOtp(email=email, otp=otp, expires_at=expires_at))
    else:
        record.otp, record.expires_at = otp, expires_at
    await db.commit()

    queue_email(email, "password_reset.txt", {"otp": otp, "minutes": settings.OTP_EXPIRE_MINUTES})
    return {"status": "success", "message": "OTP sent to email", "expiresAt": expires_at.isoformat()}


@router.post("/complete")
async def complete_forgot_password(
    payload: ResetPasswordRequest = Depends(validate_body(reset_password_validation)), db: AsyncSession = Depends(get_session)
):
    res = await db.execute(sa_select(User).where(User.email == payload.email))
    user = res.scalars().first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User not found")
    res = await db.execute(sa_select(ResetOtp).where(ResetOtp.email == payload.email, ResetOtp.otp == payload.otp))
    record = res.scalars().first()
    if record is None or is_expired(record.expires_at):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or Expired OTP")

    user.hashed_password = auth_service.hash_password(payload.new_password)
    await db.delete(record)
    await db.commit()
    return {"status": "success", "message": "Password Reset Successfully"}


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return {
        "status": "success",
        "message": "User data retrieved successfully",
        "data": UserOut.model_validate(current_user).model_dump(),
    }


@router.patch("/profile")
async def update_profile(
    payload: UpdateUserRequest = Depends(validate_body(update_user_validation)),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    # current_user is bound to this request's session
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(current_user, field, value)
    await db.commit()
    return {"status": "success", "message": "User updated successfully", "data": payload.model_dump(exclude_unset=True, by_alias=True)}
