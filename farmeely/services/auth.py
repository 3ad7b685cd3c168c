import uuid
from datetime import datetime, timedelta, timezone
from typing import Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext

from farmeely.config import settings
from farmeely.redis_client import redis_client


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

REFRESH_KEY_TPL = "refresh:{jti}"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(user_id: str, email: str, role: str) -> str:
    expire = _now() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {"sub": user_id, "email": email, "role": role, "type": "access", "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


async def create_refresh_token(user_id: str) -> Tuple[str, str]:
    # jti used for rotation and revocation
    jti = uuid.uuid4().hex
    expire = _now() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    payload = {"sub": user_id, "type": "refresh", "jti": jti, "exp": int(expire.timestamp())}
    token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    await redis_client.set(REFRESH_KEY_TPL.format(jti=jti), user_id, ex=int((expire - _now()).total_seconds()))
    return token, jti


async def issue_tokens(user) -> dict:
    access = create_access_token(user.user_id, user.email, user.role)
    refresh, _ = await create_refresh_token(user.user_id)
    return {
        "access_token": access,
        "refresh_token": refresh,
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }


def _decode_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def verify_access_token(token: str) -> str:
    payload = _decode_token(token)
    if payload.get("type") != "access":
        raise JWTError("Invalid token type")
    return payload["sub"]


async def verify_refresh_token(token: str) -> Tuple[str, str]:
    payload = _decode_token(token)
    if payload.get("type") != "refresh":
        raise JWTError("Invalid token type")
    user_id = payload.get("sub")
    jti = payload.get("jti")
    val = await redis_client.get(REFRESH_KEY_TPL.format(jti=jti))
    if not val or val != user_id:
        raise JWTError("Refresh token revoked or not found")
    return user_id, jti


async def rotate_refresh_token(old_jti: str, user_id: str) -> Tuple[str, str]:
    await redis_client.delete(REFRESH_KEY_TPL.format(jti=old_jti))
    return await create_refresh_token(user_id)


async def revoke_refresh_token(jti: str):
    await redis_client.delete(REFRESH_KEY_TPL.format(jti=jti))
