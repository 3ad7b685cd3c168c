import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from farmeely.config import settings


def generate_otp(minutes: Optional[int] = None) -> Tuple[str, datetime]:
    """Six-digit code and its expiry."""
    minutes = minutes or settings.OTP_EXPIRE_MINUTES
    otp = str(secrets.randbelow(900000) + 100000)
    return otp, datetime.now(timezone.utc) + timedelta(minutes=minutes)


def as_utc(dt: datetime) -> datetime:
    # sqlite hands back naive datetimes
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return now > as_utc(expires_at)
