from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from farmeely.models.models import AuditLog, User


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def log_audit(
    db: AsyncSession,
    actor: User,
    action: str,
    object_type: Optional[str] = None,
    object_id: Optional[str] = None,
    detail: Optional[dict] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """Record an admin action. Added to ``db`` only; the caller commits."""
    audit = AuditLog(
        actor_id=actor.user_id,
        action=action,
        object_type=object_type,
        object_id=object_id,
        detail=detail,
        ip_address=client_ip(request),
    )
    db.add(audit)
    return audit
