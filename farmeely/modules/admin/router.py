import logging
import math
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, or_
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from farmeely.auth.deps import admin_required
from farmeely.config import settings
from farmeely.db.session import get_session
from farmeely.models.models import Group, GroupMember, Livestock, PendingPayment, Transaction, User, Wallet
from farmeely.schemas.payment import ManualReconciliationRequest
from farmeely.schemas.user import UserOut, UserStatusRequest
from farmeely.services.audit import log_audit
from farmeely.services.otp import as_utc
from farmeely.services.payment_gateway import PaystackClient, PaystackError, get_gateway
from farmeely.services.wallet import WalletError, complete_funding

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "totalItems": total,
        "itemsPerPage": limit,
    }


async def count(db: AsyncSession, stmt) -> int:
    return (await db.execute(sa_select(func.count()).select_from(stmt.subquery()))).scalar_one()


async def total_amount(db: AsyncSession, *where) -> float:
    res = await db.execute(sa_select(func.coalesce(func.sum(Transaction.amount), 0)).where(Transaction.status == "success", *where))
    return float(res.scalar_one())


def txn_out(t: Transaction) -> dict:
    return {
        "transaction_id": t.transaction_id,
        "user_id": t.user_id,
        "email": t.email,
        "amount": float(t.amount),
        "transaction_type": t.transaction_type,
        "payment_means": t.payment_means,
        "status": t.status,
        "payment_reference": t.payment_reference,
        "description": t.description,
        "group_id": t.group_id,
        "created_at": t.created_at,
    }


def pending_out(p: PendingPayment) -> dict:
    return {
        "payment_reference": p.payment_reference,
        "user_id": p.user_id,
        "email": p.email,
        "action_type": p.action_type,
        "meta": p.meta,
        "status": p.status,
        "created_at": p.created_at,
    }


@router.get("/stats", dependencies=[Depends(admin_required)])
async def dashboard_stats(db: AsyncSession = Depends(get_session)):
    since = datetime.now(timezone.utc) - timedelta(days=30)
    return {
        "status": "success",
        "message": "Dashboard statistics retrieved successfully",
        "data": {
            "users": {
                "total": await count(db, sa_select(User.id)),
                "recent": await count(db, sa_select(User.id).where(User.created_at >= since)),
            },
            "groups": {
                "total": await count(db, sa_select(Group.id)),
                "active": await count(db, sa_select(Group.id).where(Group.status == "active")),
                "completed": await count(db, sa_select(Group.id).where(Group.status == "completed")),
            },
            "transactions": {
                "total": await count(db, sa_select(Transaction.id)),
                "recent": await count(db, sa_select(Transaction.id).where(Transaction.created_at >= since)),
                "totalVolume": await total_amount(db),
                "recentVolume": await total_amount(db, Transaction.created_at >= since),
            },
            "livestock": {"total": await count(db, sa_select(Livestock.id))},
        },
    }


@router.get("/users", dependencies=[Depends(admin_required)])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_session),
):
    stmt = sa_select(User)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(User.surname.ilike(like), User.othernames.ilike(like), User.email.ilike(like)))
    total = await count(db, stmt)
    res = await db.execute(stmt.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit))
    return {
        "status": "success",
        "message": "Users retrieved successfully",
        "data": {
            "users": [UserOut.model_validate(u).model_dump() for u in res.scalars().all()],
            "pagination": pagination(page, limit, total),
        },
    }


@router.get("/users/{user_id}", dependencies=[Depends(admin_required)])
async def user_detail(user_id: str, db: AsyncSession = Depends(get_session)):
    res = await db.execute(sa_select(User).where(User.user_id == user_id))
    user = res.scalars().first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    wallet = (await db.execute(sa_select(Wallet).where(Wallet.user_id == user_id))).scalars().first()
    memberships = await db.execute(
        sa_select(GroupMember).where(GroupMember.user_id == user_id).options(selectinload(GroupMember.group))
    )
    recent = await db.execute(
        sa_select(Transaction).where(Transaction.user_id == user_id).order_by(Transaction.created_at.desc()).limit(10)
    )
    return {
        "status": "success",
        "message": "User details retrieved successfully",
        "data": {
            "user": UserOut.model_validate(user).model_dump(),
            "wallet": {"wallet_id": wallet.wallet_id, "balance": float(wallet.balance)} if wallet else None,
            "groups": [
                {
                    "group_id": m.group_id,
                    "groupName": m.group.group_name if m.group else None,
                    "status": m.group.status if m.group else None,
                    "slotPrice": m.group.slot_price if m.group else None,
                    "slots": m.slots,
                }
                for m in memberships.scalars().all()
            ],
            "recentTransactions": [txn_out(t) for t in recent.scalars().all()],
        },
    }


@router.patch("/users/{user_id}/status")
async def update_user_status(
    user_id: str,
    req: UserStatusRequest,
    request: Request,
    admin: User = Depends(admin_required),
    db: AsyncSession = Depends(get_session),
):
    res = await db.execute(sa_select(User).where(User.user_id == user_id))
    user = res.scalars().first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.user_id == admin.user_id and not req.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate your own account")
    user.is_active = req.is_active
    await log_audit(
        db,
        admin,
        "activate_user" if req.is_active else "deactivate_user",
        object_type="user",
        object_id=user_id,
        request=request,
    )
    await db.commit()
    return {"status": "success", "message": f"User {'activated' if req.is_active else 'deactivated'} successfully"}


@router.get("/groups", dependencies=[Depends(admin_required)])
async def list_groups(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_session),
):
    stmt = sa_select(Group)
    if status_filter:
        stmt = stmt.where(Group.status == status_filter)
    total = await count(db, stmt)
    res = await db.execute(
        stmt.options(selectinload(Group.creator), selectinload(Group.livestock))
        .order_by(Group.created_at.desc(), Group.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    groups = [
        {
            "group_id": g.group_id,
            "groupName": g.group_name,
            "status": g.status,
            "totalSlot": g.total_slot,
            "slotTaken": g.slot_taken,
            "slotPrice": g.slot_price,
            "created_at": g.created_at,
            "creator": {"user_id": g.creator.user_id, "email": g.creator.email} if g.creator else None,
            "livestock": {"livestock_id": g.livestock.livestock_id, "name": g.livestock.name} if g.livestock else None,
        }
        for g in res.scalars().all()
    ]
    return {
        "status": "success",
        "message": "Groups retrieved successfully",
        "data": {"groups": groups, "pagination": pagination(page, limit, total)},
    }


@router.get("/transactions", dependencies=[Depends(admin_required)])
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_session),
):
    stmt = sa_select(Transaction)
    if status_filter:
        stmt = stmt.where(Transaction.status == status_filter)
    total = await count(db, stmt)
    res = await db.execute(
        stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc()).offset((page - 1) * limit).limit(limit)
    )
    return {
        "status": "success",
        "message": "Transactions retrieved successfully",
        "data": {"transactions": [txn_out(t) for t in res.scalars().all()], "pagination": pagination(page, limit, total)},
    }


@router.get("/analytics", dependencies=[Depends(admin_required)])
async def system_analytics(db: AsyncSession = Depends(get_session)):
    """Monthly user growth and transaction volume for the last year, plus group status counts."""
    since = datetime.now(timezone.utc) - timedelta(days=365)

    # bucketed in Python so the query stays portable across backends
    users = await db.execute(sa_select(User.created_at).where(User.created_at >= since))
    growth = Counter(as_utc(ts).strftime("%Y-%m") for ts in users.scalars().all())

    txns = await db.execute(
        sa_select(Transaction.created_at, Transaction.amount).where(
            Transaction.status == "success", Transaction.created_at >= since
        )
    )
    volume = Counter()
    for ts, amount in txns.all():
        volume[as_utc(ts).strftime("%Y-%m")] += float(amount)

    dist = await db.execute(sa_select(Group.status, func.count(Group.id)).group_by(Group.status))
    return {
        "status": "success",
        "message": "System analytics retrieved successfully",
        "data": {
            "userGrowth": [{"month": m, "count": growth[m]} for m in sorted(growth)],
            "transactionVolume": [{"month": m, "total": volume[m]} for m in sorted(volume)],
            "groupStatusDistribution": [{"status": s, "count": c} for s, c in dist.all()],
        },
    }


@router.get("/reports/reconciliation")
async def reconciliation_report(request: Request, admin: User = Depends(admin_required), db: AsyncSession = Depends(get_session)):
    """Pending external payments that never completed, and stale rows whose reference already settled."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.RECONCILIATION_STALE_MINUTES)
    res = await db.execute(
        sa_select(PendingPayment).where(PendingPayment.status == "pending").order_by(PendingPayment.created_at)
    )
    stale, settled = [], []
    for p in res.scalars().all():
        if await db.scalar(sa_select(Transaction.id).where(Transaction.payment_reference == p.payment_reference)):
            settled.append(pending_out(p))
        elif as_utc(p.created_at) <= cutoff:
            stale.append(pending_out(p))

    await log_audit(db, admin, "generate_reconciliation_report", object_type="report", object_id="reconciliation", request=request)
    await db.commit()
    return {
        "status": "success",
        "data": {
            "stale_pending_count": len(stale),
            "settled_pending_count": len(settled),
            "stale_pending": stale,
            "settled_pending": settled,
        },
    }


@router.post("/reconciliation/wallet-funding")
async def reconcile_wallet_funding(
    req: ManualReconciliationRequest,
    request: Request,
    admin: User = Depends(admin_required),
    db: AsyncSession = Depends(get_session),
    gateway: PaystackClient = Depends(get_gateway),
):
    """Credit a verified funding the user never completed. Safe to repeat."""
    res = await db.execute(sa_select(User).where(User.user_id == req.user_id))
    user = res.scalars().first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    try:
        amount = await complete_funding(db, gateway, user, req.reference, source="reconciliation")
    except (WalletError, PaystackError) as exc:
        logger.warning("Reconciliation of %s failed: %s", req.reference, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    await log_audit(
        db,
        admin,
        "reconcile_wallet_funding",
        object_type="transaction",
        object_id=req.reference,
        detail={"user_id": req.user_id, "amount": str(amount)},
        request=request,
    )
    await db.commit()
    return {
        "status": "success",
        "message": "Wallet successfully funded",
        "data": {"reference": req.reference, "amount": float(amount)},
    }
