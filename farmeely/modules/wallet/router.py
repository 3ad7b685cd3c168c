import logging
import secrets
import time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession

from farmeely.auth.deps import get_current_user
from farmeely.config import settings
from farmeely.db.session import get_session
from farmeely.models.models import PendingPayment, Transaction, User
from farmeely.notifications.tasks import queue_email
from farmeely.schemas.payment import StartWalletFundingRequest
from farmeely.services.payment_gateway import PaystackClient, PaystackError, get_gateway
from farmeely.services.wallet import WalletError, complete_funding, get_wallet

logger = logging.getLogger(__name__)

router = APIRouter(tags=["wallet"])


def funding_reference() -> str:
    return f"wallet_funding_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def transaction_out(t: Transaction) -> dict:
    return {
        "transaction_id": t.transaction_id,
        "amount": float(t.amount),
        "transaction_type": t.transaction_type,
        "payment_means": t.payment_means,
        "status": t.status,
        "payment_reference": t.payment_reference,
        "description": t.description,
        "group_id": t.group_id,
        "created_at": t.created_at,
    }


@router.post("/funding/start")
async def start_wallet_funding(
    req: StartWalletFundingRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: PaystackClient = Depends(get_gateway),
):
    """Open a gateway checkout that lands back on the dashboard's completion page."""
    if req.amount < settings.MIN_WALLET_FUNDING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Minimum funding amount is {settings.MIN_WALLET_FUNDING}",
        )
    reference = funding_reference()
    try:
        data = await gateway.initialize_or_raise(
            current_user.email,
            req.amount,
            callback_url=f"{settings.FRONTEND_BASE_URL}/dashboard/wallet/complete",
            reference=reference,
            metadata={"user_id": current_user.user_id, "action": "FUND_WALLET"},
        )
    except PaystackError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    db.add(
        PendingPayment(
            user_id=current_user.user_id,
            email=current_user.email,
            payment_reference=data.get("reference") or reference,
            action_type="FUND_WALLET",
            meta={"amount": str(req.amount)},
        )
    )
    await db.commit()
    return {
        "status": "success",
        "message": "Payment initialized",
        "data": {
            "authorization_url": data["authorization_url"],
            "access_code": data.get("access_code"),
            "reference": data.get("reference") or reference,
        },
    }


@router.post("/fund/complete/{reference}")
async def complete_wallet_funding(
    reference: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: PaystackClient = Depends(get_gateway),
):
    try:
        amount = await complete_funding(db, gateway, current_user, reference)
    except (WalletError, PaystackError) as exc:
        logger.warning("Wallet funding %s not completed: %s", reference, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    queue_email(
        current_user.email,
        "wallet_funded.txt",
        {"name": current_user.othernames, "amount": str(amount), "reference": reference},
    )
    return {
        "status": "success",
        "message": "Wallet successfully funded",
        "data": {"reference": reference, "amount": float(amount)},
    }


@router.get("/balance")
async def wallet_balance(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_session)):
    try:
        wallet = await get_wallet(db, current_user.user_id)
    except WalletError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return {
        "status": "success",
        "data": {"wallet_id": wallet.wallet_id, "balance": float(wallet.balance)},
    }


@router.get("/transactions")
async def wallet_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    base = sa_select(Transaction).where(Transaction.user_id == current_user.user_id)
    total = (await db.execute(sa_select(func.count()).select_from(base.subquery()))).scalar_one()
    res = await db.execute(
        base.order_by(Transaction.created_at.desc(), Transaction.id.desc()).offset((page - 1) * limit).limit(limit)
    )
    return {
        "status": "success",
        "data": [transaction_out(t) for t in res.scalars().all()],
        "pagination": {"page": page, "limit": limit, "total": total},
    }
