"""Wallet balance movements.

Balances change only through :func:`credit_wallet` and :func:`debit_wallet`,
and every change writes a :class:`Transaction` whose ``payment_reference``
is unique. Neither function commits; callers own the transaction.
"""
import logging
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from farmeely.metrics import DUPLICATE_FUNDING, WALLET_CREDITS, WALLET_DEBITS
from farmeely.models.models import PendingPayment, Transaction, User, Wallet
from farmeely.services.payment_gateway import PaystackClient, claim_reference, release_reference

logger = logging.getLogger(__name__)


class WalletError(Exception):
    pass


class WalletNotFound(WalletError):
    def __init__(self):
        super().__init__("Wallet not found for user.")


class InsufficientBalance(WalletError):
    def __init__(self):
        super().__init__("Insufficient Balance")


class AlreadyProcessed(WalletError):
    def __init__(self):
        super().__init__("Transaction already processed.")


class FundingInProgress(WalletError):
    def __init__(self):
        super().__init__("Funding for this reference is already being processed.")


class ReferenceNotOwned(WalletError):
    def __init__(self):
        super().__init__("Payment reference does not belong to this user.")


def paid_by(verified: dict, user: User) -> bool:
    """True when the verified gateway record names ``user`` as its payer or owner."""
    customer = verified.get("customer") or {}
    email = (customer.get("email") or "").strip().lower()
    if email and email == (user.email or "").lower():
        return True
    metadata = verified.get("metadata")
    if isinstance(metadata, dict):
        owner = metadata.get("user_id") or metadata.get("userId")
        return owner is not None and str(owner) == user.user_id
    return False


async def get_wallet(db: AsyncSession, user_id: str) -> Wallet:
    res = await db.execute(sa_select(Wallet).where(Wallet.user_id == user_id))
    wallet = res.scalars().first()
    if wallet is None:
        raise WalletNotFound()
    return wallet


async def create_wallet(db: AsyncSession, user_id: str) -> Wallet:
    wallet = Wallet(wallet_id=str(uuid4()), user_id=user_id, balance=Decimal("0"))
    db.add(wallet)
    return wallet


async def find_successful_transaction(db: AsyncSession, reference: str) -> Optional[Transaction]:
    res = await db.execute(
        sa_select(Transaction).where(Transaction.payment_reference == reference, Transaction.status == "success")
    )
    return res.scalars().first()


async def credit_wallet(
    db: AsyncSession,
    user: User,
    amount: Decimal,
    reference: str,
    description: str,
    payment_means: str = "others",
    source: str = "funding",
) -> Transaction:
    wallet = await get_wallet(db, user.user_id)
    await db.execute(
        sa_update(Wallet).where(Wallet.user_id == user.user_id).values(balance=Wallet.balance + amount)
    )
    txn = Transaction(
        transaction_id=str(uuid4()),
        wallet_id=wallet.wallet_id,
        user_id=user.user_id,
        email=user.email,
        amount=amount,
        transaction_type="credit",
        payment_means=payment_means,
        status="success",
        payment_reference=reference,
        description=description,
    )
    db.add(txn)
    WALLET_CREDITS.labels(source=source).inc()
    return txn


async def debit_wallet(
    db: AsyncSession,
    user: User,
    amount: Decimal,
    description: str,
    reference: Optional[str] = None,
    group_id: Optional[str] = None,
    purpose: str = "group",
) -> str:
    """Take ``amount`` from the wallet; returns the debit's payment reference."""
    wallet = await get_wallet(db, user.user_id)
    # decrement only if the balance covers it
    upd = (
        sa_update(Wallet)
        .where(Wallet.user_id == user.user_id)
        .where(Wallet.balance >= amount)
        .values(balance=Wallet.balance - amount)
    )
    result = await db.execute(upd)
    if result.rowcount == 0:
        raise InsufficientBalance()
    reference = reference or str(uuid4())
    db.add(
        Transaction(
            transaction_id=str(uuid4()),
            wallet_id=wallet.wallet_id,
            user_id=user.user_id,
            email=user.email,
            amount=amount,
            transaction_type="debit",
            payment_means="wallet",
            status="success",
            payment_reference=reference,
            description=description,
            group_id=group_id,
        )
    )
    WALLET_DEBITS.labels(purpose=purpose).inc()
    return reference


async def complete_funding(db: AsyncSession, gateway: PaystackClient, user: User, reference: str, source: str = "funding") -> Decimal:
    """Credit the gateway-verified amount for ``reference`` to ``user``'s wallet, at most once."""
    if not await claim_reference(reference):
        raise FundingInProgress()
    try:
        if await find_successful_transaction(db, reference):
            DUPLICATE_FUNDING.inc()
            raise AlreadyProcessed()
        verified = await gateway.verify_or_raise(reference)
        if not paid_by(verified, user):
            logger.warning("User %s tried to complete funding %s paid by someone else", user.user_id, reference)
            raise ReferenceNotOwned()
        amount = verified["amount"]
        await credit_wallet(db, user, amount, reference, "wallet funding", source=source)
        await db.execute(
            sa_delete(PendingPayment).where(
                PendingPayment.payment_reference == reference, PendingPayment.action_type == "FUND_WALLET"
            )
        )
        try:
            await db.commit()
        except IntegrityError:
            DUPLICATE_FUNDING.inc()
            raise AlreadyProcessed()
        logger.info("Wallet %s funded with %s via %s", user.user_id, amount, reference)
        return amount
    except Exception:
        await db.rollback()
        raise
    finally:
        await release_reference(reference)
