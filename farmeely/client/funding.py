"""Wallet funding through the embedded payment widget.

Order of calls: initialize -> widget -> verify -> complete. The wallet is
only credited by the final backend call, so a failure at any earlier step
leaves it untouched.
"""
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Literal, Optional, Protocol

from farmeely.client.api import FarmeelyApiError, FarmeelyClient
from farmeely.client.session import AuthSession
from farmeely.client.store import NotificationStore, QueryCache

logger = logging.getLogger(__name__)

WALLET_BALANCE_KEY = "walletBalance"
MIN_FUNDING_AMOUNT = 100


@dataclass
class WidgetOutcome:
    status: Literal["success", "cancelled", "error"]
    reference: Optional[str] = None
    error: Optional[str] = None


class PaymentWidget(Protocol):
    async def open(self, *, key: str, email: str, amount_minor: int, reference: str, access_code: str) -> WidgetOutcome:
        ...


def new_reference(random_suffix: bool = True) -> str:
    ref = f"wallet_funding_{int(time.time() * 1000)}"
    if random_suffix:
        ref += f"_{secrets.token_hex(4)}"
    return ref


class WalletFundingFlow:
    def __init__(
        self,
        api: FarmeelyClient,
        session: AuthSession,
        store: NotificationStore,
        cache: QueryCache,
        widget: PaymentWidget,
        public_key: Optional[str] = None,
        min_amount: int = MIN_FUNDING_AMOUNT,
    ):
        self.api = api
        self.session = session
        self.store = store
        self.cache = cache
        self.widget = widget
        self.public_key = public_key or ""
        self.min_amount = min_amount
        self.processing = False

    @property
    def can_pay(self) -> bool:
        return bool(self.public_key) and bool(self.session.email)

    def is_valid_amount(self, amount) -> bool:
        return amount is not None and amount >= self.min_amount

    def on_close(self, message: Optional[str] = None):
        """Single exit for cancel, widget error and failed verification."""
        self.processing = False
        self.store.error(message or "Wallet funding was cancelled.", title="Payment Cancelled")

    async def fund(self, amount, random_suffix: bool = True) -> bool:
        if not self.can_pay:
            self.store.error("Payments are not available right now.")
            return False
        if not self.is_valid_amount(amount):
            self.store.error(f"Minimum funding amount is {self.min_amount}.")
            return False
        if self.processing:
            return False

        self.processing = True
        reference = new_reference(random_suffix)
        user = self.session.user or {}
        try:
            init = await self.api.initialize_payment(
                self.session.email,
                amount,
                reference,
                metadata={
                    "userId": user.get("user_id"),
                    "userPhone": user.get("phone_number"),
                    "paymentType": "wallet_funding",
                    "fundingAmount": amount,
                },
            )
            if init.get("status") != "success":
                self.on_close(init.get("message") or "Failed to initialize payment")
                return False
            data = init.get("data") or {}
            if not data.get("reference") or not data.get("access_code"):
                self.on_close("Failed to initialize payment")
                return False

            try:
                outcome = await self.widget.open(
                    key=self.public_key,
                    email=self.session.email,
                    amount_minor=int(round(amount * 100)),
                    reference=data["reference"],
                    access_code=data["access_code"],
                )
            except Exception as exc:
                logger.warning("Payment widget failed for %s: %s", data["reference"], exc)
                self.on_close(str(exc) or None)
                return False
            if outcome.status != "success":
                logger.info("Widget closed for %s: %s", data["reference"], outcome.status)
                self.on_close(outcome.error)
                return False

            paid_reference = outcome.reference or data["reference"]
            verified = await self.api.verify_payment(paid_reference)
            if verified.get("status") != "success":
                self.on_close("Payment verification failed")
                return False

            return await self.complete(paid_reference)
        except FarmeelyApiError as exc:
            self.store.error(str(exc))
            return False
        finally:
            self.processing = False

    async def complete(self, reference: Optional[str]) -> bool:
        """Ask the backend to credit ``reference``; also the redirect landing page's entry point."""
        if not reference:
            self.processing = False
            self.store.error("No payment reference found.")
            return False
        try:
            body = await self.api.complete_wallet_funding(reference, token=self.session.token)
        except FarmeelyApiError as exc:
            self.processing = False
            self.store.error(str(exc))
            return False
        self.processing = False
        if body.get("status") != "success":
            self.store.error(body.get("message") or "Failed to complete wallet funding.")
            return False
        self.cache.invalidate(WALLET_BALANCE_KEY)
        self.store.success("Wallet Funded!", body.get("message") or "Your wallet has been successfully funded.")
        return True

    async def start_redirect(self, amount) -> Optional[str]:
        """Server-started funding; returns the gateway checkout URL to send the user to."""
        if not self.is_valid_amount(amount):
            self.store.error(f"Minimum funding amount is {self.min_amount}.")
            return None
        try:
            body = await self.api.start_wallet_funding(self.session.token, amount)
        except FarmeelyApiError as exc:
            self.store.error(str(exc))
            return None
        if body.get("status") != "success":
            self.store.error(body.get("message") or "Failed to initialize payment")
            return None
        return body["data"]["authorization_url"]
