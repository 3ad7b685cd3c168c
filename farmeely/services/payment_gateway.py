import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from farmeely.config import settings
from farmeely.redis_client import redis_client

logger = logging.getLogger(__name__)

# kobo per naira
MINOR_UNITS = 100


class PaystackError(Exception):
    pass


class PaystackInitializationError(PaystackError):
    pass


class PaystackVerificationError(PaystackError):
    pass


def to_minor_units(amount) -> int:
    return int((Decimal(str(amount)) * MINOR_UNITS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(amount) -> Decimal:
    return Decimal(str(amount)) / MINOR_UNITS


class PaystackClient:
    """Thin wrapper over the Paystack transaction API.

    ``initialize`` and ``verify`` return the gateway's JSON body unchanged
    so route handlers can pass its messages through. The ``*_or_raise``
    helpers are for service code that only cares about success.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = settings.PAYSTACK_SECRET_KEY if secret_key is None else secret_key
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYSTACK_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def initialize(
        self,
        email: str,
        amount_minor: int,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        callback_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"email": email, "amount": amount_minor}
        if reference:
            payload["reference"] = reference
        if metadata is not None:
            payload["metadata"] = metadata
        if callback_url:
            payload["callback_url"] = callback_url
        async with self._client() as client:
            response = await client.post("/transaction/initialize", json=payload, headers=self._headers())
        # gateway errors come back as JSON with status false; let non-JSON bodies raise
        return response.json()

    async def verify(self, reference: str) -> Dict[str, Any]:
        # the reference must stay a single path segment under /transaction/verify/
        segment = quote(reference, safe="")
        if segment in ("", ".", ".."):
            return {"status": False, "message": "Invalid transaction reference", "data": None}
        async with self._client() as client:
            response = await client.get(f"/transaction/verify/{segment}", headers=self._headers())
        return response.json()

    async def initialize_or_raise(self, email: str, amount, callback_url: Optional[str] = None, reference: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Initialize ``amount`` (major unit); return the gateway ``data`` block."""
        try:
            body = await self.initialize(email, to_minor_units(amount), reference=reference, metadata=metadata, callback_url=callback_url)
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("Paystack initialize failed for %s", email)
            raise PaystackInitializationError("Failed to initialize payment with Paystack.") from exc
        data = body.get("data") or {}
        if not body.get("status") or not data.get("authorization_url"):
            logger.warning("Paystack initialize rejected: %s", body.get("message"))
            raise PaystackInitializationError(body.get("message") or "Failed to get payment authorization URL from Paystack.")
        return data

    async def verify_or_raise(self, reference: str) -> Dict[str, Any]:
        """Verify ``reference``; return the gateway ``data`` block with ``amount`` in major units."""
        try:
            body = await self.verify(reference)
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("Paystack verify failed for %s", reference)
            raise PaystackVerificationError("Failed to verify payment with Paystack.") from exc
        data = body.get("data") or {}
        if not body.get("status") or data.get("status") != "success":
            raise PaystackVerificationError("Payment verification failed")
        return {**data, "amount": to_major_units(data.get("amount", 0))}


paystack_client = PaystackClient()


def get_gateway() -> PaystackClient:  # to be used as dependency
    return paystack_client


IDEMPOTENCY_KEY_TPL = "payment_reference:{reference}"


async def claim_reference(reference: str, ttl: int = 60 * 10) -> bool:
    """Take the in-flight lock for completing ``reference``; False if someone holds it."""
    key = IDEMPOTENCY_KEY_TPL.format(reference=reference)
    # set NX to ensure only one completion runs at a time
    added = await redis_client.set(key, "1", ex=ttl, nx=True)
    return bool(added)


async def release_reference(reference: str):
    await redis_client.delete(IDEMPOTENCY_KEY_TPL.format(reference=reference))
