import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from farmeely.config import settings
from farmeely.metrics import GATEWAY_REQUESTS
from farmeely.schemas.payment import PaymentInitializeRequest, PaymentVerifyRequest
from farmeely.services.payment_gateway import PaystackClient, get_gateway, to_major_units, to_minor_units

logger = logging.getLogger(__name__)

router = APIRouter(tags=["paystack"])


@router.post("/initialize")
async def initialize_payment(req: PaymentInitializeRequest, gateway: PaystackClient = Depends(get_gateway)):
    """Open a gateway transaction for the payment widget. Stateless pass-through."""
    try:
        body = await gateway.initialize(
            req.email,
            to_minor_units(req.amount),
            reference=req.reference,
            metadata=req.metadata,
            callback_url=f"{settings.FRONTEND_BASE_URL}/api/paystack/callback",
        )
        if body.get("status"):
            GATEWAY_REQUESTS.labels(operation="initialize", outcome="success").inc()
            data = body.get("data") or {}
            return {
                "status": "success",
                "data": {"access_code": data.get("access_code"), "reference": data.get("reference")},
            }
        GATEWAY_REQUESTS.labels(operation="initialize", outcome="declined").inc()
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "error", "message": body.get("message")},
        )
    except Exception:
        GATEWAY_REQUESTS.labels(operation="initialize", outcome="error").inc()
        logger.exception("Paystack initialization error for reference %s", req.reference)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"status": "error", "message": "Failed to initialize payment"},
        )


@router.post("/verify")
async def verify_payment(req: PaymentVerifyRequest, gateway: PaystackClient = Depends(get_gateway)):
    """Ask the gateway whether ``reference`` was paid. Stateless pass-through."""
    try:
        body = await gateway.verify(req.reference)
        data = body.get("data") or {}
        if body.get("status") and data.get("status") == "success":
            GATEWAY_REQUESTS.labels(operation="verify", outcome="success").inc()
            return {
                "status": "success",
                "data": {
                    "reference": data.get("reference"),
                    "amount": float(to_major_units(data.get("amount", 0))),
                    "status": data.get("status"),
                    "paid_at": data.get("paid_at"),
                    "customer": data.get("customer"),
                },
            }
        GATEWAY_REQUESTS.labels(operation="verify", outcome="declined").inc()
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "failed", "message": "Payment verification failed", "data": body.get("data")},
        )
    except Exception:
        GATEWAY_REQUESTS.labels(operation="verify", outcome="error").inc()
        logger.exception("Paystack verification error for reference %s", req.reference)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"status": "error", "message": "Failed to verify payment"},
        )


@router.get("/config")
async def payment_config():
    """Public key for the embedded widget; empty when payments are not configured."""
    return {"status": "success", "data": {"public_key": settings.PAYSTACK_PUBLIC_KEY}}
