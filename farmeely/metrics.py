import asyncio
from typing import List

from prometheus_client import Counter, Gauge

from farmeely.redis_client import redis_client

# Notification DLQ depth
NOTIF_DLQ_DEPTH = Gauge("farmeely_notification_dlq_depth", "Redis DLQ list length for notifications")

# Gateway calls, labelled by operation (initialize/verify) and outcome (success/declined/error)
GATEWAY_REQUESTS = Counter("farmeely_gateway_requests_total", "Payment gateway calls", ["operation", "outcome"])

# Wallet movements
WALLET_CREDITS = Counter("farmeely_wallet_credits_total", "Wallet credits applied", ["source"])
WALLET_DEBITS = Counter("farmeely_wallet_debits_total", "Wallet debits applied", ["purpose"])
DUPLICATE_FUNDING = Counter("farmeely_wallet_duplicate_funding_total", "Funding completions rejected as already processed")


async def update_queue_depth(keys: List[str] = None):
    """Update queue depth gauges by measuring Redis list lengths for configured keys."""
    keys = keys or ["notification_dlq"]

    async def _get_len(k):
        try:
            return await redis_client.llen(k)
        except Exception:
            return 0

    results = await asyncio.gather(*[_get_len(k) for k in keys])
    # currently map first key to NOTIF_DLQ_DEPTH
    if results:
        NOTIF_DLQ_DEPTH.set(results[0])
