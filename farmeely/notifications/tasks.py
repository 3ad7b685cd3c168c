import asyncio
import json
import logging

import redis
from celery.utils.log import get_task_logger

from farmeely.celery_app import celery_app
from farmeely.config import settings
from farmeely.services.notification_providers import get_provider
from farmeely.services.notification_service import NOTIF_COUNTER_RETRIED, NotificationService

logger = get_task_logger(__name__)
app_logger = logging.getLogger(__name__)

DLQ_KEY = "notification_dlq"


def _dead_letter(entry: dict):
    client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    client.rpush(DLQ_KEY, json.dumps(entry))


@celery_app.task(bind=True, max_retries=3)
def send_email_task(self, to: str, template_name: str, context: dict = None, locale: str = "en", provider_name: str = "log"):
    """Render and send one email; retries with backoff, then parks it on the DLQ."""
    svc = NotificationService(get_provider(provider_name))
    try:
        asyncio.run(svc.send_email(to=to, template_name=template_name, context=context or {}, locale=locale))
    except Exception as exc:
        if self.request.retries >= self.max_retries:
            logger.error("Max retries exceeded for email to %s; sending to DLQ", to)
            _dead_letter({"to": to, "template": template_name, "context": context, "locale": locale})
            raise
        NOTIF_COUNTER_RETRIED.labels(channel="email", provider=provider_name).inc()
        logger.warning("Error sending email to %s, retrying: %s", to, exc)
        raise self.retry(exc=exc, countdown=min(600, 2 ** self.request.retries * 10))


def queue_email(to: str, template_name: str, context: dict = None):
    """Hand an email to the worker; delivery problems never fail the request."""
    try:
        send_email_task.delay(to, template_name, context or {})
    except Exception:
        app_logger.exception("Could not queue %s email for %s", template_name, to)
