from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class NotificationProvider(ABC):
    """Delivers rendered email bodies."""

    name = "base"

    @abstractmethod
    async def send_email(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        raise NotImplementedError()


class LogProvider(NotificationProvider):
    """Writes emails to the log instead of sending them (dev/testing)."""

    name = "log"

    def __init__(self):
        self.outbox = []

    async def send_email(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        logger.info("[LogProvider] Sending email to %s subject=%s", to, subject)
        logger.debug("Email body: %s", body)
        self.outbox.append({"to": to, "subject": subject, "body": body, "meta": meta})
        return {"status": "sent", "provider": self.name}


PROVIDERS = {"log": LogProvider}


def get_provider(name: str) -> NotificationProvider:
    cls = PROVIDERS.get(name.lower())
    if cls is None:
        raise ValueError(f"Unknown notification provider: {name}")
    return cls()
