from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from pathlib import Path
from typing import Dict, Optional
from farmeely.services.notification_providers import LogProvider, NotificationProvider
from prometheus_client import Counter
import logging

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "notifications" / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)

# subject lines per template
SUBJECTS = {
    "otp.txt": "Verify Your Account",
    "password_reset.txt": "Reset Password",
    "wallet_funded.txt": "Wallet Funded",
}

# metrics
NOTIF_COUNTER_SENT = Counter("farmeely_notifications_sent_total", "Total notifications sent", ["channel", "provider"])
NOTIF_COUNTER_FAILED = Counter("farmeely_notifications_failed_total", "Total notification failures", ["channel", "provider"])
NOTIF_COUNTER_RETRIED = Counter("farmeely_notifications_retried_total", "Total notification retries", ["channel", "provider"])


class NotificationService:
    def __init__(self, provider: Optional[NotificationProvider] = None):
        self.provider = provider or LogProvider()

    def render(self, template_name: str, locale: str = "en", context: Dict = None) -> str:
        ctx = context or {}
        # try locale-specific template, fallback to en
        for tpl in (f"{locale}/{template_name}", f"en/{template_name}"):
            try:
                return _env.get_template(tpl).render(**ctx)
            except TemplateNotFound:
                continue
        raise RuntimeError("Template not found: %s" % template_name)

    async def send_email(self, to: str, template_name: str, context: Dict = None, subject: Optional[str] = None, locale: str = "en", meta: Dict = None):
        body = self.render(template_name, locale=locale, context=context)
        subject = subject or SUBJECTS.get(template_name, "Farmeely")
        try:
            res = await self.provider.send_email(to=to, subject=subject, body=body, meta=meta)
        except Exception:
            NOTIF_COUNTER_FAILED.labels(channel="email", provider=self.provider.name).inc()
            logger.exception("Email send failed")
            raise
        NOTIF_COUNTER_SENT.labels(channel="email", provider=self.provider.name).inc()
        return res
