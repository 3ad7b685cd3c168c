import logging
import re
import sys
from contextvars import ContextVar
from typing import Optional

from pythonjsonlogger import jsonlogger

# trace id contextvar
TRACE_ID_CTX: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

_SECRET_KEY_RE = re.compile(r"\b(sk|pk)_(live|test)_[A-Za-z0-9]+")


class TraceIdFilter(logging.Filter):
    def filter(self, record):
        record.trace_id = TRACE_ID_CTX.get(None)
        return True


class GatewayKeyFilter(logging.Filter):
    """Masks Paystack keys that end up in log messages."""

    def filter(self, record):
        if isinstance(record.msg, str) and _SECRET_KEY_RE.search(record.msg):
            record.msg = _SECRET_KEY_RE.sub(lambda m: f"{m.group(1)}_{m.group(2)}_***", record.msg)
        return True


def setup_logging(level: int = logging.INFO, app_name: str = "farmeely"):
    root = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    fmt = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s %(trace_id)s",
        static_fields={"app": app_name},
    )
    handler.setFormatter(fmt)
    handler.addFilter(TraceIdFilter())
    handler.addFilter(GatewayKeyFilter())
    root.setLevel(level)
    root.handlers = []
    root.addHandler(handler)
    # httpx logs every gateway call at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
