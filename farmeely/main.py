import importlib
import logging
import uuid
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from farmeely.config import settings
from farmeely.db.session import engine
from farmeely.logging_setup import TRACE_ID_CTX, setup_logging
from farmeely.metrics import update_queue_depth
from farmeely.redis_client import redis_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.PAYSTACK_SECRET_KEY:
        logger.warning("PAYSTACK_SECRET_KEY is not set; gateway calls will be rejected")
    yield
    await engine.dispose()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# initialize logging and Sentry
setup_logging(level=logging.DEBUG if settings.DEBUG else logging.INFO, app_name=settings.APP_NAME.lower())
if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN)
    app.add_middleware(SentryAsgiMiddleware)


@app.middleware("http")
async def add_trace_id(request: Request, call_next):
    trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
    TRACE_ID_CTX.set(trace_id)
    response = await call_next(request)
    response.headers["X-Trace-Id"] = trace_id
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def body_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request body format"
    return JSONResponse(status_code=400, content={"status": "error", "message": message})


# module name -> mount prefix
MODULES = {
    "users": "/users",
    "livestocks": "/livestocks",
    "wallet": "/wallet",
    "groups": "/groups",
    "admin": "/admin",
    "paystack": "/api/paystack",
}


for mod, prefix in MODULES.items():
    pkg = importlib.import_module(f"farmeely.modules.{mod}.router")
    app.include_router(pkg.router, prefix=prefix)


@app.get("/")
async def root():
    return {"app": settings.APP_NAME, "status": "ok"}


@app.get("/metrics")
async def metrics():
    # update dynamic gauges before scraping
    await update_queue_depth()
    content = generate_latest()
    return Response(content=content, media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    try:
        await redis_client.ping()
    except Exception:
        logger.exception("Readiness check failed")
        return Response(status_code=503, content="redis unavailable")
    return {"status": "ready"}
