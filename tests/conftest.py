import json
import os
import tempfile
import time
from decimal import Decimal
from urllib.parse import unquote
from uuid import uuid4

# settings are read at import time
_DB_PATH = os.path.join(tempfile.mkdtemp(prefix="farmeely-"), "test.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_farmeely"
os.environ["PAYSTACK_PUBLIC_KEY"] = "pk_test_farmeely"
os.environ["FRONTEND_BASE_URL"] = "http://frontend.test"

import httpx
import pytest
from sqlalchemy import select

from farmeely.db.session import async_session, engine
from farmeely.main import app
from farmeely.models import Base, User, Wallet
from farmeely.services import auth as auth_service
from farmeely.services.payment_gateway import PaystackClient, get_gateway

PASSWORD = "Passw0rd!"
# hashing is slow; reuse one hash for every seeded user
_PASSWORD_HASH = None


class FakeRedis:
    """Just the redis commands the app uses, kept in a dict."""

    def __init__(self):
        self.data = {}
        self.lists = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = str(value)
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += self.data.pop(key, None) is not None
        return removed

    async def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])

    async def expire(self, key, seconds):
        return key in self.data

    async def llen(self, key):
        return len(self.lists.get(key, []))

    async def ping(self):
        return True


class FakePaystack:
    """Paystack stand-in served through httpx.MockTransport."""

    def __init__(self):
        self.paid = {}
        self.initialized = {}
        self.requests = []
        self.raise_error = None
        self.initialize_reply = None

    def pay(self, reference, amount_major, status="success", email=None):
        """Settle ``reference``; the payer defaults to whoever initialized it."""
        started = self.initialized.get(reference, {})
        data = {
            "reference": reference,
            "amount": int(Decimal(str(amount_major)) * 100),
            "status": status,
            "paid_at": "2026-10-18T09:30:00.000Z",
            "customer": {"email": email or started.get("email") or "ada@example.com"},
        }
        if started.get("metadata") is not None:
            data["metadata"] = started["metadata"]
        self.paid[reference] = data

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error is not None:
            raise self.raise_error
        if request.url.path == "/transaction/initialize":
            if self.initialize_reply is not None:
                return self.initialize_reply
            body = json.loads(request.content)
            ref = body.get("reference") or f"gw_{int(time.time() * 1000)}_{len(self.requests)}"
            self.initialized[ref] = {"email": body.get("email"), "metadata": body.get("metadata")}
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "message": "Authorization URL created",
                    "data": {
                        "authorization_url": f"https://checkout.paystack.com/{ref}",
                        "access_code": f"ac_{ref}",
                        "reference": ref,
                    },
                },
            )
        if request.url.path.startswith("/transaction/verify/"):
            ref = unquote(request.url.raw_path.decode().split("?", 1)[0].rsplit("/", 1)[-1])
            data = self.paid.get(ref)
            if data is None:
                return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})
            return httpx.Response(200, json={"status": True, "message": "Verification successful", "data": data})
        return httpx.Response(404, json={"status": False, "message": "Not found"})

    def client(self) -> PaystackClient:
        return PaystackClient(
            secret_key="sk_test_farmeely",
            base_url="https://api.paystack.test",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    for module in (
        "farmeely.services.auth",
        "farmeely.services.payment_gateway",
        "farmeely.modules.users.router",
        "farmeely.metrics",
        "farmeely.main",
    ):
        monkeypatch.setattr(f"{module}.redis_client", fake)
    return fake


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def _queue(to, template_name, context=None):
        sent.append({"to": to, "template": template_name, "context": context or {}})

    for module in ("farmeely.modules.users.router", "farmeely.modules.wallet.router"):
        monkeypatch.setattr(f"{module}.queue_email", _queue)
    return sent


@pytest.fixture
def paystack():
    fake = FakePaystack()
    app.dependency_overrides[get_gateway] = fake.client
    yield fake
    app.dependency_overrides.pop(get_gateway, None)


@pytest.fixture
async def client(db, fake_redis, sent_emails, paystack):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(db):
    """Seed a verified user with a wallet; returns (user, bearer headers)."""

    async def _make(email=None, role="user", balance=0, is_active=True):
        global _PASSWORD_HASH
        if _PASSWORD_HASH is None:
            _PASSWORD_HASH = auth_service.hash_password(PASSWORD)
        user = User(
            user_id=str(uuid4()),
            surname="Okafor",
            othernames="Ada",
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            phone_number="+2348012345678",
            location="Lagos",
            address="12 Marina Road",
            hashed_password=_PASSWORD_HASH,
            role=role,
            is_email_verified=True,
            is_active=is_active,
        )
        async with async_session() as session:
            session.add(user)
            await session.flush()
            session.add(Wallet(wallet_id=str(uuid4()), user_id=user.user_id, balance=Decimal(str(balance))))
            await session.commit()
        token = auth_service.create_access_token(user.user_id, user.email, user.role)
        return user, {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def balance_of(db):
    async def _balance(user_id: str) -> Decimal:
        async with async_session() as session:
            res = await session.execute(select(Wallet.balance).where(Wallet.user_id == user_id))
            return Decimal(str(res.scalar_one()))

    return _balance
