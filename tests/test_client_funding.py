from decimal import Decimal

import httpx
import pytest

from farmeely.client.api import FarmeelyClient
from farmeely.client.funding import WALLET_BALANCE_KEY, WalletFundingFlow, WidgetOutcome, new_reference
from farmeely.client.session import AuthSession
from farmeely.client.store import NotificationStore, QueryCache
from farmeely.main import app

from conftest import PASSWORD


class FakeWidget:
    """Pays at the fake gateway when opened, or closes with ``outcome``.

    ``pays=False`` reports success without settling at the gateway, and
    ``fails_with`` makes ``open`` raise.
    """

    def __init__(self, paystack, outcome="success", error=None, pays=True, fails_with=None):
        self.paystack = paystack
        self.outcome = outcome
        self.error = error
        self.pays = pays
        self.fails_with = fails_with
        self.opened = []

    async def open(self, *, key, email, amount_minor, reference, access_code):
        self.opened.append({"key": key, "email": email, "amount_minor": amount_minor, "reference": reference})
        if self.fails_with is not None:
            raise self.fails_with
        if self.outcome == "success":
            if self.pays:
                self.paystack.pay(reference, Decimal(amount_minor) / 100)
            return WidgetOutcome("success", reference=reference)
        return WidgetOutcome(self.outcome, error=self.error)


@pytest.fixture
async def api(client):
    async with FarmeelyClient(base_url="http://test", transport=httpx.ASGITransport(app=app)) as api:
        yield api


@pytest.fixture
async def logged_in(api, make_user):
    user, _ = await make_user(email="ada@example.com")
    store = NotificationStore()
    session = AuthSession(api, store)
    assert await session.login("ada@example.com", PASSWORD)
    return user, session, store


async def test_fund_wallet_end_to_end(api, logged_in, paystack, balance_of):
    user, session, store = logged_in
    cache = QueryCache()
    cache.set(WALLET_BALANCE_KEY, 0)
    widget = FakeWidget(paystack)
    flow = WalletFundingFlow(api, session, store, cache, widget, public_key="pk_test_farmeely")

    assert await flow.fund(100)

    assert widget.opened[0]["amount_minor"] == 10000
    assert widget.opened[0]["key"] == "pk_test_farmeely"
    assert await balance_of(user.user_id) == Decimal("100")
    assert cache.invalidations[WALLET_BALANCE_KEY] == 1
    assert WALLET_BALANCE_KEY not in cache
    assert store.toasts[0].title == "Wallet Funded!"
    assert flow.processing is False


async def test_fund_below_minimum_makes_no_calls(api, logged_in, paystack):
    _, session, store = logged_in
    requests_before = len(paystack.requests)
    widget = FakeWidget(paystack)
    flow = WalletFundingFlow(api, session, store, QueryCache(), widget, public_key="pk_test_farmeely")

    assert not await flow.fund(50)
    assert widget.opened == []
    assert len(paystack.requests) == requests_before
    assert store.toasts[0].description == "Minimum funding amount is 100."


async def test_cancelled_widget_leaves_wallet_alone(api, logged_in, paystack, balance_of):
    user, session, store = logged_in
    cache = QueryCache()
    flow = WalletFundingFlow(api, session, store, cache, FakeWidget(paystack, outcome="cancelled"), public_key="pk_test_farmeely")

    assert not await flow.fund(500)
    assert store.toasts[0].title == "Payment Cancelled"
    assert cache.invalidations[WALLET_BALANCE_KEY] == 0
    assert await balance_of(user.user_id) == Decimal("0")
    assert flow.processing is False


async def test_widget_error_goes_through_close_handler(api, logged_in, paystack, balance_of):
    user, session, store = logged_in
    widget = FakeWidget(paystack, outcome="error", error="Card declined")
    flow = WalletFundingFlow(api, session, store, QueryCache(), widget, public_key="pk_test_farmeely")

    assert not await flow.fund(500)
    assert store.toasts[0].title == "Payment Cancelled"
    assert store.toasts[0].description == "Card declined"
    assert await balance_of(user.user_id) == Decimal("0")
    assert flow.processing is False


async def test_unpaid_widget_success_is_not_credited(api, logged_in, paystack, balance_of, monkeypatch):
    user, session, store = logged_in
    completions = []
    complete_wallet_funding = api.complete_wallet_funding

    async def counting_complete(reference, token=None):
        completions.append(reference)
        return await complete_wallet_funding(reference, token=token)

    monkeypatch.setattr(api, "complete_wallet_funding", counting_complete)
    cache = QueryCache()
    flow = WalletFundingFlow(api, session, store, cache, FakeWidget(paystack, pays=False), public_key="pk_test_farmeely")

    assert not await flow.fund(500)
    assert store.toasts[0].title == "Payment Cancelled"
    assert store.toasts[0].description == "Payment verification failed"
    assert completions == []
    assert cache.invalidations[WALLET_BALANCE_KEY] == 0
    assert await balance_of(user.user_id) == Decimal("0")
    assert flow.processing is False


async def test_widget_crash_does_not_block_next_attempt(api, logged_in, paystack, balance_of):
    user, session, store = logged_in
    widget = FakeWidget(paystack, fails_with=RuntimeError("Widget failed to load"))
    flow = WalletFundingFlow(api, session, store, QueryCache(), widget, public_key="pk_test_farmeely")

    assert not await flow.fund(200)
    assert flow.processing is False
    assert store.toasts[0].title == "Payment Cancelled"
    assert store.toasts[0].description == "Widget failed to load"

    widget.fails_with = None
    assert await flow.fund(200)
    assert await balance_of(user.user_id) == Decimal("200")


async def test_initialize_without_access_code_closes(api, logged_in, paystack):
    _, session, store = logged_in
    paystack.initialize_reply = httpx.Response(200, json={"status": True, "message": "ok", "data": {"reference": "r1"}})
    widget = FakeWidget(paystack)
    flow = WalletFundingFlow(api, session, store, QueryCache(), widget, public_key="pk_test_farmeely")

    assert not await flow.fund(500)
    assert widget.opened == []
    assert store.toasts[0].description == "Failed to initialize payment"
    assert flow.processing is False


async def test_gateway_decline_surfaces_message(api, logged_in, paystack):
    _, session, store = logged_in
    paystack.initialize_reply = httpx.Response(400, json={"status": False, "message": "Invalid key"})
    widget = FakeWidget(paystack)
    flow = WalletFundingFlow(api, session, store, QueryCache(), widget, public_key="pk_test_farmeely")

    assert not await flow.fund(500)
    assert widget.opened == []
    assert store.toasts[0].description == "Invalid key"


async def test_cannot_pay_without_public_key(api, logged_in, paystack):
    _, session, store = logged_in
    flow = WalletFundingFlow(api, session, store, QueryCache(), FakeWidget(paystack), public_key="")
    assert not flow.can_pay
    assert not await flow.fund(500)


async def test_redirect_flow_completes_on_landing(api, logged_in, paystack, balance_of):
    user, session, store = logged_in
    cache = QueryCache()
    flow = WalletFundingFlow(api, session, store, cache, FakeWidget(paystack), public_key="pk_test_farmeely")

    url = await flow.start_redirect(300)
    reference = url.rsplit("/", 1)[-1]
    paystack.pay(reference, 300)

    assert await flow.complete(reference)
    assert await balance_of(user.user_id) == Decimal("300")
    # landing page reloaded with the same reference
    assert not await flow.complete(reference)
    assert store.toasts[0].description == "Transaction already processed."
    assert cache.invalidations[WALLET_BALANCE_KEY] == 1


async def test_session_nav_and_logout(api, logged_in, make_user):
    _, session, store = logged_in
    assert session.is_authenticated
    assert ("Wallet", "/dashboard/wallet") in session.nav_items()
    with pytest.raises(PermissionError):
        session.require_admin()

    await session.logout()
    assert not session.is_authenticated
    assert session.nav_items() == []
    assert store.toasts[0].title == "Logged out"


async def test_failed_login_shows_error(api, make_user):
    await make_user(email="ada@example.com")
    store = NotificationStore()
    session = AuthSession(api, store)
    assert not await session.login("ada@example.com", "wrong")
    assert store.toasts[0].title == "Login Failed"
    assert store.toasts[0].description == "Invalid email or password"


def test_reference_format():
    assert new_reference(random_suffix=False).startswith("wallet_funding_")
    assert new_reference().count("_") == 3


def test_store_keeps_newest_toast_and_notifies():
    store = NotificationStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)
    first = store.toast("One")
    store.success("Two")
    assert [t.title for t in store.toasts] == ["Two"]
    store.dismiss()
    assert store.toasts[0].open is False
    unsubscribe()
    store.remove()
    assert len(seen) == 3
    assert first.title == "One"


async def test_cache_fetch_loads_once_until_invalidated(api, logged_in):
    _, session, _ = logged_in
    cache = QueryCache()
    calls = []

    async def load_balance():
        calls.append(1)
        return (await api.wallet_balance(session.token))["data"]["balance"]

    assert await cache.fetch(WALLET_BALANCE_KEY, load_balance) == 0
    assert await cache.fetch(WALLET_BALANCE_KEY, load_balance) == 0
    cache.invalidate(WALLET_BALANCE_KEY)
    await cache.fetch(WALLET_BALANCE_KEY, load_balance)
    assert len(calls) == 2
