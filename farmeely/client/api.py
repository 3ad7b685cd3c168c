"""HTTP client for the Farmeely API.

Every call returns the decoded JSON envelope (``{"status": ..., ...}``)
whatever the HTTP status, so callers branch on ``body["status"]`` the same
way for business failures. Transport problems raise :class:`FarmeelyApiError`.
"""
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class FarmeelyApiError(Exception):
    pass


class FarmeelyClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self):
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def _request(self, method: str, path: str, json: Any = None, token: Optional[str] = None, params: Dict = None) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            response = await self._http.request(method, path, json=json, headers=headers, params=params)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise FarmeelyApiError(f"Network error calling {path}") from exc
        if response.status_code == 204:
            return {"status": "success"}
        try:
            return response.json()
        except ValueError:
            return {"status": "error", "message": f"Unexpected response ({response.status_code})"}

    # auth
    async def signup(self, payload: Dict[str, Any]):
        return await self._request("POST", "/users/signup", json=payload)

    async def verify_email(self, email: str, otp: str):
        return await self._request("POST", f"/users/verify-email/{email}/{otp}")

    async def resend_otp(self, email: str):
        return await self._request("POST", f"/users/resend-otp/{email}")

    async def login(self, email: str, password: str):
        return await self._request("POST", "/users/login", json={"email": email, "password": password})

    async def refresh(self, refresh_token: str):
        return await self._request("POST", "/users/refresh-token", json={"refreshToken": refresh_token})

    async def logout(self, refresh_token: str):
        return await self._request("POST", "/users/logout", json={"refreshToken": refresh_token})

    async def forgot_password(self, email: str):
        return await self._request("POST", f"/users/forgot-password/{email}")

    async def reset_password(self, email: str, otp: str, new_password: str):
        return await self._request("POST", "/users/complete", json={"email": email, "otp": otp, "newPassword": new_password})

    async def get_profile(self, token: str):
        return await self._request("GET", "/users/profile", token=token)

    async def update_profile(self, token: str, changes: Dict[str, Any]):
        return await self._request("PATCH", "/users/profile", json=changes, token=token)

    # payments
    async def initialize_payment(self, email: str, amount, reference: str, metadata: Dict[str, Any] = None):
        return await self._request(
            "POST",
            "/api/paystack/initialize",
            json={"email": email, "amount": amount, "reference": reference, "metadata": metadata or {}},
        )

    async def verify_payment(self, reference: str):
        return await self._request("POST", "/api/paystack/verify", json={"reference": reference})

    async def payment_config(self):
        return await self._request("GET", "/api/paystack/config")

    # wallet
    async def start_wallet_funding(self, token: str, amount):
        return await self._request("POST", "/wallet/funding/start", json={"amount": amount}, token=token)

    async def complete_wallet_funding(self, reference: str, token: Optional[str] = None):
        return await self._request("POST", f"/wallet/fund/complete/{reference}", token=token)

    async def wallet_balance(self, token: str):
        return await self._request("GET", "/wallet/balance", token=token)

    async def wallet_transactions(self, token: str, page: int = 1, limit: int = 20):
        return await self._request("GET", "/wallet/transactions", token=token, params={"page": page, "limit": limit})

    # livestock and groups
    async def livestock(self, token: str):
        return await self._request("GET", "/livestocks/", token=token)

    async def active_groups(self, token: str):
        return await self._request("GET", "/groups/active", token=token)

    async def group_details(self, token: str, group_id: str):
        return await self._request("GET", f"/groups/{group_id}", token=token)

    async def start_create_group(self, token: str, payload: Dict[str, Any]):
        return await self._request("POST", "/groups/create/start", json=payload, token=token)

    async def complete_create_group(self, token: str, group_id: str, payment_method: str, payment_reference: Optional[str] = None):
        body = {"groupId": group_id, "paymentMethod": payment_method}
        if payment_reference:
            body["paymentReference"] = payment_reference
        return await self._request("POST", "/groups/create/complete", json=body, token=token)

    async def start_join_group(self, token: str, group_id: str, slots: int, payment_method: str):
        return await self._request(
            "POST", f"/groups/{group_id}/join/start", json={"slots": slots, "paymentMethod": payment_method}, token=token
        )

    async def complete_join_group(self, token: str, payment_reference: str):
        return await self._request("POST", f"/groups/join/complete/{payment_reference}", token=token)

    # admin
    async def admin_stats(self, token: str):
        return await self._request("GET", "/admin/stats", token=token)
