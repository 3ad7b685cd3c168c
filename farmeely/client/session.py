import logging
from typing import Any, Dict, List, Optional

from farmeely.client.api import FarmeelyApiError, FarmeelyClient
from farmeely.client.store import NotificationStore

logger = logging.getLogger(__name__)

DASHBOARD_NAV = [
    ("Dashboard", "/dashboard"),
    ("Groups", "/dashboard/groups"),
    ("Livestock", "/dashboard/livestock"),
    ("Wallet", "/dashboard/wallet"),
]

ADMIN_NAV = [
    ("Admin", "/admin"),
    ("Users", "/admin/users"),
    ("Groups", "/admin/groups"),
]


class AuthSession:
    """Logged-in user and tokens for one client."""

    def __init__(self, api: FarmeelyClient, store: NotificationStore):
        self.api = api
        self.store = store
        self.user: Optional[Dict[str, Any]] = None
        self.token: Optional[str] = None
        self.refresh_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None and self.user is not None

    @property
    def is_admin(self) -> bool:
        return bool(self.user) and self.user.get("role") == "admin"

    @property
    def email(self) -> Optional[str]:
        return self.user.get("email") if self.user else None

    def nav_items(self) -> List[tuple]:
        if not self.is_authenticated:
            return []
        return DASHBOARD_NAV + (ADMIN_NAV if self.is_admin else [])

    def require_admin(self):
        if not self.is_admin:
            raise PermissionError("Access denied. Admin privileges required.")

    async def _load_profile(self) -> bool:
        body = await self.api.get_profile(self.token)
        if body.get("status") == "success" and body.get("data"):
            self.user = body["data"]
            return True
        return False

    async def login(self, email: str, password: str) -> bool:
        try:
            body = await self.api.login(email, password)
        except FarmeelyApiError as exc:
            self.store.error(str(exc), title="Login Failed")
            return False
        if body.get("status") != "success":
            self.store.error(body.get("message") or "Invalid credentials", title="Login Failed")
            return False

        self.token = body["data"]["access_token"]
        self.refresh_token = body["data"]["refresh_token"]
        if not await self._load_profile():
            self.store.error("Logged in, but failed to load profile.", title="Login Successful (Profile Fetch Failed)")
            return True
        self.store.success("Login Successful", body.get("message"))
        return True

    async def restore(self, token: str, refresh_token: Optional[str] = None) -> bool:
        """Resume from stored tokens; clears the session if the token no longer works."""
        self.token, self.refresh_token = token, refresh_token
        try:
            if await self._load_profile():
                return True
        except FarmeelyApiError:
            logger.warning("Could not validate stored token")
        self.clear()
        return False

    async def refresh(self) -> bool:
        if not self.refresh_token:
            return False
        body = await self.api.refresh(self.refresh_token)
        if body.get("status") != "success":
            self.clear()
            return False
        self.token = body["data"]["access_token"]
        self.refresh_token = body["data"]["refresh_token"]
        return True

    def clear(self):
        self.user = None
        self.token = None
        self.refresh_token = None

    async def logout(self):
        if self.refresh_token:
            try:
                await self.api.logout(self.refresh_token)
            except FarmeelyApiError:
                # token dies with the local session either way
                logger.warning("Logout request failed; clearing local session")
        self.clear()
        self.store.toast("Logged out", "You have been logged out.")
