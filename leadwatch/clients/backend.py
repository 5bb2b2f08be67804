"""HTTP client for the dashboard backend API."""

import asyncio
import logging
from typing import Any, List

import aiohttp

from leadwatch.db.models import (
    AssignedItem,
    FollowUpFeed,
    InboxNotification,
    Principal,
    ScheduleConfig,
)
from leadwatch.utils.constants import DEFAULT_FETCH_TIMEOUT, INBOX_FETCH_LIMIT
from leadwatch.utils.exceptions import FetchFailed

logger = logging.getLogger(__name__)


class BackendClient:
    """Reads schedules, leads, follow-ups and inbox rows from the backend.

    Every endpoint answers ``{"success": true, ...}``. Any transport error,
    timeout, non-2xx status or ``success: false`` raises FetchFailed.
    """

    def __init__(self, base_url: str, token: str = "", timeout: float = DEFAULT_FETCH_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None or self._session.closed:
            headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
            self._session = aiohttp.ClientSession(headers=headers, timeout=self.timeout)
            logger.info(f"Backend client ready for {self.base_url}")

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("Backend client not connected")
        return self._session

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        url = f"{self.base_url}{path}"
        try:
            async with self.session.request(method, url, **kwargs) as resp:
                data = await resp.json(content_type=None)
                if resp.status >= 400:
                    error = data.get("error") if isinstance(data, dict) else None
                    raise FetchFailed(f"{method} {path} returned {resp.status}: {error or 'error'}")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise FetchFailed(f"{method} {path} failed: {e}") from e

        if not isinstance(data, dict):
            raise FetchFailed(f"{method} {path} returned an unexpected payload")
        if data.get("success") is False:
            raise FetchFailed(f"{method} {path}: {data.get('error') or 'request failed'}")
        return data

    async def get_principal(self) -> Principal:
        """Resolve the signed-in user via /api/auth/me."""
        data = await self._request("GET", "/api/auth/me")
        user = data.get("user")
        if not isinstance(user, dict):
            raise FetchFailed("GET /api/auth/me returned no user")
        return Principal.from_dict(user)

    async def get_schedule_config(self, principal: Principal) -> ScheduleConfig:
        data = await self._request("GET", "/api/reports/daily/schedule")
        return ScheduleConfig.from_dict(data.get("config"))

    async def get_assigned_items(self, principal: Principal) -> List[AssignedItem]:
        data = await self._request("GET", "/api/crm-leads/my", params={"batch": "all"})
        return [AssignedItem.from_dict(lead) for lead in data.get("leads") or []]

    async def get_followup_events(self, principal: Principal) -> FollowUpFeed:
        data = await self._request("GET", "/api/calendar/followups")
        return FollowUpFeed.from_dict(data, owner_id=principal.id)

    async def get_inbox(
        self, principal: Principal, limit: int = INBOX_FETCH_LIMIT
    ) -> List[InboxNotification]:
        """Server-generated notifications, newest first."""
        data = await self._request("GET", "/api/notifications", params={"limit": str(limit)})
        return [InboxNotification.from_dict(row) for row in data.get("notifications") or []]

    async def get_alert_preference(self, principal: Principal) -> bool | None:
        """The server-side external alerts toggle, or None when unset."""
        data = await self._request("GET", "/api/notifications/settings")
        settings = data.get("settings") or {}
        value = settings.get("browser_alerts_enabled")
        return None if value is None else bool(value)

    async def mark_all_read(self, principal: Principal) -> None:
        await self._request("POST", "/api/notifications/mark-all-read", json={})
