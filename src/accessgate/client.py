"""Async HTTP client for the access API.

Used by the CLI and by frontends that cannot learn about a completed
verification directly: the callback lands on the server, so the client
polls ``/access-status`` until the grant shows up.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

import httpx

from accessgate.config import settings

logger = logging.getLogger(__name__)


@dataclass
class AccessStatus:
    """Server-side access decision as seen by a client."""

    allowed: bool
    reason: str
    remaining_seconds: int | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_json(cls, data: dict) -> "AccessStatus":
        expires_at = data.get("expiresAt")
        return cls(
            allowed=data["allowed"],
            reason=data["reason"],
            remaining_seconds=data.get("remainingSeconds"),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )


@dataclass
class StartVerification:
    token: str
    redirect_url: str
    expires_at: datetime


class AccessClient:
    """Thin wrapper over the access endpoints for one signed-in user."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "AccessClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def start_verification(self) -> StartVerification:
        response = await self.client.post("/api/start-verification")
        response.raise_for_status()
        data = response.json()
        return StartVerification(
            token=data["token"],
            redirect_url=data["redirectUrl"],
            expires_at=datetime.fromisoformat(data["expiresAt"]),
        )

    async def access_status(self, classification: str = "premium") -> AccessStatus:
        response = await self.client.get(
            "/api/access-status",
            params={"classification": classification},
        )
        response.raise_for_status()
        return AccessStatus.from_json(response.json())

    async def redeem_password(self, password: str) -> datetime:
        """Redeem a batch password. Returns the new grant's expiry."""
        response = await self.client.post("/api/redeem-password", json={"password": password})
        response.raise_for_status()
        return datetime.fromisoformat(response.json()["expiresAt"])

    async def wait_for_access(
        self,
        *,
        classification: str = "premium",
        interval: float | None = None,
        max_wait: float | None = None,
    ) -> AccessStatus | None:
        """Poll until access is allowed.

        Transport errors, 5xx and 429 responses are logged and polling
        continues; other 4xx responses are raised. Returns the
        first allowing status, or None once ``max_wait`` seconds have passed.
        """
        interval = interval if interval is not None else settings.access_poll_interval_seconds
        max_wait = max_wait if max_wait is not None else settings.access_poll_max_wait_seconds

        try:
            async with asyncio.timeout(max_wait):
                while True:
                    try:
                        status = await self.access_status(classification)
                    except httpx.HTTPStatusError as e:
                        # Client errors other than throttling will not fix themselves
                        code = e.response.status_code
                        if 400 <= code < 500 and code != 429:
                            raise
                        logger.warning(f"Access status poll failed: {e}")
                    except httpx.HTTPError as e:
                        logger.warning(f"Access status poll failed: {e}")
                    else:
                        if status.allowed:
                            return status
                    await asyncio.sleep(interval)
        except TimeoutError:
            logger.info(f"Gave up waiting for access after {max_wait:.0f}s")
            return None
