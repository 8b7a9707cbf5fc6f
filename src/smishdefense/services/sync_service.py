"""Best-effort forwarding of attempts from the trainer to the stats API."""
import asyncio
import logging
from typing import Any, Dict, Optional, Set

import httpx

from smishdefense import monitoring
from smishdefense.config import settings
from smishdefense.errors import TransientSyncFailure
from smishdefense.models.training_models import Attempt

logger = logging.getLogger(__name__)


class StatsApiClient:
    """Thin async client for the stats API."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the client; ``transport`` lets callers swap the network layer."""
        self.base_url = (base_url or settings.api.url).rstrip("/")
        self.timeout = timeout or settings.api.timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def save_progress(self, attempt: Attempt) -> Dict[str, Any]:
        """Send one attempt and return the user stats reported by the server."""
        try:
            async with self._client() as client:
                response = await client.post("/save-progress", json=attempt.to_payload())
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransientSyncFailure(f"Error saving to server: {e}") from e
        if not isinstance(data, dict):
            raise TransientSyncFailure(f"Unexpected response from server: {data!r}")

        if response.is_error or not data.get("success"):
            raise TransientSyncFailure(
                f"Failed to save to server ({response.status_code}): {data.get('error')}"
            )
        return data.get("userStats", {})

    async def get_user_stats(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a user's ledger record; None when the server does not know the user."""
        try:
            async with self._client() as client:
                response = await client.get(f"/user-stats/{user_id}")
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransientSyncFailure(f"Error fetching user stats: {e}") from e
        if not isinstance(data, dict):
            raise TransientSyncFailure(f"Unexpected response from server: {data!r}")

        if response.is_error:
            raise TransientSyncFailure(f"Failed to fetch user stats ({response.status_code}): {data.get('error')}")
        if not data.get("success"):
            return None
        return data.get("user")


class SyncBridge:
    """Forwards attempts to the stats API without ever holding up the trainer.

    ``forward`` schedules a detached task and returns at once. The outcome is
    only logged: failures are dropped, never retried and never raised.
    """

    def __init__(self, client: Optional[StatsApiClient] = None):
        """Initialize the bridge with a stats API client."""
        self.client = client or StatsApiClient()
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def forward(self, attempt: Attempt) -> Optional[asyncio.Task]:
        """Dispatch an attempt to the stats API and return the detached task."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"No running event loop, attempt on message {attempt.message_id} not forwarded")
            monitoring.sync_forwards.labels(outcome="dropped").inc()
            return None

        task = loop.create_task(self._send(attempt))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send(self, attempt: Attempt) -> None:
        try:
            user_stats = await self.client.save_progress(attempt)
        except TransientSyncFailure as e:
            monitoring.sync_forwards.labels(outcome="failed").inc()
            logger.error(f"Attempt on message {attempt.message_id} not synced: {e}")
            return
        except Exception as e:
            monitoring.sync_forwards.labels(outcome="failed").inc()
            logger.exception(f"Unexpected error while syncing message {attempt.message_id}: {e}")
            return
        monitoring.sync_forwards.labels(outcome="ok").inc()
        logger.info(f"Progress saved to server: {user_stats}")

    async def drain(self) -> None:
        """Wait for every forward still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
