"""
Backend reachability monitor.

Pings the public `get_app_settings` call with an anonymous actor and keeps the
result in the shared query cache under ("backendHealth",). The status is derived
from that cache entry:

- last check failed         -> unreachable
- last check succeeded      -> ok
- no check result available -> error
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from src.integrations.contracts.interfaces import BackendActor
from src.query.query_client import QueryClient

logger = logging.getLogger(__name__)

HEALTH_KEY = ("backendHealth",)


class HealthStatus(str, Enum):
    OK = "ok"
    UNREACHABLE = "unreachable"
    ERROR = "error"


class BackendHealthMonitor:
    def __init__(
        self,
        query_client: QueryClient,
        anonymous_actor: Callable[[], BackendActor],
        *,
        interval_seconds: float = 30.0,
        stale_time: float = 10.0,
        retry: int = 2,
        retry_delay: float = 1.0,
    ) -> None:
        self.query_client = query_client
        self.anonymous_actor = anonymous_actor
        self.interval_seconds = interval_seconds
        self.stale_time = stale_time
        self.retry = retry
        self.retry_delay = retry_delay
        self._task: Optional[asyncio.Task] = None

    async def _ping(self) -> bool:
        actor = self.anonymous_actor()
        await actor.get_app_settings()
        return True

    @property
    def status(self) -> HealthStatus:
        state = self.query_client.get_query_state(HEALTH_KEY)
        if state is None:
            return HealthStatus.ERROR
        if state.error is not None:
            return HealthStatus.UNREACHABLE
        if state.data is True:
            return HealthStatus.OK
        return HealthStatus.ERROR

    @property
    def is_checking(self) -> bool:
        return self.query_client.is_fetching(HEALTH_KEY) > 0

    async def check(self, force: bool = False) -> HealthStatus:
        """Ping unless a fresh result is cached, then return the status."""
        try:
            await self.query_client.fetch_query(
                HEALTH_KEY,
                self._ping,
                retry=self.retry,
                retry_delay=self.retry_delay,
                stale_time=self.stale_time,
                force=force,
            )
        except Exception as exc:
            logger.error("Health check failed: %s", exc)
        return self.status

    # ------------------------------------------------------------------ #
    # Background polling
    # ------------------------------------------------------------------ #
    async def _poll(self) -> None:
        while True:
            status = await self.check(force=True)
            logger.debug("Backend health: %s", status.value)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self._poll())
            logger.info("Backend health monitor started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
