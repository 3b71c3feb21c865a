"""
Network Monitor
Probes the backend /health endpoint and tracks online/offline transitions
"""
import asyncio
from typing import Awaitable, Callable, List, Optional

import structlog

from .api_client import ResponderAPIClient
from .config import get_settings

logger = structlog.get_logger()

Callback = Callable[[], Awaitable[None]]

CHECKING = "checking"
ONLINE = "online"
OFFLINE = "offline"


class NetworkMonitor:
    """Marks the link offline after ``failure_threshold`` consecutive failed probes.

    A single success resets the count. The ``on_online`` callbacks fire only
    on a real offline-to-online transition, not on the first successful probe.
    """

    def __init__(
        self,
        client: ResponderAPIClient,
        interval: Optional[float] = None,
        failure_threshold: Optional[int] = None,
    ):
        settings = get_settings()
        self.client = client
        self.interval = interval or settings.health_interval_seconds
        self.failure_threshold = failure_threshold or settings.failure_threshold

        self.status = CHECKING
        self.consecutive_failures = 0
        self._has_been_offline = False
        self._on_online: List[Callback] = []
        self._on_offline: List[Callback] = []
        self._stopped = asyncio.Event()

    @property
    def online(self) -> bool:
        return self.status != OFFLINE

    def on_online(self, callback: Callback) -> None:
        self._on_online.append(callback)

    def on_offline(self, callback: Callback) -> None:
        self._on_offline.append(callback)

    async def check(self) -> str:
        if await self.client.health():
            self.consecutive_failures = 0
            if self.status != ONLINE:
                reconnected = self._has_been_offline
                self.status = ONLINE
                self._has_been_offline = False
                logger.info("network_online", reconnected=reconnected)
                if reconnected:
                    await self._fire(self._on_online)
        else:
            self.consecutive_failures += 1
            if self.status != OFFLINE and self.consecutive_failures >= self.failure_threshold:
                await self._go_offline()

        return self.status

    async def mark_offline(self) -> None:
        """Immediate offline signal, e.g. a dropped socket or OS network event"""
        self.consecutive_failures = self.failure_threshold
        if self.status != OFFLINE:
            await self._go_offline()

    async def run(self) -> None:
        self._stopped.clear()
        while not self._stopped.is_set():
            await self.check()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stopped.set()

    async def _go_offline(self) -> None:
        self.status = OFFLINE
        self._has_been_offline = True
        logger.warning("network_offline", consecutive_failures=self.consecutive_failures)
        await self._fire(self._on_offline)

    async def _fire(self, callbacks: List[Callback]) -> None:
        for callback in callbacks:
            try:
                await callback()
            except Exception as e:
                logger.error("network_callback_failed", callback=getattr(callback, "__name__", repr(callback)), error=str(e))
