"""
Action Dispatcher
Single entry point for responder actions: send now, or queue until online
"""
from typing import Any, Dict, Optional

import structlog

from .api_client import OfflineError, ResponderAPIClient, ServerError
from .indicators import Indicator
from .network_monitor import NetworkMonitor
from .offline_queue import OfflineQueue, PendingAction, ReplayResult

logger = structlog.get_logger()


class ActionDispatcher:
    def __init__(
        self,
        client: ResponderAPIClient,
        queue: OfflineQueue,
        monitor: Optional[NetworkMonitor] = None,
    ):
        self.client = client
        self.queue = queue
        self.monitor = monitor
        self.indicator: Indicator = queue.indicator

        if monitor is not None:
            monitor.on_online(self.flush)

    async def submit(
        self,
        action: str,
        report_id: str,
        report_name: str = "Emergency Report",
        resident_name: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Send an action, or queue it when there is no connectivity

        Returns the backend response, or None when the action was queued.
        A genuine server error is shown immediately and re-raised so the
        responder can retry by hand. An unknown action raises ValueError
        before anything is sent or queued.
        """
        pending = PendingAction(
            report_id=report_id,
            action=action,
            report_name=report_name,
            resident_name=resident_name,
        )

        if self.monitor is not None and not self.monitor.online:
            self.queue.enqueue(pending)
            return None

        try:
            return await self.client.perform(action, report_id)
        except OfflineError:
            self.queue.enqueue(pending)
            if self.monitor is not None:
                await self.monitor.mark_offline()
            return None
        except ServerError as e:
            self.indicator.show_failure(f'Could not send your response for "{report_name}": {e.detail}')
            raise

    async def flush(self) -> ReplayResult:
        if not len(self.queue):
            return ReplayResult()
        logger.info("flushing_pending_actions", queued=len(self.queue))
        return await self.queue.replay(self.client)
