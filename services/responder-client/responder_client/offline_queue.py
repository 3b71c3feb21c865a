"""
Offline Queue
Buffers responder actions while the backend is unreachable and replays them,
oldest first, once connectivity returns.

Resending is safe. A repeated on_the_way or arrived only appends another
history entry, and a repeated responded or declined does not move a report
that is already terminal. Entries are still deduplicated by report and action
while they wait.
"""
import asyncio
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PayloadError

from .api_client import ActionName, OfflineError, ResponderAPIClient, ServerError
from .indicators import Indicator

logger = structlog.get_logger()


class PendingAction(BaseModel):
    report_id: str
    action: ActionName
    report_name: str = "Emergency Report"
    resident_name: Optional[str] = None
    queued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> Tuple[str, str]:
        return (self.report_id, self.action)

    @property
    def notice_key(self) -> str:
        return f"{self.report_id}:{self.action}"


_QueueFile = TypeAdapter(List[PendingAction])
_RawQueueFile = TypeAdapter(List[Dict[str, Any]])


@dataclass
class ReplayResult:
    sent: List[PendingAction] = field(default_factory=list)
    dropped: List[PendingAction] = field(default_factory=list)
    remaining: int = 0


class OfflineQueue:
    def __init__(self, path, indicator: Optional[Indicator] = None):
        self.path = Path(path)
        self.indicator = indicator or Indicator()
        self._items: List[PendingAction] = self._load()
        self._replay_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> List[PendingAction]:
        return list(self._items)

    def enqueue(self, pending: PendingAction) -> bool:
        """Add an action; returns False when the same report+action is already waiting"""
        if any(item.key == pending.key for item in self._items):
            logger.info("pending_action_duplicate", report_id=pending.report_id, action=pending.action)
            return False

        self._items.append(pending)
        self._save()
        logger.info("pending_action_queued", report_id=pending.report_id, action=pending.action, queued=len(self._items))

        target = pending.resident_name or "the resident"
        self.indicator.show_pending(
            pending.notice_key,
            f"Your response for {pending.report_name} will be sent to {target} once online...",
        )
        return True

    async def replay(self, client: ResponderAPIClient) -> ReplayResult:
        """Send queued actions in insertion order.

        Stops at the first connectivity or server-side (5xx) failure so later
        entries never overtake earlier ones. A definitive rejection (4xx) is
        dropped with a failure notice and replay moves on.
        """
        async with self._replay_lock:
            result = ReplayResult()

            for pending in list(self._items):
                try:
                    await client.perform(pending.action, pending.report_id)
                except OfflineError:
                    logger.info("replay_paused_offline", report_id=pending.report_id, action=pending.action)
                    break
                except ServerError as e:
                    if not e.permanent:
                        logger.warning("replay_paused_server_error", report_id=pending.report_id, status=e.status_code)
                        break
                    self._remove(pending)
                    result.dropped.append(pending)
                    self.indicator.clear_pending(pending.notice_key)
                    self.indicator.show_failure(f'Your response for "{pending.report_name}" was rejected: {e.detail}')
                else:
                    self._remove(pending)
                    result.sent.append(pending)
                    self.indicator.clear_pending(pending.notice_key)
                    self.indicator.show_success(f'Your response for "{pending.report_name}" has been submitted.')

            if result.sent or result.dropped:
                self._save()

            result.remaining = len(self._items)
            logger.info(
                "replay_finished",
                sent=len(result.sent),
                dropped=len(result.dropped),
                remaining=result.remaining,
            )
            return result

    def _remove(self, pending: PendingAction) -> None:
        self._items = [item for item in self._items if item is not pending]

    def _load(self) -> List[PendingAction]:
        if not self.path.exists():
            return []
        try:
            entries = _RawQueueFile.validate_json(self.path.read_bytes())
        except PayloadError as e:
            # Keep the unreadable file for inspection
            broken = self.path.with_suffix(self.path.suffix + ".corrupt")
            os.replace(self.path, broken)
            logger.error("pending_queue_unreadable", path=str(self.path), moved_to=str(broken), error=str(e))
            return []

        items = []
        for entry in entries:
            try:
                items.append(PendingAction.model_validate(entry))
            except PayloadError as e:
                logger.error("pending_action_discarded", entry=entry, error=str(e))
        return items

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(_QueueFile.dump_json(self._items, indent=2))
        os.replace(tmp, self.path)
