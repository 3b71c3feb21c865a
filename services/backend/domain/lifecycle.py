"""Report Lifecycle Engine.

This is the only code that changes a report's status or appends to its
responder history. It also decides who is told about each change.

``status`` is the single authoritative field for the current state. It is
written in the same transaction as the history entry and never re-derived
elsewhere. Notifications go out only after the write has been committed; if
the write fails, nobody is notified.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

import structlog

from domain.errors import NotFoundError, ValidationError
from domain.events import (
    RESIDENT_EVENTS,
    RESPONDER_EVENTS,
    PublicAnnouncement,
    ReportCancelled,
    ResidentFollowUp,
)
from domain.models.report import (
    Report,
    ReportActionRecord,
    ReportCreate,
    ReportRead,
    ReportStatus,
    ResponderAction,
    ResponderActionRead,
)
from infrastructure.database.report_store import ReportStore
from infrastructure.realtime.channel import EventChannel

logger = structlog.get_logger()

DEFAULT_CANCELLATION_REASON = "No reason provided"


@dataclass(frozen=True)
class Responder:
    identity: str
    display_name: str


@dataclass
class CancelOutcome:
    report: ReportRead
    changed: bool
    active_responders: int


def active_on_the_way_count(history: Sequence[ResponderActionRead]) -> int:
    """Count on_the_way entries not followed by a decline from the same responder."""
    count = 0
    for i, entry in enumerate(history):
        if entry.action != ResponderAction.ON_THE_WAY.value:
            continue
        superseded = any(
            later.responder_id == entry.responder_id
            and later.action == ResponderAction.DECLINED.value
            for later in history[i + 1:]
        )
        if not superseded:
            count += 1
    return count


def responders_en_route(history: Iterable[ResponderActionRead]) -> List[str]:
    """Responder ids whose latest on_the_way/declined entry is on_the_way."""
    latest: Dict[str, str] = {}
    for entry in history:
        if entry.action in (ResponderAction.ON_THE_WAY.value, ResponderAction.DECLINED.value):
            latest[entry.responder_id] = entry.action
    return [rid for rid, action in latest.items() if action == ResponderAction.ON_THE_WAY.value]


class ReportLifecycle:
    def __init__(self, store: ReportStore, channel: EventChannel, report_types: Iterable[str]):
        self.store = store
        self.channel = channel
        self.report_types = {t.lower() for t in report_types}

    # ---------- Creation & reads ----------

    async def create_report(self, payload: ReportCreate) -> ReportRead:
        report_type = (payload.type or "").strip()
        if report_type.lower() not in self.report_types:
            raise ValidationError(f"Unknown emergency type: {payload.type!r}")

        if payload.latitude is None or payload.longitude is None:
            raise ValidationError("Location requires both latitude and longitude")
        if not -90 <= payload.latitude <= 90 or not -180 <= payload.longitude <= 180:
            raise ValidationError("Coordinates out of range")

        for field in ("username", "first_name", "last_name"):
            if not (getattr(payload, field) or "").strip():
                raise ValidationError(f"Missing required field: {field}")

        report = Report(
            type=report_type,
            description=payload.description or "",
            reporter_username=payload.username.strip(),
            reporter_first_name=payload.first_name.strip(),
            reporter_last_name=payload.last_name.strip(),
            reporter_age=payload.age,
            contact_number=payload.contact_number,
            latitude=payload.latitude,
            longitude=payload.longitude,
        )
        created = await self.store.insert(report)
        logger.info("report_created", report_id=str(created.id), type=created.type, reporter=created.reporter_username)
        return created

    async def get_report(self, report_id: UUID) -> ReportRead:
        report = await self.store.get(report_id)
        if report is None:
            raise NotFoundError("Report not found")
        return report

    async def list_reports(self, **filters) -> List[ReportRead]:
        return await self.store.list(**filters)

    async def report_stats(self) -> Dict:
        counts = await self.store.count_by()
        by_status = counts["by_status"]
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_type": counts["by_type"],
            "pending": by_status.get(ReportStatus.PENDING.value, 0),
            "on_the_way": by_status.get(ReportStatus.ON_THE_WAY.value, 0),
            "responded": by_status.get(ReportStatus.RESPONDED.value, 0),
            "cancelled": by_status.get(ReportStatus.CANCELLED.value, 0),
        }

    # ---------- Responder actions ----------

    async def mark_on_the_way(self, report_id: UUID, responder: Responder) -> ReportRead:
        """Re-invoking is legal: each call appends another entry."""
        return await self._apply(report_id, responder, ResponderAction.ON_THE_WAY, ReportStatus.ON_THE_WAY)

    async def mark_arrived(self, report_id: UUID, responder: Responder) -> ReportRead:
        """History only. No prior on_the_way is required and status is untouched."""
        return await self._apply(report_id, responder, ResponderAction.ARRIVED, None)

    async def mark_responded(self, report_id: UUID, responder: Responder) -> ReportRead:
        return await self._apply(
            report_id, responder, ResponderAction.RESPONDED, ReportStatus.RESPONDED, resolve=True
        )

    async def decline(self, report_id: UUID, responder: Responder) -> ReportRead:
        """Declining keeps the report; it is never deleted."""
        return await self._apply(
            report_id, responder, ResponderAction.DECLINED, ReportStatus.DECLINED, resolve=True
        )

    async def _apply(
        self,
        report_id: UUID,
        responder: Responder,
        action: ResponderAction,
        status: Optional[ReportStatus],
        resolve: bool = False,
    ) -> ReportRead:
        record = ReportActionRecord(
            report_id=report_id,
            responder_id=responder.identity,
            responder_name=responder.display_name,
            action=action.value,
        )
        report = await self.store.append_action(
            record, status=status.value if status else None, resolve=resolve
        )
        if report is None:
            raise NotFoundError("Report not found")

        logger.info(
            "report_action_recorded",
            report_id=str(report_id),
            action=action.value,
            responder=responder.identity,
            status=report.status,
        )

        fields = dict(
            report_id=report.id,
            type=report.type,
            resident_name=report.resident_name,
            responder_name=responder.display_name,
            time=record.timestamp.isoformat(),
        )
        await self.channel.send_to_resident(report.reporter_username, RESIDENT_EVENTS[action.value](**fields))
        await self.channel.broadcast_except(responder.identity, RESPONDER_EVENTS[action.value](**fields))
        return report

    # ---------- Resident actions ----------

    async def cancel(self, report_id: UUID, reason: Optional[str] = None) -> CancelOutcome:
        """Cancel an open report and tell every connection.

        Cancelling a report that is already terminal changes nothing and
        broadcasts nothing.
        """
        reason = (reason or "").strip() or DEFAULT_CANCELLATION_REASON
        now = datetime.now(timezone.utc)

        report, changed = await self.store.cancel(report_id, reason, now)
        if report is None:
            raise NotFoundError("Report not found")

        active = active_on_the_way_count(report.responders)
        if not changed:
            logger.info("report_cancel_ignored", report_id=str(report_id), status=report.status)
            return CancelOutcome(report, False, active)

        logger.info("report_cancelled", report_id=str(report_id), reason=reason, active_responders=active)
        await self.channel.broadcast_all(
            ReportCancelled(
                report_id=report.id,
                type=report.type,
                resident_name=report.resident_name,
                cancellation_reason=reason,
                active_responders=active,
                time=now.isoformat(),
            )
        )
        return CancelOutcome(report, True, active)

    async def request_follow_up(self, report_id: UUID) -> List[str]:
        """Nudge the responders still en route. No state changes."""
        report = await self.get_report(report_id)
        targets = responders_en_route(report.responders)

        delivered = await self.channel.send_to_responders(
            targets,
            ResidentFollowUp(report_id=report.id, type=report.type, resident_name=report.resident_name),
        )
        logger.info("followup_requested", report_id=str(report_id), targets=targets, delivered=delivered)
        return targets

    # ---------- Announcements ----------

    async def announce(self, message: str, author: Optional[str] = None) -> int:
        if not (message or "").strip():
            raise ValidationError("Message is empty")

        delivered = await self.channel.broadcast_all(PublicAnnouncement(message=message.strip(), author=author))
        logger.info("announcement_broadcast", author=author, delivered=delivered)
        return delivered
