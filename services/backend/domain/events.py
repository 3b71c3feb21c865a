"""Push events emitted over the realtime channel.

Each event name has exactly one model, and ``DomainEvent`` is the closed
union of all of them. Payloads go on the wire in camelCase to match what the
web client listens for:

    {"event": "notify-resident", "data": {"reportId": "...", ...}}
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    time: str = Field(default_factory=_now_iso)

    def wire(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True, exclude={"event"})
        return {"event": self.event, "data": data}


class _ReportEvent(_Event):
    report_id: UUID
    type: str
    resident_name: str


class _ResponderEvent(_ReportEvent):
    responder_name: str


# Sent to the resident who owns the report

class NotifyResident(_ResponderEvent):
    event: Literal["notify-resident"] = "notify-resident"


class Arrived(_ResponderEvent):
    event: Literal["arrived"] = "arrived"


class Responded(_ResponderEvent):
    event: Literal["responded"] = "responded"


class Declined(_ResponderEvent):
    event: Literal["declined"] = "declined"


# Sent to every responder except the acting one

class NotifyOnTheWay(_ResponderEvent):
    event: Literal["notify-on-the-way"] = "notify-on-the-way"


class NotifyArrived(_ResponderEvent):
    event: Literal["notify-arrived"] = "notify-arrived"


class NotifyResponded(_ResponderEvent):
    event: Literal["notify-responded"] = "notify-responded"


class ResponderDeclined(_ResponderEvent):
    event: Literal["responder-declined"] = "responder-declined"


# Resident-initiated

class ReportCancelled(_ReportEvent):
    event: Literal["report-cancelled"] = "report-cancelled"
    cancellation_reason: str
    active_responders: int


class ResidentFollowUp(_ReportEvent):
    event: Literal["resident-followup"] = "resident-followup"


# Admin broadcast

class PublicAnnouncement(_Event):
    event: Literal["public-announcement"] = "public-announcement"
    message: str
    author: Optional[str] = None


DomainEvent = Annotated[
    Union[
        NotifyResident,
        Arrived,
        Responded,
        Declined,
        NotifyOnTheWay,
        NotifyArrived,
        NotifyResponded,
        ResponderDeclined,
        ReportCancelled,
        ResidentFollowUp,
        PublicAnnouncement,
    ],
    Field(discriminator="event"),
]

# Resident-facing and other-responder events for each responder action
RESIDENT_EVENTS = {
    "on_the_way": NotifyResident,
    "arrived": Arrived,
    "responded": Responded,
    "declined": Declined,
}

RESPONDER_EVENTS = {
    "on_the_way": NotifyOnTheWay,
    "arrived": NotifyArrived,
    "responded": NotifyResponded,
    "declined": ResponderDeclined,
}
