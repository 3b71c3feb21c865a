"""Report model - Emergency reports and their responder history"""
from enum import Enum
from typing import List, Optional
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field
from uuid import UUID, uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportStatus(str, Enum):
    PENDING = "pending"
    ON_THE_WAY = "on_the_way"
    ARRIVED = "arrived"
    RESPONDED = "responded"
    DECLINED = "declined"
    CANCELLED = "cancelled"


# No status transition leaves these.
TERMINAL_STATUSES = (
    ReportStatus.RESPONDED.value,
    ReportStatus.DECLINED.value,
    ReportStatus.CANCELLED.value,
)


class ResponderAction(str, Enum):
    ON_THE_WAY = "on_the_way"
    ARRIVED = "arrived"
    RESPONDED = "responded"
    DECLINED = "declined"


class ReportBase(SQLModel):
    type: str = Field(index=True)  # 'medical', 'fire', 'flood', 'crime', 'rescue', 'other'
    description: str = ""

    # Reporter identity; username is the presence handle
    reporter_username: str = Field(index=True)
    reporter_first_name: str
    reporter_last_name: str
    reporter_age: Optional[int] = None
    contact_number: Optional[str] = None

    # Location is fixed at creation
    latitude: float
    longitude: float

    @property
    def resident_name(self) -> str:
        return f"{self.reporter_first_name} {self.reporter_last_name}".strip()


class Report(ReportBase, table=True):
    __tablename__ = "reports"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    # Engine-maintained projection of the history below
    status: str = Field(default=ReportStatus.PENDING.value, index=True)
    cancellation_reason: Optional[str] = None
    cancellation_time: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ReportActionRecord(SQLModel, table=True):
    """One append-only responder history entry. Rows are never updated."""
    __tablename__ = "report_actions"

    # Autoincrement id is the server acceptance order
    id: Optional[int] = Field(default=None, primary_key=True)
    report_id: UUID = Field(foreign_key="reports.id", index=True)
    responder_id: str = Field(index=True)
    responder_name: str
    action: str
    timestamp: datetime = Field(default_factory=utcnow)


class ReportCreate(SQLModel):
    type: str
    description: Optional[str] = ""
    username: str
    first_name: str
    last_name: str
    age: Optional[int] = None
    contact_number: Optional[str] = None
    # Both or neither is checked by the lifecycle engine, not here
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ResponderActionRead(SQLModel):
    responder_id: str
    responder_name: str
    action: str
    timestamp: datetime


class ReportRead(ReportBase):
    id: UUID
    status: str
    cancellation_reason: Optional[str] = None
    cancellation_time: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    responders: List[ResponderActionRead] = []


class CancelRequest(SQLModel):
    reason: Optional[str] = None
