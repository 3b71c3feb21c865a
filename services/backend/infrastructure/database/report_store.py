"""Report Store - data access for reports and their responder history.

No business rules live here. Each write method runs in exactly one
transaction so callers never observe a status change without its history
entry, or the reverse.
"""
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import case, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from domain.errors import StorageError
from domain.models.report import (
    TERMINAL_STATUSES,
    Report,
    ReportActionRecord,
    ReportRead,
    ReportStatus,
    ResponderActionRead,
)

logger = structlog.get_logger()


def _to_read(report: Report, actions: List[ReportActionRecord]) -> ReportRead:
    return ReportRead(
        **report.model_dump(),
        responders=[ResponderActionRead.model_validate(a, from_attributes=True) for a in actions],
    )


class ReportStore:
    """Persistence for Report documents backed by an async SQLModel session maker"""

    def __init__(self, session_maker: sessionmaker):
        self._session_maker = session_maker

    async def insert(self, report: Report) -> ReportRead:
        async with self._session_maker() as session:
            try:
                session.add(report)
                await session.commit()
                await session.refresh(report)
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("report_insert_failed", error=str(e))
                raise StorageError("Failed to save report") from e
            return _to_read(report, [])

    async def get(self, report_id: UUID) -> Optional[ReportRead]:
        async with self._session_maker() as session:
            try:
                return await self._read(session, report_id)
            except SQLAlchemyError as e:
                logger.error("report_read_failed", report_id=str(report_id), error=str(e))
                raise StorageError("Failed to load report") from e

    async def list(
        self,
        status: Optional[str] = None,
        report_type: Optional[str] = None,
        reporter_username: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ReportRead]:
        query = select(Report)

        if status:
            query = query.where(Report.status == status)

        if report_type:
            query = query.where(func.lower(Report.type) == report_type.lower())

        if reporter_username:
            query = query.where(Report.reporter_username == reporter_username)

        query = query.order_by(Report.created_at.desc()).offset(skip).limit(limit)

        async with self._session_maker() as session:
            try:
                result = await session.execute(query)
                reports = result.scalars().all()
                history = await self._actions_for(session, [r.id for r in reports])
            except SQLAlchemyError as e:
                logger.error("report_list_failed", error=str(e))
                raise StorageError("Failed to fetch reports") from e

        return [_to_read(r, history.get(r.id, [])) for r in reports]

    async def append_action(
        self,
        record: ReportActionRecord,
        status: Optional[str] = None,
        resolve: bool = False,
    ) -> Optional[ReportRead]:
        """Append one history entry and, if the report is still open, move its status.

        Returns None when the report does not exist. The status change and
        ``resolved_at`` only apply while the stored status is non-terminal;
        ``resolved_at`` is never overwritten once set.
        """
        is_open = Report.status.not_in(TERMINAL_STATUSES)
        values = {"updated_at": record.timestamp}

        if status is not None:
            values["status"] = case((is_open, status), else_=Report.status)
            if resolve:
                values["resolved_at"] = case(
                    (is_open, func.coalesce(Report.resolved_at, record.timestamp)),
                    else_=Report.resolved_at,
                )

        stmt = (
            update(Report)
            .where(Report.id == record.report_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async with self._session_maker() as session:
            try:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    await session.rollback()
                    return None

                session.add(record)
                await session.commit()
                return await self._read(session, record.report_id)
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(
                    "report_action_write_failed",
                    report_id=str(record.report_id),
                    action=record.action,
                    error=str(e),
                )
                raise StorageError("Failed to update report") from e

    async def cancel(
        self, report_id: UUID, reason: str, when: datetime
    ) -> Tuple[Optional[ReportRead], bool]:
        """Cancel an open report.

        Returns ``(report, changed)``; ``report`` is None when it does not
        exist, ``changed`` is False when it was already terminal.
        """
        stmt = (
            update(Report)
            .where(Report.id == report_id, Report.status.not_in(TERMINAL_STATUSES))
            .values(
                status=ReportStatus.CANCELLED.value,
                cancellation_reason=reason,
                cancellation_time=when,
                updated_at=when,
            )
            .execution_options(synchronize_session=False)
        )

        async with self._session_maker() as session:
            try:
                result = await session.execute(stmt)
                changed = result.rowcount > 0
                await session.commit()
                return await self._read(session, report_id), changed
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("report_cancel_failed", report_id=str(report_id), error=str(e))
                raise StorageError("Failed to cancel report") from e

    async def count_by(self) -> Dict[str, Dict[str, int]]:
        """Report counts grouped by status and by type"""
        async with self._session_maker() as session:
            try:
                by_status = await session.execute(
                    select(Report.status, func.count()).group_by(Report.status)
                )
                by_type = await session.execute(
                    select(func.lower(Report.type), func.count()).group_by(func.lower(Report.type))
                )
            except SQLAlchemyError as e:
                logger.error("report_stats_failed", error=str(e))
                raise StorageError("Failed to compute report stats") from e

            return {
                "by_status": {status: count for status, count in by_status.all()},
                "by_type": {report_type: count for report_type, count in by_type.all()},
            }

    async def _read(self, session, report_id: UUID) -> Optional[ReportRead]:
        result = await session.execute(select(Report).where(Report.id == report_id))
        report = result.scalar_one_or_none()

        if report is None:
            return None

        history = await self._actions_for(session, [report.id])
        return _to_read(report, history.get(report.id, []))

    async def _actions_for(self, session, report_ids: List[UUID]) -> Dict[UUID, List[ReportActionRecord]]:
        if not report_ids:
            return {}

        result = await session.execute(
            select(ReportActionRecord)
            .where(ReportActionRecord.report_id.in_(report_ids))
            .order_by(ReportActionRecord.id)
        )

        history: Dict[UUID, List[ReportActionRecord]] = defaultdict(list)
        for action in result.scalars().all():
            history[action.report_id].append(action)
        return history
