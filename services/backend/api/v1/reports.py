"""Reports API - Emergency reports and responder actions"""
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends

from api.deps import Identity, get_identity, get_lifecycle, require_role
from domain.errors import PermissionDeniedError
from domain.lifecycle import ReportLifecycle
from domain.models.report import CancelRequest, ReportCreate, ReportRead

router = APIRouter()

responder_only = require_role("responder")


@router.get("/", response_model=List[ReportRead])
async def list_reports(
    identity: Identity = Depends(get_identity),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    skip: int = 0,
    limit: int = 100,
    status: Optional[str] = None,
    report_type: Optional[str] = None,
    reporter: Optional[str] = None,
):
    """List reports, newest first. Residents only see their own."""
    if identity.role == "resident":
        reporter = identity.username

    return await lifecycle.list_reports(
        status=status,
        report_type=report_type,
        reporter_username=reporter,
        skip=skip,
        limit=limit,
    )


@router.post("/", status_code=201)
async def create_report(
    report: ReportCreate,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    """
    Submit an emergency report
    Note: No identity required - residents may report before signing in
    """
    created = await lifecycle.create_report(report)
    return {"message": "Report submitted successfully!", "report_id": created.id, "report": created}


@router.get("/stats/summary")
async def get_report_stats(
    identity: Identity = Depends(require_role("responder", "admin")),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    """Report counts by status and by type"""
    return await lifecycle.report_stats()


@router.get("/{report_id}", response_model=ReportRead)
async def get_report(
    report_id: UUID,
    identity: Identity = Depends(get_identity),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    """Get a specific report with its responder history"""
    return await _owned_report(report_id, identity, lifecycle)


# ---------- Responder actions ----------

@router.patch("/{report_id}/ontheway")
async def mark_on_the_way(
    report_id: UUID,
    identity: Identity = Depends(responder_only),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    report = await lifecycle.mark_on_the_way(report_id, identity.as_responder())
    return {"message": "Report marked as on the way", "report": report}


@router.patch("/{report_id}/arrived")
async def mark_arrived(
    report_id: UUID,
    identity: Identity = Depends(responder_only),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    report = await lifecycle.mark_arrived(report_id, identity.as_responder())
    return {"message": "Report marked as arrived", "report_id": report.id}


@router.patch("/{report_id}/respond")
async def mark_responded(
    report_id: UUID,
    identity: Identity = Depends(responder_only),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    report = await lifecycle.mark_responded(report_id, identity.as_responder())
    return {"message": "Report marked as responded.", "report_id": report.id, "status": report.status}


@router.patch("/{report_id}/decline")
async def decline_report(
    report_id: UUID,
    identity: Identity = Depends(responder_only),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    report = await lifecycle.decline(report_id, identity.as_responder())
    return {"message": "Report declined (status updated, not deleted).", "report_id": report.id, "status": report.status}


# ---------- Resident actions ----------

@router.patch("/{report_id}/cancel")
async def cancel_report(
    report_id: UUID,
    body: Optional[CancelRequest] = None,
    identity: Identity = Depends(require_role("resident", "admin")),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    await _owned_report(report_id, identity, lifecycle)

    outcome = await lifecycle.cancel(report_id, body.reason if body else None)
    return {
        "message": "Report cancelled successfully" if outcome.changed else "Report already closed",
        "report_id": outcome.report.id,
        "status": outcome.report.status,
        "cancellation_reason": outcome.report.cancellation_reason,
        "active_responders": outcome.active_responders,
    }


@router.patch("/{report_id}/followup")
async def request_follow_up(
    report_id: UUID,
    identity: Identity = Depends(require_role("resident", "admin")),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    await _owned_report(report_id, identity, lifecycle)

    notified = await lifecycle.request_follow_up(report_id)
    return {"message": "Follow-up request sent to responders on the way", "responders": notified}


async def _owned_report(report_id: UUID, identity: Identity, lifecycle: ReportLifecycle):
    report = await lifecycle.get_report(report_id)
    if identity.role == "resident" and report.reporter_username != identity.username:
        raise PermissionDeniedError("Report belongs to another resident")
    return report
