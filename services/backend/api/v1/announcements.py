"""Announcements API - admin broadcasts to every connected client"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.deps import Identity, get_lifecycle, require_role
from domain.lifecycle import ReportLifecycle

router = APIRouter()


class AnnouncementRequest(BaseModel):
    message: str


@router.post("/")
async def broadcast_announcement(
    req: AnnouncementRequest,
    identity: Identity = Depends(require_role("admin")),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
):
    delivered = await lifecycle.announce(req.message, author=identity.display_name)
    return {"success": True, "delivered": delivered}
