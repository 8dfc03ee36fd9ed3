"""
admin.py
--------
Purpose:
    Moderator actions. Moderators are listed in MODERATOR_IDS.
"""

from fastapi import APIRouter, Depends

from haroo.auth.verify import Principal, auth_dependency
from haroo.dependencies import get_trace_service
from haroo.models.api.trace_request import ModeratorRemoveRequest
from haroo.services.trace_service import TraceService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/traces/{trace_id}/remove")
async def remove_trace(
    trace_id: str,
    body: ModeratorRemoveRequest | None = None,
    principal: Principal = Depends(auth_dependency),
    service: TraceService = Depends(get_trace_service),
):
    reason = body.reason if body else None
    trace = await service.moderator_remove(trace_id, principal.user_id, reason)
    return {"trace_id": trace.id, "status": trace.status.value}
