"""
users.py
--------
Purpose:
    The caller's profile and quota status, block list and push token.
"""

from fastapi import APIRouter, Depends

from haroo.auth.verify import Principal, auth_dependency
from haroo.dependencies import get_user_service
from haroo.middleware.rate_limit_dependencies import rate_limit_user_only
from haroo.models.api.user_request import BlockUserRequest, PushTokenRequest
from haroo.models.api.user_response import BlockListResponse, UserStatusResponse
from haroo.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserStatusResponse)
async def get_me(
    principal: Principal = Depends(auth_dependency),
    service: UserService = Depends(get_user_service),
):
    user_status = await service.get_my_status(principal.user_id)
    user = user_status.user
    return UserStatusResponse(
        user_id=user.id,
        hash_id=user.hash_id,
        status=user.status,
        blocked_user_ids=user.blocked_user_ids,
        write_permission=user_status.permission.state,
        next_available_at=user_status.permission.next_available_at,
        trace_pass_expires_at=user.trace_pass_expires_at,
        trace_daily_count=user_status.permission.effective_daily_count,
        report_influence=user.report_influence,
        push_enabled=bool(user.fcm_token),
    )


@router.post("/block", response_model=BlockListResponse)
async def block_user(
    body: BlockUserRequest,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: UserService = Depends(get_user_service),
):
    user = await service.block_user(principal.user_id, body.target_id)
    return BlockListResponse(blocked_user_ids=user.blocked_user_ids)


@router.delete("/block/{target_id}", response_model=BlockListResponse)
async def unblock_user(
    target_id: str,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: UserService = Depends(get_user_service),
):
    user = await service.unblock_user(principal.user_id, target_id)
    return BlockListResponse(blocked_user_ids=user.blocked_user_ids)


@router.post("/push-token")
async def register_push_token(
    body: PushTokenRequest,
    principal: Principal = Depends(auth_dependency),
    service: UserService = Depends(get_user_service),
):
    await service.register_push_token(principal.user_id, body.token)
    return {"success": True}
