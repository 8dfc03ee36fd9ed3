"""
messages.py
-----------
Purpose:
    Daily message endpoints inside an active message mode.
"""

from fastapi import APIRouter, Depends, status

from haroo.auth.verify import Principal, auth_dependency
from haroo.dependencies import get_message_service
from haroo.middleware.rate_limit_dependencies import rate_limit_user_only
from haroo.models.api.message_request import SendMessageRequest
from haroo.models.api.message_response import TodayMessageResponse
from haroo.models.domain.message_domain import Message
from haroo.services.message_service import MessageService

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(
    body: SendMessageRequest,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: MessageService = Depends(get_message_service),
):
    return await service.send(body.mode_id, principal.user_id, body.content)


@router.get("/received/today", response_model=TodayMessageResponse)
async def received_today(
    principal: Principal = Depends(auth_dependency),
    service: MessageService = Depends(get_message_service),
):
    return TodayMessageResponse(message=await service.get_today_received(principal.user_id))


@router.post("/{message_id}/read", response_model=Message)
async def mark_read(
    message_id: str,
    principal: Principal = Depends(auth_dependency),
    service: MessageService = Depends(get_message_service),
):
    return await service.mark_read(message_id, principal.user_id)
