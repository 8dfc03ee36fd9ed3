"""
modes.py
--------
Purpose:
    Message mode endpoints: request, respond, cancel and read the current mode.

Architecture:
    - Routes authenticate, rate limit and pass the Principal explicitly
    - ConnectionService returns domain models or raises HarooServiceError
    - Errors are mapped to HTTP responses by the handlers in haroo.main
"""

from fastapi import APIRouter, Depends, status

from haroo.auth.verify import Principal, auth_dependency
from haroo.dependencies import get_connection_service
from haroo.middleware.rate_limit_dependencies import rate_limit_user_only
from haroo.models.api.connection_request import ModeRequestBody
from haroo.models.api.connection_response import CurrentModeResponse, ModeResponse
from haroo.models.domain.connection_domain import Connection
from haroo.services.connection_service import ConnectionService

router = APIRouter(prefix="/modes", tags=["modes"])


def to_mode_response(connection: Connection) -> ModeResponse:
    return ModeResponse(
        id=connection.id,
        status=connection.status,
        duration_days=connection.duration_days,
        initiator_id=connection.initiator_id,
        recipient_id=connection.recipient_id,
        start_date=connection.start_date,
        end_date=connection.end_date,
        requested_at=connection.requested_at,
        expires_at=connection.expires_at,
    )


@router.post("/request", response_model=ModeResponse, status_code=status.HTTP_201_CREATED)
async def request_mode(
    body: ModeRequestBody,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: ConnectionService = Depends(get_connection_service),
):
    connection = await service.request(principal.user_id, body.recipient_id, body.duration_days)
    return to_mode_response(connection)


@router.post("/{mode_id}/accept", response_model=ModeResponse)
async def accept_mode(
    mode_id: str,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: ConnectionService = Depends(get_connection_service),
):
    return to_mode_response(await service.accept(mode_id, principal.user_id))


@router.post("/{mode_id}/reject", response_model=ModeResponse)
async def reject_mode(
    mode_id: str,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: ConnectionService = Depends(get_connection_service),
):
    return to_mode_response(await service.reject(mode_id, principal.user_id))


@router.post("/{mode_id}/block", response_model=ModeResponse)
async def block_mode(
    mode_id: str,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: ConnectionService = Depends(get_connection_service),
):
    return to_mode_response(await service.block(mode_id, principal.user_id))


@router.post("/{mode_id}/cancel", response_model=ModeResponse)
async def cancel_mode(
    mode_id: str,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: ConnectionService = Depends(get_connection_service),
):
    return to_mode_response(await service.cancel(mode_id, principal.user_id))


@router.get("/current", response_model=CurrentModeResponse)
async def current_mode(
    principal: Principal = Depends(auth_dependency),
    service: ConnectionService = Depends(get_connection_service),
):
    return CurrentModeResponse(mode=await service.get_current(principal.user_id))
