"""
traces.py
---------
Purpose:
    Trace endpoints: write permission, writing, nearby listing, likes,
    reports, author deletion and the mock pass purchase.

Usage:
    1. GET /traces/permission - Current write permission
    2. POST /traces - Write a trace at the caller's location
    3. GET /traces?lat=..&lng=.. - Traces in the caller's grid cell
    4. POST|DELETE /traces/{id}/like - Idempotent like / unlike
    5. POST /traces/{id}/report - Report once per trace
    6. DELETE /traces/{id} - Author soft delete
    7. POST /traces/payment/mock - Grant a pass without a store purchase
"""

from fastapi import APIRouter, Depends, Query, status

from haroo.auth.verify import Principal, auth_dependency
from haroo.dependencies import get_trace_service, get_user_service
from haroo.middleware.rate_limit_dependencies import rate_limit_user_only
from haroo.models.api.trace_request import MockPaymentRequest, ReportTraceRequest, WriteTraceRequest
from haroo.models.api.trace_response import (
    LikeResponse,
    MockPaymentResponse,
    PermissionResponse,
    ReportResponse,
    TraceListResponse,
)
from haroo.models.domain.trace_domain import TraceView
from haroo.services.trace_service import DEFAULT_PAGE_SIZE, TraceService
from haroo.services.user_service import UserService

router = APIRouter(prefix="/traces", tags=["traces"])


@router.get("/permission", response_model=PermissionResponse)
async def write_permission(
    principal: Principal = Depends(auth_dependency),
    users: UserService = Depends(get_user_service),
):
    user_status = await users.get_my_status(principal.user_id)
    return PermissionResponse(
        write_permission=user_status.permission.state,
        next_available_at=user_status.permission.next_available_at,
        trace_pass_expires_at=user_status.user.trace_pass_expires_at,
    )


@router.post("/payment/mock", response_model=MockPaymentResponse)
async def mock_payment(
    body: MockPaymentRequest,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: TraceService = Depends(get_trace_service),
):
    user = await service.mock_payment(principal.user_id, body.tier)
    permission = await service.resolve_permission(principal.user_id)
    return MockPaymentResponse(
        tier=body.tier,
        trace_pass_expires_at=user.trace_pass_expires_at,
        write_permission=permission.state,
    )


@router.post("", response_model=TraceView, status_code=status.HTTP_201_CREATED)
async def write_trace(
    body: WriteTraceRequest,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: TraceService = Depends(get_trace_service),
):
    trace = await service.write(principal.user_id, body.content, body.tone_tag, body.lat, body.lng)
    return TraceView.build(trace, principal.user_id, is_liked=False)


@router.get("", response_model=TraceListResponse)
async def list_traces(
    lat: float = Query(...),
    lng: float = Query(...),
    page: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    principal: Principal = Depends(auth_dependency),
    service: TraceService = Depends(get_trace_service),
):
    result = await service.list_nearby(principal.user_id, lat, lng, page=page, page_size=page_size)
    return TraceListResponse(
        traces=result.traces,
        grid=result.grid,
        grid_status=result.grid_status,
        page=result.page,
        page_size=result.page_size,
        count=result.count,
    )


@router.get("/{trace_id}", response_model=TraceView)
async def get_trace(
    trace_id: str,
    principal: Principal = Depends(auth_dependency),
    service: TraceService = Depends(get_trace_service),
):
    return await service.get(trace_id, principal.user_id)


@router.post("/{trace_id}/like", response_model=LikeResponse)
async def like_trace(
    trace_id: str,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: TraceService = Depends(get_trace_service),
):
    count = await service.like(trace_id, principal.user_id)
    return LikeResponse(like_status="LIKED", like_count=count)


@router.delete("/{trace_id}/like", response_model=LikeResponse)
async def unlike_trace(
    trace_id: str,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: TraceService = Depends(get_trace_service),
):
    count = await service.unlike(trace_id, principal.user_id)
    return LikeResponse(like_status="NOT_LIKED", like_count=count)


@router.post("/{trace_id}/report", response_model=ReportResponse)
async def report_trace(
    trace_id: str,
    body: ReportTraceRequest,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: TraceService = Depends(get_trace_service),
):
    await service.report(trace_id, principal.user_id, body.reason)
    return ReportResponse()


@router.delete("/{trace_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trace(
    trace_id: str,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: TraceService = Depends(get_trace_service),
):
    await service.delete(trace_id, principal.user_id)
