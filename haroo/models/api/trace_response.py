# haroo/models/api/trace_response.py
from datetime import datetime

from pydantic import BaseModel

from haroo.models.domain.trace_domain import GridCell, TraceView, WritePermission


class PermissionResponse(BaseModel):
    write_permission: WritePermission
    next_available_at: datetime | None = None
    trace_pass_expires_at: datetime | None = None


class TraceListResponse(BaseModel):
    traces: list[TraceView]
    grid: GridCell
    grid_status: str
    page: int
    page_size: int
    count: int


class LikeResponse(BaseModel):
    like_status: str
    like_count: int


class ReportResponse(BaseModel):
    report_status: str = "REPORTED"


class MockPaymentResponse(BaseModel):
    success: bool = True
    tier: str
    trace_pass_expires_at: datetime
    write_permission: WritePermission
