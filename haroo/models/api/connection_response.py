# haroo/models/api/connection_response.py
from datetime import datetime

from pydantic import BaseModel

from haroo.models.domain.connection_domain import ConnectionStatus, ConnectionView


class ModeResponse(BaseModel):
    id: str
    status: ConnectionStatus
    duration_days: int
    initiator_id: str
    recipient_id: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    requested_at: datetime | None = None
    expires_at: datetime | None = None


class CurrentModeResponse(BaseModel):
    """GET /modes/current; `mode` is null when the user has no live mode."""

    mode: ConnectionView | None = None


class PurchaseVerifyResponse(BaseModel):
    success: bool = True
    mode_id: str
    status: ConnectionStatus
    message: str = "Purchase verified and mode created"
