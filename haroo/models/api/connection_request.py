# haroo/models/api/connection_request.py
from pydantic import BaseModel, Field


class ModeRequestBody(BaseModel):
    """Request body for asking a user to open a message mode."""

    recipient_id: str = Field(..., min_length=1)
    duration_days: int = Field(..., description="1 or 3")


class PurchaseVerifyRequest(BaseModel):
    """Store purchase that pays for a message mode request."""

    product_id: str = Field(..., min_length=1)
    purchase_token: str = Field(..., min_length=1)
    recipient_id: str = Field(..., min_length=1)
    duration_days: int | None = None
