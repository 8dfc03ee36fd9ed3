"""
billing.py
----------
Purpose:
    Store purchase verification that opens a paid message mode request.
"""

from fastapi import APIRouter, Depends, status

from haroo.auth.verify import Principal, auth_dependency
from haroo.dependencies import get_connection_service
from haroo.middleware.rate_limit_dependencies import rate_limit_user_only
from haroo.models.api.connection_request import PurchaseVerifyRequest
from haroo.models.api.connection_response import PurchaseVerifyResponse
from haroo.services.connection_service import ConnectionService

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post(
    "/verify", response_model=PurchaseVerifyResponse, status_code=status.HTTP_201_CREATED
)
async def verify_purchase(
    body: PurchaseVerifyRequest,
    principal: Principal = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_user_only),
    service: ConnectionService = Depends(get_connection_service),
):
    """
    Verify a purchase and create the PENDING mode it pays for.

    Raises:
        400: unknown product or duration mismatch
        402: purchase could not be verified
        403/404/409: the same checks as POST /modes/request
    """
    connection = await service.purchase(
        principal.user_id,
        body.recipient_id,
        body.product_id,
        body.purchase_token,
        duration_days=body.duration_days,
    )
    return PurchaseVerifyResponse(mode_id=connection.id, status=connection.status)
