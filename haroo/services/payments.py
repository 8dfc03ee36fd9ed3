"""
Purchase verification for paid message modes.

PaymentVerificationPort.verify(product_id, token, payer_id) answers whether
a store purchase is valid and how many days it buys. GooglePlayVerifier
asks the Android Publisher API; AlwaysValidVerifier is wired in TEST mode
where no store is available.
"""

from typing import Protocol
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from haroo.config import settings
from haroo.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Store product id -> days of message mode it buys
PRODUCT_DURATIONS: dict[str, int] = {
    "message_mode_1day": 1,
    "message_mode_3day": 3,
}

REQUEST_TIMEOUT = 10  # seconds

# purchaseState: 0 = purchased, 1 = canceled, 2 = pending
PURCHASED = 0


class VerificationResult(BaseModel):
    valid: bool
    duration_days: int = 0
    detail: str | None = None


class PaymentVerificationPort(Protocol):
    async def verify(self, product_id: str, token: str, payer_id: str) -> VerificationResult: ...


def duration_for_product(product_id: str) -> int | None:
    return PRODUCT_DURATIONS.get(product_id)


class AlwaysValidVerifier:
    """Accepts every known product without contacting a store."""

    async def verify(self, product_id: str, token: str, payer_id: str) -> VerificationResult:
        duration = duration_for_product(product_id)
        if duration is None:
            return VerificationResult(valid=False, detail="unknown_product")

        logger.info("TEST mode purchase accepted", product_id=product_id, payer_id=payer_id)
        return VerificationResult(valid=True, duration_days=duration)


class GooglePlayVerifier:
    """
    Verify one-time product purchases against Google Play.

    Any transport failure or unexpected response is reported as invalid;
    an inconclusive answer never creates a paid mode.
    """

    def __init__(
        self,
        package_name: str,
        access_token: str | None,
        api_base: str,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.package_name = package_name
        self.access_token = access_token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _purchase_url(self, product_id: str, token: str) -> str:
        return (
            f"{self.api_base}/applications/{quote(self.package_name)}"
            f"/purchases/products/{quote(product_id)}/tokens/{quote(token)}"
        )

    async def verify(self, product_id: str, token: str, payer_id: str) -> VerificationResult:
        duration = duration_for_product(product_id)
        if duration is None:
            return VerificationResult(valid=False, detail="unknown_product")

        if not self.access_token:
            logger.error("Google Play verification not configured", product_id=product_id)
            return VerificationResult(valid=False, detail="store_not_configured")

        headers = {"Authorization": f"Bearer {self.access_token}"}
        url = self._purchase_url(product_id, token)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers=headers)

                if response.status_code != 200:
                    logger.warning(
                        "Google Play purchase lookup failed",
                        product_id=product_id,
                        payer_id=payer_id,
                        status_code=response.status_code,
                    )
                    return VerificationResult(valid=False, detail="store_lookup_failed")

                purchase = response.json()
                if purchase.get("purchaseState") != PURCHASED:
                    logger.info(
                        "Purchase not in purchased state",
                        product_id=product_id,
                        payer_id=payer_id,
                        purchase_state=purchase.get("purchaseState"),
                    )
                    return VerificationResult(valid=False, detail="not_purchased")

                if not purchase.get("acknowledgementState"):
                    ack = await client.post(f"{url}:acknowledge", headers=headers, json={})
                    if ack.status_code >= 400:
                        # Google refunds unacknowledged purchases after three days
                        logger.warning(
                            "Purchase acknowledgement failed",
                            product_id=product_id,
                            status_code=ack.status_code,
                        )

        except (httpx.RequestError, ValueError) as e:
            logger.error(
                "Google Play verification error",
                product_id=product_id,
                payer_id=payer_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return VerificationResult(valid=False, detail="store_unreachable")

        logger.info("Purchase verified", product_id=product_id, payer_id=payer_id)
        return VerificationResult(valid=True, duration_days=duration)


def build_payment_verifier() -> PaymentVerificationPort:
    if settings.is_test_mode():
        logger.info("TEST mode - skipping Google Play verification")
        return AlwaysValidVerifier()

    return GooglePlayVerifier(
        package_name=settings.GOOGLE_PLAY_PACKAGE_NAME,
        access_token=settings.GOOGLE_PLAY_ACCESS_TOKEN,
        api_base=settings.GOOGLE_PLAY_API_BASE,
    )
