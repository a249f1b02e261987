"""MercadoPago gateway client - Checkout preferences and payment lookups over httpx"""

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from ...config import (
    BACKEND_URL,
    FRONTEND_URL,
    GATEWAY_TIMEOUT_SECONDS,
    MERCADOPAGO_ACCESS_TOKEN,
    MERCADOPAGO_API_BASE,
    MERCADOPAGO_WEBHOOK_SECRET,
    PAYMENT_CURRENCY,
)
from ...shared.errors import NotFoundError, UpstreamTimeoutError
from ...webhook_security import verify_mercadopago_signature

logger = logging.getLogger(__name__)


class PaymentIntent(BaseModel):
    external_id: str  # Preference id
    redirect_url: str  # Checkout init point


class GatewayPayment(BaseModel):
    id: str
    status: str
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    metadata: dict[str, Any] = {}
    transaction_amount: Optional[float] = None


class MercadoPagoClient:
    """Service for MercadoPago API operations"""

    def __init__(
        self,
        access_token: Optional[str] = MERCADOPAGO_ACCESS_TOKEN,
        webhook_secret: Optional[str] = MERCADOPAGO_WEBHOOK_SECRET,
        base_url: str = MERCADOPAGO_API_BASE,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
    ):
        self.access_token = access_token
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        if not self.access_token:
            logger.warning(
                "MERCADOPAGO_ACCESS_TOKEN not set; checkout will fail until configured"
            )

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.access_token:
            raise UpstreamTimeoutError("Payment gateway not configured", upstream="mercadopago")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.access_token}"},
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"❌ MercadoPago {method} {path} timed out after {self.timeout}s")
            raise UpstreamTimeoutError("Payment gateway timed out", upstream="mercadopago") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ MercadoPago {method} {path} failed: {e}")
            raise UpstreamTimeoutError("Payment gateway unreachable", upstream="mercadopago") from e

        if response.status_code == 404:
            raise NotFoundError(f"MercadoPago resource not found: {path}")
        if response.status_code >= 400:
            logger.error(
                f"❌ MercadoPago {method} {path} returned {response.status_code}: {response.text[:200]}"
            )
            raise UpstreamTimeoutError(
                f"Payment gateway error ({response.status_code})", upstream="mercadopago"
            )
        return response.json()

    async def create_payment_intent(
        self,
        booking_ref: str,
        amount: int,
        title: str,
        metadata: Optional[dict] = None,
    ) -> PaymentIntent:
        """Create a checkout preference carrying booking_ref as external_reference"""
        body = {
            "items": [
                {
                    "title": title,
                    "quantity": 1,
                    "unit_price": amount,
                    "currency_id": PAYMENT_CURRENCY,
                }
            ],
            "external_reference": booking_ref,
            "metadata": {"booking_id": booking_ref, **(metadata or {})},
            "notification_url": f"{BACKEND_URL}/webhooks/mercadopago?booking_id={booking_ref}",
            "back_urls": {
                "success": f"{FRONTEND_URL}/reserva/exito?booking_id={booking_ref}",
                "failure": f"{FRONTEND_URL}/reserva/error?booking_id={booking_ref}",
                "pending": f"{FRONTEND_URL}/reserva/pendiente?booking_id={booking_ref}",
            },
            "auto_return": "approved",
        }
        data = await self._request("POST", "/checkout/preferences", json=body)
        logger.info(f"💳 MercadoPago preference {data.get('id')} created for booking {booking_ref}")
        return PaymentIntent(external_id=str(data["id"]), redirect_url=data["init_point"])

    async def get_payment(self, external_id: str) -> GatewayPayment:
        data = await self._request("GET", f"/v1/payments/{external_id}")
        return GatewayPayment(
            id=str(data.get("id", external_id)),
            status=data.get("status") or "unknown",
            status_detail=data.get("status_detail"),
            external_reference=data.get("external_reference"),
            metadata=data.get("metadata") or {},
            transaction_amount=data.get("transaction_amount"),
        )

    def verify_signature(
        self,
        signature_header: Optional[str],
        request_id: Optional[str],
        data_id: Optional[str],
        now: Optional[float] = None,
    ) -> bool:
        return verify_mercadopago_signature(
            signature_header, request_id, data_id, self.webhook_secret, now=now
        )


_gateway: Optional[MercadoPagoClient] = None


def get_payment_gateway() -> MercadoPagoClient:
    """FastAPI dependency; tests override it with an in-memory gateway"""
    global _gateway
    if _gateway is None:
        _gateway = MercadoPagoClient()
    return _gateway
