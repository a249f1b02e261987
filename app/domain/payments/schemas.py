"""Payment domain schemas - reservations and webhook events"""

from datetime import date, time
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from ..bookings.schemas import BookingResponse, ClientInfo


class SessionIn(BaseModel):
    date: date
    time: time
    extra_service_ids: list[int] = []


class ReservationRequest(BaseModel):
    barber_id: int
    service_id: int
    branch_id: Optional[int] = None
    client: ClientInfo
    sessions: list[SessionIn]
    deposit: bool = False

    @field_validator("sessions")
    @classmethod
    def validate_sessions(cls, v):
        if not v:
            raise ValueError("At least one session is required")
        return v


class ReservationResponse(BaseModel):
    bookings: list[BookingResponse]
    group_id: Optional[str] = None
    status: str
    redirect_url: str
    payment_record_id: int
    amount: int
    total_amount: int


class WebhookEvent(BaseModel):
    """Normalized webhook delivery; the raw parts signed by the gateway are kept as-is"""

    topic: Optional[str] = None
    payment_id: Optional[str] = None
    data_id: Optional[str] = None  # Value signed in x-signature
    correlation_id: Optional[str] = None
    signature: Optional[str] = None
    request_id: Optional[str] = None
    body: dict[str, Any] = {}

    @classmethod
    def from_request(cls, query: dict, headers: dict, body: dict) -> "WebhookEvent":
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        metadata = body.get("metadata") if isinstance(body.get("metadata"), dict) else {}

        payment_id = data.get("id") or query.get("data.id") or query.get("id")
        correlation_id = (
            query.get("booking_id")
            or metadata.get("booking_id")
            or body.get("external_reference")
        )
        data_id = query.get("data.id") or data.get("id")
        return cls(
            topic=body.get("type") or body.get("topic") or query.get("type") or query.get("topic"),
            payment_id=str(payment_id) if payment_id is not None else None,
            data_id=str(data_id) if data_id is not None else None,
            correlation_id=str(correlation_id) if correlation_id is not None else None,
            signature=headers.get("x-signature"),
            request_id=headers.get("x-request-id"),
            body=body,
        )


class WebhookAck(BaseModel):
    status: str
    payment_id: Optional[str] = None
    booking_ids: list[int] = []
    payment_status: Optional[str] = None
