"""Booking status values and the transitions allowed between them"""

import enum
from typing import Optional

from ...shared.errors import ConflictError


class BookingStatus(str, enum.Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    BLOCKED = "BLOCKED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


# Statuses that occupy a slot
ACTIVE_STATUSES = (
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.CONFIRMED,
    BookingStatus.BLOCKED,
)
TERMINAL_STATUSES = (BookingStatus.CANCELLED, BookingStatus.EXPIRED)

# None stands for "no row": BLOCKED bookings are created and deleted directly
TRANSITIONS: dict[Optional[BookingStatus], frozenset] = {
    None: frozenset({BookingStatus.PENDING_PAYMENT, BookingStatus.BLOCKED}),
    BookingStatus.PENDING_PAYMENT: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.EXPIRED, BookingStatus.CANCELLED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.BLOCKED: frozenset({None}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.EXPIRED: frozenset(),
}


def can_transition(current: Optional[BookingStatus], target: Optional[BookingStatus]) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(
    current: Optional[BookingStatus], target: Optional[BookingStatus], booking_id=None
) -> None:
    """Raise ConflictError when the status change is not part of the lifecycle"""
    if not can_transition(current, target):
        source = current.value if current else "new"
        dest = target.value if target else "deleted"
        raise ConflictError(f"Booking {booking_id} cannot go from {source} to {dest}")


def active_status_values() -> list[str]:
    return [s.value for s in ACTIVE_STATUSES]
