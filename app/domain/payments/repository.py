"""Payment repository - checkout records"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Payment


class PaymentRepository:
    """Repository for payment database operations"""

    @staticmethod
    def create(db: Session, **fields) -> Payment:
        payment = Payment(**fields)
        db.add(payment)
        db.commit()
        db.refresh(payment)
        return payment

    @staticmethod
    def get_latest_for_booking(db: Session, booking_id: int) -> Optional[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.booking_id == booking_id)
            .order_by(Payment.id.desc())
            .first()
        )

    @staticmethod
    def update_status(db: Session, payment: Payment, status: str, payment_id: Optional[str] = None) -> Payment:
        payment.status = status
        if payment_id is not None:
            payment.payment_id = payment_id
        db.commit()
        db.refresh(payment)
        return payment
