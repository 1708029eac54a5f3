"""Payment aggregate (CQRS) — the payment record behind an order."""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace
from marketplace.order.order import PaymentMethod
from marketplace.payment.events import PaymentCreated, PaymentStatusChanged


class PaymentRecordStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    VOIDED = "Voided"


_VALID_TRANSITIONS = {
    PaymentRecordStatus.PENDING: {
        PaymentRecordStatus.PAID,
        PaymentRecordStatus.FAILED,
        PaymentRecordStatus.VOIDED,
    },
    PaymentRecordStatus.PAID: {PaymentRecordStatus.REFUNDED},
    PaymentRecordStatus.FAILED: set(),
    PaymentRecordStatus.REFUNDED: set(),
    PaymentRecordStatus.VOIDED: set(),
}


@marketplace.aggregate
class Payment:
    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    method = String(choices=PaymentMethod, required=True)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="LKR")
    status = String(choices=PaymentRecordStatus, default=PaymentRecordStatus.PENDING.value)
    external_reference = String(max_length=255)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, order_id, buyer_id, method, amount, currency="LKR"):
        now = datetime.now(UTC)
        payment = cls(
            order_id=order_id,
            buyer_id=buyer_id,
            method=method,
            amount=amount,
            currency=currency,
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentCreated(
                payment_id=str(payment.id),
                order_id=str(order_id),
                method=method,
                amount=amount,
                currency=currency,
                created_at=now,
            )
        )
        return payment

    def _transition(self, target: PaymentRecordStatus, external_reference=None) -> bool:
        current = PaymentRecordStatus(self.status)
        if current == target:
            return False
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target.value}"]})

        now = datetime.now(UTC)
        self.status = target.value
        if external_reference:
            self.external_reference = external_reference
        self.updated_at = now
        self.raise_(
            PaymentStatusChanged(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                previous_status=current.value,
                new_status=target.value,
                external_reference=self.external_reference,
                changed_at=now,
            )
        )
        return True

    def mark_paid(self, external_reference=None) -> bool:
        return self._transition(PaymentRecordStatus.PAID, external_reference)

    def mark_failed(self, external_reference=None) -> bool:
        return self._transition(PaymentRecordStatus.FAILED, external_reference)

    def mark_refunded(self) -> bool:
        return self._transition(PaymentRecordStatus.REFUNDED)

    def void(self) -> bool:
        return self._transition(PaymentRecordStatus.VOIDED)

    def record_reference(self, external_reference) -> None:
        if external_reference and external_reference != self.external_reference:
            self.external_reference = external_reference
            self.updated_at = datetime.now(UTC)
