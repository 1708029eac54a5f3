"""Payout aggregate (CQRS) — a seller's withdrawal request.

Pending → Approved → Paid, or Pending → Rejected | Cancelled. The
requested amount is reserved from the wallet when the request is made.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text

from marketplace.charges.calculator import round_money
from marketplace.domain import marketplace
from marketplace.payout.events import PayoutPaid, PayoutRequested, PayoutStatusChanged


class PayoutStatus(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    PAID = "Paid"
    REJECTED = "Rejected"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class PayoutMethod(Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    PAYHERE_PAYOUT = "PAYHERE_PAYOUT"


_VALID_TRANSITIONS = {
    PayoutStatus.PENDING: {PayoutStatus.APPROVED, PayoutStatus.REJECTED, PayoutStatus.CANCELLED},
    PayoutStatus.APPROVED: {PayoutStatus.PAID, PayoutStatus.FAILED},
    PayoutStatus.PAID: set(),
    PayoutStatus.REJECTED: set(),
    PayoutStatus.FAILED: set(),
    PayoutStatus.CANCELLED: set(),
}


@marketplace.aggregate
class Payout:
    seller_id = Identifier(required=True)
    amount_requested = Float(required=True, min_value=0.0)
    amount_paid = Float()
    currency = String(max_length=3, default="LKR")
    method = String(choices=PayoutMethod, default=PayoutMethod.BANK_TRANSFER.value)
    status = String(choices=PayoutStatus, default=PayoutStatus.PENDING.value)
    bank_details = Text()  # JSON snapshot taken at request time
    admin_note = String(max_length=1000)
    receipt_urls = Text()  # JSON list
    requested_at = DateTime()
    approved_at = DateTime()
    rejected_at = DateTime()
    cancelled_at = DateTime()
    paid_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def request(cls, seller_id, amount, method, bank_details: dict, currency="LKR"):
        now = datetime.now(UTC)
        payout = cls(
            seller_id=seller_id,
            amount_requested=round_money(amount),
            currency=currency,
            method=method,
            bank_details=json.dumps(bank_details),
            receipt_urls=json.dumps([]),
            requested_at=now,
            updated_at=now,
        )
        payout.raise_(
            PayoutRequested(
                payout_id=str(payout.id),
                seller_id=str(seller_id),
                amount=payout.amount_requested,
                method=method,
                requested_at=now,
            )
        )
        return payout

    @property
    def counts_towards_daily_limit(self) -> bool:
        return self.status in (PayoutStatus.PENDING.value, PayoutStatus.APPROVED.value)

    def _transition(self, target: PayoutStatus, note=None) -> datetime:
        current = PayoutStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target.value}"]})

        now = datetime.now(UTC)
        self.status = target.value
        if note is not None:
            self.admin_note = note
        self.updated_at = now
        self.raise_(
            PayoutStatusChanged(
                payout_id=str(self.id),
                seller_id=str(self.seller_id),
                previous_status=current.value,
                new_status=target.value,
                note=note,
                changed_at=now,
            )
        )
        return now

    def approve(self, note=None):
        self.approved_at = self._transition(PayoutStatus.APPROVED, note)

    def reject(self, note=None):
        self.rejected_at = self._transition(PayoutStatus.REJECTED, note)

    def cancel(self, seller_id):
        if str(seller_id) != str(self.seller_id):
            raise ValidationError({"seller_id": ["Only the requesting seller can cancel this payout"]})
        self.cancelled_at = self._transition(PayoutStatus.CANCELLED, "Cancelled by seller")

    def mark_paid(self, amount_paid=None, receipt_urls=None, note=None) -> float:
        """Record the transfer. Returns the unpaid remainder still reserved."""
        amount_paid = self.amount_requested if amount_paid is None else round_money(amount_paid)
        if amount_paid <= 0 or amount_paid > self.amount_requested:
            raise ValidationError({"amount_paid": ["Paid amount must be positive and not exceed the requested amount"]})

        now = self._transition(PayoutStatus.PAID, note)
        self.amount_paid = amount_paid
        self.receipt_urls = json.dumps(list(receipt_urls or []))
        self.paid_at = now
        self.raise_(
            PayoutPaid(
                payout_id=str(self.id),
                seller_id=str(self.seller_id),
                amount_requested=self.amount_requested,
                amount_paid=amount_paid,
                paid_at=now,
            )
        )
        return round_money(self.amount_requested - amount_paid)
