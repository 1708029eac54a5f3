"""Suborder aggregate (CQRS) — one seller's share of a marketplace order.

A suborder carries its own fulfillment status (progressed by the seller),
the seller payment status (whether the seller's earnings are still
pending, held, released or refunded) and the buyer's delivery status.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text

from marketplace.charges.calculator import round_money
from marketplace.domain import marketplace
from marketplace.suborder.events import (
    SellerPaymentStatusChanged,
    SuborderCancelled,
    SuborderCreated,
    SuborderDeliveryConfirmed,
    SuborderDeliveryDisputed,
    SuborderStatusChanged,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SuborderStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    PACKED = "Packed"
    DISPATCHED = "Dispatched"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class SellerPaymentStatus(Enum):
    PENDING = "Pending"
    HELD = "Held"
    RELEASED = "Released"
    REFUNDED = "Refunded"


class DeliveryStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    DISPUTED = "Disputed"


_VALID_TRANSITIONS = {
    SuborderStatus.PENDING: {SuborderStatus.PROCESSING, SuborderStatus.CANCELLED},
    SuborderStatus.PROCESSING: {SuborderStatus.PACKED, SuborderStatus.CANCELLED},
    SuborderStatus.PACKED: {SuborderStatus.DISPATCHED, SuborderStatus.CANCELLED},
    SuborderStatus.DISPATCHED: {SuborderStatus.DELIVERED, SuborderStatus.CANCELLED},
    SuborderStatus.DELIVERED: set(),  # terminal
    SuborderStatus.CANCELLED: set(),  # terminal
}

_PAYMENT_TRANSITIONS = {
    SellerPaymentStatus.PENDING: {SellerPaymentStatus.HELD},
    SellerPaymentStatus.HELD: {SellerPaymentStatus.RELEASED, SellerPaymentStatus.REFUNDED},
    SellerPaymentStatus.RELEASED: set(),
    SellerPaymentStatus.REFUNDED: set(),
}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Suborder")
class SuborderItem:
    product_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    product_name = String(max_length=255)
    variant_label = String(max_length=255)
    color = String(max_length=100)
    size = String(max_length=50)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    subtotal = Float(required=True, min_value=0.0)

    @property
    def description(self):
        return f"{self.product_name} ({self.variant_label})" if self.variant_label else self.product_name


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Suborder:
    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    items = HasMany(SuborderItem)
    shipping_address = Text()  # JSON snapshot of the order's address
    shipping_fee = Float(default=0.0)
    subtotal = Float(default=0.0)
    final_total = Float(default=0.0)
    seller_charges = Text()  # JSON breakdown, informational
    seller_charges_total = Float(default=0.0)
    status = String(choices=SuborderStatus, default=SuborderStatus.PENDING.value)
    seller_payment_status = String(choices=SellerPaymentStatus, default=SellerPaymentStatus.PENDING.value)
    delivery_status = String(choices=DeliveryStatus, default=DeliveryStatus.PENDING.value)
    delivery_confirmed = Boolean(default=False)
    delivery_confirmed_at = DateTime()
    seller_marked_delivered_at = DateTime()
    tracking_number = String(max_length=255)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def final_total_must_cover_items_and_shipping(self):
        expected = round_money((self.subtotal or 0.0) + (self.shipping_fee or 0.0))
        if abs((self.final_total or 0.0) - expected) > 0.01:
            raise ValidationError({"final_total": ["Suborder total must equal subtotal plus shipping"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id: str,
        seller_id: str,
        buyer_id: str,
        items_data: list[dict],
        shipping_fee: float,
        shipping_address: dict | None = None,
        seller_charges: list[dict] | None = None,
        seller_charges_total: float = 0.0,
    ):
        """Create the suborder for one seller's lines of an order."""
        if not items_data:
            raise ValidationError({"items": ["A suborder needs at least one item"]})

        now = datetime.now(UTC)
        subtotal = round_money(sum(item["subtotal"] for item in items_data))
        suborder = cls(
            order_id=order_id,
            seller_id=seller_id,
            buyer_id=buyer_id,
            shipping_address=json.dumps(shipping_address or {}),
            shipping_fee=round_money(shipping_fee),
            subtotal=subtotal,
            final_total=round_money(subtotal + shipping_fee),
            seller_charges=json.dumps(seller_charges or []),
            seller_charges_total=seller_charges_total,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            suborder.add_items(SuborderItem(**item_data))

        suborder.raise_(
            SuborderCreated(
                suborder_id=str(suborder.id),
                order_id=str(order_id),
                seller_id=str(seller_id),
                buyer_id=str(buyer_id),
                item_count=len(items_data),
                subtotal=suborder.subtotal,
                shipping_fee=suborder.shipping_fee,
                final_total=suborder.final_total,
                created_at=now,
            )
        )
        return suborder

    @property
    def is_active(self) -> bool:
        return self.status != SuborderStatus.CANCELLED.value

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: SuborderStatus) -> None:
        current = SuborderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _change_seller_payment_status(self, target: SellerPaymentStatus) -> bool:
        current = SellerPaymentStatus(self.seller_payment_status)
        if current == target:
            return False
        if target not in _PAYMENT_TRANSITIONS[current]:
            raise ValidationError(
                {"seller_payment_status": [f"Cannot move seller payment from {current.value} to {target.value}"]}
            )

        now = datetime.now(UTC)
        self.seller_payment_status = target.value
        self.updated_at = now
        self.raise_(
            SellerPaymentStatusChanged(
                suborder_id=str(self.id),
                seller_id=str(self.seller_id),
                previous_status=current.value,
                new_status=target.value,
                amount=self.subtotal,
                changed_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Seller progression
    # -------------------------------------------------------------------
    def advance(self, target_status: SuborderStatus, tracking_number: str | None = None) -> None:
        """Move the suborder forward on the seller's behalf."""
        if target_status == SuborderStatus.CANCELLED:
            raise ValidationError({"status": ["Use cancel() to cancel a suborder"]})
        self._assert_can_transition(target_status)

        now = datetime.now(UTC)
        previous = self.status
        self.status = target_status.value
        if tracking_number:
            self.tracking_number = tracking_number
        if target_status == SuborderStatus.DELIVERED:
            self.seller_marked_delivered_at = now
        self.updated_at = now

        self.raise_(
            SuborderStatusChanged(
                suborder_id=str(self.id),
                order_id=str(self.order_id),
                previous_status=previous,
                new_status=target_status.value,
                tracking_number=self.tracking_number,
                changed_at=now,
            )
        )

    def cancel(self, reason: str | None = None, cancelled_by: str | None = None) -> bool:
        """Cancel the suborder. Returns False if it was already cancelled."""
        if SuborderStatus(self.status) == SuborderStatus.CANCELLED:
            return False
        self._assert_can_transition(SuborderStatus.CANCELLED)

        now = datetime.now(UTC)
        self.status = SuborderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.updated_at = now
        self.raise_(
            SuborderCancelled(
                suborder_id=str(self.id),
                order_id=str(self.order_id),
                seller_id=str(self.seller_id),
                reason=reason,
                cancelled_by=cancelled_by,
                cancelled_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Seller payment
    # -------------------------------------------------------------------
    def hold_seller_payment(self) -> bool:
        return self._change_seller_payment_status(SellerPaymentStatus.HELD)

    def release_seller_payment(self) -> bool:
        return self._change_seller_payment_status(SellerPaymentStatus.RELEASED)

    def refund_seller_payment(self) -> bool:
        return self._change_seller_payment_status(SellerPaymentStatus.REFUNDED)

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def confirm_delivery(self, auto_confirmed: bool = False) -> bool:
        """Record that the buyer received the goods.

        Promotes the suborder to Delivered when the seller had not marked
        it yet. Returns False if delivery was already confirmed.
        """
        if DeliveryStatus(self.delivery_status) == DeliveryStatus.CONFIRMED:
            return False
        if not self.is_active:
            raise ValidationError({"status": ["Cannot confirm delivery of a cancelled suborder"]})

        now = datetime.now(UTC)
        self.delivery_status = DeliveryStatus.CONFIRMED.value
        self.delivery_confirmed = True
        self.delivery_confirmed_at = now
        if self.status != SuborderStatus.DELIVERED.value:
            self.status = SuborderStatus.DELIVERED.value
        self.updated_at = now

        self.raise_(
            SuborderDeliveryConfirmed(
                suborder_id=str(self.id),
                order_id=str(self.order_id),
                seller_id=str(self.seller_id),
                auto_confirmed=auto_confirmed,
                confirmed_at=now,
            )
        )
        return True

    def dispute_delivery(self, reason: str | None = None) -> None:
        """The buyer says the goods never arrived."""
        if not self.is_active:
            raise ValidationError({"status": ["Cannot dispute delivery of a cancelled suborder"]})
        if DeliveryStatus(self.delivery_status) != DeliveryStatus.PENDING:
            raise ValidationError({"delivery_status": [f"Delivery is already {self.delivery_status}"]})

        now = datetime.now(UTC)
        self.delivery_status = DeliveryStatus.DISPUTED.value
        self.updated_at = now
        self.raise_(
            SuborderDeliveryDisputed(
                suborder_id=str(self.id),
                order_id=str(self.order_id),
                seller_id=str(self.seller_id),
                buyer_id=str(self.buyer_id),
                reason=reason,
                disputed_at=now,
            )
        )
