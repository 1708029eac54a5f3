"""Order aggregate (CQRS) — the buyer-facing root of a marketplace checkout.

The order holds buyer-level money (platform charges, gift card discount,
final total) and references one suborder per seller. Totals always agree:

    sum(suborder.final_total) + buyer_charges - gift_card_discount == final_total

where ``sum(suborder.final_total)`` is ``items_subtotal + shipping_total``.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, String, Text, ValueObject

from marketplace.charges.calculator import round_money
from marketplace.domain import marketplace
from marketplace.order.events import OrderCancelled, OrderDelivered, OrderPaid, OrderPaymentFailed, OrderPlaced

MONEY_EPSILON = 0.01


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "Pending"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    VOIDED = "Voided"


class PaymentMethod(Enum):
    CASH_ON_DELIVERY = "CashOnDelivery"
    CARD = "Card"
    GIFT_CARD = "GiftCard"


class OrderSource(Enum):
    CART = "Cart"
    DIRECT_ITEM = "DirectItem"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class ShippingAddress:
    """Where the order ships, captured at checkout."""

    full_name = String(max_length=255)
    phone = String(max_length=30)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class AppliedGiftCard:
    """A gift card contribution planned at checkout.

    ``debited`` flips once the card's balance has actually been charged,
    which for card payments only happens after the payment succeeds.
    ``amount_debited`` is what the card really covered at that point; it is
    lower than ``amount_applied`` when the card was spent elsewhere or
    expired in between.
    """

    code = String(required=True, max_length=32)
    amount_applied = Float(required=True, min_value=0.0)
    amount_debited = Float(default=0.0, min_value=0.0)
    debited = Boolean(default=False)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    buyer_id = Identifier(required=True)
    source = String(choices=OrderSource, default=OrderSource.CART.value)
    payment_method = String(choices=PaymentMethod, required=True)
    shipping_address = ValueObject(ShippingAddress)
    currency = String(max_length=3, default="LKR")
    items_subtotal = Float(default=0.0)
    shipping_total = Float(default=0.0)
    buyer_charges = Float(default=0.0)
    buyer_charges_breakdown = Text()  # JSON list of charge lines
    gift_card_discount = Float(default=0.0)
    final_total = Float(default=0.0)
    applied_gift_cards = HasMany(AppliedGiftCard)
    gift_card_debits_applied = Boolean(default=False)
    sellers_notified = Boolean(default=False)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    suborder_ids = Text()  # JSON list, in seller processing order
    payment_id = Identifier()
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    paid_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def totals_must_balance(self):
        expected = round_money(
            (self.items_subtotal or 0.0)
            + (self.shipping_total or 0.0)
            + (self.buyer_charges or 0.0)
            - (self.gift_card_discount or 0.0)
        )
        if abs((self.final_total or 0.0) - expected) > MONEY_EPSILON:
            raise ValidationError({"final_total": ["Order total does not match its suborders, charges and discount"]})

    @invariant.post
    def discount_must_be_backed_by_gift_cards(self):
        applied = sum(card.amount_applied for card in self.applied_gift_cards or [])
        before_discount = (self.items_subtotal or 0.0) + (self.shipping_total or 0.0) + (self.buyer_charges or 0.0)
        if (self.gift_card_discount or 0.0) > applied + MONEY_EPSILON:
            raise ValidationError({"gift_card_discount": ["Discount exceeds the gift card amounts applied"]})
        if applied > before_discount + MONEY_EPSILON:
            raise ValidationError({"applied_gift_cards": ["Gift cards cannot cover more than the order total"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        buyer_id,
        payment_method: str,
        shipping_address: dict,
        items_subtotal: float,
        shipping_total: float,
        buyer_charges: float = 0.0,
        buyer_charges_breakdown: list[dict] | None = None,
        gift_card_plan: list[tuple[str, float]] | None = None,
        source: str = OrderSource.CART.value,
        currency: str = "LKR",
    ):
        """Create a Pending order.

        ``gift_card_plan`` lists ``(code, amount)`` contributions in the
        order they were applied.
        """
        now = datetime.now(UTC)
        before_discount = round_money(items_subtotal + shipping_total + buyer_charges)
        order = cls(
            buyer_id=buyer_id,
            source=source,
            payment_method=payment_method,
            shipping_address=ShippingAddress(**shipping_address),
            currency=currency,
            items_subtotal=round_money(items_subtotal),
            shipping_total=round_money(shipping_total),
            buyer_charges=round_money(buyer_charges),
            buyer_charges_breakdown=json.dumps(buyer_charges_breakdown or []),
            gift_card_discount=0.0,
            final_total=before_discount,
            suborder_ids=json.dumps([]),
            created_at=now,
            updated_at=now,
        )

        if gift_card_plan:
            with atomic_change(order):
                for code, amount in gift_card_plan:
                    order.add_applied_gift_cards(AppliedGiftCard(code=code, amount_applied=amount))
                discount = round_money(sum(amount for _, amount in gift_card_plan))
                order.gift_card_discount = discount
                order.final_total = round_money(before_discount - discount)

        return order

    def announce_placement(self) -> None:
        """Raise OrderPlaced once suborders are attached."""
        self.raise_(
            OrderPlaced(
                order_id=str(self.id),
                buyer_id=str(self.buyer_id),
                payment_method=self.payment_method,
                items_subtotal=self.items_subtotal,
                shipping_total=self.shipping_total,
                buyer_charges=self.buyer_charges,
                gift_card_discount=self.gift_card_discount,
                final_total=self.final_total,
                suborder_count=len(self.suborder_id_list),
                placed_at=self.created_at,
            )
        )

    # -------------------------------------------------------------------
    # References
    # -------------------------------------------------------------------
    @property
    def suborder_id_list(self) -> list[str]:
        return json.loads(self.suborder_ids) if self.suborder_ids else []

    def attach_suborders(self, suborder_ids) -> None:
        self.suborder_ids = json.dumps([str(sid) for sid in suborder_ids])
        self.updated_at = datetime.now(UTC)

    def attach_payment(self, payment_id) -> None:
        self.payment_id = str(payment_id)
        self.updated_at = datetime.now(UTC)

    @property
    def is_cash_on_delivery(self) -> bool:
        return self.payment_method == PaymentMethod.CASH_ON_DELIVERY.value

    @property
    def pending_gift_card_debits(self) -> list:
        return [card for card in self.applied_gift_cards or [] if not card.debited]

    def record_gift_card_debit(self, code, amount=None) -> None:
        """Mark a planned card as charged; ``amount`` defaults to the full plan."""
        for card in self.applied_gift_cards or []:
            if card.code == code:
                card.debited = True
                card.amount_debited = card.amount_applied if amount is None else round_money(amount)
        self.gift_card_debits_applied = all(card.debited for card in self.applied_gift_cards or [])
        self.updated_at = datetime.now(UTC)

    @property
    def gift_card_shortfall(self) -> float:
        """Planned gift card cover that could not be charged."""
        return round_money(
            sum(card.amount_applied - card.amount_debited for card in self.applied_gift_cards or [] if card.debited)
        )

    def mark_sellers_notified(self) -> None:
        self.sellers_notified = True
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Payment outcome
    # -------------------------------------------------------------------
    def mark_paid(self) -> bool:
        """Returns False when the order was already paid."""
        current = PaymentStatus(self.payment_status)
        if current == PaymentStatus.PAID:
            return False
        if current != PaymentStatus.PENDING or self.status == OrderStatus.CANCELLED.value:
            raise ValidationError({"payment_status": [f"Cannot mark a {current.value} order as paid"]})

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.paid_at = now
        self.updated_at = now
        self.raise_(OrderPaid(order_id=str(self.id), payment_id=self.payment_id, amount=self.final_total, paid_at=now))
        return True

    def mark_payment_failed(self) -> bool:
        """Fail the payment and cancel the order. Returns False if already failed."""
        current = PaymentStatus(self.payment_status)
        if current == PaymentStatus.FAILED:
            return False
        if current != PaymentStatus.PENDING:
            raise ValidationError({"payment_status": [f"Cannot fail a {current.value} payment"]})

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.FAILED.value
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = "Payment failed"
        self.cancelled_by = "System"
        self.updated_at = now
        self.raise_(OrderPaymentFailed(order_id=str(self.id), payment_id=self.payment_id, failed_at=now))
        return True

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def cancel(self, reason=None, cancelled_by=None) -> bool:
        if self.status == OrderStatus.CANCELLED.value:
            return False
        if self.status == OrderStatus.DELIVERED.value:
            raise ValidationError({"status": ["Cannot cancel a delivered order"]})

        now = datetime.now(UTC)
        if self.payment_status == PaymentStatus.PAID.value:
            self.payment_status = PaymentStatus.REFUNDED.value
        elif self.payment_status == PaymentStatus.PENDING.value:
            self.payment_status = PaymentStatus.VOIDED.value
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.updated_at = now
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                buyer_id=str(self.buyer_id),
                reason=reason,
                cancelled_by=cancelled_by,
                payment_status=self.payment_status,
                cancelled_at=now,
            )
        )
        return True

    def mark_delivered(self) -> bool:
        if self.status != OrderStatus.PENDING.value:
            return False
        now = datetime.now(UTC)
        self.status = OrderStatus.DELIVERED.value
        self.updated_at = now
        self.raise_(OrderDelivered(order_id=str(self.id), buyer_id=str(self.buyer_id), delivered_at=now))
        return True
