"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    __version__ = 1

    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    payment_method = String(required=True)
    items_subtotal = Float(required=True)
    shipping_total = Float(required=True)
    buyer_charges = Float(required=True)
    gift_card_discount = Float(required=True)
    final_total = Float(required=True)
    suborder_count = Integer(default=0)
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderPaid:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier()
    amount = Float(required=True)
    paid_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderPaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier()
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    reason = String()
    cancelled_by = String()
    payment_status = String(required=True)
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    delivered_at = DateTime(required=True)
