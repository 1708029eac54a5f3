"""Domain events for the Suborder aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Suborder")
class SuborderCreated:
    __version__ = 1

    suborder_id = Identifier(required=True)
    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    shipping_fee = Float(required=True)
    final_total = Float(required=True)
    created_at = DateTime(required=True)


@marketplace.event(part_of="Suborder")
class SuborderStatusChanged:
    __version__ = 1

    suborder_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    tracking_number = String()
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Suborder")
class SuborderCancelled:
    __version__ = 1

    suborder_id = Identifier(required=True)
    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    reason = String()
    cancelled_by = String()
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Suborder")
class SellerPaymentStatusChanged:
    __version__ = 1

    suborder_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    amount = Float(required=True)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Suborder")
class SuborderDeliveryConfirmed:
    __version__ = 1

    suborder_id = Identifier(required=True)
    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    auto_confirmed = Boolean(default=False)
    confirmed_at = DateTime(required=True)


@marketplace.event(part_of="Suborder")
class SuborderDeliveryDisputed:
    __version__ = 1

    suborder_id = Identifier(required=True)
    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    reason = String()
    disputed_at = DateTime(required=True)
