"""Domain events for the Payment aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Payment")
class PaymentCreated:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    method = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    created_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentStatusChanged:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    external_reference = String()
    changed_at = DateTime(required=True)
