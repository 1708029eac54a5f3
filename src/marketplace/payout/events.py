"""Domain events for the Payout aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Payout")
class PayoutRequested:
    __version__ = 1

    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    amount = Float(required=True)
    method = String(required=True)
    requested_at = DateTime(required=True)


@marketplace.event(part_of="Payout")
class PayoutStatusChanged:
    __version__ = 1

    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    note = String()
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Payout")
class PayoutPaid:
    __version__ = 1

    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    amount_requested = Float(required=True)
    amount_paid = Float(required=True)
    paid_at = DateTime(required=True)
