"""Domain events for the GiftCard aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="GiftCard")
class GiftCardIssued:
    __version__ = 1

    code = String(required=True)
    amount = Float(required=True)
    purchased_by = Identifier()
    expires_at = DateTime(required=True)
    issued_at = DateTime(required=True)


@marketplace.event(part_of="GiftCard")
class GiftCardRedeemed:
    __version__ = 1

    code = String(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    remaining_balance = Float(required=True)
    status = String(required=True)
    redeemed_at = DateTime(required=True)


@marketplace.event(part_of="GiftCard")
class GiftCardRefunded:
    __version__ = 1

    code = String(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    remaining_balance = Float(required=True)
    refunded_at = DateTime(required=True)


@marketplace.event(part_of="GiftCard")
class GiftCardExpired:
    __version__ = 1

    code = String(required=True)
    remaining_balance = Float(required=True)
    expired_at = DateTime(required=True)
