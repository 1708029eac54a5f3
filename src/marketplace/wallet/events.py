"""Domain events for the SellerWallet aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="SellerWallet")
class WalletBalanceChanged:
    """Any movement between wallet buckets."""

    __version__ = 1

    seller_id = Identifier(required=True)
    movement = String(required=True)
    amount = Float(required=True)
    pending_balance = Float(required=True)
    available_balance = Float(required=True)
    reference = String()
    changed_at = DateTime(required=True)
