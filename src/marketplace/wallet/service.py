"""Wallet lookup shared by reconciliation, delivery and payout handlers."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.config import get_settings
from marketplace.wallet.wallet import SellerWallet


def wallet_for(seller_id) -> SellerWallet:
    """Load the seller's wallet, opening an empty one on first use."""
    try:
        return current_domain.repository_for(SellerWallet).get(str(seller_id))
    except ObjectNotFoundError:
        return SellerWallet.open(seller_id, currency=get_settings().currency)
