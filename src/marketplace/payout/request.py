"""Request a payout — command and handler.

The requested amount leaves the wallet's available balance immediately and
stays reserved until the payout is paid, rejected or cancelled.
"""

from dataclasses import asdict
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from marketplace.catalogue import get_catalogue
from marketplace.charges.calculator import round_money
from marketplace.config import get_settings
from marketplace.domain import marketplace
from marketplace.payout.payout import Payout, PayoutMethod
from marketplace.wallet.service import wallet_for
from marketplace.wallet.wallet import SellerWallet

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payout")
class RequestPayout:
    seller_id = Identifier(required=True)
    amount = Float(required=True)
    method = String(choices=PayoutMethod, default=PayoutMethod.BANK_TRANSFER.value)


def _as_utc(value):
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def requested_today(seller_id, as_of=None) -> float:
    """Sum of the seller's Pending and Approved requests made on the UTC day."""
    day = (as_of or datetime.now(UTC)).date()
    payouts = current_domain.repository_for(Payout)._dao.query.filter(seller_id=str(seller_id)).all().items
    return round_money(
        sum(
            payout.amount_requested
            for payout in payouts
            if payout.counts_towards_daily_limit
            and payout.requested_at
            and _as_utc(payout.requested_at).date() == day
        )
    )


@marketplace.command_handler(part_of=Payout)
class RequestPayoutHandler:
    @handle(RequestPayout)
    def request_payout(self, command):
        settings = get_settings()
        amount = round_money(command.amount or 0.0)

        if amount <= 0:
            raise ValidationError({"amount": ["Payout amount must be positive"]})
        if amount < settings.min_payout_amount:
            raise ValidationError({"amount": [f"Minimum payout amount is {settings.min_payout_amount:.2f}"]})

        already = requested_today(command.seller_id)
        if already + amount > settings.max_daily_payout_amount:
            raise ValidationError(
                {
                    "amount": [
                        f"Daily payout limit of {settings.max_daily_payout_amount:.2f} exceeded; "
                        f"{max(settings.max_daily_payout_amount - already, 0.0):.2f} remaining today"
                    ]
                }
            )

        seller = get_catalogue().get_seller(command.seller_id)
        if seller is None or seller.bank_details is None:
            raise ValidationError({"bank_details": ["Add bank details before requesting a payout"]})

        wallet = wallet_for(command.seller_id)
        payout = Payout.request(
            seller_id=command.seller_id,
            amount=amount,
            method=command.method or PayoutMethod.BANK_TRANSFER.value,
            bank_details=asdict(seller.bank_details),
            currency=wallet.currency,
        )
        wallet.reserve_from_available(amount, reference=str(payout.id))

        current_domain.repository_for(SellerWallet).add(wallet)
        current_domain.repository_for(Payout).add(payout)

        logger.info(
            "Payout requested",
            payout_id=str(payout.id),
            seller_id=command.seller_id,
            amount=amount,
            available_balance=wallet.available_balance,
        )
        return str(payout.id)
