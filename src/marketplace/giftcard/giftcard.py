"""GiftCard aggregate (CQRS) — prepaid balance redeemable across orders.

The card's identity is its normalised (upper case) code.
"""

import secrets
import string
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, String

from marketplace.charges.calculator import round_money
from marketplace.domain import marketplace
from marketplace.errors import GiftCardExpiredError, GiftCardNotActiveError, GiftCardZeroBalanceError
from marketplace.giftcard.events import GiftCardExpired, GiftCardIssued, GiftCardRedeemed, GiftCardRefunded

CODE_PREFIX = "GC"
_CODE_ALPHABET = string.ascii_uppercase + string.digits


class GiftCardStatus(Enum):
    ACTIVE = "Active"
    EXPIRED = "Expired"
    FULLY_REDEEMED = "FullyRedeemed"
    CANCELLED = "Cancelled"


class RedemptionKind(Enum):
    DEBIT = "Debit"
    REFUND = "Refund"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def generate_code() -> str:
    """Random code in the form GC-XXXX-XXXX-XXXX."""
    groups = ["".join(secrets.choice(_CODE_ALPHABET) for _ in range(4)) for _ in range(3)]
    return "-".join([CODE_PREFIX, *groups])


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


@marketplace.entity(part_of="GiftCard")
class GiftCardRedemption:
    order_id = Identifier(required=True)
    kind = String(choices=RedemptionKind, default=RedemptionKind.DEBIT.value)
    amount = Float(required=True, min_value=0.0)
    balance_after = Float(required=True, min_value=0.0)
    recorded_at = DateTime(required=True)


@marketplace.aggregate
class GiftCard:
    code = String(required=True, max_length=32)
    initial_amount = Float(required=True, min_value=0.0)
    balance = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="LKR")
    status = String(choices=GiftCardStatus, default=GiftCardStatus.ACTIVE.value)
    purchased_by = Identifier()
    recipient_email = String(max_length=254)
    redeemed_by = Identifier()
    redemptions = HasMany(GiftCardRedemption)
    expires_at = DateTime(required=True)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def balance_cannot_exceed_initial_amount(self):
        if (self.balance or 0.0) > (self.initial_amount or 0.0) + 1e-9:
            raise ValidationError({"balance": ["Gift card balance cannot exceed its initial amount"]})

    @classmethod
    def issue(cls, amount, code=None, purchased_by=None, recipient_email=None, currency="LKR", expiry_days=365):
        now = datetime.now(UTC)
        code = normalize_code(code or generate_code())
        card = cls(
            id=code,
            code=code,
            initial_amount=round_money(amount),
            balance=round_money(amount),
            currency=currency,
            purchased_by=purchased_by,
            recipient_email=recipient_email,
            expires_at=now + timedelta(days=expiry_days),
            created_at=now,
            updated_at=now,
        )
        card.raise_(
            GiftCardIssued(
                code=code,
                amount=card.initial_amount,
                purchased_by=purchased_by,
                expires_at=card.expires_at,
                issued_at=now,
            )
        )
        return card

    def is_past_expiry(self, as_of: datetime | None = None) -> bool:
        as_of = as_of or datetime.now(UTC)
        return _as_utc(self.expires_at) < _as_utc(as_of)

    def expire(self) -> None:
        now = datetime.now(UTC)
        self.status = GiftCardStatus.EXPIRED.value
        self.updated_at = now
        self.raise_(GiftCardExpired(code=self.code, remaining_balance=self.balance, expired_at=now))

    def assert_redeemable(self, as_of: datetime | None = None) -> None:
        """Raise the matching InvalidGiftCardError if the card cannot pay.

        An active card found past its expiry date is flipped to Expired
        first; the caller decides whether to persist that.
        """
        if self.is_past_expiry(as_of):
            if self.status == GiftCardStatus.ACTIVE.value:
                self.expire()
            raise GiftCardExpiredError({"gift_card": ["Gift card has expired"]})
        if self.status != GiftCardStatus.ACTIVE.value:
            raise GiftCardNotActiveError({"gift_card": [f"Gift card is {self.status}"]})
        if (self.balance or 0.0) <= 0:
            raise GiftCardZeroBalanceError({"gift_card": ["Gift card has no remaining balance"]})

    def redeem(self, order_id, owed, redeemed_by=None) -> float:
        """Debit ``min(balance, owed)`` for an order. Returns the amount applied."""
        self.assert_redeemable()
        applied = round_money(min(self.balance, owed))
        if applied <= 0:
            return 0.0

        now = datetime.now(UTC)
        self.balance = round_money(self.balance - applied)
        if self.balance <= 0:
            self.status = GiftCardStatus.FULLY_REDEEMED.value
        if redeemed_by:
            self.redeemed_by = redeemed_by
        self.add_redemptions(
            GiftCardRedemption(
                order_id=order_id,
                kind=RedemptionKind.DEBIT.value,
                amount=applied,
                balance_after=self.balance,
                recorded_at=now,
            )
        )
        self.updated_at = now
        self.raise_(
            GiftCardRedeemed(
                code=self.code,
                order_id=str(order_id),
                amount=applied,
                remaining_balance=self.balance,
                status=self.status,
                redeemed_at=now,
            )
        )
        return applied

    def refund(self, order_id, amount) -> float:
        """Give back an amount debited for a cancelled order."""
        if amount is None or amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be positive"]})
        if self.status not in (GiftCardStatus.ACTIVE.value, GiftCardStatus.FULLY_REDEEMED.value):
            raise GiftCardNotActiveError({"gift_card": [f"Cannot refund a {self.status} gift card"]})

        now = datetime.now(UTC)
        refunded = round_money(min(amount, self.initial_amount - self.balance))
        self.balance = round_money(self.balance + refunded)
        self.status = GiftCardStatus.ACTIVE.value
        self.add_redemptions(
            GiftCardRedemption(
                order_id=order_id,
                kind=RedemptionKind.REFUND.value,
                amount=refunded,
                balance_after=self.balance,
                recorded_at=now,
            )
        )
        self.updated_at = now
        self.raise_(
            GiftCardRefunded(
                code=self.code,
                order_id=str(order_id),
                amount=refunded,
                remaining_balance=self.balance,
                refunded_at=now,
            )
        )
        return refunded
