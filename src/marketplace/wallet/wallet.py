"""SellerWallet aggregate (CQRS) — a seller's earnings ledger.

    pending    credited when a buyer's payment succeeds (held)
    available  released on delivery confirmation; payouts draw from here
    earned     lifetime amount released to available
    withdrawn  lifetime amount paid out

The wallet's identity is the seller id.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String

from marketplace.charges.calculator import round_money
from marketplace.domain import marketplace
from marketplace.errors import InsufficientBalanceError
from marketplace.wallet.events import WalletBalanceChanged


class WalletMovement(Enum):
    CREDIT_PENDING = "CreditPending"
    REVERSE_PENDING = "ReversePending"
    RELEASE_TO_AVAILABLE = "ReleaseToAvailable"
    RESERVE_FOR_PAYOUT = "ReserveForPayout"
    RETURN_TO_AVAILABLE = "ReturnToAvailable"
    COMPLETE_PAYOUT = "CompletePayout"


@marketplace.aggregate
class SellerWallet:
    seller_id = Identifier(required=True)
    currency = String(max_length=3, default="LKR")
    pending_balance = Float(default=0.0)
    available_balance = Float(default=0.0)
    total_earned = Float(default=0.0)
    total_withdrawn = Float(default=0.0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def balances_must_not_be_negative(self):
        if (self.pending_balance or 0.0) < 0:
            raise ValidationError({"pending_balance": ["Pending balance cannot be negative"]})
        if (self.available_balance or 0.0) < 0:
            raise ValidationError({"available_balance": ["Available balance cannot be negative"]})

    @classmethod
    def open(cls, seller_id, currency="LKR"):
        now = datetime.now(UTC)
        return cls(
            id=str(seller_id),
            seller_id=seller_id,
            currency=currency,
            created_at=now,
            updated_at=now,
        )

    def _record(self, movement: WalletMovement, amount: float, reference=None) -> None:
        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(
            WalletBalanceChanged(
                seller_id=str(self.seller_id),
                movement=movement.value,
                amount=amount,
                pending_balance=self.pending_balance,
                available_balance=self.available_balance,
                reference=reference,
                changed_at=now,
            )
        )

    @staticmethod
    def _positive(amount) -> float:
        if amount is None or amount <= 0:
            raise ValidationError({"amount": ["Amount must be positive"]})
        return round_money(amount)

    # -------------------------------------------------------------------
    # Earnings
    # -------------------------------------------------------------------
    def add_to_pending(self, amount, reference=None):
        amount = self._positive(amount)
        self.pending_balance = round_money(self.pending_balance + amount)
        self._record(WalletMovement.CREDIT_PENDING, amount, reference)

    def reverse_pending(self, amount, reference=None):
        """Take back a hold whose suborder was cancelled before delivery."""
        amount = self._positive(amount)
        if self.pending_balance + 1e-9 < amount:
            raise InsufficientBalanceError({"pending_balance": ["Insufficient pending balance"]})
        self.pending_balance = round_money(self.pending_balance - amount)
        self._record(WalletMovement.REVERSE_PENDING, amount, reference)

    def move_pending_to_available(self, amount, reference=None):
        amount = self._positive(amount)
        if self.pending_balance + 1e-9 < amount:
            raise InsufficientBalanceError({"pending_balance": ["Insufficient pending balance"]})
        self.pending_balance = round_money(self.pending_balance - amount)
        self.available_balance = round_money(self.available_balance + amount)
        self.total_earned = round_money(self.total_earned + amount)
        self._record(WalletMovement.RELEASE_TO_AVAILABLE, amount, reference)

    # -------------------------------------------------------------------
    # Payouts
    # -------------------------------------------------------------------
    def reserve_from_available(self, amount, reference=None):
        amount = self._positive(amount)
        if self.available_balance + 1e-9 < amount:
            raise InsufficientBalanceError({"available_balance": ["Insufficient available balance"]})
        self.available_balance = round_money(self.available_balance - amount)
        self._record(WalletMovement.RESERVE_FOR_PAYOUT, amount, reference)

    def return_to_available(self, amount, reference=None):
        amount = self._positive(amount)
        self.available_balance = round_money(self.available_balance + amount)
        self._record(WalletMovement.RETURN_TO_AVAILABLE, amount, reference)

    def complete_payout(self, amount, reference=None):
        amount = self._positive(amount)
        self.total_withdrawn = round_money(self.total_withdrawn + amount)
        self._record(WalletMovement.COMPLETE_PAYOUT, amount, reference)
