"""Marketplace business configuration.

Settings are loaded once from the environment into frozen dataclasses and
handed to the code that needs them. The Charge Calculator takes a
``FeeSchedule`` argument and never reaches for module state itself.
"""

import os
from dataclasses import dataclass, field
from enum import Enum


class FeeRole(Enum):
    BUYER = "buyer"
    SELLER = "seller"


class FeeType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class FeeRule:
    """One configured platform fee.

    ``value`` is a fraction for percentage fees (0.025 == 2.5 %) and an
    absolute amount for fixed fees.
    """

    name: str
    role: FeeRole
    type: FeeType
    value: float
    description: str | None = None
    min: float | None = None
    max: float | None = None
    free_above: float | None = None


@dataclass(frozen=True)
class FeeSchedule:
    rules: tuple[FeeRule, ...] = ()

    def for_role(self, role: FeeRole) -> tuple[FeeRule, ...]:
        return tuple(rule for rule in self.rules if rule.role == role)


DEFAULT_FEE_SCHEDULE = FeeSchedule(
    rules=(
        FeeRule(
            name="transaction_fee",
            role=FeeRole.BUYER,
            type=FeeType.PERCENTAGE,
            value=0.025,
            description="Payment processing fee",
        ),
        FeeRule(
            name="transaction_fee",
            role=FeeRole.SELLER,
            type=FeeType.PERCENTAGE,
            value=0.03,
            description="Payment processing fee",
        ),
        FeeRule(
            name="platform_fee",
            role=FeeRole.SELLER,
            type=FeeType.PERCENTAGE,
            value=0.01,
            description="Marketplace commission",
        ),
    )
)


@dataclass(frozen=True)
class MarketplaceSettings:
    currency: str = "LKR"
    default_shipping_fee: float = 100.0
    free_shipping_threshold: float | None = None
    max_gift_cards_per_order: int = 5
    auto_confirm_threshold_days: int = 7
    min_payout_amount: float = 500.0
    max_daily_payout_amount: float = 5000.0
    gift_card_min_amount: float = 500.0
    gift_card_max_amount: float = 50000.0
    gift_card_expiry_days: int = 365
    merchant_id: str = "1211149"
    merchant_secret: str = "sandbox-secret"
    fee_schedule: FeeSchedule = field(default_factory=lambda: DEFAULT_FEE_SCHEDULE)


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return int(raw)


def load_settings() -> MarketplaceSettings:
    """Build settings from defaults overridden by environment variables."""
    defaults = MarketplaceSettings()
    return MarketplaceSettings(
        currency=os.getenv("MARKETPLACE_CURRENCY", defaults.currency),
        default_shipping_fee=_env_float("MARKETPLACE_DEFAULT_SHIPPING_FEE", defaults.default_shipping_fee),
        free_shipping_threshold=_env_float("MARKETPLACE_FREE_SHIPPING_THRESHOLD", defaults.free_shipping_threshold),
        max_gift_cards_per_order=_env_int("MARKETPLACE_MAX_GIFT_CARDS", defaults.max_gift_cards_per_order),
        auto_confirm_threshold_days=_env_int(
            "AUTO_CONFIRM_DELIVERY_THRESHOLD_DAYS", defaults.auto_confirm_threshold_days
        ),
        min_payout_amount=_env_float("MARKETPLACE_MIN_PAYOUT", defaults.min_payout_amount),
        max_daily_payout_amount=_env_float("MARKETPLACE_MAX_DAILY_PAYOUT", defaults.max_daily_payout_amount),
        merchant_id=os.getenv("PAYHERE_MERCHANT_ID", defaults.merchant_id),
        merchant_secret=os.getenv("PAYHERE_MERCHANT_SECRET", defaults.merchant_secret),
    )


_current_settings: MarketplaceSettings | None = None


def get_settings() -> MarketplaceSettings:
    """Return the loaded settings, loading them on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = load_settings()
    return _current_settings


def use_settings(settings: MarketplaceSettings) -> None:
    """Replace the active settings wholesale (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    global _current_settings
    _current_settings = None
