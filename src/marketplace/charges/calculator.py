"""Platform Charge Calculator — fee breakdown for a subtotal and role.

A pure function of its inputs: the fee schedule comes in as an argument.
Shipping is never part of the fee base, it is only added to the final total.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from marketplace.config import FeeRole, FeeRule, FeeSchedule, FeeType

_CENT = Decimal("0.01")


def round_money(value: float) -> float:
    """Round half-up to two decimals."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ChargeLine:
    name: str
    amount: float
    description: str
    type: str
    value: float


@dataclass(frozen=True)
class ChargeSummary:
    charges: dict = field(default_factory=dict)
    breakdown: tuple[ChargeLine, ...] = ()
    total_charges: float = 0.0
    subtotal: float = 0.0
    shipping_fee: float = 0.0
    final_total: float = 0.0

    def breakdown_as_dicts(self) -> list[dict]:
        return [
            {
                "name": line.name,
                "amount": line.amount,
                "description": line.description,
                "type": line.type,
                "value": line.value,
            }
            for line in self.breakdown
        ]


def _fee_amount(rule: FeeRule, subtotal: float) -> float:
    if rule.type == FeeType.PERCENTAGE:
        if rule.min is not None and subtotal < rule.min:
            return 0.0
        if rule.free_above is not None and subtotal >= rule.free_above:
            return 0.0
        amount = subtotal * rule.value
        if rule.max is not None:
            amount = min(amount, rule.max)
        return amount

    if rule.min is not None and subtotal < rule.min:
        return 0.0
    return rule.value


def calculate_platform_charges(
    subtotal: float,
    role: FeeRole,
    schedule: FeeSchedule,
    shipping_fee: float = 0.0,
) -> ChargeSummary:
    """Compute the fees owed by ``role`` on ``subtotal``.

    Percentage fees are waived below ``min`` and at or above ``free_above``
    and capped at ``max``; fixed fees are waived below ``min``. Zero fees
    are left out of the result.
    """
    charges = {}
    breakdown = []
    for rule in schedule.for_role(role):
        amount = round_money(_fee_amount(rule, subtotal))
        if amount <= 0:
            continue
        charges[rule.name] = amount
        breakdown.append(
            ChargeLine(
                name=rule.name,
                amount=amount,
                description=rule.description or rule.name.replace("_", " ").title(),
                type=rule.type.value,
                value=rule.value,
            )
        )

    total_charges = round_money(sum(charges.values()))
    return ChargeSummary(
        charges=charges,
        breakdown=tuple(breakdown),
        total_charges=total_charges,
        subtotal=round_money(subtotal),
        shipping_fee=round_money(shipping_fee),
        final_total=round_money(subtotal + shipping_fee + total_charges),
    )


def configured_fees(role: FeeRole, schedule: FeeSchedule) -> list[dict]:
    """Describe the fees that would apply to ``role``."""
    return [
        {
            "name": rule.name,
            "type": rule.type.value,
            "value": rule.value,
            "description": rule.description or rule.name.replace("_", " ").title(),
            "conditions": {"min": rule.min, "max": rule.max, "free_above": rule.free_above},
        }
        for rule in schedule.for_role(role)
    ]
