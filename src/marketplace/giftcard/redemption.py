"""Gift card validation and application used by checkout and reconciliation."""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.charges.calculator import round_money
from marketplace.errors import GiftCardNotFoundError, InvalidGiftCardError
from marketplace.giftcard.giftcard import GiftCard, normalize_code

logger = structlog.get_logger(__name__)


def find_gift_card(code) -> GiftCard:
    try:
        return current_domain.repository_for(GiftCard).get(normalize_code(code))
    except ObjectNotFoundError as exc:
        raise GiftCardNotFoundError({"gift_card": ["Invalid gift card code"]}) from exc


def validate_gift_card(code) -> GiftCard:
    """Return the card if it can pay now, else raise InvalidGiftCardError.

    An active card discovered past its expiry is persisted as Expired.
    """
    card = find_gift_card(code)
    try:
        card.assert_redeemable()
    except InvalidGiftCardError:
        if card._events:
            current_domain.repository_for(GiftCard).add(card)
        raise
    return card


def load_redeemable_cards(codes, limit: int) -> list[GiftCard]:
    """Validate every code up front, preserving input order."""
    normalized = [normalize_code(code) for code in codes or [] if normalize_code(code)]
    if len(normalized) > limit:
        raise ValidationError({"gift_card_codes": [f"At most {limit} gift cards can be applied to one order"]})
    if len(set(normalized)) != len(normalized):
        raise ValidationError({"gift_card_codes": ["The same gift card cannot be applied twice"]})

    cards = []
    for code in normalized:
        card = find_gift_card(code)
        card.assert_redeemable()
        cards.append(card)
    return cards


def plan_gift_card_application(cards, owed: float) -> list[tuple[GiftCard, float]]:
    """Split ``owed`` across cards in order, each paying min(balance, remaining)."""
    plan = []
    remaining = round_money(owed)
    for card in cards:
        if remaining <= 0:
            break
        amount = round_money(min(card.balance, remaining))
        plan.append((card, amount))
        remaining = round_money(remaining - amount)
    return plan


def debit_gift_card(code, order_id, amount, redeemed_by=None) -> float:
    """Debit a planned amount; returns what the card could actually cover."""
    card = find_gift_card(code)
    applied = card.redeem(order_id, amount, redeemed_by=redeemed_by)
    if applied < amount:
        logger.warning(
            "Gift card covered less than planned",
            code=card.code,
            order_id=order_id,
            planned=amount,
            applied=applied,
        )
    current_domain.repository_for(GiftCard).add(card)
    return applied


def refund_gift_card(code, order_id, amount) -> float:
    card = find_gift_card(code)
    refunded = card.refund(order_id, amount)
    current_domain.repository_for(GiftCard).add(card)
    logger.info("Gift card refunded", code=card.code, order_id=order_id, amount=refunded)
    return refunded
