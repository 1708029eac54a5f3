"""Issue a gift card — command and handler.

Called once the purchase payment for a card has cleared.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from marketplace.config import get_settings
from marketplace.domain import marketplace
from marketplace.giftcard.giftcard import GiftCard, generate_code

logger = structlog.get_logger(__name__)

MAX_CODE_ATTEMPTS = 10


@marketplace.command(part_of="GiftCard")
class IssueGiftCard:
    amount = Float(required=True)
    purchased_by = Identifier()
    recipient_email = String(max_length=254)


def _unused_code(repo) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_code()
        try:
            repo.get(code)
        except ObjectNotFoundError:
            return code
    raise ValidationError({"code": ["Could not generate a unique gift card code"]})


@marketplace.command_handler(part_of=GiftCard)
class IssueGiftCardHandler:
    @handle(IssueGiftCard)
    def issue_gift_card(self, command):
        settings = get_settings()
        if not settings.gift_card_min_amount <= command.amount <= settings.gift_card_max_amount:
            raise ValidationError(
                {
                    "amount": [
                        f"Gift card amount must be between {settings.gift_card_min_amount:.2f} "
                        f"and {settings.gift_card_max_amount:.2f}"
                    ]
                }
            )

        repo = current_domain.repository_for(GiftCard)
        card = GiftCard.issue(
            amount=command.amount,
            code=_unused_code(repo),
            purchased_by=command.purchased_by,
            recipient_email=command.recipient_email,
            currency=settings.currency,
            expiry_days=settings.gift_card_expiry_days,
        )
        repo.add(card)

        logger.info("Gift card issued", code=card.code, amount=card.initial_amount)
        return card.code
