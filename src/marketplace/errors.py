"""Business errors raised by the marketplace domain.

All of them derive from Protean's exception types so the HTTP layer's
registered handlers map them to 400 (validation) and 404 (not found).
"""

from protean.exceptions import ObjectNotFoundError, ProteanException, ValidationError


class EmptyCartError(ValidationError):
    """Checkout was attempted with nothing to buy."""


class InsufficientStockError(ValidationError):
    """One or more variants cannot cover the requested quantity."""


class InsufficientBalanceError(ValidationError):
    """A wallet balance cannot cover the requested movement."""


class InvalidGiftCardError(ValidationError):
    """A gift card code cannot be applied."""


class GiftCardNotFoundError(InvalidGiftCardError):
    pass


class GiftCardExpiredError(InvalidGiftCardError):
    pass


class GiftCardNotActiveError(InvalidGiftCardError):
    pass


class GiftCardZeroBalanceError(InvalidGiftCardError):
    pass


class NotFoundError(ObjectNotFoundError):
    """A referenced record does not exist."""


class ProductNotFoundError(NotFoundError):
    pass


class ExternalDependencyError(ProteanException):
    """A collaborator (gateway, notifier, catalogue) failed."""


class ConcurrencyConflict(ProteanException):
    """A versioned ledger update kept losing to concurrent writers."""
