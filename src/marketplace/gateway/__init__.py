"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- PayHereGateway built from the loaded settings (default)
- FakeGateway for tests that need call recording or failures
"""

from marketplace.config import get_settings
from marketplace.gateway.payhere_adapter import PayHereGateway
from marketplace.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway."""
    global _current_gateway
    if _current_gateway is None:
        settings = get_settings()
        _current_gateway = PayHereGateway(settings.merchant_id, settings.merchant_secret)
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
