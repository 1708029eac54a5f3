"""Payment gateway port (abstract interface).

The marketplace only signs initiation payloads and later receives an
outcome callback; card capture happens entirely on the gateway's side.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class InitiationPayload:
    """Signed payload the buyer's browser posts to the hosted checkout."""

    merchant_id: str
    order_id: str
    amount: str
    currency: str
    hash: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class GatewayNotification:
    """Outcome callback as posted by the gateway."""

    merchant_id: str
    order_id: str
    amount: str
    currency: str
    status_code: str
    signature: str
    payment_reference: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def build_initiation(self, order_id: str, amount: float, currency: str) -> InitiationPayload:
        """Build and sign the payload that starts a hosted payment."""
        ...

    @abstractmethod
    def verify_notification(self, notification: GatewayNotification) -> bool:
        """Check that a callback really came from the gateway."""
        ...

    @abstractmethod
    def outcome_for(self, status_code: str) -> str:
        """Translate a gateway status code into paid, failed or pending."""
        ...
