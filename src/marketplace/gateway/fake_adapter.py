"""Configurable fake payment gateway for development and testing.

Signs payloads exactly like the PayHere adapter but records every call and
can be switched into a failing mode to exercise error paths.
"""

from marketplace.errors import ExternalDependencyError
from marketplace.gateway.payhere_adapter import PayHereGateway
from marketplace.gateway.port import GatewayNotification, InitiationPayload


class FakeGateway(PayHereGateway):
    def __init__(self, merchant_id: str = "fake-merchant", merchant_secret: str = "fake-secret") -> None:
        super().__init__(merchant_id, merchant_secret)
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def build_initiation(self, order_id: str, amount: float, currency: str) -> InitiationPayload:
        self.calls.append(
            {
                "method": "build_initiation",
                "order_id": order_id,
                "amount": amount,
                "currency": currency,
            }
        )
        if not self.should_succeed:
            raise ExternalDependencyError(self.failure_reason)
        return super().build_initiation(order_id, amount, currency)

    def signed_notification(
        self,
        order_id: str,
        amount: float,
        currency: str,
        status_code: str,
        payment_reference: str | None = None,
    ) -> GatewayNotification:
        """Produce a correctly signed callback, as the gateway would send it."""
        formatted = f"{amount:.2f}"
        return GatewayNotification(
            merchant_id=self.merchant_id,
            order_id=order_id,
            amount=formatted,
            currency=currency,
            status_code=status_code,
            signature=self.sign(self.merchant_id, order_id, formatted, currency, status_code),
            payment_reference=payment_reference,
        )
