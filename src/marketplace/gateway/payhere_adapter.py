"""PayHere hosted-checkout adapter.

Signatures follow PayHere's checkout API:

    hash      = UPPER(MD5(merchant_id + order_id + amount + currency + UPPER(MD5(secret))))
    md5sig    = UPPER(MD5(merchant_id + order_id + amount + currency + status_code + UPPER(MD5(secret))))

where ``amount`` is formatted with exactly two decimals and no separators.
"""

import hashlib
import hmac

from marketplace.gateway.port import GatewayNotification, InitiationPayload, PaymentGateway

# PayHere status codes
_STATUS_OUTCOMES = {
    "2": "paid",
    "0": "pending",
}


def _md5_upper(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest().upper()  # noqa: S324


def format_amount(amount: float) -> str:
    return f"{amount:.2f}"


class PayHereGateway(PaymentGateway):
    def __init__(self, merchant_id: str, merchant_secret: str) -> None:
        self.merchant_id = merchant_id
        self._hashed_secret = _md5_upper(merchant_secret)

    def sign(self, *parts: str) -> str:
        return _md5_upper("".join(parts) + self._hashed_secret)

    def build_initiation(self, order_id: str, amount: float, currency: str) -> InitiationPayload:
        formatted = format_amount(amount)
        return InitiationPayload(
            merchant_id=self.merchant_id,
            order_id=order_id,
            amount=formatted,
            currency=currency,
            hash=self.sign(self.merchant_id, order_id, formatted, currency),
        )

    def verify_notification(self, notification: GatewayNotification) -> bool:
        if notification.merchant_id != self.merchant_id:
            return False
        expected = self.sign(
            notification.merchant_id,
            notification.order_id,
            notification.amount,
            notification.currency,
            notification.status_code,
        )
        return hmac.compare_digest(expected, notification.signature.upper())

    def outcome_for(self, status_code: str) -> str:
        return _STATUS_OUTCOMES.get(str(status_code), "failed")
