"""Notification port — fire-and-forget messages to buyers, sellers and admins."""

from abc import ABC, abstractmethod
from enum import Enum


class NotificationKind(Enum):
    ORDER_PLACED = "OrderPlaced"
    NEW_ORDER_FOR_SELLER = "NewOrderForSeller"
    DELIVERY_CONFIRMATION_REQUEST = "DeliveryConfirmationRequest"
    DELIVERY_DISPUTED = "DeliveryDisputed"
    GIFT_CARD_SHORTFALL = "GiftCardShortfall"
    PAYMENT_FAILED_AFTER_DELIVERY = "PaymentFailedAfterDelivery"


class Notifier(ABC):
    @abstractmethod
    def send(self, kind: NotificationKind, recipient_id: str, context: dict) -> None:
        """Deliver one notification. Raise ExternalDependencyError on failure."""
        ...
