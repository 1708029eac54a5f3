"""Fake notifier that records messages instead of sending them."""

from marketplace.errors import ExternalDependencyError
from marketplace.notifications.port import NotificationKind, Notifier


class FakeNotifier(Notifier):
    def __init__(self) -> None:
        self.should_fail: bool = False
        self.sent: list[dict] = []

    def configure(self, should_fail: bool) -> None:
        self.should_fail = should_fail

    def send(self, kind: NotificationKind, recipient_id: str, context: dict) -> None:
        if self.should_fail:
            raise ExternalDependencyError(f"Could not deliver {kind.value} notification")
        self.sent.append({"kind": kind.value, "recipient_id": recipient_id, "context": context})

    def sent_to(self, recipient_id: str, kind: NotificationKind | None = None) -> list[dict]:
        return [
            message
            for message in self.sent
            if message["recipient_id"] == recipient_id and (kind is None or message["kind"] == kind.value)
        ]
