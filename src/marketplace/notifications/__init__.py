"""Notifier registry and the fire-and-forget dispatch helper.

Uses the fake notifier by default; real email/SMS adapters are wired in
production through set_notifier().
"""

import structlog

from marketplace.notifications.fake_adapter import FakeNotifier
from marketplace.notifications.port import NotificationKind, Notifier

logger = structlog.get_logger(__name__)

ADMIN_RECIPIENT = "marketplace-admin"

_current_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _current_notifier
    if _current_notifier is None:
        _current_notifier = FakeNotifier()
    return _current_notifier


def set_notifier(notifier: Notifier) -> None:
    global _current_notifier
    _current_notifier = notifier


def reset_notifier() -> None:
    global _current_notifier
    _current_notifier = None


def notify(kind: NotificationKind, recipient_id: str, **context) -> bool:
    """Send a notification; a failing notifier never fails the caller.

    Returns True when the notifier accepted the message.
    """
    try:
        get_notifier().send(kind, recipient_id, context)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Notification dispatch failed",
            kind=kind.value,
            recipient_id=recipient_id,
            error=str(exc),
        )
        return False

    logger.info("Notification dispatched", kind=kind.value, recipient_id=recipient_id)
    return True
