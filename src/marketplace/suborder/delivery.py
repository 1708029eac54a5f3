"""Delivery confirmation — buyer confirmation, disputes and the auto-confirm sweep.

The sweep is designed to be triggered daily by an external scheduler (cron,
K8s CronJob) via the maintenance API endpoint or ``manage.py``. It dispatches
the same ConfirmDelivery command a buyer would, one suborder at a time, so a
failure on one suborder never blocks the others.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.config import get_settings
from marketplace.domain import marketplace
from marketplace.errors import ConcurrencyConflict
from marketplace.notifications import ADMIN_RECIPIENT, notify
from marketplace.notifications.port import NotificationKind
from marketplace.order.order import Order
from marketplace.payment.payment import Payment
from marketplace.payment.settlement import release_seller_earnings, settle_cash_on_delivery
from marketplace.stock.service import StockLedger
from marketplace.suborder.service import close_order_if_finished, load_suborders, require_paid_order, save_suborders
from marketplace.suborder.suborder import DeliveryStatus, Suborder, SuborderStatus

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Suborder")
class ConfirmDelivery:
    suborder_id = Identifier(required=True)
    buyer_id = Identifier()  # Empty for automatic confirmation
    confirmed = Boolean(default=True)
    reason = String(max_length=500)
    auto_confirmed = Boolean(default=False)


@marketplace.command(part_of="Suborder")
class AutoConfirmDeliveries:
    """Confirm deliveries the seller marked delivered long enough ago."""

    threshold_days = Integer()  # Defaults to the configured threshold
    as_of = DateTime()  # Optional: defaults to now


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


@marketplace.command_handler(part_of=Suborder)
class DeliveryHandler:
    @handle(ConfirmDelivery)
    def confirm_delivery(self, command):
        repo = current_domain.repository_for(Suborder)
        suborder = repo.get(command.suborder_id)
        if command.buyer_id and str(command.buyer_id) != str(suborder.buyer_id):
            raise ValidationError({"buyer_id": ["Only the buyer can confirm this delivery"]})

        order = current_domain.repository_for(Order).get(suborder.order_id)
        require_paid_order(order)

        if not command.confirmed:
            suborder.dispute_delivery(command.reason)
            repo.add(suborder)
            logger.warning("Delivery disputed", suborder_id=command.suborder_id, reason=command.reason)
            notify(
                NotificationKind.DELIVERY_DISPUTED,
                ADMIN_RECIPIENT,
                order_id=str(suborder.order_id),
                suborder_id=str(suborder.id),
                seller_id=str(suborder.seller_id),
                reason=command.reason,
            )
            return suborder.delivery_status

        if suborder.delivery_status == DeliveryStatus.CONFIRMED.value:
            return suborder.delivery_status

        payment = current_domain.repository_for(Payment).get(order.payment_id)
        suborders = load_suborders(order, replace=suborder)
        ledger = StockLedger()

        settle_cash_on_delivery(order, payment, suborder, suborders, ledger)
        suborder.confirm_delivery(auto_confirmed=bool(command.auto_confirmed))
        release_seller_earnings(suborder)
        close_order_if_finished(order, payment, suborders)

        ledger.save()
        save_suborders(suborders)
        current_domain.repository_for(Payment).add(payment)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Delivery confirmed",
            suborder_id=command.suborder_id,
            auto_confirmed=bool(command.auto_confirmed),
        )
        return suborder.delivery_status

    @handle(AutoConfirmDeliveries)
    def auto_confirm_deliveries(self, command):
        as_of = _as_utc(command.as_of) if command.as_of else datetime.now(UTC)
        threshold_days = command.threshold_days
        if threshold_days is None:
            threshold_days = get_settings().auto_confirm_threshold_days
        cutoff = as_of - timedelta(days=threshold_days)

        logger.info("Checking for overdue delivery confirmations", cutoff=cutoff.isoformat())

        pending = (
            current_domain.repository_for(Suborder)
            ._dao.query.filter(delivery_status=DeliveryStatus.PENDING.value, status=SuborderStatus.DELIVERED.value)
            .all()
            .items
        )
        overdue = [
            suborder
            for suborder in pending
            if suborder.seller_marked_delivered_at and _as_utc(suborder.seller_marked_delivered_at) <= cutoff
        ]

        if not overdue:
            logger.info("No overdue deliveries found")
            return 0

        confirmed = 0
        for suborder in overdue:
            try:
                current_domain.process(
                    ConfirmDelivery(suborder_id=str(suborder.id), confirmed=True, auto_confirmed=True),
                    asynchronous=False,
                )
                confirmed += 1
            except (ValidationError, InvalidOperationError, ObjectNotFoundError, ConcurrencyConflict) as exc:
                logger.warning(
                    "Failed to auto-confirm delivery",
                    suborder_id=str(suborder.id),
                    error=str(exc),
                )

        logger.info("Auto-confirmed deliveries", confirmed=confirmed, failed=len(overdue) - confirmed)
        return confirmed
