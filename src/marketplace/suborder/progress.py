"""Seller-side suborder handling — status progression and cancellation."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.notifications import notify
from marketplace.notifications.port import NotificationKind
from marketplace.order.order import Order
from marketplace.payment.payment import Payment
from marketplace.stock.service import StockLedger
from marketplace.suborder.service import (
    cancel_suborder,
    close_order_if_finished,
    load_suborders,
    require_paid_order,
    save_suborders,
)
from marketplace.suborder.suborder import Suborder, SuborderStatus

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Suborder")
class UpdateSuborderStatus:
    suborder_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    status = String(required=True, choices=SuborderStatus)
    tracking_number = String(max_length=255)


@marketplace.command(part_of="Suborder")
class CancelSuborder:
    suborder_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_by = String(max_length=50, default="Seller")


@marketplace.command_handler(part_of=Suborder)
class SuborderProgressHandler:
    @handle(UpdateSuborderStatus)
    def update_status(self, command):
        repo = current_domain.repository_for(Suborder)
        suborder = repo.get(command.suborder_id)
        if str(suborder.seller_id) != str(command.seller_id):
            raise ValidationError({"seller_id": ["This suborder belongs to another seller"]})
        require_paid_order(current_domain.repository_for(Order).get(suborder.order_id))

        target = SuborderStatus(command.status)
        suborder.advance(target, tracking_number=command.tracking_number)
        repo.add(suborder)

        logger.info("Suborder status updated", suborder_id=command.suborder_id, status=target.value)
        if target == SuborderStatus.DELIVERED:
            notify(
                NotificationKind.DELIVERY_CONFIRMATION_REQUEST,
                str(suborder.buyer_id),
                order_id=str(suborder.order_id),
                suborder_id=str(suborder.id),
            )

    @handle(CancelSuborder)
    def cancel(self, command):
        suborder = current_domain.repository_for(Suborder).get(command.suborder_id)
        order = current_domain.repository_for(Order).get(suborder.order_id)
        payment = current_domain.repository_for(Payment).get(order.payment_id)
        suborders = load_suborders(order, replace=suborder)

        ledger = StockLedger()
        if not cancel_suborder(suborder, ledger, reason=command.reason, cancelled_by=command.cancelled_by):
            return
        close_order_if_finished(order, payment, suborders)

        ledger.save()
        save_suborders(suborders)
        current_domain.repository_for(Payment).add(payment)
        current_domain.repository_for(Order).add(order)
