"""Order cancellation — command and handler."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order, OrderStatus
from marketplace.payment.payment import Payment
from marketplace.stock.service import StockLedger
from marketplace.suborder.service import cancel_suborder, close_order_if_finished, load_suborders, save_suborders
from marketplace.suborder.suborder import SuborderStatus

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    reason = String(max_length=500)


@marketplace.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order = current_domain.repository_for(Order).get(command.order_id)
        if str(order.buyer_id) != str(command.buyer_id):
            raise ValidationError({"buyer_id": ["Only the buyer can cancel this order"]})
        if order.status == OrderStatus.CANCELLED.value:
            return order.status

        payment = current_domain.repository_for(Payment).get(order.payment_id)
        suborders = load_suborders(order)
        if any(suborder.status == SuborderStatus.DELIVERED.value for suborder in suborders):
            raise ValidationError({"status": ["Cannot cancel an order with delivered items"]})

        reason = command.reason or "Cancelled by buyer"
        ledger = StockLedger()
        for suborder in suborders:
            cancel_suborder(suborder, ledger, reason=reason, cancelled_by="Buyer")
        close_order_if_finished(order, payment, suborders, reason=reason, cancelled_by="Buyer")

        ledger.save()
        save_suborders(suborders)
        current_domain.repository_for(Payment).add(payment)
        current_domain.repository_for(Order).add(order)

        logger.info("Order cancelled", order_id=command.order_id, payment_status=order.payment_status)
        return order.status
