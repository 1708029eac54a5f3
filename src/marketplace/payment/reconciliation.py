"""Payment reconciliation — command and handler.

Consumes a payment outcome reported by the gateway (or an operator) and
propagates it to the order, its suborders, the stock ledger and the seller
wallets. Reconciling an outcome that has already been applied is a no-op.
"""

from enum import Enum

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.payment.payment import Payment
from marketplace.payment.settlement import settle_failed, settle_paid
from marketplace.stock.service import StockLedger
from marketplace.suborder.service import load_suborders, save_suborders

logger = structlog.get_logger(__name__)


class PaymentOutcome(Enum):
    PAID = "paid"
    FAILED = "failed"
    PENDING = "pending"


@marketplace.command(part_of="Payment")
class ReconcilePayment:
    order_id = Identifier(required=True)
    status = String(required=True, choices=PaymentOutcome)
    external_reference = String(max_length=255)


@marketplace.command_handler(part_of=Payment)
class ReconcilePaymentHandler:
    @handle(ReconcilePayment)
    def reconcile(self, command):
        order = current_domain.repository_for(Order).get(command.order_id)
        payment = current_domain.repository_for(Payment).get(order.payment_id)
        outcome = PaymentOutcome(command.status)

        if outcome == PaymentOutcome.PENDING:
            payment.record_reference(command.external_reference)
            current_domain.repository_for(Payment).add(payment)
            logger.info("Payment still pending", order_id=command.order_id)
            return order.payment_status

        suborders = load_suborders(order)
        ledger = StockLedger()
        if outcome == PaymentOutcome.PAID:
            changed = settle_paid(order, payment, suborders, ledger, command.external_reference)
        else:
            changed = settle_failed(order, payment, suborders, ledger, command.external_reference)

        if not changed:
            logger.info(
                "Payment outcome already reconciled",
                order_id=command.order_id,
                outcome=outcome.value,
            )
            return order.payment_status

        ledger.save()
        save_suborders(suborders)
        current_domain.repository_for(Payment).add(payment)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Payment reconciled",
            order_id=command.order_id,
            outcome=outcome.value,
            payment_status=order.payment_status,
        )
        return order.payment_status
