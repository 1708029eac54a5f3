"""Suborder operations that span the order, stock and wallet ledgers."""

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.order.order import PaymentStatus
from marketplace.payment.payment import PaymentRecordStatus
from marketplace.payment.settlement import refund_gift_card_debits, reverse_seller_earnings
from marketplace.suborder.suborder import DeliveryStatus, Suborder

logger = structlog.get_logger(__name__)


def load_suborders(order, replace=None) -> list[Suborder]:
    """Load an order's suborders in processing order.

    ``replace`` substitutes an already loaded (and possibly modified) copy.
    """
    repo = current_domain.repository_for(Suborder)
    suborders = []
    for suborder_id in order.suborder_id_list:
        if replace is not None and str(replace.id) == suborder_id:
            suborders.append(replace)
        else:
            suborders.append(repo.get(suborder_id))
    return suborders


def save_suborders(suborders) -> None:
    repo = current_domain.repository_for(Suborder)
    for suborder in suborders:
        repo.add(suborder)


def require_paid_order(order) -> None:
    """Prepaid orders move through fulfilment only once payment has succeeded.

    Cash-on-delivery orders are paid at the door, so they are never held back.
    """
    if order.is_cash_on_delivery:
        return
    if order.payment_status != PaymentStatus.PAID.value:
        raise ValidationError({"payment": [f"Order payment is {order.payment_status}; it must be Paid first"]})


def cancel_suborder(suborder, ledger, reason=None, cancelled_by=None) -> bool:
    """Cancel a suborder and undo its stock and wallet effects together.

    Active reservations return to available, sold units are returned, and
    a held seller credit is reversed.
    """
    if not suborder.cancel(reason=reason, cancelled_by=cancelled_by):
        return False
    moved = ledger.unwind_suborder(suborder)
    reverse_seller_earnings(suborder)
    logger.info(
        "Suborder cancelled",
        suborder_id=str(suborder.id),
        seller_id=suborder.seller_id,
        units_returned=moved,
        cancelled_by=cancelled_by,
    )
    return True


def close_order_if_finished(order, payment, suborders, reason="All suborders cancelled", cancelled_by="System") -> None:
    """Roll suborder outcomes up to the order.

    All suborders cancelled: the order is cancelled, gift card debits are
    refunded and the payment is voided (or refunded when already paid).
    All remaining suborders confirmed delivered: the order is Delivered.
    """
    active = [s for s in suborders if s.is_active]
    if not active:
        was_paid = payment.status == PaymentRecordStatus.PAID.value
        if order.cancel(reason=reason, cancelled_by=cancelled_by):
            refund_gift_card_debits(order)
            if was_paid:
                payment.mark_refunded()
            else:
                payment.void()
        return

    if all(s.delivery_status == DeliveryStatus.CONFIRMED.value for s in active):
        order.mark_delivered()
