"""Applying a payment outcome to stock, wallets, gift cards and orders.

These functions mutate the aggregates they are given and leave persisting
orders, suborders, payments and the stock ledger to the caller, so the
same code runs inside checkout (on freshly created aggregates) and inside
ReconcilePayment (on loaded ones). Wallets and gift cards are loaded and
saved here because each is touched once per call.
"""

import structlog
from protean.utils.globals import current_domain

from marketplace.charges.calculator import round_money
from marketplace.errors import InvalidGiftCardError
from marketplace.giftcard.redemption import debit_gift_card, refund_gift_card
from marketplace.notifications import ADMIN_RECIPIENT, notify
from marketplace.notifications.port import NotificationKind
from marketplace.suborder.suborder import SellerPaymentStatus, SuborderStatus
from marketplace.wallet.service import wallet_for
from marketplace.wallet.wallet import SellerWallet

logger = structlog.get_logger(__name__)

CASH_ON_DELIVERY_REFERENCE = "cash-on-delivery"


def _save_wallet(wallet) -> None:
    current_domain.repository_for(SellerWallet).add(wallet)


def hold_seller_earnings(suborder) -> None:
    """Credit the seller's pending balance and mark the suborder Held."""
    if not suborder.hold_seller_payment():
        return
    wallet = wallet_for(suborder.seller_id)
    wallet.add_to_pending(suborder.subtotal, reference=str(suborder.id))
    _save_wallet(wallet)


def release_seller_earnings(suborder) -> None:
    """Move a Held suborder's earnings from pending to available."""
    if suborder.seller_payment_status != SellerPaymentStatus.HELD.value:
        return
    wallet = wallet_for(suborder.seller_id)
    wallet.move_pending_to_available(suborder.subtotal, reference=str(suborder.id))
    suborder.release_seller_payment()
    _save_wallet(wallet)
    logger.info(
        "Seller earnings released",
        suborder_id=str(suborder.id),
        seller_id=suborder.seller_id,
        amount=suborder.subtotal,
    )


def reverse_seller_earnings(suborder) -> None:
    """Undo a hold for a suborder cancelled after payment."""
    if suborder.seller_payment_status != SellerPaymentStatus.HELD.value:
        return
    wallet = wallet_for(suborder.seller_id)
    wallet.reverse_pending(suborder.subtotal, reference=str(suborder.id))
    suborder.refund_seller_payment()
    _save_wallet(wallet)


def apply_gift_card_debits(order) -> float:
    """Charge the gift card amounts planned at checkout.

    Card orders charge their gift cards only after the gateway reports
    success, by which time a card may have been spent on another order or
    expired. Such a card covers what it still can (possibly nothing) and the
    uncovered amount is reported to the admin; the payment itself stands.
    Returns the shortfall.
    """
    shortfall = 0.0
    for applied in order.pending_gift_card_debits:
        try:
            debited = debit_gift_card(applied.code, str(order.id), applied.amount_applied, redeemed_by=order.buyer_id)
        except InvalidGiftCardError as exc:
            debited = 0.0
            logger.warning(
                "Deferred gift card debit failed",
                order_id=str(order.id),
                code=applied.code,
                planned=applied.amount_applied,
                error=str(exc),
            )
        order.record_gift_card_debit(applied.code, debited)
        shortfall = round_money(shortfall + applied.amount_applied - debited)

    if shortfall > 0:
        notify(
            NotificationKind.GIFT_CARD_SHORTFALL,
            ADMIN_RECIPIENT,
            order_id=str(order.id),
            buyer_id=str(order.buyer_id),
            shortfall=shortfall,
        )
    return shortfall


def refund_gift_card_debits(order) -> None:
    for applied in order.applied_gift_cards or []:
        if applied.debited and applied.amount_debited > 0:
            refund_gift_card(applied.code, str(order.id), applied.amount_debited)


def notify_sellers(order, suborders) -> None:
    if order.sellers_notified:
        return
    for suborder in suborders:
        if suborder.is_active:
            notify(
                NotificationKind.NEW_ORDER_FOR_SELLER,
                str(suborder.seller_id),
                order_id=str(order.id),
                suborder_id=str(suborder.id),
                final_total=suborder.final_total,
            )
    order.mark_sellers_notified()


def settle_paid(order, payment, suborders, ledger, external_reference=None) -> bool:
    """Propagate a successful payment. Returns False if already settled."""
    if not order.mark_paid():
        return False
    payment.mark_paid(external_reference)

    for suborder in suborders:
        if not suborder.is_active:
            continue
        ledger.convert_suborder(suborder)
        hold_seller_earnings(suborder)

    apply_gift_card_debits(order)
    notify_sellers(order, suborders)

    logger.info("Order payment settled", order_id=str(order.id), amount=order.final_total)
    return True


def settle_failed(order, payment, suborders, ledger, external_reference=None) -> bool:
    """Propagate a failed payment. Returns False if already failed."""
    if not order.mark_payment_failed():
        return False
    payment.mark_failed(external_reference)

    for suborder in suborders:
        if suborder.status == SuborderStatus.DELIVERED.value:
            # Units already left with the buyer; they cannot go back on the shelf
            ledger.convert_suborder(suborder)
            logger.error(
                "Payment failed for a delivered suborder",
                order_id=str(order.id),
                suborder_id=str(suborder.id),
                seller_id=str(suborder.seller_id),
            )
            notify(
                NotificationKind.PAYMENT_FAILED_AFTER_DELIVERY,
                ADMIN_RECIPIENT,
                order_id=str(order.id),
                suborder_id=str(suborder.id),
                seller_id=str(suborder.seller_id),
            )
            continue
        ledger.release_suborder(suborder)
        suborder.cancel(reason="Payment failed", cancelled_by="System")

    # Card orders defer their debits, so normally there is nothing to give back
    refund_gift_card_debits(order)

    logger.info("Order payment failed", order_id=str(order.id))
    return True


def settle_cash_on_delivery(order, payment, suborder, suborders, ledger) -> bool:
    """Treat a delivered cash-on-delivery suborder as paid.

    Once every active suborder of the order has been settled, the order
    and its payment record become Paid.
    """
    if not order.is_cash_on_delivery or suborder.seller_payment_status != SellerPaymentStatus.PENDING.value:
        return False

    ledger.convert_suborder(suborder)
    hold_seller_earnings(suborder)

    active = [s for s in suborders if s.is_active]
    if all(s.seller_payment_status != SellerPaymentStatus.PENDING.value for s in active):
        order.mark_paid()
        payment.mark_paid(CASH_ON_DELIVERY_REFERENCE)

    logger.info("Cash on delivery collected", order_id=str(order.id), suborder_id=str(suborder.id))
    return True
