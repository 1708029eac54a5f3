"""Application tests for ReconcilePayment.

Card orders stay Pending until the gateway reports an outcome; these tests
drive that outcome directly through the command.
"""

import json

import pytest
from marketplace.catalogue.port import CartLine
from marketplace.giftcard.giftcard import GiftCard
from marketplace.notifications import ADMIN_RECIPIENT
from marketplace.notifications.port import NotificationKind
from marketplace.order.checkout import PlaceOrder
from marketplace.order.order import Order, OrderStatus, PaymentStatus
from marketplace.payment.payment import Payment
from marketplace.payment.reconciliation import ReconcilePayment
from marketplace.stock.ledger import StockLedgerEntry, ledger_entry_id
from marketplace.stock.service import available_stock
from marketplace.suborder.suborder import SellerPaymentStatus, Suborder, SuborderStatus
from marketplace.wallet.wallet import SellerWallet
from protean import current_domain
from protean.exceptions import ValidationError


def _place_card_order(catalogue, shipping_address, gift_card_codes=None):
    catalogue.set_cart(
        "buyer-1",
        [
            CartLine(product_id="prod-shirt", quantity=1, color="Red", size="M"),
            CartLine(product_id="prod-mug", quantity=2, color="White"),
        ],
    )
    result = current_domain.process(
        PlaceOrder(
            buyer_id="buyer-1",
            payment_method="Card",
            shipping_address=json.dumps(shipping_address),
            gift_card_codes=json.dumps(gift_card_codes or []),
        ),
        asynchronous=False,
    )
    return result["order_id"]


def _reconcile(order_id, status, reference="ph-123"):
    return current_domain.process(
        ReconcilePayment(order_id=order_id, status=status, external_reference=reference),
        asynchronous=False,
    )


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _suborders(order_id):
    return [current_domain.repository_for(Suborder).get(sid) for sid in _order(order_id).suborder_id_list]


def _suborder_status(suborder):
    return current_domain.repository_for(Suborder).get(str(suborder.id)).status


class TestPaymentSucceeded:
    def test_order_and_payment_marked_paid(self, catalogue, gateway, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)

        assert _reconcile(order_id, "paid") == PaymentStatus.PAID.value

        order = _order(order_id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.paid_at is not None
        payment = current_domain.repository_for(Payment).get(order.payment_id)
        assert payment.status == "Paid"
        assert payment.external_reference == "ph-123"

    def test_reservations_become_sales(self, catalogue, gateway, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)

        _reconcile(order_id, "paid")

        entry = current_domain.repository_for(StockLedgerEntry).get(ledger_entry_id("prod-mug", "mug-white"))
        assert entry.reserved_stock == 0
        assert entry.sold_count == 2
        assert entry.total_earnings == 1000.0
        assert entry.available_stock == 8

    def test_seller_earnings_held_in_pending(self, catalogue, gateway, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)

        _reconcile(order_id, "paid")

        assert current_domain.repository_for(SellerWallet).get("seller-x").pending_balance == 1000.0
        assert current_domain.repository_for(SellerWallet).get("seller-y").pending_balance == 1000.0
        assert current_domain.repository_for(SellerWallet).get("seller-y").available_balance == 0.0
        assert all(s.seller_payment_status == SellerPaymentStatus.HELD.value for s in _suborders(order_id))

    def test_deferred_gift_card_debits_and_seller_notifications(
        self, catalogue, gateway, notifier, shipping_address
    ):
        current_domain.repository_for(GiftCard).add(GiftCard.issue(amount=600.0, code="GC-DEFR-DEFR-DEFR"))
        order_id = _place_card_order(catalogue, shipping_address, gift_card_codes=["GC-DEFR-DEFR-DEFR"])
        assert current_domain.repository_for(GiftCard).get("GC-DEFR-DEFR-DEFR").balance == 600.0
        assert notifier.sent_to("seller-y") == []

        _reconcile(order_id, "paid")

        assert current_domain.repository_for(GiftCard).get("GC-DEFR-DEFR-DEFR").balance == 0.0
        assert _order(order_id).gift_card_debits_applied is True
        assert notifier.sent_to("seller-x", NotificationKind.NEW_ORDER_FOR_SELLER)
        assert notifier.sent_to("seller-y", NotificationKind.NEW_ORDER_FOR_SELLER)

    def test_repeated_success_changes_nothing(self, catalogue, gateway, notifier, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)
        _reconcile(order_id, "paid")

        assert _reconcile(order_id, "paid", reference="ph-124") == PaymentStatus.PAID.value

        assert current_domain.repository_for(SellerWallet).get("seller-x").pending_balance == 1000.0
        assert len(notifier.sent_to("seller-x", NotificationKind.NEW_ORDER_FOR_SELLER)) == 1
        order = _order(order_id)
        assert current_domain.repository_for(Payment).get(order.payment_id).external_reference == "ph-123"


class TestGiftCardSpentBeforeCallback:
    def _spend_elsewhere(self, shipping_address, code):
        current_domain.process(
            PlaceOrder(
                buyer_id="buyer-2",
                source="DirectItem",
                item=json.dumps({"product_id": "prod-mug", "variant_id": "mug-white", "quantity": 1}),
                payment_method="CashOnDelivery",
                shipping_address=json.dumps(shipping_address),
                gift_card_codes=json.dumps([code]),
            ),
            asynchronous=False,
        )

    def test_fully_spent_card_does_not_block_the_payment(self, catalogue, gateway, notifier, shipping_address):
        current_domain.repository_for(GiftCard).add(GiftCard.issue(amount=300.0, code="GC-GONE-GONE-GONE"))
        order_id = _place_card_order(catalogue, shipping_address, gift_card_codes=["GC-GONE-GONE-GONE"])
        self._spend_elsewhere(shipping_address, "GC-GONE-GONE-GONE")

        assert _reconcile(order_id, "paid") == PaymentStatus.PAID.value

        order = _order(order_id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.gift_card_debits_applied is True
        assert order.applied_gift_cards[0].amount_debited == 0.0
        assert order.gift_card_shortfall == 300.0
        entry = current_domain.repository_for(StockLedgerEntry).get(ledger_entry_id("prod-shirt", "shirt-red-m"))
        assert entry.sold_count == 1
        assert entry.reserved_stock == 0
        alerts = notifier.sent_to(ADMIN_RECIPIENT, NotificationKind.GIFT_CARD_SHORTFALL)
        assert alerts[0]["context"]["shortfall"] == 300.0

    def test_partially_spent_card_covers_what_is_left(self, catalogue, gateway, notifier, shipping_address):
        current_domain.repository_for(GiftCard).add(GiftCard.issue(amount=1000.0, code="GC-HALF-HALF-HALF"))
        order_id = _place_card_order(catalogue, shipping_address, gift_card_codes=["GC-HALF-HALF-HALF"])
        self._spend_elsewhere(shipping_address, "GC-HALF-HALF-HALF")
        assert current_domain.repository_for(GiftCard).get("GC-HALF-HALF-HALF").balance == 400.0

        _reconcile(order_id, "paid")

        assert current_domain.repository_for(GiftCard).get("GC-HALF-HALF-HALF").balance == 0.0
        assert _order(order_id).gift_card_shortfall == 600.0
        assert notifier.sent_to(ADMIN_RECIPIENT, NotificationKind.GIFT_CARD_SHORTFALL)

    def test_cards_charged_in_full_raise_no_alert(self, catalogue, gateway, notifier, shipping_address):
        current_domain.repository_for(GiftCard).add(GiftCard.issue(amount=600.0, code="GC-FULL-FULL-FULL"))
        order_id = _place_card_order(catalogue, shipping_address, gift_card_codes=["GC-FULL-FULL-FULL"])

        _reconcile(order_id, "paid")

        assert _order(order_id).gift_card_shortfall == 0.0
        assert notifier.sent_to(ADMIN_RECIPIENT) == []


class TestPaymentFailed:
    def test_order_cancelled_and_stock_released(self, catalogue, gateway, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)
        assert available_stock("prod-shirt", "shirt-red-m") == 1

        assert _reconcile(order_id, "failed") == PaymentStatus.FAILED.value

        order = _order(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancelled_by == "System"
        assert current_domain.repository_for(Payment).get(order.payment_id).status == "Failed"
        assert available_stock("prod-shirt", "shirt-red-m") == 2
        assert available_stock("prod-mug", "mug-white") == 10
        assert all(s.status == SuborderStatus.CANCELLED.value for s in _suborders(order_id))

    def test_no_wallet_credit_and_gift_cards_untouched(self, catalogue, gateway, shipping_address):
        current_domain.repository_for(GiftCard).add(GiftCard.issue(amount=600.0, code="GC-FAIL-FAIL-FAIL"))
        order_id = _place_card_order(catalogue, shipping_address, gift_card_codes=["GC-FAIL-FAIL-FAIL"])

        _reconcile(order_id, "failed")

        assert current_domain.repository_for(SellerWallet)._dao.query.all().items == []
        assert current_domain.repository_for(GiftCard).get("GC-FAIL-FAIL-FAIL").balance == 600.0

    def test_suborder_already_delivered_does_not_block_failure(self, catalogue, gateway, notifier, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)
        shirt_suborder, mug_suborder = _suborders(order_id)
        for status in (
            SuborderStatus.PROCESSING,
            SuborderStatus.PACKED,
            SuborderStatus.DISPATCHED,
            SuborderStatus.DELIVERED,
        ):
            shirt_suborder.advance(status)
        current_domain.repository_for(Suborder).add(shirt_suborder)

        assert _reconcile(order_id, "failed") == PaymentStatus.FAILED.value

        shirt_entry = current_domain.repository_for(StockLedgerEntry).get(ledger_entry_id("prod-shirt", "shirt-red-m"))
        assert shirt_entry.reserved_stock == 0
        assert shirt_entry.sold_count == 1
        assert available_stock("prod-mug", "mug-white") == 10
        assert _suborder_status(mug_suborder) == SuborderStatus.CANCELLED.value
        assert _suborder_status(shirt_suborder) == SuborderStatus.DELIVERED.value
        assert notifier.sent_to(ADMIN_RECIPIENT, NotificationKind.PAYMENT_FAILED_AFTER_DELIVERY)

    def test_repeated_failure_is_a_no_op(self, catalogue, gateway, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)
        _reconcile(order_id, "failed")

        assert _reconcile(order_id, "failed") == PaymentStatus.FAILED.value
        assert available_stock("prod-shirt", "shirt-red-m") == 2


class TestConflictingOutcomes:
    def test_success_after_failure_rejected(self, catalogue, gateway, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)
        _reconcile(order_id, "failed")

        with pytest.raises(ValidationError):
            _reconcile(order_id, "paid")

        assert _order(order_id).payment_status == PaymentStatus.FAILED.value

    def test_failure_after_success_rejected(self, catalogue, gateway, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)
        _reconcile(order_id, "paid")

        with pytest.raises(ValidationError):
            _reconcile(order_id, "failed")

        assert current_domain.repository_for(SellerWallet).get("seller-x").pending_balance == 1000.0


class TestPaymentPending:
    def test_pending_only_records_the_reference(self, catalogue, gateway, shipping_address):
        order_id = _place_card_order(catalogue, shipping_address)

        assert _reconcile(order_id, "pending", reference="ph-pending") == PaymentStatus.PENDING.value

        order = _order(order_id)
        payment = current_domain.repository_for(Payment).get(order.payment_id)
        assert payment.status == "Pending"
        assert payment.external_reference == "ph-pending"
        assert available_stock("prod-shirt", "shirt-red-m") == 1
