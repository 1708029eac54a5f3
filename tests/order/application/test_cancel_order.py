import json

import pytest
from marketplace.catalogue.port import CartLine
from marketplace.giftcard.giftcard import GiftCard, GiftCardStatus
from marketplace.order.cancellation import CancelOrder
from marketplace.order.checkout import PlaceOrder
from marketplace.order.order import Order, OrderStatus, PaymentStatus
from marketplace.payment.payment import Payment
from marketplace.payment.reconciliation import ReconcilePayment
from marketplace.stock.service import available_stock
from marketplace.suborder.progress import UpdateSuborderStatus
from marketplace.suborder.suborder import SellerPaymentStatus, Suborder, SuborderStatus
from marketplace.wallet.wallet import SellerWallet
from protean import current_domain
from protean.exceptions import ValidationError


def _place_cart_order(catalogue, shipping_address, payment_method="CashOnDelivery", gift_card_codes=None):
    catalogue.set_cart(
        "buyer-1",
        [
            CartLine(product_id="prod-shirt", quantity=2, color="Red", size="M"),
            CartLine(product_id="prod-mug", quantity=1, color="White"),
        ],
    )
    result = current_domain.process(
        PlaceOrder(
            buyer_id="buyer-1",
            payment_method=payment_method,
            shipping_address=json.dumps(shipping_address),
            gift_card_codes=json.dumps(gift_card_codes or []),
        ),
        asynchronous=False,
    )
    return current_domain.repository_for(Order).get(result["order_id"])


def _cancel(order_id, buyer_id="buyer-1", reason="Changed my mind"):
    return current_domain.process(CancelOrder(order_id=order_id, buyer_id=buyer_id, reason=reason), asynchronous=False)


def _suborders(order):
    return [current_domain.repository_for(Suborder).get(sid) for sid in order.suborder_id_list]


class TestCancelUnpaidOrder:
    def test_order_cancelled_and_payment_voided(self, catalogue, shipping_address):
        order = _place_cart_order(catalogue, shipping_address)

        assert _cancel(str(order.id)) == OrderStatus.CANCELLED.value

        refreshed = current_domain.repository_for(Order).get(str(order.id))
        assert refreshed.status == OrderStatus.CANCELLED.value
        assert refreshed.payment_status == PaymentStatus.VOIDED.value
        assert refreshed.cancelled_by == "Buyer"
        assert refreshed.cancellation_reason == "Changed my mind"
        assert current_domain.repository_for(Payment).get(refreshed.payment_id).status == "Voided"

    def test_reservations_released(self, catalogue, shipping_address):
        order = _place_cart_order(catalogue, shipping_address)
        assert available_stock("prod-shirt", "shirt-red-m") == 0

        _cancel(str(order.id))

        assert available_stock("prod-shirt", "shirt-red-m") == 2
        assert available_stock("prod-mug", "mug-white") == 10
        assert all(s.status == SuborderStatus.CANCELLED.value for s in _suborders(order))

    def test_gift_card_debit_refunded(self, catalogue, shipping_address):
        current_domain.repository_for(GiftCard).add(GiftCard.issue(amount=1000.0, code="GC-AAAA-AAAA-AAAA"))
        order = _place_cart_order(catalogue, shipping_address, gift_card_codes=["GC-AAAA-AAAA-AAAA"])
        assert current_domain.repository_for(GiftCard).get("GC-AAAA-AAAA-AAAA").balance == 0.0

        _cancel(str(order.id))

        card = current_domain.repository_for(GiftCard).get("GC-AAAA-AAAA-AAAA")
        assert card.balance == 1000.0
        assert card.status == GiftCardStatus.ACTIVE.value


class TestCancelPaidOrder:
    def test_sold_stock_returned_and_wallets_reversed(self, catalogue, gateway, shipping_address):
        order = _place_cart_order(catalogue, shipping_address, payment_method="Card")
        current_domain.process(
            ReconcilePayment(order_id=str(order.id), status="paid", external_reference="ph-1"),
            asynchronous=False,
        )
        assert current_domain.repository_for(SellerWallet).get("seller-x").pending_balance == 2000.0

        _cancel(str(order.id))

        refreshed = current_domain.repository_for(Order).get(str(order.id))
        assert refreshed.payment_status == PaymentStatus.REFUNDED.value
        assert current_domain.repository_for(Payment).get(refreshed.payment_id).status == "Refunded"
        assert available_stock("prod-shirt", "shirt-red-m") == 2
        assert current_domain.repository_for(SellerWallet).get("seller-x").pending_balance == 0.0
        assert current_domain.repository_for(SellerWallet).get("seller-y").pending_balance == 0.0
        assert all(s.seller_payment_status == SellerPaymentStatus.REFUNDED.value for s in _suborders(order))


class TestCancelRules:
    def test_only_the_buyer_can_cancel(self, catalogue, shipping_address):
        order = _place_cart_order(catalogue, shipping_address)

        with pytest.raises(ValidationError) as exc:
            _cancel(str(order.id), buyer_id="buyer-2")

        assert "Only the buyer can cancel this order" in str(exc.value)

    def test_cannot_cancel_with_delivered_items(self, catalogue, shipping_address):
        order = _place_cart_order(catalogue, shipping_address)
        suborder = _suborders(order)[0]
        for status in ("Processing", "Packed", "Dispatched", "Delivered"):
            current_domain.process(
                UpdateSuborderStatus(suborder_id=str(suborder.id), seller_id="seller-x", status=status),
                asynchronous=False,
            )

        with pytest.raises(ValidationError) as exc:
            _cancel(str(order.id))

        assert "Cannot cancel an order with delivered items" in str(exc.value)
        assert available_stock("prod-mug", "mug-white") == 9

    def test_cancelling_twice_is_a_no_op(self, catalogue, shipping_address):
        order = _place_cart_order(catalogue, shipping_address)
        _cancel(str(order.id))

        assert _cancel(str(order.id)) == OrderStatus.CANCELLED.value
        assert available_stock("prod-shirt", "shirt-red-m") == 2
