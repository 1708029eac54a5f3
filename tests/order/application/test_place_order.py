"""Application tests for PlaceOrder."""

import json

import pytest
from marketplace.catalogue.port import CartLine
from marketplace.config import MarketplaceSettings, use_settings
from marketplace.errors import (
    EmptyCartError,
    ExternalDependencyError,
    GiftCardNotFoundError,
    InsufficientStockError,
    ProductNotFoundError,
)
from marketplace.giftcard.giftcard import GiftCard, GiftCardStatus
from marketplace.notifications.port import NotificationKind
from marketplace.order.checkout import PlaceOrder
from marketplace.order.order import Order, PaymentMethod, PaymentStatus
from marketplace.payment.payment import Payment
from marketplace.stock.ledger import StockLedgerEntry, ledger_entry_id
from marketplace.stock.service import StockLedger, available_stock
from marketplace.suborder.suborder import SellerPaymentStatus, Suborder
from marketplace.wallet.wallet import SellerWallet
from protean import current_domain
from protean.exceptions import ValidationError


def _place_order(shipping_address, **overrides):
    defaults = {
        "buyer_id": "buyer-1",
        "source": "DirectItem",
        "item": json.dumps({"product_id": "prod-shirt", "variant_id": "shirt-red-m", "quantity": 2}),
        "payment_method": PaymentMethod.CASH_ON_DELIVERY.value,
        "shipping_address": json.dumps(shipping_address),
    }
    defaults.update(overrides)
    return current_domain.process(PlaceOrder(**defaults), asynchronous=False)


def _issue_card(code, amount):
    card = GiftCard.issue(amount=amount, code=code)
    current_domain.repository_for(GiftCard).add(card)
    return card


def _entry(product_id, variant_id):
    return current_domain.repository_for(StockLedgerEntry).get(ledger_entry_id(product_id, variant_id))


def _all_orders():
    return current_domain.repository_for(Order)._dao.query.all().items


def _suborders_of(order):
    return [current_domain.repository_for(Suborder).get(sid) for sid in order.suborder_id_list]


class TestCashOnDelivery:
    def test_single_seller_order(self, catalogue, notifier, shipping_address):
        result = _place_order(shipping_address)

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.items_subtotal == 2000.0
        assert order.shipping_total == 150.0
        assert order.buyer_charges == 0.0
        assert order.final_total == 2150.0

        suborders = _suborders_of(order)
        assert len(suborders) == 1
        assert suborders[0].seller_id == "seller-x"
        assert suborders[0].items[0].quantity == 2

        entry = _entry("prod-shirt", "shirt-red-m")
        assert entry.available_stock == 0
        assert entry.reserved_stock == 2

        payment = current_domain.repository_for(Payment).get(result["id"])
        assert payment.status == "Pending"
        assert payment.method == PaymentMethod.CASH_ON_DELIVERY.value
        assert payment.amount == 2150.0

    def test_buyer_and_sellers_notified_immediately(self, catalogue, notifier, shipping_address):
        _place_order(shipping_address)

        assert notifier.sent_to("buyer-1", NotificationKind.ORDER_PLACED)
        assert notifier.sent_to("seller-x", NotificationKind.NEW_ORDER_FOR_SELLER)

    def test_seller_earnings_not_credited_before_delivery(self, catalogue, shipping_address):
        result = _place_order(shipping_address)

        order = current_domain.repository_for(Order).get(result["order_id"])
        suborder = _suborders_of(order)[0]
        assert suborder.seller_payment_status == SellerPaymentStatus.PENDING.value
        assert current_domain.repository_for(SellerWallet)._dao.query.all().items == []

    def test_gift_card_debited_at_placement(self, catalogue, shipping_address):
        _issue_card("GC-AAAA-AAAA-AAAA", 1000.0)

        result = _place_order(shipping_address, gift_card_codes=json.dumps(["gc-aaaa-aaaa-aaaa"]))

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.gift_card_discount == 1000.0
        assert order.final_total == 1150.0
        assert order.gift_card_debits_applied is True
        card = current_domain.repository_for(GiftCard).get("GC-AAAA-AAAA-AAAA")
        assert card.balance == 0.0
        assert card.status == GiftCardStatus.FULLY_REDEEMED.value


class TestCardPayment:
    def _cart(self, catalogue):
        catalogue.set_cart(
            "buyer-1",
            [
                CartLine(product_id="prod-shirt", quantity=1, color="Blue", size="L"),
                CartLine(product_id="prod-mug", quantity=2, color="WHT"),
            ],
        )

    def test_returns_signed_initiation_payload(self, catalogue, gateway, shipping_address):
        self._cart(catalogue)

        result = _place_order(shipping_address, source="Cart", item=None, payment_method="Card")

        assert result["merchant_id"] == "fake-merchant"
        assert result["amount"] == "2300.00"
        assert result["currency"] == "LKR"
        assert result["hash"] == gateway.sign("fake-merchant", result["order_id"], "2300.00", "LKR")
        assert result["payment_method"] == "Card"
        assert result["payment_id"]

    def test_multi_seller_split_and_charges(self, catalogue, gateway, shipping_address):
        self._cart(catalogue)

        result = _place_order(shipping_address, source="Cart", item=None, payment_method="Card")

        order = current_domain.repository_for(Order).get(result["order_id"])
        suborders = _suborders_of(order)
        assert [s.seller_id for s in suborders] == ["seller-x", "seller-y"]
        assert [s.shipping_fee for s in suborders] == [150.0, 100.0]
        assert [s.final_total for s in suborders] == [1150.0, 1100.0]
        assert suborders[0].seller_charges_total == 40.0
        assert order.buyer_charges == 50.0
        total = sum(s.final_total for s in suborders) + order.buyer_charges - order.gift_card_discount
        assert abs(total - order.final_total) <= 0.01

    def test_debits_and_seller_notifications_deferred(self, catalogue, gateway, notifier, shipping_address):
        self._cart(catalogue)
        _issue_card("GC-BBBB-BBBB-BBBB", 500.0)

        result = _place_order(
            shipping_address,
            source="Cart",
            item=None,
            payment_method="Card",
            gift_card_codes=json.dumps(["GC-BBBB-BBBB-BBBB"]),
        )

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.gift_card_discount == 500.0
        assert order.gift_card_debits_applied is False
        assert current_domain.repository_for(GiftCard).get("GC-BBBB-BBBB-BBBB").balance == 500.0
        assert notifier.sent_to("seller-x") == []

    def test_cart_cleared(self, catalogue, gateway, shipping_address):
        self._cart(catalogue)
        _place_order(shipping_address, source="Cart", item=None, payment_method="Card")
        assert catalogue.get_cart("buyer-1") == []

    def test_gateway_failure_still_places_order(self, catalogue, gateway, shipping_address):
        gateway.configure(should_succeed=False)

        result = _place_order(shipping_address, payment_method="Card")

        assert result["status"] == "Pending"
        assert len(_all_orders()) == 1


class TestFullyGiftCardCovered:
    def test_scenario_two_cards_cover_order(self, catalogue, notifier, shipping_address):
        use_settings(MarketplaceSettings(default_shipping_fee=200.0))
        _issue_card("GC-AAAA-0000-0300", 300.0)
        _issue_card("GC-BBBB-0000-1000", 1000.0)

        result = _place_order(
            shipping_address,
            item=json.dumps({"product_id": "prod-mug", "variant_id": "mug-white", "quantity": 2}),
            payment_method="Card",
            gift_card_codes=json.dumps(["GC-AAAA-0000-0300", "GC-BBBB-0000-1000"]),
        )

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.gift_card_discount == 1200.0
        assert order.final_total == 0.0
        assert order.buyer_charges == 0.0
        assert order.payment_method == PaymentMethod.GIFT_CARD.value
        assert order.payment_status == PaymentStatus.PAID.value

        card_a = current_domain.repository_for(GiftCard).get("GC-AAAA-0000-0300")
        card_b = current_domain.repository_for(GiftCard).get("GC-BBBB-0000-1000")
        assert card_a.balance == 0.0
        assert card_a.status == GiftCardStatus.FULLY_REDEEMED.value
        assert card_b.balance == 100.0
        assert card_b.status == GiftCardStatus.ACTIVE.value

    def test_settled_immediately(self, catalogue, shipping_address):
        _issue_card("GC-CCCC-CCCC-CCCC", 5000.0)

        result = _place_order(shipping_address, gift_card_codes=json.dumps(["GC-CCCC-CCCC-CCCC"]))

        entry = _entry("prod-shirt", "shirt-red-m")
        assert entry.reserved_stock == 0
        assert entry.sold_count == 2

        order = current_domain.repository_for(Order).get(result["order_id"])
        suborder = _suborders_of(order)[0]
        assert suborder.seller_payment_status == SellerPaymentStatus.HELD.value
        wallet = current_domain.repository_for(SellerWallet).get("seller-x")
        assert wallet.pending_balance == 2000.0


class TestAvailability:
    def test_ordering_exactly_available_succeeds(self, catalogue, shipping_address):
        _place_order(shipping_address)
        assert available_stock("prod-shirt", "shirt-red-m") == 0

    def test_ordering_one_more_than_available_fails_and_reserves_nothing(self, catalogue, shipping_address):
        with pytest.raises(InsufficientStockError) as exc:
            _place_order(
                shipping_address,
                item=json.dumps({"product_id": "prod-shirt", "variant_id": "shirt-red-m", "quantity": 3}),
            )

        assert "Insufficient stock for Linen Shirt (Red, M). Available: 2, Requested: 3" in str(exc.value)
        assert available_stock("prod-shirt", "shirt-red-m") == 2
        assert _all_orders() == []

    def test_every_violation_listed(self, catalogue, shipping_address):
        catalogue.set_cart(
            "buyer-1",
            [
                CartLine(product_id="prod-shirt", quantity=3, color="Red", size="M"),
                CartLine(product_id="prod-mug", quantity=11, color="White"),
                CartLine(product_id="prod-shirt", quantity=1, color="Blue", size="L"),
            ],
        )

        with pytest.raises(InsufficientStockError) as exc:
            _place_order(shipping_address, source="Cart", item=None)

        messages = exc.value.messages["stock"]
        assert len(messages) == 2
        assert "Clay Mug (White). Available: 10, Requested: 11" in messages[1]
        assert available_stock("prod-shirt", "shirt-blue-l") == 5

    def test_repeated_lines_are_merged(self, catalogue, shipping_address):
        catalogue.set_cart(
            "buyer-1",
            [
                CartLine(product_id="prod-shirt", quantity=1, color="RED", size="M"),
                CartLine(product_id="prod-shirt", quantity=1, color="Red", size="M"),
            ],
        )

        result = _place_order(shipping_address, source="Cart", item=None)

        order = current_domain.repository_for(Order).get(result["order_id"])
        items = _suborders_of(order)[0].items
        assert len(items) == 1
        assert items[0].quantity == 2


class TestRejectedCheckouts:
    def test_empty_cart(self, catalogue, shipping_address):
        with pytest.raises(EmptyCartError):
            _place_order(shipping_address, source="Cart", item=None)

    def test_unknown_product(self, catalogue, shipping_address):
        with pytest.raises(ProductNotFoundError):
            _place_order(shipping_address, item=json.dumps({"product_id": "prod-ghost", "quantity": 1}))

    def test_unknown_variant(self, catalogue, shipping_address):
        with pytest.raises(ValidationError) as exc:
            _place_order(
                shipping_address,
                item=json.dumps({"product_id": "prod-shirt", "color": "Green", "size": "M", "quantity": 1}),
            )
        assert "not available in the selected color and size" in str(exc.value)

    def test_invalid_gift_card_aborts_whole_order(self, catalogue, shipping_address):
        _issue_card("GC-AAAA-AAAA-AAAA", 300.0)

        with pytest.raises(GiftCardNotFoundError):
            _place_order(shipping_address, gift_card_codes=json.dumps(["GC-AAAA-AAAA-AAAA", "GC-NOPE-NOPE-NOPE"]))

        assert current_domain.repository_for(GiftCard).get("GC-AAAA-AAAA-AAAA").balance == 300.0
        assert _all_orders() == []
        assert available_stock("prod-shirt", "shirt-red-m") == 2

    def test_duplicate_gift_card_codes(self, catalogue, shipping_address):
        _issue_card("GC-AAAA-AAAA-AAAA", 300.0)
        with pytest.raises(ValidationError):
            _place_order(shipping_address, gift_card_codes=json.dumps(["GC-AAAA-AAAA-AAAA", "gc-aaaa-aaaa-aaaa"]))

    def test_malformed_address(self, catalogue):
        with pytest.raises(ValidationError):
            _place_order({"street": "12 Galle Road"})


class TestShipping:
    def test_free_shipping_threshold(self, catalogue, shipping_address):
        use_settings(MarketplaceSettings(free_shipping_threshold=2000.0))

        result = _place_order(shipping_address)

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.shipping_total == 0.0
        assert order.final_total == 2000.0

    def test_variant_resolved_by_color_code(self, catalogue, shipping_address):
        result = _place_order(
            shipping_address,
            item=json.dumps({"product_id": "prod-shirt", "color": "BLU", "size": "L", "quantity": 1}),
        )
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert _suborders_of(order)[0].items[0].variant_id == "shirt-blue-l"


class TestResilience:
    def test_notification_failure_does_not_abort(self, catalogue, notifier, shipping_address):
        notifier.configure(should_fail=True)

        result = _place_order(shipping_address)

        assert current_domain.repository_for(Order).get(result["order_id"])
        assert notifier.sent == []

    def test_reservation_failure_releases_earlier_sellers(self, catalogue, shipping_address, monkeypatch):
        catalogue.set_cart(
            "buyer-1",
            [
                CartLine(product_id="prod-shirt", quantity=2, color="Red", size="M"),
                CartLine(product_id="prod-mug", quantity=1, color="White"),
            ],
        )
        ledgers = []
        original = StockLedger.reserve_suborder

        def failing_for_second_seller(self, suborder):
            ledgers.append(self)
            if suborder.seller_id == "seller-y":
                raise ValidationError({"stock": ["Stock moved underneath the checkout"]})
            original(self, suborder)

        monkeypatch.setattr(StockLedger, "reserve_suborder", failing_for_second_seller)

        with pytest.raises(ValidationError):
            _place_order(shipping_address, source="Cart", item=None)

        entry = ledgers[0].entry_for("prod-shirt", "shirt-red-m")
        assert entry.reserved_stock == 0
        assert entry.available_stock == 2
        assert _all_orders() == []

    def test_unreachable_catalogue_aborts_before_any_mutation(self, catalogue, shipping_address):
        catalogue.configure(available=False)

        with pytest.raises(ExternalDependencyError):
            _place_order(shipping_address)

        assert _all_orders() == []
