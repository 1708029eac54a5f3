"""Shared BDD fixtures and step definitions for checkout."""

import json

import pytest
from marketplace.config import MarketplaceSettings, use_settings
from marketplace.giftcard.giftcard import GiftCard
from marketplace.order.order import Order
from marketplace.stock.ledger import StockLedgerEntry, ledger_entry_id
from marketplace.stock.service import available_stock
from marketplace.suborder.suborder import Suborder
from protean import current_domain
from protean.exceptions import ObjectNotFoundError
from pytest_bdd import given, parsers, then

_VARIANT_PRODUCTS = {
    "shirt-red-m": "prod-shirt",
    "shirt-blue-l": "prod-shirt",
    "mug-white": "prod-mug",
}


@pytest.fixture()
def checkout():
    """Container for the outcome of the last checkout step."""
    return {"result": None, "exc": None}


def _placed_order(checkout):
    assert checkout["exc"] is None, f"Checkout failed: {checkout['exc']}"
    return current_domain.repository_for(Order).get(checkout["result"]["order_id"])


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the catalogue lists the linen shirt and the clay mug")
def _(catalogue, notifier, gateway):
    return catalogue


@given(parsers.cfparse("the default shipping fee is {fee:f}"))
def _(fee):
    use_settings(MarketplaceSettings(default_shipping_fee=fee))


@given(parsers.cfparse('gift card "{code}" holds {amount:f}'))
def _(code, amount):
    current_domain.repository_for(GiftCard).add(GiftCard.issue(amount=amount, code=code))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the order has {count:d} suborder"))
def _(checkout, count):
    assert len(_placed_order(checkout).suborder_id_list) == count


@then(parsers.cfparse('"{variant_id}" has {available:d} available and {reserved:d} reserved'))
def _(variant_id, available, reserved):
    product_id = _VARIANT_PRODUCTS[variant_id]
    assert available_stock(product_id, variant_id) == available
    try:
        entry = current_domain.repository_for(StockLedgerEntry).get(ledger_entry_id(product_id, variant_id))
    except ObjectNotFoundError:
        assert reserved == 0
    else:
        assert entry.reserved_stock == reserved


@then(parsers.cfparse('the payment is "{status}" by "{method}"'))
def _(checkout, status, method):
    assert checkout["result"]["status"] == status
    assert checkout["result"]["method"] == method


@then(parsers.cfparse('the checkout fails with "{message}"'))
def _(checkout, message):
    assert checkout["exc"] is not None, "Expected the checkout to fail"
    assert message in json.dumps(checkout["exc"].messages)


@then(parsers.cfparse("the gift card discount is {amount:f}"))
def _(checkout, amount):
    assert _placed_order(checkout).gift_card_discount == amount


@then(parsers.cfparse('gift card "{code}" has {balance:f} left and is "{status}"'))
def _(code, balance, status):
    card = current_domain.repository_for(GiftCard).get(code)
    assert card.balance == balance
    assert card.status == status


@then(parsers.cfparse('the order payment status is "{status}"'))
def _(checkout, status):
    assert _placed_order(checkout).payment_status == status


@then(parsers.cfparse('the order status is "{status}"'))
def _(checkout, status):
    assert _placed_order(checkout).status == status


@then(parsers.cfparse('every suborder is "{status}"'))
def _(checkout, status):
    repo = current_domain.repository_for(Suborder)
    assert all(repo.get(sid).status == status for sid in _placed_order(checkout).suborder_id_list)
