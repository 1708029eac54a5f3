"""BDD tests for checkout and payment outcomes."""

import json

from marketplace.order.checkout import PlaceOrder
from marketplace.payment.reconciliation import ReconcilePayment
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import parsers, scenarios, when

scenarios("features/checkout.feature")


def _place(checkout, shipping_address, item, payment_method, gift_card_codes=None):
    try:
        checkout["result"] = current_domain.process(
            PlaceOrder(
                buyer_id="buyer-1",
                source="DirectItem",
                item=json.dumps(item),
                payment_method=payment_method,
                shipping_address=json.dumps(shipping_address),
                gift_card_codes=json.dumps(gift_card_codes or []),
            ),
            asynchronous=False,
        )
    except ValidationError as exc:
        checkout["exc"] = exc


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the buyer orders {qty:d} "{variant_id}" shirts paying "{method}"'))
def _(checkout, shipping_address, qty, variant_id, method):
    _place(
        checkout,
        shipping_address,
        {"product_id": "prod-shirt", "variant_id": variant_id, "quantity": qty},
        method,
    )


@when(parsers.cfparse('the buyer orders {qty:d} mugs with gift cards "{codes}"'))
def _(checkout, shipping_address, qty, codes):
    _place(
        checkout,
        shipping_address,
        {"product_id": "prod-mug", "variant_id": "mug-white", "quantity": qty},
        "Card",
        gift_card_codes=codes.split(","),
    )


@when(parsers.cfparse('the gateway reports the payment "{outcome}"'))
def _(checkout, outcome):
    current_domain.process(
        ReconcilePayment(order_id=checkout["result"]["order_id"], status=outcome, external_reference="ph-bdd"),
        asynchronous=False,
    )
