"""Checkout — the PlaceOrder command and its orchestrating handler.

Placing an order runs as one handler invocation:

    1. Resolve the buyer's lines (cart or single item) against the catalogue.
    2. Check availability of every variant before anything is touched.
    3. Split the lines per seller, in the order sellers first appear.
    4. Compute shipping, buyer platform charges and gift card contributions.
    5. Create the order, one suborder per seller and reserve their stock.
    6. Create the payment record and, depending on the method, settle now
       (cash on delivery, fully gift-card covered) or defer to the gateway.

A reservation failure for one seller releases the reservations already
made for earlier sellers before the error propagates.
"""

import json
from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.catalogue import get_catalogue
from marketplace.catalogue.port import CartLine, ProductSnapshot, VariantSnapshot
from marketplace.charges.calculator import calculate_platform_charges, round_money
from marketplace.config import FeeRole, get_settings
from marketplace.domain import marketplace
from marketplace.errors import EmptyCartError, ExternalDependencyError, ProductNotFoundError
from marketplace.gateway import get_gateway
from marketplace.giftcard.redemption import load_redeemable_cards, plan_gift_card_application
from marketplace.notifications import notify
from marketplace.notifications.port import NotificationKind
from marketplace.order.order import MONEY_EPSILON, Order, OrderSource, PaymentMethod, ShippingAddress
from marketplace.payment.payment import Payment
from marketplace.payment.settlement import apply_gift_card_debits, notify_sellers, settle_paid
from marketplace.stock.service import StockLedger
from marketplace.suborder.service import save_suborders
from marketplace.suborder.suborder import Suborder

logger = structlog.get_logger(__name__)

GIFT_CARD_REFERENCE = "gift-card"


@marketplace.command(part_of="Order")
class PlaceOrder:
    buyer_id = Identifier(required=True)
    source = String(choices=OrderSource, default=OrderSource.CART.value)
    item = Text()  # JSON: {product_id, quantity, variant_id | color, size} for direct purchases
    payment_method = String(choices=PaymentMethod, required=True)
    shipping_address = Text(required=True)  # JSON: address dict
    gift_card_codes = Text()  # JSON: list of codes, applied in order


@dataclass
class _Line:
    product: ProductSnapshot
    variant: VariantSnapshot
    quantity: int

    @property
    def subtotal(self) -> float:
        return round_money(self.product.price * self.quantity)

    @property
    def description(self) -> str:
        return f"{self.product.name} ({self.variant.label})"

    def as_item(self) -> dict:
        return {
            "product_id": self.product.product_id,
            "variant_id": self.variant.variant_id,
            "product_name": self.product.name,
            "variant_label": self.variant.label,
            "color": self.variant.color_name,
            "size": self.variant.size,
            "quantity": self.quantity,
            "unit_price": self.product.price,
            "subtotal": self.subtotal,
        }


def _loads(value, default):
    if value is None or value == "":
        return default
    return json.loads(value) if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Line resolution
# ---------------------------------------------------------------------------
def _requested_lines(command, catalogue) -> list[CartLine | dict]:
    if command.source == OrderSource.DIRECT_ITEM.value:
        item = _loads(command.item, None)
        if not item:
            raise EmptyCartError({"item": ["No item selected for purchase"]})
        return [item]

    cart = catalogue.get_cart(str(command.buyer_id))
    if not cart:
        raise EmptyCartError({"cart": ["Cart is empty"]})
    return cart


def _resolve_line(requested, catalogue) -> _Line:
    if isinstance(requested, CartLine):
        product_id, quantity = requested.product_id, requested.quantity
        variant_id, color, size = None, requested.color, requested.size
    else:
        product_id, quantity = requested.get("product_id"), requested.get("quantity", 1)
        variant_id, color, size = requested.get("variant_id"), requested.get("color"), requested.get("size")

    if not product_id:
        raise ValidationError({"product_id": ["Product is required"]})
    if not isinstance(quantity, int) or quantity < 1:
        raise ValidationError({"quantity": ["Quantity must be at least 1"]})

    product = catalogue.get_product(product_id)
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} does not exist")

    variant = product.variant(variant_id) if variant_id else product.resolve_variant(color, size)
    if variant is None:
        raise ValidationError({"variant": [f"{product.name} is not available in the selected color and size"]})
    return _Line(product=product, variant=variant, quantity=quantity)


def resolve_lines(command, catalogue) -> list[_Line]:
    """Resolve requested lines once, merging repeats of the same variant."""
    merged: dict[tuple[str, str], _Line] = {}
    for requested in _requested_lines(command, catalogue):
        line = _resolve_line(requested, catalogue)
        key = (line.product.product_id, line.variant.variant_id)
        if key in merged:
            merged[key].quantity += line.quantity
        else:
            merged[key] = line
    return list(merged.values())


def partition_by_seller(lines) -> dict[str, list[_Line]]:
    """Group lines per seller; sellers keep the order they first appear in."""
    partitions: dict[str, list[_Line]] = {}
    for line in lines:
        partitions.setdefault(str(line.product.seller_id), []).append(line)
    return partitions


def shipping_fee_for(seller_id, seller_subtotal, catalogue, settings) -> float:
    threshold = settings.free_shipping_threshold
    if threshold is not None and seller_subtotal >= threshold:
        return 0.0
    profile = catalogue.get_seller(seller_id)
    if profile is not None and profile.shipping_fee is not None:
        return round_money(profile.shipping_fee)
    return round_money(settings.default_shipping_fee)


def initiation_payload(order) -> dict:
    """Signed hosted-checkout payload for a card order."""
    payload = get_gateway().build_initiation(str(order.id), order.final_total, order.currency)
    return {**payload.to_dict(), "payment_id": order.payment_id, "payment_method": order.payment_method}


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
@marketplace.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        settings = get_settings()
        catalogue = get_catalogue()
        buyer_id = str(command.buyer_id)

        shipping_address = _loads(command.shipping_address, {})
        ShippingAddress(**shipping_address)  # Reject a malformed address before anything else

        # Steps 1-2: resolve and check availability across all lines
        lines = resolve_lines(command, catalogue)
        ledger = StockLedger()
        ledger.assert_available(
            (line.product.product_id, line.variant.variant_id, line.quantity, line.description) for line in lines
        )

        # Step 3: per-seller partitions with their shipping fees
        partitions = partition_by_seller(lines)
        shipping_fees = {
            seller_id: shipping_fee_for(
                seller_id, round_money(sum(line.subtotal for line in seller_lines)), catalogue, settings
            )
            for seller_id, seller_lines in partitions.items()
        }
        items_subtotal = round_money(sum(line.subtotal for line in lines))
        shipping_total = round_money(sum(shipping_fees.values()))

        # Step 4: buyer charges and gift cards
        cards = load_redeemable_cards(_loads(command.gift_card_codes, []), settings.max_gift_cards_per_order)
        owed_before_charges = round_money(items_subtotal + shipping_total)
        gift_card_capacity = round_money(sum(card.balance for card in cards))
        charges_waived = (
            command.payment_method == PaymentMethod.CASH_ON_DELIVERY.value
            or gift_card_capacity >= owed_before_charges
        )
        buyer_charges, buyer_breakdown = 0.0, []
        if not charges_waived:
            summary = calculate_platform_charges(items_subtotal, FeeRole.BUYER, settings.fee_schedule)
            buyer_charges, buyer_breakdown = summary.total_charges, summary.breakdown_as_dicts()

        plan = plan_gift_card_application(cards, round_money(owed_before_charges + buyer_charges))
        discount = round_money(sum(amount for _, amount in plan))
        final_total = round_money(owed_before_charges + buyer_charges - discount)

        payment_method = command.payment_method
        if final_total <= MONEY_EPSILON:
            payment_method = PaymentMethod.GIFT_CARD.value
        elif payment_method == PaymentMethod.GIFT_CARD.value:
            raise ValidationError({"payment_method": ["Gift cards do not cover the order total"]})

        # Step 5: order, suborders and reservations
        order = Order.place(
            buyer_id=buyer_id,
            payment_method=payment_method,
            shipping_address=shipping_address,
            items_subtotal=items_subtotal,
            shipping_total=shipping_total,
            buyer_charges=buyer_charges,
            buyer_charges_breakdown=buyer_breakdown,
            gift_card_plan=[(card.code, amount) for card, amount in plan],
            source=command.source,
            currency=settings.currency,
        )

        suborders = []
        for seller_id, seller_lines in partitions.items():
            seller_subtotal = round_money(sum(line.subtotal for line in seller_lines))
            seller_summary = calculate_platform_charges(seller_subtotal, FeeRole.SELLER, settings.fee_schedule)
            suborders.append(
                Suborder.create(
                    order_id=str(order.id),
                    seller_id=seller_id,
                    buyer_id=buyer_id,
                    items_data=[line.as_item() for line in seller_lines],
                    shipping_fee=shipping_fees[seller_id],
                    shipping_address=shipping_address,
                    seller_charges=seller_summary.breakdown_as_dicts(),
                    seller_charges_total=seller_summary.total_charges,
                )
            )
        order.attach_suborders([suborder.id for suborder in suborders])
        self._reserve_all(ledger, order, suborders)

        # Step 6: payment record and method-specific settlement
        payment = Payment.create(
            order_id=str(order.id),
            buyer_id=buyer_id,
            method=payment_method,
            amount=order.final_total,
            currency=order.currency,
        )
        order.attach_payment(payment.id)
        order.announce_placement()

        if payment_method == PaymentMethod.CASH_ON_DELIVERY.value:
            apply_gift_card_debits(order)
            notify_sellers(order, suborders)
        elif payment_method == PaymentMethod.GIFT_CARD.value:
            settle_paid(order, payment, suborders, ledger, external_reference=GIFT_CARD_REFERENCE)

        ledger.save()
        save_suborders(suborders)
        current_domain.repository_for(Payment).add(payment)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            buyer_id=buyer_id,
            payment_method=payment_method,
            suborders=len(suborders),
            final_total=order.final_total,
        )

        notify(NotificationKind.ORDER_PLACED, buyer_id, order_id=str(order.id), final_total=order.final_total)
        if command.source == OrderSource.CART.value:
            try:
                catalogue.clear_cart(buyer_id)
            except ExternalDependencyError as exc:
                logger.warning("Failed to clear cart", buyer_id=buyer_id, error=str(exc))

        if payment_method == PaymentMethod.CARD.value:
            try:
                return initiation_payload(order)
            except ExternalDependencyError as exc:
                logger.warning("Payment initiation failed", order_id=str(order.id), error=str(exc))
        return payment.to_dict()

    def _reserve_all(self, ledger, order, suborders) -> None:
        reserved = []
        for suborder in suborders:
            try:
                ledger.reserve_suborder(suborder)
            except ValidationError:
                for done in [*reserved, suborder]:
                    ledger.release_suborder(done)
                logger.warning(
                    "Reservation failed, released earlier reservations",
                    order_id=str(order.id),
                    seller_id=str(suborder.seller_id),
                    released_suborders=len(reserved),
                )
                raise
            reserved.append(suborder)
