"""Stock ledger access for multi-entry operations.

``StockLedger`` loads (or materializes) each entry once, applies every
movement to that single in-memory copy, and persists the touched entries
together with ``save()``. Each persisted entry is a versioned write, so a
concurrent change to the same variant surfaces as ExpectedVersionError
instead of a lost update.
"""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.catalogue import get_catalogue
from marketplace.errors import InsufficientStockError, ProductNotFoundError
from marketplace.stock.ledger import StockLedgerEntry, ledger_entry_id

logger = structlog.get_logger(__name__)


def _declared_variant(product_id, variant_id):
    product = get_catalogue().get_product(product_id)
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} does not exist")
    variant = product.variant(variant_id)
    if variant is None:
        raise ValidationError({"variant_id": [f"{product.name} has no variant {variant_id}"]})
    return product, variant


def available_stock(product_id, variant_id) -> int:
    """Units that can still be sold. Reads the maintained counter directly."""
    try:
        entry = current_domain.repository_for(StockLedgerEntry).get(ledger_entry_id(product_id, variant_id))
    except ObjectNotFoundError:
        _, variant = _declared_variant(product_id, variant_id)
        return variant.quantity
    return entry.available_stock


class StockLedger:
    def __init__(self) -> None:
        self._entries: dict[str, StockLedgerEntry] = {}

    def entry_for(self, product_id, variant_id) -> StockLedgerEntry:
        entry_id = ledger_entry_id(product_id, variant_id)
        if entry_id in self._entries:
            return self._entries[entry_id]

        try:
            entry = current_domain.repository_for(StockLedgerEntry).get(entry_id)
        except ObjectNotFoundError:
            product, variant = _declared_variant(product_id, variant_id)
            entry = StockLedgerEntry.materialize(
                product_id=product_id,
                variant_id=variant_id,
                seller_id=product.seller_id,
                declared_quantity=variant.quantity,
            )
            logger.info(
                "Stock ledger entry materialized",
                product_id=product_id,
                variant_id=variant_id,
                initial_stock=variant.quantity,
            )

        self._entries[entry_id] = entry
        return entry

    def assert_available(self, demands) -> None:
        """Check every demanded quantity before anything is reserved.

        ``demands`` is an iterable of ``(product_id, variant_id, quantity,
        description)``. Raises InsufficientStockError naming every variant
        that falls short.
        """
        violations = []
        for product_id, variant_id, quantity, description in demands:
            available = self.entry_for(product_id, variant_id).available_stock
            if quantity > available:
                violations.append(
                    f"Insufficient stock for {description}. Available: {available}, Requested: {quantity}"
                )

        if violations:
            raise InsufficientStockError({"stock": violations})

    # Suborder-level movements; ``suborder.items`` supplies the variants.
    def reserve_suborder(self, suborder) -> None:
        for product_id, variant_id, quantity, unit_price in _suborder_demand(suborder):
            self.entry_for(product_id, variant_id).reserve(suborder.id, quantity, unit_price)

    def convert_suborder(self, suborder) -> float:
        earnings = 0.0
        for product_id, variant_id, _, _ in _suborder_demand(suborder):
            earnings += self.entry_for(product_id, variant_id).convert_to_sold(suborder.id)
        return earnings

    def release_suborder(self, suborder) -> int:
        released = 0
        for product_id, variant_id, _, _ in _suborder_demand(suborder):
            released += self.entry_for(product_id, variant_id).release(suborder.id)
        return released

    def unwind_suborder(self, suborder) -> int:
        """Undo whatever stock movement the suborder still holds.

        Active reservations go back to available; sold units are returned.
        """
        moved = 0
        for product_id, variant_id, _, _ in _suborder_demand(suborder):
            entry = self.entry_for(product_id, variant_id)
            moved += entry.release(suborder.id) or entry.return_sold(suborder.id)
        return moved

    def save(self) -> None:
        repo = current_domain.repository_for(StockLedgerEntry)
        for entry in self._entries.values():
            repo.add(entry)


def _suborder_demand(suborder):
    """Per-variant totals of a suborder's items, in item order."""
    totals: dict[tuple, list] = {}
    for item in suborder.items:
        key = (item.product_id, item.variant_id)
        if key in totals:
            totals[key][0] += item.quantity
        else:
            totals[key] = [item.quantity, item.unit_price]
    return [(product_id, variant_id, qty, price) for (product_id, variant_id), (qty, price) in totals.items()]
