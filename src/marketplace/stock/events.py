"""Domain events for the StockLedgerEntry aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="StockLedgerEntry")
class StockLedgerOpened:
    """A ledger entry was materialized from the product's declared quantity."""

    __version__ = 1

    entry_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    initial_stock = Integer(required=True)
    opened_at = DateTime(required=True)


@marketplace.event(part_of="StockLedgerEntry")
class StockReserved:
    __version__ = 1

    entry_id = Identifier(required=True)
    suborder_id = Identifier(required=True)
    quantity = Integer(required=True)
    available_stock = Integer(required=True)
    reserved_stock = Integer(required=True)
    reserved_at = DateTime(required=True)


@marketplace.event(part_of="StockLedgerEntry")
class ReservedStockSold:
    """A suborder's reservation was converted to sold after payment."""

    __version__ = 1

    entry_id = Identifier(required=True)
    suborder_id = Identifier(required=True)
    quantity = Integer(required=True)
    earnings = Float(required=True)
    sold_count = Integer(required=True)
    sold_at = DateTime(required=True)


@marketplace.event(part_of="StockLedgerEntry")
class ReservedStockReleased:
    __version__ = 1

    entry_id = Identifier(required=True)
    suborder_id = Identifier(required=True)
    quantity = Integer(required=True)
    available_stock = Integer(required=True)
    released_at = DateTime(required=True)


@marketplace.event(part_of="StockLedgerEntry")
class SoldStockReturned:
    """Sold units of a cancelled paid suborder went back to available."""

    __version__ = 1

    entry_id = Identifier(required=True)
    suborder_id = Identifier(required=True)
    quantity = Integer(required=True)
    available_stock = Integer(required=True)
    returned_at = DateTime(required=True)


@marketplace.event(part_of="StockLedgerEntry")
class VariantRestocked:
    __version__ = 1

    entry_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    quantity = Integer(required=True)
    initial_stock = Integer(required=True)
    available_stock = Integer(required=True)
    notes = String(max_length=500)
    restocked_at = DateTime(required=True)
