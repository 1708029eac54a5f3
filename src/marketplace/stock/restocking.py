"""Restock a variant — command and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String

from marketplace.domain import marketplace
from marketplace.stock.ledger import StockLedgerEntry
from marketplace.stock.service import StockLedger

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="StockLedgerEntry")
class RestockVariant:
    product_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    quantity = Integer(required=True)
    notes = String(max_length=500)


@marketplace.command_handler(part_of=StockLedgerEntry)
class RestockHandler:
    @handle(RestockVariant)
    def restock_variant(self, command):
        ledger = StockLedger()
        entry = ledger.entry_for(command.product_id, command.variant_id)
        entry.restock(command.quantity, notes=command.notes)
        ledger.save()

        logger.info(
            "Variant restocked",
            product_id=command.product_id,
            variant_id=command.variant_id,
            quantity=command.quantity,
            available_stock=entry.available_stock,
        )
        return entry.available_stock
