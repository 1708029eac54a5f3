"""Suborder stock movements as standalone, retryable commands.

Checkout and payment reconciliation move stock in-process; these commands
expose the same steps one suborder at a time so an operator (or a retry
after ConcurrencyConflict) can re-drive a single step. Every step is
idempotent per suborder.
"""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.stock.ledger import StockLedgerEntry
from marketplace.stock.service import StockLedger
from marketplace.suborder.suborder import Suborder

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="StockLedgerEntry")
class ReserveSuborderStock:
    suborder_id = Identifier(required=True)


@marketplace.command(part_of="StockLedgerEntry")
class ConvertSuborderStock:
    suborder_id = Identifier(required=True)


@marketplace.command(part_of="StockLedgerEntry")
class ReleaseSuborderStock:
    suborder_id = Identifier(required=True)


@marketplace.command_handler(part_of=StockLedgerEntry)
class SuborderStockHandler:
    @handle(ReserveSuborderStock)
    def reserve(self, command):
        suborder = current_domain.repository_for(Suborder).get(command.suborder_id)
        ledger = StockLedger()
        ledger.assert_available(
            (item.product_id, item.variant_id, item.quantity, item.description)
            for item in suborder.items
            if ledger.entry_for(item.product_id, item.variant_id).reservation_for(suborder.id) is None
        )
        ledger.reserve_suborder(suborder)
        ledger.save()
        logger.info("Suborder stock reserved", suborder_id=command.suborder_id)

    @handle(ConvertSuborderStock)
    def convert(self, command):
        suborder = current_domain.repository_for(Suborder).get(command.suborder_id)
        ledger = StockLedger()
        earnings = ledger.convert_suborder(suborder)
        ledger.save()
        logger.info("Suborder stock sold", suborder_id=command.suborder_id, earnings=earnings)
        return earnings

    @handle(ReleaseSuborderStock)
    def release(self, command):
        suborder = current_domain.repository_for(Suborder).get(command.suborder_id)
        ledger = StockLedger()
        released = ledger.release_suborder(suborder)
        ledger.save()
        logger.info("Suborder stock released", suborder_id=command.suborder_id, quantity=released)
        return released
