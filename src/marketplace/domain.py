"""Marketplace bounded context — order fulfillment and inventory ledgers.

Splits checkouts into per-seller suborders, keeps the stock ledger closed
(available + reserved + sold == initial), and reconciles payment outcomes
into stock, seller wallet, gift card and order state.
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
