"""Marketplace API package."""

from marketplace.api.routes import (
    gift_card_router,
    maintenance_router,
    order_router,
    payment_router,
    payout_router,
    stock_router,
    suborder_router,
)

__all__ = [
    "order_router",
    "payment_router",
    "suborder_router",
    "stock_router",
    "gift_card_router",
    "payout_router",
    "maintenance_router",
]
