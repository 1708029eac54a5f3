"""FastAPI routes for the Marketplace domain."""

import json

from fastapi import APIRouter, HTTPException
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    AutoConfirmRequest,
    AvailabilityResponse,
    CancelOrderRequest,
    CancelPayoutRequest,
    CancelSuborderRequest,
    ConfirmDeliveryRequest,
    CountResponse,
    GatewayNotificationRequest,
    GiftCardResponse,
    IdResponse,
    IssueGiftCardRequest,
    MarkPayoutPaidRequest,
    PaymentOutcomeRequest,
    PayoutDecisionRequest,
    PlaceOrderRequest,
    RequestPayoutRequest,
    RestockRequest,
    StatusResponse,
    UpdateSuborderStatusRequest,
)
from marketplace.gateway import get_gateway
from marketplace.gateway.port import GatewayNotification
from marketplace.giftcard.issuance import IssueGiftCard
from marketplace.giftcard.redemption import validate_gift_card
from marketplace.order.cancellation import CancelOrder
from marketplace.order.checkout import PlaceOrder
from marketplace.payment.reconciliation import ReconcilePayment
from marketplace.payout.request import RequestPayout
from marketplace.payout.review import ApprovePayout, CancelPayout, MarkPayoutPaid, RejectPayout
from marketplace.shared.concurrency import retry_on_conflict
from marketplace.stock.restocking import RestockVariant
from marketplace.stock.service import available_stock
from marketplace.suborder.delivery import AutoConfirmDeliveries, ConfirmDelivery
from marketplace.suborder.progress import CancelSuborder, UpdateSuborderStatus

order_router = APIRouter(prefix="/orders", tags=["orders"])
payment_router = APIRouter(prefix="/payments", tags=["payments"])
suborder_router = APIRouter(prefix="/suborders", tags=["suborders"])
stock_router = APIRouter(prefix="/stock", tags=["stock"])
gift_card_router = APIRouter(prefix="/gift-cards", tags=["gift-cards"])
payout_router = APIRouter(prefix="/payouts", tags=["payouts"])
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


def _process(command):
    return current_domain.process(command, asynchronous=False)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
@order_router.post("", status_code=201)
async def place_order(body: PlaceOrderRequest) -> dict:
    """Place an order and return the payment intent.

    Card orders get the signed hosted-checkout payload; other methods get
    the payment record.
    """
    command = PlaceOrder(
        buyer_id=body.buyer_id,
        source=body.source,
        item=json.dumps(body.item.model_dump()) if body.item else None,
        payment_method=body.payment_method,
        shipping_address=json.dumps(body.shipping_address.model_dump()),
        gift_card_codes=json.dumps(body.gift_card_codes),
    )
    return _process(command)


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> StatusResponse:
    result = _process(CancelOrder(order_id=order_id, buyer_id=body.buyer_id, reason=body.reason))
    return StatusResponse(status=result)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
@payment_router.post("/notify", response_model=StatusResponse)
async def gateway_notification(body: GatewayNotificationRequest) -> StatusResponse:
    """Gateway server-to-server callback."""
    gateway = get_gateway()
    notification = GatewayNotification(
        merchant_id=body.merchant_id,
        order_id=body.order_id,
        amount=body.payhere_amount,
        currency=body.payhere_currency,
        status_code=body.status_code,
        signature=body.md5sig,
        payment_reference=body.payment_id,
    )
    if not gateway.verify_notification(notification):
        raise HTTPException(status_code=400, detail="Invalid payment notification signature")

    command = ReconcilePayment(
        order_id=body.order_id,
        status=gateway.outcome_for(body.status_code),
        external_reference=body.payment_id,
    )
    result = retry_on_conflict(lambda: _process(command), order_id=body.order_id)
    return StatusResponse(status=result)


@payment_router.post("/outcomes", response_model=StatusResponse)
async def record_payment_outcome(body: PaymentOutcomeRequest) -> StatusResponse:
    command = ReconcilePayment(
        order_id=body.order_id,
        status=body.status,
        external_reference=body.external_reference,
    )
    result = retry_on_conflict(lambda: _process(command), order_id=body.order_id)
    return StatusResponse(status=result)


# ---------------------------------------------------------------------------
# Suborders
# ---------------------------------------------------------------------------
@suborder_router.put("/{suborder_id}/status", response_model=StatusResponse)
async def update_suborder_status(suborder_id: str, body: UpdateSuborderStatusRequest) -> StatusResponse:
    _process(
        UpdateSuborderStatus(
            suborder_id=suborder_id,
            seller_id=body.seller_id,
            status=body.status,
            tracking_number=body.tracking_number,
        )
    )
    return StatusResponse()


@suborder_router.post("/{suborder_id}/cancel", response_model=StatusResponse)
async def cancel_suborder(suborder_id: str, body: CancelSuborderRequest) -> StatusResponse:
    command = CancelSuborder(suborder_id=suborder_id, reason=body.reason, cancelled_by=body.cancelled_by)
    retry_on_conflict(lambda: _process(command), suborder_id=suborder_id)
    return StatusResponse()


@suborder_router.post("/{suborder_id}/delivery", response_model=StatusResponse)
async def confirm_delivery(suborder_id: str, body: ConfirmDeliveryRequest) -> StatusResponse:
    command = ConfirmDelivery(
        suborder_id=suborder_id,
        buyer_id=body.buyer_id,
        confirmed=body.confirmed,
        reason=body.reason,
    )
    result = retry_on_conflict(lambda: _process(command), suborder_id=suborder_id)
    return StatusResponse(status=result)


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------
@stock_router.post("/{product_id}/{variant_id}/restock", response_model=AvailabilityResponse)
async def restock_variant(product_id: str, variant_id: str, body: RestockRequest) -> AvailabilityResponse:
    command = RestockVariant(product_id=product_id, variant_id=variant_id, quantity=body.quantity, notes=body.notes)
    result = retry_on_conflict(lambda: _process(command), product_id=product_id, variant_id=variant_id)
    return AvailabilityResponse(product_id=product_id, variant_id=variant_id, available_stock=result)


@stock_router.get("/{product_id}/{variant_id}", response_model=AvailabilityResponse)
async def get_availability(product_id: str, variant_id: str) -> AvailabilityResponse:
    return AvailabilityResponse(
        product_id=product_id,
        variant_id=variant_id,
        available_stock=available_stock(product_id, variant_id),
    )


# ---------------------------------------------------------------------------
# Gift cards
# ---------------------------------------------------------------------------
@gift_card_router.post("", status_code=201, response_model=IdResponse)
async def issue_gift_card(body: IssueGiftCardRequest) -> IdResponse:
    code = _process(
        IssueGiftCard(
            amount=body.amount,
            purchased_by=body.purchased_by,
            recipient_email=body.recipient_email,
        )
    )
    return IdResponse(id=code)


@gift_card_router.get("/{code}", response_model=GiftCardResponse)
async def check_gift_card(code: str) -> GiftCardResponse:
    card = validate_gift_card(code)
    return GiftCardResponse(
        code=card.code,
        balance=card.balance,
        status=card.status,
        expires_at=card.expires_at.isoformat() if card.expires_at else None,
    )


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------
@payout_router.post("", status_code=201, response_model=IdResponse)
async def request_payout(body: RequestPayoutRequest) -> IdResponse:
    command = RequestPayout(seller_id=body.seller_id, amount=body.amount, method=body.method)
    payout_id = retry_on_conflict(lambda: _process(command), seller_id=body.seller_id)
    return IdResponse(id=payout_id)


@payout_router.post("/{payout_id}/approve", response_model=StatusResponse)
async def approve_payout(payout_id: str, body: PayoutDecisionRequest) -> StatusResponse:
    _process(ApprovePayout(payout_id=payout_id, admin_note=body.admin_note))
    return StatusResponse()


@payout_router.post("/{payout_id}/reject", response_model=StatusResponse)
async def reject_payout(payout_id: str, body: PayoutDecisionRequest) -> StatusResponse:
    _process(RejectPayout(payout_id=payout_id, admin_note=body.admin_note))
    return StatusResponse()


@payout_router.post("/{payout_id}/cancel", response_model=StatusResponse)
async def cancel_payout(payout_id: str, body: CancelPayoutRequest) -> StatusResponse:
    _process(CancelPayout(payout_id=payout_id, seller_id=body.seller_id))
    return StatusResponse()


@payout_router.post("/{payout_id}/paid", response_model=StatusResponse)
async def mark_payout_paid(payout_id: str, body: MarkPayoutPaidRequest) -> StatusResponse:
    _process(
        MarkPayoutPaid(
            payout_id=payout_id,
            amount_paid=body.amount_paid,
            receipt_urls=json.dumps(body.receipt_urls),
            admin_note=body.admin_note,
        )
    )
    return StatusResponse()


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
@maintenance_router.post("/auto-confirm-deliveries", response_model=CountResponse)
async def auto_confirm_deliveries(body: AutoConfirmRequest) -> CountResponse:
    """Trigger the overdue delivery sweep (called daily by a scheduler)."""
    confirmed = _process(AutoConfirmDeliveries(threshold_days=body.threshold_days))
    return CountResponse(count=confirmed)
