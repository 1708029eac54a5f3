"""Pydantic request/response schemas for the Marketplace API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class ShippingAddressSchema(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    street: str
    city: str
    state: str | None = None
    postal_code: str | None = None
    country: str


class DirectItemSchema(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, default=1)
    variant_id: str | None = None
    color: str | None = None
    size: str | None = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    buyer_id: str
    source: str = "Cart"
    item: DirectItemSchema | None = None
    payment_method: str
    shipping_address: ShippingAddressSchema
    gift_card_codes: list[str] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "buyer_id": "buyer-001",
                    "source": "Cart",
                    "payment_method": "CashOnDelivery",
                    "shipping_address": {
                        "full_name": "Nimal Perera",
                        "street": "12 Galle Road",
                        "city": "Colombo",
                        "country": "Sri Lanka",
                    },
                    "gift_card_codes": [],
                }
            ]
        }
    }


class CancelOrderRequest(BaseModel):
    buyer_id: str
    reason: str | None = None


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class PaymentOutcomeRequest(BaseModel):
    order_id: str
    status: str
    external_reference: str | None = None


class GatewayNotificationRequest(BaseModel):
    merchant_id: str
    order_id: str
    payhere_amount: str
    payhere_currency: str
    status_code: str
    md5sig: str
    payment_id: str | None = None


# ---------------------------------------------------------------------------
# Suborders
# ---------------------------------------------------------------------------
class UpdateSuborderStatusRequest(BaseModel):
    seller_id: str
    status: str
    tracking_number: str | None = None


class CancelSuborderRequest(BaseModel):
    reason: str | None = None
    cancelled_by: str = "Seller"


class ConfirmDeliveryRequest(BaseModel):
    buyer_id: str
    confirmed: bool = True
    reason: str | None = None


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------
class RestockRequest(BaseModel):
    quantity: int = Field(ge=1)
    notes: str | None = None


class AvailabilityResponse(BaseModel):
    product_id: str
    variant_id: str
    available_stock: int


# ---------------------------------------------------------------------------
# Gift cards
# ---------------------------------------------------------------------------
class IssueGiftCardRequest(BaseModel):
    amount: float = Field(gt=0)
    purchased_by: str | None = None
    recipient_email: str | None = None


class GiftCardResponse(BaseModel):
    code: str
    balance: float
    status: str
    expires_at: str | None = None


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------
class RequestPayoutRequest(BaseModel):
    seller_id: str
    amount: float
    method: str = "BANK_TRANSFER"


class PayoutDecisionRequest(BaseModel):
    admin_note: str | None = None


class CancelPayoutRequest(BaseModel):
    seller_id: str


class MarkPayoutPaidRequest(BaseModel):
    amount_paid: float | None = None
    receipt_urls: list[str] = Field(default_factory=list)
    admin_note: str | None = None


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
class AutoConfirmRequest(BaseModel):
    threshold_days: int | None = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# Generic responses
# ---------------------------------------------------------------------------
class IdResponse(BaseModel):
    id: str


class StatusResponse(BaseModel):
    status: str = "ok"


class CountResponse(BaseModel):
    count: int
