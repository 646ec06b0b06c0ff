"""Pydantic request/response schemas for the Checkout API.

These are external contracts, kept separate from the aggregate and the
port dataclasses.
"""

from typing import Literal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CartItemSchema(BaseModel):
    id: str
    product_id: str = ""
    variant_id: str
    name: str
    unit_price: float = Field(ge=0)
    quantity: int = Field(ge=1, default=1)
    size: str = ""
    color: str = ""
    source: str = "printful"
    shipping_regions: list[str] | None = None
    image_url: str = ""


class CustomerInfoSchema(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    address1: str = ""
    address2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""


class ShippingRateSchema(BaseModel):
    id: str
    name: str
    price: float
    currency: str = "USD"
    min_delivery_days: int | None = None
    max_delivery_days: int | None = None


class IncompatibleItemSchema(BaseModel):
    item_id: str
    name: str
    available_regions: list[str]
    requested_country: str


class UnavailableItemSchema(BaseModel):
    variant_id: str
    name: str
    reason: str


class TotalsSchema(BaseModel):
    subtotal: float
    shipping: float
    tax: float
    total: float


class MergeSchema(BaseModel):
    pending: bool
    guest_count: int
    account_count: int


class NotificationSchema(BaseModel):
    level: str
    message: str


class ErrorSchema(BaseModel):
    kind: str
    message: str
    fields: dict[str, list[str]] | None = None


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class CreateSessionRequest(BaseModel):
    items: list[CartItemSchema] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {
                            "id": "line-1",
                            "product_id": "prod-001",
                            "variant_id": "4012",
                            "name": "Glitch Tee",
                            "unit_price": 24.0,
                            "quantity": 1,
                            "shipping_regions": ["US", "CA"],
                        }
                    ]
                }
            ]
        }
    }


class UpdateCustomerRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Jane Doe",
                    "email": "jane@example.com",
                    "phone": "+13105551234",
                    "address1": "9641 Sunset Blvd",
                    "city": "Beverly Hills",
                    "state": "CA",
                    "zip": "90210",
                    "country": "US",
                }
            ]
        }
    }


class SelectRateRequest(BaseModel):
    rate_id: str


class RemoveItemsRequest(BaseModel):
    ids: list[str] = Field(min_length=1)


class LoginRequest(BaseModel):
    email: str
    password: str


class MergeDecisionRequest(BaseModel):
    decision: Literal["confirm", "cancel"]


class SignupRequest(BaseModel):
    wants_to_signup: bool
    password: str = ""
    confirm_password: str = ""


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    session_id: str
    view: str
    step: str
    customer: CustomerInfoSchema
    items: list[CartItemSchema]
    incompatible: list[IncompatibleItemSchema]
    restriction_message: str
    rates: list[ShippingRateSchema]
    selected_rate_id: str | None = None
    totals: TotalsSchema
    order_number: str | None = None
    client_secret: str | None = None
    wants_to_signup: bool = False
    authenticated: bool = False
    is_loading_location: bool = False
    merge: MergeSchema
    notifications: list[NotificationSchema]


class ActionResponse(BaseModel):
    ok: bool
    error: ErrorSchema | None = None
    unavailable: list[UnavailableItemSchema] = Field(default_factory=list)
    session: SessionResponse
