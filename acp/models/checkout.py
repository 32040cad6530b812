"""Checkout session schema.

Requests forbid unknown fields so that a typo in a client payload is an
``invalid_request`` rather than silently dropped data.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _Schema(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CheckoutSessionStatus(StrEnum):
    CANCELED = "canceled"
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    NOT_READY_FOR_PAYMENT = "not_ready_for_payment"
    READY_FOR_PAYMENT = "ready_for_payment"


class LinkType(StrEnum):
    PRIVACY_POLICY = "privacy_policy"
    SELLER_SHOP_POLICIES = "seller_shop_policies"
    TERMS_OF_USE = "terms_of_use"


class TotalType(StrEnum):
    DISCOUNT = "discount"
    FEE = "fee"
    FULFILLMENT = "fulfillment"
    ITEMS_BASE_AMOUNT = "items_base_amount"
    ITEMS_DISCOUNT = "items_discount"
    SUBTOTAL = "subtotal"
    TAX = "tax"
    TOTAL = "total"


class MessageErrorCode(StrEnum):
    INVALID = "invalid"
    MISSING = "missing"
    OUT_OF_STOCK = "out_of_stock"
    PAYMENT_DECLINED = "payment_declined"
    REQUIRES_3DS = "requires_3ds"
    REQUIRES_SIGN_IN = "requires_sign_in"


# =============================================================================
#  Shared value objects
# =============================================================================


class Address(_Schema):
    name: str
    line_one: str
    line_two: str | None = None
    postal_code: str
    city: str
    state: str
    country: str


class Buyer(_Schema):
    email: str
    first_name: str
    last_name: str
    phone_number: str | None = None

    @model_validator(mode="after")
    def _require_identity(self) -> Buyer:
        if not (self.first_name and self.last_name and self.email):
            raise ValueError("buyer requires first_name, last_name, and email")
        return self


class Item(_Schema):
    id: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class LineItem(_Schema):
    id: str
    item: Item
    base_amount: int
    discount: int
    subtotal: int
    tax: int
    total: int


class Total(_Schema):
    type: TotalType
    display_text: str
    amount: int


class Link(_Schema):
    type: LinkType
    url: str


class MessageInfo(_Schema):
    type: Literal["info"] = "info"
    content: str
    content_type: Literal["plain", "markdown"] = "plain"
    param: str | None = None


class MessageError(_Schema):
    type: Literal["error"] = "error"
    code: MessageErrorCode
    content: str
    content_type: Literal["plain", "markdown"] = "plain"
    param: str | None = None


Message = Annotated[MessageInfo | MessageError, Field(discriminator="type")]


class FulfillmentOptionShipping(_Schema):
    type: Literal["shipping"] = "shipping"
    id: str
    title: str
    subtitle: str | None = None
    carrier: str | None = None
    earliest_delivery_time: datetime | None = None
    latest_delivery_time: datetime | None = None
    subtotal: str
    tax: str
    total: str


class FulfillmentOptionDigital(_Schema):
    type: Literal["digital"] = "digital"
    id: str
    title: str
    subtitle: str | None = None
    subtotal: str
    tax: str
    total: str


FulfillmentOption = Annotated[
    FulfillmentOptionShipping | FulfillmentOptionDigital, Field(discriminator="type")
]


class PaymentProvider(_Schema):
    provider: str
    supported_payment_methods: list[Literal["card"]] = Field(default_factory=list)


class PaymentData(_Schema):
    token: str
    provider: str
    billing_address: Address | None = None

    @field_validator("token", "provider")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value:
            raise ValueError("is required")
        return value


# =============================================================================
#  Requests
# =============================================================================


class CheckoutSessionCreateRequest(_Schema):
    items: list[Item] = Field(min_length=1)
    buyer: Buyer | None = None
    fulfillment_address: Address | None = None


class CheckoutSessionUpdateRequest(_Schema):
    items: list[Item] | None = None
    buyer: Buyer | None = None
    fulfillment_address: Address | None = None
    fulfillment_option_id: str | None = None


class CheckoutSessionCompleteRequest(_Schema):
    payment_data: PaymentData
    buyer: Buyer | None = None


# =============================================================================
#  Responses
# =============================================================================


class CheckoutSession(_Schema):
    id: str
    status: CheckoutSessionStatus
    currency: str
    line_items: list[LineItem] = Field(default_factory=list)
    fulfillment_options: list[FulfillmentOption] = Field(default_factory=list)
    totals: list[Total] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)
    links: list[Link] = Field(default_factory=list)
    buyer: Buyer | None = None
    fulfillment_address: Address | None = None
    fulfillment_option_id: str | None = None
    payment_provider: PaymentProvider | None = None


class Order(_Schema):
    id: str
    checkout_session_id: str
    permalink_url: str


class SessionWithOrder(CheckoutSession):
    order: Order
