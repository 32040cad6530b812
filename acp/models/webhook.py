"""Webhook events emitted by a merchant after an order state transition."""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, Field


class WebhookEventType(StrEnum):
    ORDER_CREATED = "order_created"
    ORDER_UPDATED = "order_updated"


class OrderStatus(StrEnum):
    CREATED = "created"
    MANUAL_REVIEW = "manual_review"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    SHIPPED = "shipped"
    FULFILLED = "fulfilled"


class RefundType(StrEnum):
    STORE_CREDIT = "store_credit"
    ORIGINAL_PAYMENT = "original_payment"


class Refund(BaseModel):
    type: RefundType
    amount: int


class EventData(BaseModel):
    """Base for webhook payloads; subclasses pin their event type."""

    EVENT_TYPE: ClassVar[WebhookEventType]

    type: str = "order"
    checkout_session_id: str
    permalink_url: str
    status: OrderStatus
    refunds: list[Refund] = Field(default_factory=list)

    def event_type(self) -> WebhookEventType:
        return self.EVENT_TYPE


class OrderCreate(EventData):
    """Order data emitted after the order is created."""

    EVENT_TYPE: ClassVar[WebhookEventType] = WebhookEventType.ORDER_CREATED


class OrderUpdated(EventData):
    """Order data emitted whenever the order status changes."""

    EVENT_TYPE: ClassVar[WebhookEventType] = WebhookEventType.ORDER_UPDATED


class WebhookEvent(BaseModel):
    """The ``{type, data}`` envelope POSTed to the webhook endpoint."""

    type: WebhookEventType
    data: EventData
