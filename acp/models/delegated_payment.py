"""Delegate payment schema (PSP / vault side)."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _Schema(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CardNumberType(StrEnum):
    FPAN = "fpan"
    NETWORK_TOKEN = "network_token"


class CardFundingType(StrEnum):
    CREDIT = "credit"
    DEBIT = "debit"
    PREPAID = "prepaid"


class CheckPerformed(StrEnum):
    AVS = "avs"
    CVV = "cvv"
    ANI = "ani"
    AUTH0 = "auth0"


class RiskSignalAction(StrEnum):
    MANUAL_REVIEW = "manual_review"
    AUTHORIZED = "authorized"
    BLOCKED = "blocked"


class PaymentMethodCard(_Schema):
    """The delegated card credential."""

    type: Literal["card"]
    card_number_type: CardNumberType
    number: str = Field(min_length=1)
    exp_month: str | None = Field(default=None, pattern=r"^[0-9]{2}$")
    exp_year: str | None = Field(default=None, pattern=r"^[0-9]{4}$")
    name: str | None = None
    cvc: str | None = Field(default=None, pattern=r"^[0-9]+$")
    display_last4: str | None = Field(default=None, min_length=4, max_length=4)
    display_card_funding_type: CardFundingType
    display_brand: str | None = None
    display_wallet_type: str | None = None
    # Issuer identification number (BIN).
    iin: str | None = Field(default=None, max_length=6)
    cryptogram: str | None = None
    eci_value: str | None = None
    checks_performed: list[CheckPerformed] | None = None
    metadata: dict[str, str]


class Allowance(_Schema):
    """Scopes what the delegated credential may be charged for."""

    reason: Literal["one_time"]
    max_amount: int = Field(gt=0)
    currency: str = Field(pattern=r"^[a-z]{3}$")
    checkout_session_id: str = Field(min_length=1)
    merchant_id: str = Field(min_length=1)
    expires_at: datetime


class RiskSignal(_Schema):
    type: Literal["card_testing"]
    score: int = Field(ge=0)
    action: RiskSignalAction


class DelegatedPaymentAddress(_Schema):
    name: str = Field(min_length=1)
    line_one: str = Field(min_length=1)
    line_two: str | None = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    country: str = Field(pattern=r"^[A-Z]{2}$")
    postal_code: str = Field(min_length=1)


class PaymentRequest(_Schema):
    payment_method: PaymentMethodCard
    allowance: Allowance
    billing_address: DelegatedPaymentAddress | None = None
    metadata: dict[str, str]
    risk_signals: list[RiskSignal] = Field(min_length=1)


class VaultToken(_Schema):
    """Emitted by the PSP after tokenizing a delegated payment."""

    id: str
    created: datetime
    metadata: dict[str, str] = Field(default_factory=dict)
