"""Shared fixtures: stub providers and signing helpers."""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import UTC, datetime
from typing import Any

import pytest

from acp.core.canonical import canonicalize_json_body
from acp.core.request_context import RequestContext
from acp.core.signature import build_signing_payload, format_rfc3339_nano
from acp.models.checkout import (
    CheckoutSession,
    CheckoutSessionCompleteRequest,
    CheckoutSessionCreateRequest,
    CheckoutSessionStatus,
    CheckoutSessionUpdateRequest,
    Order,
    SessionWithOrder,
)
from acp.models.delegated_payment import PaymentRequest, VaultToken

TEST_SECRET = "secret"


def sign_fixture(secret: str, ts: datetime, body: bytes) -> str:
    """Independently compute the expected signature header for a body."""
    payload = build_signing_payload(ts, canonicalize_json_body(body))
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def signed_headers(secret: str, ts: datetime, body: bytes) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Signature": sign_fixture(secret, ts, body),
        "Timestamp": format_rfc3339_nano(ts),
    }


class StubCheckoutProvider:
    """Records every call; ``error`` is raised from every method when set."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, RequestContext, Any]] = []
        self.error: Exception | None = None

    def _session(self, session_id: str = "cs_123", **extra: Any) -> CheckoutSession:
        return CheckoutSession(
            id=session_id,
            status=CheckoutSessionStatus.IN_PROGRESS,
            currency="usd",
            **extra,
        )

    def _record(self, name: str, ctx: RequestContext, arg: Any) -> None:
        self.calls.append((name, ctx, arg))
        if self.error is not None:
            raise self.error

    async def create_session(
        self, ctx: RequestContext, request: CheckoutSessionCreateRequest
    ) -> CheckoutSession:
        self._record("create", ctx, request)
        return self._session(f"cs_{request.items[0].id}")

    async def update_session(
        self, ctx: RequestContext, session_id: str, request: CheckoutSessionUpdateRequest
    ) -> CheckoutSession:
        self._record("update", ctx, request)
        return self._session(session_id)

    async def get_session(self, ctx: RequestContext, session_id: str) -> CheckoutSession:
        self._record("get", ctx, session_id)
        return self._session(session_id)

    async def complete_session(
        self,
        ctx: RequestContext,
        session_id: str,
        request: CheckoutSessionCompleteRequest,
    ) -> SessionWithOrder:
        self._record("complete", ctx, request)
        return SessionWithOrder(
            id=session_id,
            status=CheckoutSessionStatus.COMPLETED,
            currency="usd",
            order=Order(
                id="ord_1",
                checkout_session_id=session_id,
                permalink_url=f"https://merchant.example/orders/{session_id}",
            ),
        )

    async def cancel_session(self, ctx: RequestContext, session_id: str) -> CheckoutSession:
        self._record("cancel", ctx, session_id)
        return CheckoutSession(
            id=session_id, status=CheckoutSessionStatus.CANCELED, currency="usd"
        )


class StubPaymentProvider:
    def __init__(self) -> None:
        self.requests: list[PaymentRequest] = []

    async def delegate_payment(
        self, ctx: RequestContext, request: PaymentRequest
    ) -> VaultToken:
        self.requests.append(request)
        return VaultToken(
            id="vt_success",
            created=datetime(2025, 1, 1, tzinfo=UTC),
            metadata={"source": "test"},
        )


def sample_payment_request() -> dict[str, Any]:
    """A minimal valid delegate payment payload."""
    return {
        "payment_method": {
            "type": "card",
            "card_number_type": "fpan",
            "number": "4242424242424242",
            "exp_month": "11",
            "exp_year": "2026",
            "display_last4": "4242",
            "display_card_funding_type": "credit",
            "metadata": {},
        },
        "allowance": {
            "reason": "one_time",
            "max_amount": 2000,
            "currency": "usd",
            "checkout_session_id": "cs_123",
            "merchant_id": "merchant_1",
            "expires_at": "2025-10-09T07:20:50Z",
        },
        "risk_signals": [{"type": "card_testing", "score": 10, "action": "authorized"}],
        "metadata": {"source": "test"},
    }


@pytest.fixture()
def checkout_provider() -> StubCheckoutProvider:
    return StubCheckoutProvider()


@pytest.fixture()
def payment_provider() -> StubPaymentProvider:
    return StubPaymentProvider()
