"""Tests for the error taxonomy, transport rendering and body decoding."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from acp.api.checkout import CheckoutHandler
from acp.api.transport import error_response
from acp.config import API_VERSION
from acp.core.exceptions import (
    ACPError,
    ErrorCode,
    ErrorType,
    http_error,
    invalid_request_error,
    processing_error,
    rate_limit_exceeded_error,
    service_unavailable_error,
)

from conftest import StubCheckoutProvider


# =============================================================================
#  ACPError
# =============================================================================


class TestACPError:
    @pytest.mark.parametrize(
        ("factory", "status", "error_type"),
        [
            (lambda: invalid_request_error("bad"), 400, ErrorType.INVALID_REQUEST),
            (lambda: processing_error("boom"), 500, ErrorType.PROCESSING_ERROR),
            (lambda: rate_limit_exceeded_error("slow"), 429, ErrorType.RATE_LIMIT_EXCEEDED),
            (lambda: service_unavailable_error("down"), 503, ErrorType.SERVICE_UNAVAILABLE),
        ],
    )
    def test_constructors(self, factory, status: int, error_type: ErrorType) -> None:
        error = factory()
        assert error.status_code == status
        assert error.type is error_type
        assert error.code.value == error_type.value

    def test_to_dict_omits_missing_param(self) -> None:
        assert invalid_request_error("bad").to_dict() == {
            "type": "invalid_request",
            "code": "invalid_request",
            "message": "bad",
        }

    def test_to_dict_includes_param(self) -> None:
        payload = invalid_request_error("bad", param="$.items").to_dict()
        assert payload["param"] == "$.items"

    def test_transport_hints_not_serialized(self) -> None:
        error = rate_limit_exceeded_error("slow", retry_after=timedelta(seconds=3))
        assert set(error.to_dict()) == {"type", "code", "message"}

    @pytest.mark.parametrize(
        ("retry_after", "seconds"),
        [
            (None, 0),
            (timedelta(0), 0),
            (timedelta(seconds=-1), 0),
            (timedelta(seconds=3), 3),
            (timedelta(milliseconds=2500), 3),
            (timedelta(milliseconds=1), 1),
        ],
    )
    def test_retry_after_rounds_up(self, retry_after: timedelta | None, seconds: int) -> None:
        error = service_unavailable_error("down", retry_after=retry_after)
        assert error.retry_after_seconds == seconds

    def test_is_an_exception(self) -> None:
        with pytest.raises(ACPError, match="boom"):
            raise processing_error("boom")


# =============================================================================
#  Rendering
# =============================================================================


class TestErrorResponse:
    def test_retry_after_header(self) -> None:
        response = error_response(
            rate_limit_exceeded_error("slow", retry_after=timedelta(milliseconds=2500))
        )
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3"
        assert response.headers["API-Version"] == API_VERSION

    def test_no_retry_after_without_hint(self) -> None:
        response = error_response(invalid_request_error("bad"))
        assert "Retry-After" not in response.headers

    def test_none_becomes_processing_error(self) -> None:
        response = error_response(None)
        assert response.status_code == 500
        assert b'"processing_error"' in response.body


# =============================================================================
#  Provider errors and body decoding through the routes
# =============================================================================


@pytest.fixture()
def client(checkout_provider: StubCheckoutProvider) -> TestClient:
    return TestClient(CheckoutHandler(checkout_provider).app, raise_server_exceptions=False)


class TestProviderErrors:
    def test_typed_error_passes_through(
        self, client: TestClient, checkout_provider: StubCheckoutProvider
    ) -> None:
        checkout_provider.error = http_error(
            409,
            ErrorType.INVALID_REQUEST,
            ErrorCode.IDEMPOTENCY_CONFLICT,
            "idempotency key reused",
        )
        response = client.get("/checkout_sessions/cs_1")
        assert response.status_code == 409
        assert response.json()["code"] == "idempotency_conflict"

    def test_rate_limit_sets_retry_after(
        self, client: TestClient, checkout_provider: StubCheckoutProvider
    ) -> None:
        checkout_provider.error = rate_limit_exceeded_error(
            "slow down", retry_after=timedelta(seconds=3)
        )
        response = client.post("/checkout_sessions/cs_1/cancel")
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3"

    def test_unclassified_error_hidden(
        self, client: TestClient, checkout_provider: StubCheckoutProvider
    ) -> None:
        checkout_provider.error = RuntimeError("db password is hunter2")
        response = client.get("/checkout_sessions/cs_1")
        assert response.status_code == 500
        assert response.json() == {
            "type": "processing_error",
            "code": "processing_error",
            "message": "internal server error",
        }


class TestUnexpectedErrors:
    def test_route_crash_rendered_as_processing_error(
        self, checkout_provider: StubCheckoutProvider
    ) -> None:
        handler = CheckoutHandler(checkout_provider)

        @handler.app.get("/boom")
        async def _boom() -> None:
            raise KeyError("missing")

        client = TestClient(handler.app, raise_server_exceptions=False)
        response = client.get("/boom")
        assert response.status_code == 500
        assert response.headers["content-type"] == "application/json"
        assert response.headers["API-Version"] == API_VERSION
        assert response.json()["code"] == "processing_error"
        assert "missing" not in response.text


class TestDecodeBody:
    def test_empty_body(self, client: TestClient) -> None:
        response = client.post("/checkout_sessions")
        assert response.status_code == 400
        assert response.json()["message"] == "request body required"

    def test_invalid_json(self, client: TestClient) -> None:
        response = client.post("/checkout_sessions", content=b"{nope")
        assert response.status_code == 400
        assert response.json()["message"].startswith("request body must be valid JSON")

    def test_deeply_nested_body(self, client: TestClient) -> None:
        response = client.post("/checkout_sessions", content=b"[" * 100_000 + b"]" * 100_000)
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_request"

    def test_param_points_at_field(self, client: TestClient) -> None:
        response = client.post(
            "/checkout_sessions", json={"items": [{"id": "sku_1", "quantity": 0}]}
        )
        assert response.status_code == 400
        assert response.json()["param"] == "$.items[0].quantity"

    def test_unknown_field_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/checkout_sessions",
            json={"items": [{"id": "sku_1", "quantity": 1}], "coupon": "FREE"},
        )
        assert response.status_code == 400
        assert response.json()["param"] == "$.coupon"

    def test_empty_items_rejected(self, client: TestClient) -> None:
        response = client.post("/checkout_sessions", json={"items": []})
        assert response.status_code == 400
        assert response.json()["param"] == "$.items"

    def test_complete_requires_payment_data(self, client: TestClient) -> None:
        response = client.post("/checkout_sessions/cs_1/complete", json={})
        assert response.status_code == 400
        assert response.json()["param"] == "$.payment_data"


class TestRoutes:
    def test_every_response_carries_api_version(self, client: TestClient) -> None:
        response = client.get("/checkout_sessions/cs_1")
        assert response.status_code == 200
        assert response.headers["API-Version"] == API_VERSION

    def test_none_fields_omitted(self, client: TestClient) -> None:
        payload = client.get("/checkout_sessions/cs_1").json()
        assert "buyer" not in payload
        assert payload["line_items"] == []

    def test_update_passes_session_id(
        self, client: TestClient, checkout_provider: StubCheckoutProvider
    ) -> None:
        response = client.post(
            "/checkout_sessions/cs_7", json={"fulfillment_option_id": "ship_1"}
        )
        assert response.status_code == 200
        assert response.json()["id"] == "cs_7"
        name, _, request = checkout_provider.calls[0]
        assert name == "update"
        assert request.fulfillment_option_id == "ship_1"

    def test_complete_returns_order(self, client: TestClient) -> None:
        response = client.post(
            "/checkout_sessions/cs_1/complete",
            json={"payment_data": {"token": "vt_1", "provider": "stripe"}},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["order"]["checkout_session_id"] == "cs_1"

    def test_provider_receives_request_context(
        self, client: TestClient, checkout_provider: StubCheckoutProvider
    ) -> None:
        client.get(
            "/checkout_sessions/cs_1",
            headers={"Idempotency-Key": " idem_1 ", "Request-Id": "req_1"},
        )
        _, ctx, _ = checkout_provider.calls[0]
        assert ctx.idempotency_key == "idem_1"
        assert ctx.request_id == "req_1"
