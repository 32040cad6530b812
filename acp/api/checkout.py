"""Checkout session routes.

``CheckoutHandler`` wires the protocol's checkout contract to a merchant's
``CheckoutProvider``:

    POST /checkout_sessions                  -> create (201)
    GET  /checkout_sessions/{id}             -> get
    POST /checkout_sessions/{id}             -> update
    POST /checkout_sessions/{id}/complete    -> complete
    POST /checkout_sessions/{id}/cancel      -> cancel

Security stages (request context, signature, authentication, extras) run as
router dependencies, in that order, before any route body is decoded.
"""

from __future__ import annotations

import logging
from typing import Protocol

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from acp.api.transport import (
    decode_body,
    error_response,
    json_response,
    register_exception_handlers,
    service_error_response,
)
from acp.config import HandlerConfig
from acp.core.exceptions import ACPError, WebhookNotConfiguredError
from acp.core.request_context import RequestContext, get_request_context
from acp.core.security import security_dependencies
from acp.core.webhooks import send_webhook
from acp.models.checkout import (
    CheckoutSession,
    CheckoutSessionCompleteRequest,
    CheckoutSessionCreateRequest,
    CheckoutSessionUpdateRequest,
    SessionWithOrder,
)
from acp.models.webhook import EventData

logger = logging.getLogger(__name__)


class CheckoutProvider(Protocol):
    """Business logic that owns checkout sessions.

    Raise ``ACPError`` for failures the client should see as-is; any other
    exception is reported as a generic ``processing_error``.
    """

    async def create_session(
        self, ctx: RequestContext, request: CheckoutSessionCreateRequest
    ) -> CheckoutSession: ...

    async def update_session(
        self, ctx: RequestContext, session_id: str, request: CheckoutSessionUpdateRequest
    ) -> CheckoutSession: ...

    async def get_session(self, ctx: RequestContext, session_id: str) -> CheckoutSession: ...

    async def complete_session(
        self,
        ctx: RequestContext,
        session_id: str,
        request: CheckoutSessionCompleteRequest,
    ) -> SessionWithOrder: ...

    async def cancel_session(self, ctx: RequestContext, session_id: str) -> CheckoutSession: ...


class CheckoutHandler:
    """Exposes a ``CheckoutProvider`` as a FastAPI application."""

    def __init__(self, provider: CheckoutProvider, config: HandlerConfig | None = None) -> None:
        if provider is None:
            raise ValueError("checkout provider is required")
        self.provider = provider
        self.config = config or HandlerConfig()
        self.router = self._build_router()
        self.app = FastAPI(title="ACP Checkout")
        register_exception_handlers(self.app)
        self.app.include_router(self.router)

    async def send_webhook(self, data: EventData) -> None:
        """Sign and deliver one webhook event to the configured endpoint.

        Raises:
            WebhookNotConfiguredError: If no webhook options were configured.
            WebhookDeliveryError: On transport failure or a non-2xx response.
        """
        if self.config.webhook is None:
            raise WebhookNotConfiguredError("webhook options must be configured")
        await send_webhook(self.config.webhook, data)

    # ------------------------------------------------------------------
    #  Routes
    # ------------------------------------------------------------------

    def _build_router(self) -> APIRouter:
        router = APIRouter(
            tags=["checkout"],
            dependencies=[Depends(dep) for dep in security_dependencies(self.config)],
        )
        router.add_api_route(
            "/checkout_sessions", self._create, methods=["POST"], status_code=201
        )
        router.add_api_route("/checkout_sessions/{session_id}", self._get, methods=["GET"])
        router.add_api_route(
            "/checkout_sessions/{session_id}", self._update, methods=["POST"]
        )
        router.add_api_route(
            "/checkout_sessions/{session_id}/complete", self._complete, methods=["POST"]
        )
        router.add_api_route(
            "/checkout_sessions/{session_id}/cancel", self._cancel, methods=["POST"]
        )
        return router

    async def _create(self, request: Request) -> JSONResponse:
        try:
            body = await decode_body(request, CheckoutSessionCreateRequest)
        except ACPError as exc:
            return error_response(exc)
        try:
            session = await self.provider.create_session(get_request_context(request), body)
        except Exception as exc:
            return service_error_response(exc)
        logger.info("Checkout session created", extra={"session_id": session.id})
        return json_response(201, session)

    async def _get(self, request: Request, session_id: str) -> JSONResponse:
        try:
            session = await self.provider.get_session(get_request_context(request), session_id)
        except Exception as exc:
            return service_error_response(exc)
        return json_response(200, session)

    async def _update(self, request: Request, session_id: str) -> JSONResponse:
        try:
            body = await decode_body(request, CheckoutSessionUpdateRequest)
        except ACPError as exc:
            return error_response(exc)
        try:
            session = await self.provider.update_session(
                get_request_context(request), session_id, body
            )
        except Exception as exc:
            return service_error_response(exc)
        return json_response(200, session)

    async def _complete(self, request: Request, session_id: str) -> JSONResponse:
        try:
            body = await decode_body(request, CheckoutSessionCompleteRequest)
        except ACPError as exc:
            return error_response(exc)
        try:
            session = await self.provider.complete_session(
                get_request_context(request), session_id, body
            )
        except Exception as exc:
            return service_error_response(exc)
        logger.info("Checkout session completed", extra={"session_id": session_id})
        return json_response(200, session)

    async def _cancel(self, request: Request, session_id: str) -> JSONResponse:
        try:
            session = await self.provider.cancel_session(get_request_context(request), session_id)
        except Exception as exc:
            return service_error_response(exc)
        logger.info("Checkout session canceled", extra={"session_id": session_id})
        return json_response(200, session)
