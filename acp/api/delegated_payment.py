"""Delegate payment route for payment service providers.

    POST /agentic_commerce/delegate_payment -> vault token (201)

The PSP tokenizes the delegated credential and returns a single-use vault
token scoped to one checkout session.
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
from acp.core.exceptions import ACPError
from acp.core.request_context import RequestContext, get_request_context
from acp.core.security import security_dependencies
from acp.models.delegated_payment import PaymentRequest, VaultToken

logger = logging.getLogger(__name__)


class DelegatedPaymentProvider(Protocol):
    """Owns the delegated payment tokenization lifecycle."""

    async def delegate_payment(
        self, ctx: RequestContext, request: PaymentRequest
    ) -> VaultToken: ...


class DelegatedPaymentHandler:
    """Exposes a ``DelegatedPaymentProvider`` as a FastAPI application."""

    def __init__(
        self, provider: DelegatedPaymentProvider, config: HandlerConfig | None = None
    ) -> None:
        if provider is None:
            raise ValueError("delegated payment provider is required")
        self.provider = provider
        self.config = config or HandlerConfig()

        self.router = APIRouter(
            tags=["delegated_payment"],
            dependencies=[Depends(dep) for dep in security_dependencies(self.config)],
        )
        self.router.add_api_route(
            "/agentic_commerce/delegate_payment",
            self._delegate_payment,
            methods=["POST"],
            status_code=201,
        )
        self.app = FastAPI(title="ACP Delegated Payment")
        register_exception_handlers(self.app)
        self.app.include_router(self.router)

    async def _delegate_payment(self, request: Request) -> JSONResponse:
        try:
            body = await decode_body(request, PaymentRequest)
        except ACPError as exc:
            return error_response(exc)
        try:
            token = await self.provider.delegate_payment(get_request_context(request), body)
        except Exception as exc:
            return service_error_response(exc)
        logger.info(
            "Payment delegated",
            extra={
                "vault_token": token.id,
                "checkout_session_id": body.allowance.checkout_session_id,
            },
        )
        return json_response(201, token)
