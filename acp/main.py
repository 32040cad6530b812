"""FastAPI application entry point.

Merchants and PSPs usually embed ``CheckoutHandler`` / ``DelegatedPaymentHandler``
directly.  ``create_app`` is the batteries-included path: it resolves
``Settings`` from the environment, mounts whichever handlers have a
provider, and adds the health endpoint.

    app = create_app(checkout_provider=MyCheckout())
    uvicorn my_service:app
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from acp.api.checkout import CheckoutHandler, CheckoutProvider
from acp.api.delegated_payment import DelegatedPaymentHandler, DelegatedPaymentProvider
from acp.api.health import router as health_router
from acp.api.transport import register_exception_handlers
from acp.config import API_VERSION, HandlerConfig, Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_app(
    checkout_provider: CheckoutProvider | None = None,
    payment_provider: DelegatedPaymentProvider | None = None,
    settings: Settings | None = None,
    **overrides: Any,
) -> FastAPI:
    """Build the ACP application.

    Args:
        checkout_provider: Mounts the checkout session routes when given.
        payment_provider: Mounts the delegate payment route when given.
        settings: Defaults to ``get_settings()``.
        **overrides: Forwarded to ``HandlerConfig.from_settings``.

    Returns:
        A FastAPI app; the checkout handler (if any) is on ``app.state.checkout``
        so domain code can call ``send_webhook``.
    """
    settings = settings or get_settings()
    config = HandlerConfig.from_settings(settings, **overrides)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings)
        logger.info("ACP service starting up", extra={"api_version": API_VERSION})
        yield
        logger.info("ACP service shutting down")

    app = FastAPI(
        title="ACP",
        description="Agentic Commerce Protocol checkout and delegated payment API",
        version=API_VERSION,
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(health_router)

    app.state.checkout = None
    if checkout_provider is not None:
        checkout = CheckoutHandler(checkout_provider, config)
        app.include_router(checkout.router)
        app.state.checkout = checkout

    if payment_provider is not None:
        payments = DelegatedPaymentHandler(payment_provider, config)
        app.include_router(payments.router)

    return app
