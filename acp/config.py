"""Application configuration via pydantic-settings.

``Settings`` loads deployment values from ``ACP_*`` environment variables
(or a ``.env`` file).  Handlers never read settings directly: everything
they need is resolved once into an immutable ``HandlerConfig`` at
construction time.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from typing import Any

import httpx
from pydantic_settings import BaseSettings, SettingsConfigDict

from acp.core.security import Authenticator, Clock, StaticKeyAuthenticator, utc_now
from acp.core.signature import HMACVerifier, Verifier

logger = logging.getLogger(__name__)

# Protocol version advertised on every response and outbound webhook.
API_VERSION = "2025-09-29"

DEFAULT_MAX_CLOCK_SKEW = timedelta(minutes=5)


class Settings(BaseSettings):
    """Deployment configuration for the ACP handlers."""

    model_config = SettingsConfigDict(
        env_prefix="ACP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Signed requests ---
    signature_secret: str = ""
    require_signed_requests: bool = False
    max_clock_skew_seconds: float = DEFAULT_MAX_CLOCK_SKEW.total_seconds()

    # --- Authentication ---
    api_keys: list[str] = []

    # --- Outbound webhooks ---
    webhook_endpoint: str = ""
    webhook_header_name: str = ""
    webhook_secret: str = ""
    webhook_timeout_seconds: float = 10.0

    # --- Application ---
    log_level: str = "INFO"

    @property
    def webhook_configured(self) -> bool:
        return bool(
            self.webhook_endpoint.strip()
            and self.webhook_header_name.strip()
            and self.webhook_secret
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton."""
    return Settings()


@dataclass(frozen=True)
class WebhookOptions:
    """Where and how to deliver webhook events.

    ``endpoint`` is the absolute URL events are POSTed to, ``header_name``
    the header carrying the signature (for example
    ``Merchant_Name-Signature``) and ``secret_key`` the HMAC secret.
    """

    endpoint: str
    header_name: str
    secret_key: bytes
    client: httpx.AsyncClient | None = None
    timeout: float = 10.0

    def __post_init__(self) -> None:
        endpoint = (self.endpoint or "").strip()
        if not endpoint:
            raise ValueError("webhook endpoint is required")
        header_name = (self.header_name or "").strip()
        if not header_name:
            raise ValueError("webhook header name is required")
        secret = self.secret_key
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        if not secret:
            raise ValueError("webhook secret key is required")
        object.__setattr__(self, "endpoint", endpoint)
        object.__setattr__(self, "header_name", header_name)
        object.__setattr__(self, "secret_key", bytes(secret))

    def __repr__(self) -> str:
        return (
            f"WebhookOptions(endpoint={self.endpoint!r}, "
            f"header_name={self.header_name!r}, secret_key=<redacted>)"
        )


@dataclass(frozen=True)
class HandlerConfig:
    """Resolved, immutable configuration shared by every request of a handler.

    ``max_clock_skew=None`` disables the freshness check.  ``dependencies``
    are extra FastAPI dependencies run after the built-in security stages.
    """

    verifier: Verifier | None = None
    require_signed_requests: bool = False
    max_clock_skew: timedelta | None = DEFAULT_MAX_CLOCK_SKEW
    authenticator: Authenticator | None = None
    clock: Clock = utc_now
    webhook: WebhookOptions | None = None
    dependencies: Sequence[Any] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.require_signed_requests and self.verifier is None:
            raise ValueError("signature verifier required when signed requests are enforced")
        if self.max_clock_skew is not None and self.max_clock_skew <= timedelta(0):
            raise ValueError("max clock skew must be positive")
        object.__setattr__(self, "dependencies", tuple(self.dependencies))

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> HandlerConfig:
        """Build a handler config from deployment settings.

        Keyword ``overrides`` win over values derived from ``settings``.
        """
        values: dict[str, Any] = {
            "require_signed_requests": settings.require_signed_requests,
            "max_clock_skew": (
                timedelta(seconds=settings.max_clock_skew_seconds)
                if settings.max_clock_skew_seconds > 0
                else None
            ),
        }
        if settings.signature_secret:
            values["verifier"] = HMACVerifier(settings.signature_secret)
        if settings.api_keys:
            values["authenticator"] = StaticKeyAuthenticator(settings.api_keys)
        if settings.webhook_configured:
            values["webhook"] = WebhookOptions(
                endpoint=settings.webhook_endpoint,
                header_name=settings.webhook_header_name,
                secret_key=settings.webhook_secret.encode("utf-8"),
                timeout=settings.webhook_timeout_seconds,
            )
        values.update(overrides)

        logger.info(
            "Handler configuration resolved",
            extra={
                "signed_requests": "required"
                if values.get("require_signed_requests")
                else ("optional" if values.get("verifier") else "disabled"),
                "authentication": values.get("authenticator") is not None,
                "webhook": values.get("webhook") is not None,
            },
        )
        return cls(**values)
