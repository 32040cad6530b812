"""Structured protocol errors and internal exceptions for the ACP SDK.

``ACPError`` is the only exception that ever reaches a client: it carries a
coarse ``type``, a specific ``code`` and the HTTP status to answer with.
Everything else in this module is internal and must be translated into an
``ACPError`` before it crosses the transport boundary.
"""

from __future__ import annotations

import math
from datetime import timedelta
from enum import StrEnum
from typing import Any


# =============================================================================
# Protocol error taxonomy
# =============================================================================


class ErrorType(StrEnum):
    """Mirrors the ``error.type`` field of the protocol."""

    INVALID_REQUEST = "invalid_request"
    PROCESSING_ERROR = "processing_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SERVICE_UNAVAILABLE = "service_unavailable"


class ErrorCode(StrEnum):
    """Machine-readable identifier for the specific failure."""

    DUPLICATE_REQUEST = "duplicate_request"
    IDEMPOTENCY_CONFLICT = "idempotency_conflict"
    INVALID_CARD = "invalid_card"
    INVALID_SIGNATURE = "invalid_signature"
    SIGNATURE_REQUIRED = "signature_required"
    STALE_TIMESTAMP = "stale_timestamp"
    MISSING_AUTHORIZATION = "missing_authorization"
    INVALID_AUTHORIZATION = "invalid_authorization"
    REQUEST_NOT_IDEMPOTENT = "request_not_idempotent"

    # Generic codes, one per error type.
    INVALID_REQUEST = "invalid_request"
    PROCESSING_ERROR = "processing_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SERVICE_UNAVAILABLE = "service_unavailable"


class ACPError(Exception):
    """A typed, transport-ready protocol error.

    ``status_code`` and ``retry_after`` are transport-level hints and are
    never serialized into the response body.
    """

    def __init__(
        self,
        type: ErrorType,
        code: ErrorCode,
        message: str,
        *,
        param: str | None = None,
        status_code: int = 400,
        retry_after: timedelta | None = None,
    ) -> None:
        self.type = ErrorType(type)
        self.code = ErrorCode(code)
        self.message = message
        self.param = param
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds clients should wait, rounded up; ``0`` means unset."""
        if self.retry_after is None:
            return 0
        seconds = self.retry_after.total_seconds()
        if seconds <= 0:
            return 0
        return math.ceil(seconds)

    def to_dict(self) -> dict[str, Any]:
        """Render the wire body ``{type, code, message, param?}``."""
        payload: dict[str, Any] = {
            "type": self.type.value,
            "code": self.code.value,
            "message": self.message,
        }
        if self.param is not None:
            payload["param"] = self.param
        return payload

    def __repr__(self) -> str:
        return (
            f"ACPError(type={self.type.value!r}, code={self.code.value!r}, "
            f"status_code={self.status_code}, message={self.message!r})"
        )


def http_error(
    status_code: int,
    type: ErrorType,
    code: ErrorCode,
    message: str,
    *,
    param: str | None = None,
    retry_after: timedelta | None = None,
) -> ACPError:
    """Build an error with an explicit HTTP status."""
    return ACPError(
        type,
        code,
        message,
        param=param,
        status_code=status_code,
        retry_after=retry_after,
    )


def invalid_request_error(message: str, *, param: str | None = None) -> ACPError:
    """400 Bad Request with the generic ``invalid_request`` code."""
    return http_error(
        400, ErrorType.INVALID_REQUEST, ErrorCode.INVALID_REQUEST, message, param=param
    )


def processing_error(message: str) -> ACPError:
    """500 Internal Server Error for unclassified failures."""
    return http_error(500, ErrorType.PROCESSING_ERROR, ErrorCode.PROCESSING_ERROR, message)


def rate_limit_exceeded_error(
    message: str, *, retry_after: timedelta | None = None
) -> ACPError:
    """429 Too Many Requests, optionally with a retry hint."""
    return http_error(
        429,
        ErrorType.RATE_LIMIT_EXCEEDED,
        ErrorCode.RATE_LIMIT_EXCEEDED,
        message,
        retry_after=retry_after,
    )


def service_unavailable_error(
    message: str, *, retry_after: timedelta | None = None
) -> ACPError:
    """503 Service Unavailable, optionally with a retry hint."""
    return http_error(
        503,
        ErrorType.SERVICE_UNAVAILABLE,
        ErrorCode.SERVICE_UNAVAILABLE,
        message,
        retry_after=retry_after,
    )


# =============================================================================
# Signing / verification
# =============================================================================


class MalformedBodyError(Exception):
    """The request body is not exactly one valid JSON document."""


class SignatureVerificationError(Exception):
    """A signature did not match the signing payload or could not be decoded."""


class SignatureConfigurationError(Exception):
    """A verifier was constructed or invoked without usable key material."""


# =============================================================================
# Webhooks
# =============================================================================


class WebhookNotConfiguredError(Exception):
    """``send_webhook`` was called on a handler without webhook options."""


class WebhookDeliveryError(Exception):
    """The webhook endpoint could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int = 0, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)
