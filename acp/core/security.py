"""Inbound request integrity and authentication.

Two independent FastAPI dependencies guard every protocol route:

1. ``SignatureVerification`` checks the ``Signature`` / ``Timestamp`` pair.
2. ``BearerAuthentication`` checks the ``Authorization: Bearer <key>`` header.

Both fail fast with a typed ``ACPError``; the first violation ends the
request.  Verifier and authenticator internals are logged server-side and
never sent to the client.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from fastapi import Request
from starlette.requests import ClientDisconnect

from acp.core.canonical import canonicalize_json_body
from acp.core.exceptions import (
    ACPError,
    ErrorCode,
    ErrorType,
    MalformedBodyError,
    http_error,
    invalid_request_error,
)
from acp.core.request_context import bind_request_context
from acp.core.signature import (
    SigningMaterial,
    Verifier,
    abs_skew_nanos,
    parse_timestamp_nanos,
)

if TYPE_CHECKING:
    from acp.config import HandlerConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


@runtime_checkable
class Authenticator(Protocol):
    """Validates the bearer API key of the current request.

    May call a remote identity service.  Raising an ``ACPError`` forwards
    that error to the client unchanged; any other exception is reported as
    ``invalid_authorization``.
    """

    async def authenticate(self, api_key: str) -> None: ...


class CallableAuthenticator:
    """Lift a plain ``async def fn(api_key)`` into an :class:`Authenticator`."""

    def __init__(self, fn: Callable[[str], Awaitable[None]]) -> None:
        self._fn = fn

    async def authenticate(self, api_key: str) -> None:
        await self._fn(api_key)


class StaticKeyAuthenticator:
    """Accepts a fixed set of API keys, compared in constant time."""

    def __init__(self, keys: Iterable[str]) -> None:
        self._keys = tuple(k.encode("utf-8") for k in keys if k)
        if not self._keys:
            raise ValueError("StaticKeyAuthenticator requires at least one key")

    async def authenticate(self, api_key: str) -> None:
        candidate = api_key.encode("utf-8")
        # Check every key so timing does not reveal which one matched.
        matched = False
        for key in self._keys:
            matched |= hmac.compare_digest(key, candidate)
        if not matched:
            raise PermissionError("unknown API key")

    def __repr__(self) -> str:
        return f"StaticKeyAuthenticator(keys=<{len(self._keys)} redacted>)"


def _reject(request: Request, error: ACPError) -> ACPError:
    logger.warning(
        "Request rejected: %s",
        error.code.value,
        extra={
            "code": error.code.value,
            "status": error.status_code,
            "method": request.method,
            "path": request.url.path,
        },
    )
    return error


# ---------------------------------------------------------------------------
#  Signature verification
# ---------------------------------------------------------------------------


class SignatureVerification:
    """FastAPI dependency enforcing signed requests.

    Checks run strictly in order so that cheap checks reject malformed
    input before the canonicalization and HMAC cost is paid:

        presence -> timestamp format -> freshness -> body JSON -> MAC
    """

    def __init__(
        self,
        verifier: Verifier,
        *,
        require_signed: bool = False,
        max_clock_skew: timedelta | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.verifier = verifier
        self.require_signed = require_signed
        self.max_clock_skew = max_clock_skew
        self.clock = clock

    async def __call__(self, request: Request) -> None:
        signature = (request.headers.get("Signature") or "").strip()
        timestamp_header = (request.headers.get("Timestamp") or "").strip()

        if not signature and not timestamp_header:
            if self.require_signed:
                raise _reject(
                    request,
                    http_error(
                        401,
                        ErrorType.INVALID_REQUEST,
                        ErrorCode.SIGNATURE_REQUIRED,
                        "Signature and Timestamp headers are required",
                    ),
                )
            return

        if not signature or not timestamp_header:
            raise _reject(
                request,
                http_error(
                    400,
                    ErrorType.INVALID_REQUEST,
                    ErrorCode.INVALID_SIGNATURE,
                    "Signature and Timestamp headers must both be provided",
                ),
            )

        try:
            ts, nanosecond = parse_timestamp_nanos(timestamp_header)
        except ValueError:
            raise _reject(
                request,
                http_error(
                    400,
                    ErrorType.INVALID_REQUEST,
                    ErrorCode.INVALID_SIGNATURE,
                    "Timestamp must be RFC3339",
                ),
            ) from None

        if self.max_clock_skew is not None and self.max_clock_skew > timedelta(0):
            skew = abs_skew_nanos(self.clock(), ts, nanosecond)
            if skew > (self.max_clock_skew // timedelta(microseconds=1)) * 1000:
                raise _reject(
                    request,
                    http_error(
                        401,
                        ErrorType.INVALID_REQUEST,
                        ErrorCode.STALE_TIMESTAMP,
                        f"timestamp skew exceeds {self.max_clock_skew}",
                    ),
                )

        try:
            # Starlette caches the body on the request, so the route
            # handler can still read it afterwards.
            raw = await request.body()
        except ClientDisconnect:
            raise _reject(
                request, invalid_request_error("unable to read request body")
            ) from None

        try:
            canonical_body = canonicalize_json_body(raw)
        except MalformedBodyError:
            raise _reject(
                request, invalid_request_error("request body must be valid JSON")
            ) from None

        material = SigningMaterial(
            signature=signature,
            timestamp=ts,
            canonical_body=canonical_body,
            method=request.method,
            path=request.url.path,
            raw_query=request.url.query,
            headers={
                key: request.headers.getlist(key) for key in request.headers.keys()
            },
            nanosecond=nanosecond,
        )
        try:
            await self.verifier.verify(material)
        except Exception as exc:
            logger.info(
                "Signature verifier rejected request",
                extra={"path": request.url.path, "reason": str(exc)},
            )
            raise _reject(
                request,
                http_error(
                    401,
                    ErrorType.INVALID_REQUEST,
                    ErrorCode.INVALID_SIGNATURE,
                    "signature verification failed",
                ),
            ) from None


# ---------------------------------------------------------------------------
#  Bearer authentication
# ---------------------------------------------------------------------------


class BearerAuthentication:
    """FastAPI dependency validating ``Authorization: Bearer <api_key>``."""

    def __init__(self, authenticator: Authenticator) -> None:
        self.authenticator = authenticator

    async def __call__(self, request: Request) -> None:
        auth_header = (request.headers.get("Authorization") or "").strip()
        if not auth_header:
            raise _reject(
                request,
                http_error(
                    401,
                    ErrorType.INVALID_REQUEST,
                    ErrorCode.MISSING_AUTHORIZATION,
                    "Authorization header is required",
                ),
            )

        scheme, sep, api_key = auth_header.partition(" ")
        if not sep or scheme.lower() != "bearer":
            raise _reject(
                request,
                http_error(
                    401,
                    ErrorType.INVALID_REQUEST,
                    ErrorCode.INVALID_AUTHORIZATION,
                    "Authorization header must be in the format 'Bearer <api_key>'",
                ),
            )
        if not api_key:
            raise _reject(
                request,
                http_error(
                    401,
                    ErrorType.INVALID_REQUEST,
                    ErrorCode.INVALID_AUTHORIZATION,
                    "API key is required",
                ),
            )

        try:
            await self.authenticator.authenticate(api_key)
        except ACPError as exc:
            raise _reject(request, exc) from None
        except Exception as exc:
            logger.info(
                "Authenticator rejected API key",
                extra={"path": request.url.path, "reason": str(exc)},
            )
            raise _reject(
                request,
                http_error(
                    401,
                    ErrorType.INVALID_REQUEST,
                    ErrorCode.INVALID_AUTHORIZATION,
                    "invalid API key",
                ),
            ) from None


# ---------------------------------------------------------------------------
#  Pipeline assembly
# ---------------------------------------------------------------------------


def security_dependencies(config: HandlerConfig) -> list[Callable[..., Any]]:
    """Router dependencies for a handler, in execution order.

    request context -> signature (if a verifier is set) ->
    authentication (if an authenticator is set) -> configured extras
    """
    dependencies: list[Callable[..., Any]] = [bind_request_context]
    if config.verifier is not None:
        dependencies.append(
            SignatureVerification(
                config.verifier,
                require_signed=config.require_signed_requests,
                max_clock_skew=config.max_clock_skew,
                clock=config.clock,
            )
        )
    if config.authenticator is not None:
        dependencies.append(BearerAuthentication(config.authenticator))
    dependencies.extend(config.dependencies)
    return dependencies
