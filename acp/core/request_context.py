"""Per-request protocol metadata.

Handlers build one ``RequestContext`` per request and pass it explicitly as
the first argument of every provider call.  Nothing here is interpreted by
the security layer; it is pass-through metadata for business logic.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from fastapi import Request

_STATE_ATTR = "acp_context"


@dataclass(frozen=True)
class RequestContext:
    """Protocol headers of one inbound request, trimmed, ``""`` when absent."""

    # Example: Bearer api_key_123
    authorization: str = ""
    # Example: en-US
    accept_language: str = ""
    # Example: ChatGPT/2.0 (Mac OS X 15.0.1; arm64; build 0)
    user_agent: str = ""
    idempotency_key: str = ""
    # Unique per request, for tracing.
    request_id: str = ""
    signature: str = ""
    # RFC 3339, e.g. 2025-09-25T10:30:00Z
    timestamp: str = ""
    api_version: str = ""

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> RequestContext:
        def _get(name: str) -> str:
            return (headers.get(name) or "").strip()

        return cls(
            authorization=_get("Authorization"),
            accept_language=_get("Accept-Language"),
            user_agent=_get("User-Agent"),
            idempotency_key=_get("Idempotency-Key"),
            request_id=_get("Request-Id"),
            signature=_get("Signature"),
            timestamp=_get("Timestamp"),
            api_version=_get("API-Version"),
        )


async def bind_request_context(request: Request) -> RequestContext:
    """FastAPI dependency: build the context once and keep it on ``request.state``."""
    ctx = RequestContext.from_headers(request.headers)
    setattr(request.state, _STATE_ATTR, ctx)
    return ctx


def get_request_context(request: Request) -> RequestContext:
    """Return the context bound earlier in the pipeline (or build it now)."""
    ctx = getattr(request.state, _STATE_ATTR, None)
    if ctx is None:
        ctx = RequestContext.from_headers(request.headers)
        setattr(request.state, _STATE_ATTR, ctx)
    return ctx
