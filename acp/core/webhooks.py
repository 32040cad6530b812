"""Outbound webhook delivery.

Each event is serialized to JSON once, signed with
``base64url(HMAC-SHA256(secret, body))`` under a caller-chosen header and
POSTed exactly once.  There is no retry here: any transport failure or
non-2xx answer is raised to the caller, who owns the retry policy.

Unlike inbound verification, the signature covers the literal serialized
bytes (no timestamp prefix, no canonicalization) because the payload is
generated by us.
"""

from __future__ import annotations

import logging

import httpx

from acp.config import API_VERSION, WebhookOptions
from acp.core.exceptions import WebhookDeliveryError
from acp.core.signature import compute_signature
from acp.models.webhook import EventData, WebhookEvent

logger = logging.getLogger(__name__)

# Maximum bytes of a failed response body quoted back in the error.
ERROR_SNIPPET_LIMIT = 4096


def sign_webhook_payload(secret: bytes, payload: bytes) -> str:
    """Signature header value for a webhook body."""
    return compute_signature(secret, payload)


def encode_event(data: EventData) -> bytes:
    """Wrap ``data`` in the ``{type, data}`` envelope and serialize it."""
    event = WebhookEvent(type=data.event_type(), data=data)
    return event.model_dump_json(exclude_none=True).encode("utf-8")


async def send_webhook(options: WebhookOptions, data: EventData) -> None:
    """Sign and POST one webhook event.

    Raises:
        WebhookDeliveryError: On a transport error or a non-2xx response.
    """
    body = encode_event(data)
    headers = {
        "Content-Type": "application/json",
        "API-Version": API_VERSION,
        options.header_name: sign_webhook_payload(options.secret_key, body),
    }

    if options.client is not None:
        response = await _post(options.client, options.endpoint, body, headers)
    else:
        async with httpx.AsyncClient(timeout=options.timeout) as client:
            response = await _post(client, options.endpoint, body, headers)

    if not 200 <= response.status_code < 300:
        snippet = response.text[:ERROR_SNIPPET_LIMIT].strip()
        logger.warning(
            "Webhook endpoint returned non-2xx",
            extra={
                "endpoint": options.endpoint,
                "status": response.status_code,
                "event_type": data.event_type(),
            },
        )
        raise WebhookDeliveryError(
            f"webhook endpoint {options.endpoint} returned "
            f"{response.status_code}: {snippet}",
            status_code=response.status_code,
            body=snippet,
        )

    logger.info(
        "Webhook delivered",
        extra={
            "endpoint": options.endpoint,
            "status": response.status_code,
            "event_type": data.event_type(),
        },
    )


async def _post(
    client: httpx.AsyncClient,
    endpoint: str,
    body: bytes,
    headers: dict[str, str],
) -> httpx.Response:
    try:
        return await client.post(endpoint, content=body, headers=headers)
    except httpx.HTTPError as exc:
        logger.warning(
            "Webhook delivery failed",
            extra={"endpoint": endpoint, "error": str(exc)},
        )
        raise WebhookDeliveryError(f"send webhook: {exc}") from exc
