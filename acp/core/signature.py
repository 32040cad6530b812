"""Shared-secret request signatures.

A signed request carries two headers:

    Timestamp: 2025-01-01T12:00:30Z
    Signature: base64url(HMAC-SHA256(secret, RFC3339Nano(UTC(ts)) + "." + canonical_body))

The signature is base64url-encoded without padding.  Verification always
uses ``hmac.compare_digest`` for constant-time comparison.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import Protocol, runtime_checkable

from acp.core.canonical import canonicalize_json_body
from acp.core.exceptions import SignatureConfigurationError, SignatureVerificationError

logger = logging.getLogger(__name__)

_RFC3339_RE = re.compile(
    r"(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>Z|[+-]\d{2}:\d{2})",
    re.ASCII,
)

_BASE64URL_RE = re.compile(r"[A-Za-z0-9_-]*")


@dataclass(frozen=True)
class SigningMaterial:
    """Everything a verifier may need to check one inbound request.

    ``timestamp`` carries microsecond precision; ``nanosecond`` is the full
    sub-second part as sent by the client (``None`` derives it from
    ``timestamp``).  ``headers`` is a read-only view with tuple values.
    """

    signature: str
    timestamp: datetime
    canonical_body: bytes
    method: str = ""
    path: str = ""
    raw_query: str = ""
    headers: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    nanosecond: int | None = None

    def __post_init__(self) -> None:
        frozen = {name: tuple(values) for name, values in self.headers.items()}
        object.__setattr__(self, "headers", MappingProxyType(frozen))


@runtime_checkable
class Verifier(Protocol):
    """Checks a request's signing material against a trust policy.

    Implementations are shared across concurrent requests and must not
    hold unsynchronized mutable state.  Any exception means "invalid".
    """

    async def verify(self, material: SigningMaterial) -> None: ...


# ---------------------------------------------------------------------------
#  Timestamps
# ---------------------------------------------------------------------------

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_NANOS_PER_SECOND = 1_000_000_000


def _as_utc(ts: datetime) -> datetime:
    # Naive datetimes are taken to already be in UTC.
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _resolve_nanosecond(ts: datetime, nanosecond: int | None) -> int:
    if nanosecond is None:
        return ts.microsecond * 1000
    if not 0 <= nanosecond < _NANOS_PER_SECOND:
        raise ValueError(f"nanosecond {nanosecond} out of range")
    return nanosecond


def parse_timestamp_nanos(value: str) -> tuple[datetime, int]:
    """Parse an RFC 3339 / RFC 3339 Nano ``Timestamp`` header.

    Returns the instant in UTC (``datetime`` keeps microseconds) together
    with the full sub-second part in nanoseconds.  Fractional digits past
    the ninth are truncated.

    Raises:
        ValueError: If the value is empty or not a valid RFC 3339 timestamp.
    """
    if not value:
        raise ValueError("empty timestamp")

    match = _RFC3339_RE.fullmatch(value)
    if match is None:
        raise ValueError(f"timestamp {value!r} is not RFC 3339")

    fraction = (match.group("fraction") or "")[:9]
    nanosecond = int(fraction.ljust(9, "0")) if fraction else 0

    offset = match.group("offset")
    iso = f"{match.group('date')}T{match.group('time')}"
    if nanosecond:
        iso += f".{nanosecond // 1000:06d}"
    iso += "+00:00" if offset == "Z" else offset

    # fromisoformat validates calendar ranges (month 13, hour 25, ...).
    parsed = datetime.fromisoformat(iso)
    return parsed.astimezone(UTC), nanosecond


def parse_timestamp(value: str) -> datetime:
    """Parse a ``Timestamp`` header into a UTC ``datetime``.

    Sub-microsecond digits are dropped; use :func:`parse_timestamp_nanos`
    when the exact instant matters.
    """
    return parse_timestamp_nanos(value)[0]


def format_rfc3339_nano(ts: datetime, nanosecond: int | None = None) -> str:
    """Format ``ts`` in UTC with trailing fractional zeros trimmed.

    ``nanosecond`` replaces the sub-second part of ``ts`` when given.
    """
    ts = _as_utc(ts)
    nanosecond = _resolve_nanosecond(ts, nanosecond)
    text = (
        f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d}"
        f"T{ts.hour:02d}:{ts.minute:02d}:{ts.second:02d}"
    )
    if nanosecond:
        text += "." + f"{nanosecond:09d}".rstrip("0")
    return text + "Z"


def epoch_nanos(ts: datetime, nanosecond: int | None = None) -> int:
    """Nanoseconds since the Unix epoch."""
    ts = _as_utc(ts)
    nanosecond = _resolve_nanosecond(ts, nanosecond)
    seconds = (ts.replace(microsecond=0) - _EPOCH) // timedelta(seconds=1)
    return seconds * _NANOS_PER_SECOND + nanosecond


def abs_skew_nanos(now: datetime, ts: datetime, nanosecond: int | None = None) -> int:
    """Absolute difference between two instants, in nanoseconds."""
    return abs(epoch_nanos(now) - epoch_nanos(ts, nanosecond))


# ---------------------------------------------------------------------------
#  Signing payload + HMAC
# ---------------------------------------------------------------------------


def build_signing_payload(
    ts: datetime, canonical_body: bytes, nanosecond: int | None = None
) -> bytes:
    """Return the exact bytes that are HMAC-signed for a request."""
    return format_rfc3339_nano(ts, nanosecond).encode("ascii") + b"." + canonical_body


def compute_signature(secret: bytes, payload: bytes) -> str:
    """base64url (unpadded) HMAC-SHA256 of ``payload``."""
    digest = hmac.new(key=secret, msg=payload, digestmod=hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def decode_signature(signature: str) -> bytes:
    """Strictly decode an unpadded base64url string.

    Raises:
        SignatureVerificationError: If the value is not unpadded base64url.
    """
    if not _BASE64URL_RE.fullmatch(signature):
        raise SignatureVerificationError("signature is not unpadded base64url")
    padded = signature + "=" * (-len(signature) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SignatureVerificationError(f"decode signature: {exc}") from exc


def sign_request(
    secret: str | bytes,
    timestamp: datetime,
    body: bytes,
    nanosecond: int | None = None,
) -> tuple[str, str]:
    """Produce ``(Signature, Timestamp)`` header values for a request body.

    Useful for clients and tests.  The body is canonicalized exactly the
    way the server does it before signing.
    """
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    canonical = canonicalize_json_body(body)
    payload = build_signing_payload(timestamp, canonical, nanosecond)
    return compute_signature(key, payload), format_rfc3339_nano(timestamp, nanosecond)


class HMACVerifier:
    """Reference verifier: HMAC-SHA256 over the signing payload."""

    def __init__(self, key: str | bytes) -> None:
        self._key = key.encode("utf-8") if isinstance(key, str) else bytes(key)

    async def verify(self, material: SigningMaterial) -> None:
        """Recompute the expected MAC and compare it in constant time.

        Raises:
            SignatureConfigurationError: If the verifier holds an empty key.
            SignatureVerificationError: If the signature does not match.
        """
        if not self._key:
            raise SignatureConfigurationError("HMACVerifier requires a non-empty key")

        payload = build_signing_payload(
            material.timestamp, material.canonical_body, material.nanosecond
        )
        expected = hmac.new(key=self._key, msg=payload, digestmod=hashlib.sha256).digest()
        received = decode_signature(material.signature)

        # CRITICAL: constant-time comparison prevents timing side-channel attacks.
        if not hmac.compare_digest(expected, received):
            raise SignatureVerificationError("invalid signature")

    def __repr__(self) -> str:
        return "HMACVerifier(key=<redacted>)"


class CallableVerifier:
    """Lift a plain ``async def fn(material)`` into a :class:`Verifier`."""

    def __init__(self, fn: Callable[[SigningMaterial], Awaitable[None]]) -> None:
        self._fn = fn

    async def verify(self, material: SigningMaterial) -> None:
        await self._fn(material)
