"""Canonical JSON encoding for request signing.

The signature on an inbound request covers the canonical form of its body,
so two clients that serialize the same JSON value differently must produce
identical bytes here:

- object members sorted by the UTF-8 bytes of their names
- no insignificant whitespace
- numbers parsed as ``Decimal`` (never ``float``) and written in a single
  form: integral values as plain integers (``1.0`` -> ``1``), everything
  else as ``d.dddE<exp>`` with no trailing zeros in the significand
- strings written as raw UTF-8, escaping only ``"``, ``\\``, control
  characters and lone surrogates

Documents nested deeper than ``MAX_NESTING_DEPTH`` are rejected as malformed.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any

from acp.core.exceptions import MalformedBodyError

logger = logging.getLogger(__name__)

NULL_BODY = b"null"

# Same ceiling CPython applies to int <-> str conversions.
MAX_INTEGER_DIGITS = 4300

# Arrays and objects nested deeper than this are rejected.
MAX_NESTING_DEPTH = 512

_SHORT_ESCAPES: dict[str, str] = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def canonicalize_json_body(raw: bytes) -> bytes:
    """Normalize a raw request body into canonical JSON bytes.

    An empty or whitespace-only body canonicalizes to ``null`` so that
    requests without a body (cancel, get) remain signable.

    Raises:
        MalformedBodyError: If ``raw`` is not exactly one valid JSON document.
    """
    if not raw.strip():
        return NULL_BODY

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedBodyError(f"body is not valid UTF-8: {exc}") from exc

    try:
        # json.loads rejects trailing documents with "Extra data".
        value = json.loads(
            text,
            parse_float=Decimal,
            parse_int=Decimal,
            parse_constant=_reject_constant,
        )
    except ValueError as exc:
        raise MalformedBodyError(f"body is not valid JSON: {exc}") from exc
    except RecursionError:
        raise MalformedBodyError("body is nested too deeply") from None

    return canonical_dumps(value)


def canonical_dumps(value: Any) -> bytes:
    """Serialize an already-parsed JSON value into canonical bytes."""
    parts: list[str] = []
    _encode(value, parts, 0)
    return "".join(parts).encode("utf-8", "surrogatepass")


def _encode(value: Any, out: list[str], depth: int) -> None:
    if value is None:
        out.append("null")
    elif value is True:
        out.append("true")
    elif value is False:
        out.append("false")
    elif isinstance(value, str):
        out.append(_encode_string(value))
    elif isinstance(value, (Decimal, int, float)):
        out.append(_encode_number(value))
    elif isinstance(value, dict):
        _check_depth(depth)
        out.append("{")
        keys = sorted(value, key=lambda k: k.encode("utf-8", "surrogatepass"))
        for i, key in enumerate(keys):
            if i:
                out.append(",")
            out.append(_encode_string(key))
            out.append(":")
            _encode(value[key], out, depth + 1)
        out.append("}")
    elif isinstance(value, (list, tuple)):
        _check_depth(depth)
        out.append("[")
        for i, item in enumerate(value):
            if i:
                out.append(",")
            _encode(item, out, depth + 1)
        out.append("]")
    else:
        raise TypeError(f"cannot canonicalize value of type {type(value).__name__}")


def _check_depth(depth: int) -> None:
    if depth >= MAX_NESTING_DEPTH:
        raise MalformedBodyError(f"body nests deeper than {MAX_NESTING_DEPTH} levels")


def _encode_string(value: str) -> str:
    chars = ['"']
    for ch in value:
        escaped = _SHORT_ESCAPES.get(ch)
        if escaped is not None:
            chars.append(escaped)
            continue
        code = ord(ch)
        if code < 0x20 or 0xD800 <= code <= 0xDFFF:
            chars.append(f"\\u{code:04x}")
        else:
            chars.append(ch)
    chars.append('"')
    return "".join(chars)


def _encode_number(value: Decimal | int | float) -> str:
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    if not number.is_finite():
        raise TypeError(f"cannot canonicalize non-finite number {value!r}")
    if number.is_zero():
        return "0"

    # Decimal.normalize() rounds to the context precision, so trailing
    # zeros are stripped by hand to keep every digit the client sent.
    sign, digits, exponent = number.as_tuple()
    all_digits = "".join(str(d) for d in digits)
    significand = all_digits.rstrip("0")
    exponent += len(all_digits) - len(significand)

    if exponent >= 0:
        if len(significand) + exponent > MAX_INTEGER_DIGITS:
            raise MalformedBodyError("integer literal is too large")
        text = significand + "0" * exponent
    else:
        adjusted = exponent + len(significand) - 1
        text = f"{significand[0]}.{significand[1:] or '0'}E{adjusted}"
    return f"-{text}" if sign else text
