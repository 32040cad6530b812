"""JSON transport helpers shared by all protocol routes.

Every response carries ``Content-Type: application/json`` and the protocol
``API-Version``; error responses also carry ``Retry-After`` when the error
has a positive retry hint.
"""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from starlette.requests import ClientDisconnect

from acp.config import API_VERSION
from acp.core.exceptions import ACPError, invalid_request_error, processing_error

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

INTERNAL_ERROR_MESSAGE = "internal server error"


def json_response(status_code: int, payload: BaseModel | dict[str, Any] | None) -> JSONResponse:
    """Serialize a model (or plain dict) with the protocol headers."""
    content: Any = payload
    if isinstance(payload, BaseModel):
        content = payload.model_dump(mode="json", exclude_none=True)
    return JSONResponse(
        content=content,
        status_code=status_code,
        headers={"API-Version": API_VERSION},
    )


def error_response(error: ACPError | None) -> JSONResponse:
    """Render a structured error; ``None`` becomes a generic processing error."""
    if error is None:
        error = processing_error(INTERNAL_ERROR_MESSAGE)
    headers = {"API-Version": API_VERSION}
    if (seconds := error.retry_after_seconds) > 0:
        headers["Retry-After"] = str(seconds)
    return JSONResponse(
        content=error.to_dict(),
        status_code=error.status_code,
        headers=headers,
    )


def service_error_response(exc: Exception) -> JSONResponse:
    """Pass typed provider errors through; hide everything else behind a 500."""
    if isinstance(exc, ACPError):
        return error_response(exc)
    logger.error("Unclassified error while serving request", exc_info=exc)
    return error_response(processing_error(INTERNAL_ERROR_MESSAGE))


def _json_path(loc: tuple[int | str, ...]) -> str:
    path = "$"
    for part in loc:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


async def decode_body(request: Request, model: type[ModelT]) -> ModelT:
    """Decode and validate the request body into ``model``.

    Raises:
        ACPError: ``invalid_request`` / 400 for empty, malformed, or
            schema-violating bodies, with ``param`` pointing at the first
            offending field.
    """
    try:
        raw = await request.body()
    except ClientDisconnect:
        raise invalid_request_error("unable to read request body") from None

    if not raw.strip():
        raise invalid_request_error("request body required")

    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise invalid_request_error(f"request body must be valid JSON: {exc}") from None
    except RecursionError:
        raise invalid_request_error("request body is nested too deeply") from None

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        param = _json_path(tuple(first["loc"]))
        raise invalid_request_error(f"{param}: {first['msg']}", param=param) from None


async def _handle_acp_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ACPError)
    return error_response(exc)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    return service_error_response(exc)


def register_exception_handlers(app: FastAPI) -> None:
    """Render errors escaping dependencies or routes as protocol errors.

    ``ACPError`` keeps its type, code and status; anything else becomes a
    500 ``processing_error``.
    """
    app.add_exception_handler(ACPError, _handle_acp_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)
