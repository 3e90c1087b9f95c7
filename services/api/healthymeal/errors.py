"""Error envelope and exception handlers.

Every failure leaves the API as ``{"error": {"code": ..., "message": ...}}``.
Routes raise ``ApiError``; services raise subclasses of ``ServiceError`` carrying a
code from a small closed set, which routes translate with their own status tables.
"""

import logging
from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .constants import INGREDIENTS_VARIANT_TAGS

logger = logging.getLogger("healthymeal.errors")

INTERNAL_ERROR_MESSAGE = "An internal server error occurred."

_VALIDATION_CODES = {
    "body": "invalid_payload",
    "query": "invalid_query_params",
    "path": "invalid_path_params",
}


class ApiError(Exception):
    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        status_code: int = 500,
        details: Any = None,
    ):
        super().__init__(message or code)
        self.code = code
        self.message = message or INTERNAL_ERROR_MESSAGE
        self.status_code = status_code
        self.details = details


class ServiceError(Exception):
    """Base for service-layer failures identified by a code."""

    def __init__(self, code: str, message: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message or code)
        self.code = code
        self.message = message
        self.cause = cause


def error_body(code: str, message: str, details: Any = None) -> dict:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"error": error}


def error_response(code: str, message: str, status_code: int, details: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(code, message, details))


def to_api_error(
    err: ServiceError,
    status_map: Mapping[str, int],
    message_map: Mapping[str, str],
) -> ApiError:
    """Translate a service error using a route's code -> status/message tables."""
    status_code = status_map.get(err.code, 500)
    if status_code >= 500:
        # Internal details never reach the client
        message = message_map.get(err.code, INTERNAL_ERROR_MESSAGE)
    else:
        message = err.message or message_map.get(err.code, INTERNAL_ERROR_MESSAGE)
    return ApiError(err.code, message, status_code)


def first_issue_message(exc: RequestValidationError) -> tuple[str, str]:
    errors = exc.errors()
    if not errors:
        return "invalid_payload", "Request is invalid."

    first = errors[0]
    loc = [str(part) for part in first.get("loc", ())]
    code = _VALIDATION_CODES.get(loc[0] if loc else "", "invalid_payload")

    if first.get("type") == "json_invalid":
        return "invalid_payload", "Request body must be valid JSON."

    message = str(first.get("msg", "Request is invalid."))
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]

    field = ".".join(part for part in loc[1:] if part not in INGREDIENTS_VARIANT_TAGS)
    if field:
        message = f"{field}: {message}"
    return code, message


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.code, exc.message, exc.status_code, exc.details)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    code, message = first_issue_message(exc)
    logger.warning("%s %s: validation failed: %s", request.method, request.url.path, message)
    return error_response(code, message, 400)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s: unexpected error", request.method, request.url.path)
    return error_response("internal_error", INTERNAL_ERROR_MESSAGE, 500)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
