"""
JSON error envelope shared by the bookmark endpoints.

Every non-auth failure is rendered as {"success": false, "error": "<message>"}.
"""
from collections.abc import Sequence
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

# Location prefixes FastAPI adds that mean nothing to API clients
_LOCATION_PREFIXES = {"body", "query", "path", "header"}


def error_response(status_code: int, message: str) -> JSONResponse:
    """Build an error envelope response."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
    )


def format_validation_error(errors: Sequence[Any]) -> str:
    """
    Render the first validation error as a single message.

    Messages name the offending field in quotes, e.g. '"title" is required' or
    '"importance" input should be less than or equal to 3'.
    """
    if not errors:
        return "Invalid request"

    error = errors[0]
    error_type = error.get("type", "")
    if error_type == "json_invalid":
        return "Request body is not valid JSON"

    location = list(error.get("loc", ()))
    if location and location[0] in _LOCATION_PREFIXES:
        location = location[1:]
    field = ".".join(str(part) for part in location) or "body"

    if error_type == "missing":
        reason = "is required"
    elif error_type == "extra_forbidden":
        reason = "is not allowed"
    else:
        message = str(error.get("msg", "is invalid")).removeprefix("Value error, ")
        reason = message[:1].lower() + message[1:]
    return f'"{field}" {reason}'


async def request_validation_exception_handler(
    _request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """Turn FastAPI request validation failures into 400 error envelopes."""
    return error_response(400, format_validation_error(exc.errors()))
