"""Error handling for consistent JSON error responses.

Every error body has the same shape:
- error: machine-readable code
- message: safe, human-readable description
- detail: optional extra information (validation issues only)
- request_id: correlation id, when one is set

Typed MastaraError failures map to their status code with their public
message. Internal detail (driver errors, constraint names, SQL) is logged
and never returned.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from mastara.api.middleware.request_id import get_request_id
from mastara.core.errors import GENERIC_PUBLIC_MESSAGE, MastaraError

logger = logging.getLogger(__name__)


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build a standardized error response."""
    body: dict[str, Any] = {
        "error": error,
        "message": message,
    }

    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id

    if detail:
        body["detail"] = detail

    return JSONResponse(status_code=status_code, content=body)


def mastara_error_response(request: Request, exc: MastaraError) -> JSONResponse:
    """Log a typed failure at a level matching its status and render it."""
    if exc.status_code >= 500:
        logger.error(
            "Request failed: %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc,
            extra={"error_code": exc.error_code, "status_code": exc.status_code},
        )
    else:
        logger.info(
            "Request rejected: %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
            extra={"error_code": exc.error_code, "status_code": exc.status_code},
        )
    return build_error_response(
        error=exc.error_code,
        message=exc.public_message,
        status_code=exc.status_code,
    )


async def request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render pydantic request validation failures in the common error shape."""
    return build_error_response(
        error="validation_error",
        message="Request validation failed",
        status_code=422,
        detail={"errors": jsonable_encoder(exc.errors())},
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catches exceptions escaping the routes and returns consistent JSON errors.

    Handles:
    - MastaraError and subclasses: typed failures with a public message
    - Anything else: logged with traceback, generic 500
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except MastaraError as exc:
            return mastara_error_response(request, exc)
        except Exception:
            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            return build_error_response(
                error="internal_error",
                message=GENERIC_PUBLIC_MESSAGE,
                status_code=500,
            )
