"""Chat API errors and the handlers that render them.

Every failure leaves the API as ``{"error": <code>, "message": <text>,
"detail": <object or null>}``. Routes raise ``ChatApiError`` subclasses; request
validation failures, unmatched routes and unexpected exceptions are mapped onto
the same shape here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ChatApiError(Exception):
    """Base class for errors the chat API reports to clients."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "internal_error"

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ServiceNotReadyError(ChatApiError):
    """The orchestrator has not been built yet, or was torn down."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "not_ready"

    def __init__(self) -> None:
        super().__init__("Chat service is not ready")


class MessageNotFoundError(ChatApiError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"

    def __init__(self, message_id: str) -> None:
        super().__init__("Message not found", {"id": message_id})


def error_response(
    status_code: int, error: str, message: str, detail: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"error": error, "message": message, "detail": detail}),
    )


async def chat_api_error_handler(request: Request, exc: ChatApiError) -> JSONResponse:
    return error_response(exc.status_code, exc.error, exc.message, exc.detail)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Bad modes, empty text and unknown ratings all land here as 400."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "validation_error",
        "Invalid request payload",
        {"errors": errors},
    )


async def route_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Raised by routing itself: unknown paths and unsupported methods.
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return error_response(exc.status_code, "not_found", "Resource not found")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(exc.status_code, "http_error", message)


async def internal_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "Internal server error"
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach the chat API exception handlers to the application."""
    app.add_exception_handler(ChatApiError, chat_api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, route_error_handler)
    app.add_exception_handler(Exception, internal_exception_handler)


__all__ = [
    "ChatApiError",
    "ServiceNotReadyError",
    "MessageNotFoundError",
    "error_response",
    "register_error_handlers",
]
