"""FastAPI middleware for error handling."""

from .error_handlers import (
    ChatApiError,
    MessageNotFoundError,
    ServiceNotReadyError,
    register_error_handlers,
)

__all__ = [
    "ChatApiError",
    "MessageNotFoundError",
    "ServiceNotReadyError",
    "register_error_handlers",
]
