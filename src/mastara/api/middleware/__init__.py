"""Mastara API middleware components.

This module provides:
- Request ID tracking for log correlation
- Consistent error response formatting
- Trusted-header actor resolution and permission checks
"""

from mastara.api.middleware.auth import (
    require_actor,
    require_permission,
)
from mastara.api.middleware.errors import ErrorHandlerMiddleware, request_validation_handler
from mastara.api.middleware.request_id import RequestIDMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestIDMiddleware",
    "request_validation_handler",
    "require_actor",
    "require_permission",
]
