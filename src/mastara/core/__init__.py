"""Mastara Core module.

Shared components used across all layers:
- Configuration management
- Logging setup
- Error taxonomy
"""

from mastara.core.config import (
    ConfigValidationError,
    DatabaseSettings,
    Environment,
    LogFormat,
    Settings,
)
from mastara.core.errors import (
    AuditContextError,
    ConflictError,
    DatabaseError,
    IntegrityFault,
    InvalidRequestError,
    InvalidTransitionError,
    MastaraError,
    NestedTransactionError,
    NotFoundError,
    PermissionDeniedError,
    TransactionCommitError,
    TransientError,
    UnauthenticatedError,
)
from mastara.core.settings import clear_settings_cache, get_settings, get_settings_safe

__all__ = [
    "AuditContextError",
    "ConfigValidationError",
    "ConflictError",
    "DatabaseError",
    "DatabaseSettings",
    "Environment",
    "IntegrityFault",
    "InvalidRequestError",
    "InvalidTransitionError",
    "LogFormat",
    "MastaraError",
    "NestedTransactionError",
    "NotFoundError",
    "PermissionDeniedError",
    "Settings",
    "TransactionCommitError",
    "TransientError",
    "UnauthenticatedError",
    "clear_settings_cache",
    "get_settings",
    "get_settings_safe",
]
