"""Error handling framework for LogiSync.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions for HTTP mapping

Error categories:
- E-1xxx: Import data errors
- E-3xxx: Tracking provider errors
- E-4xxx: System/internal errors
"""

from src.errors.domain import (
    ConflictError,
    DomainError,
    DuplicateOrderError,
    NotFoundError,
)
from src.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    format_message,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    "format_message",
    # Domain
    "DomainError",
    "NotFoundError",
    "ConflictError",
    "DuplicateOrderError",
]
