"""Error handling framework for the ENS agent.

This package provides:
- Error code registry with E-XXXX format codes
- Error formatting utilities
- Typed domain exceptions

Error categories:
- E-1xxx: Input errors
- E-2xxx: Domain errors
- E-3xxx: External-call errors
- E-4xxx: Integrity and system errors
- E-5xxx: Agent loop errors
"""

from src.errors.registry import (
    ErrorCategory,
    ErrorCode,
    ERROR_REGISTRY,
    get_error,
    get_errors_by_category,
)
from src.errors.formatter import (
    AgentError,
    format_error,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "AgentError",
    "format_error",
]
