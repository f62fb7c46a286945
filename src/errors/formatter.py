"""Error formatting utilities.

This module provides:
- AgentError exception class for application errors
- Error formatting for user display
"""

from dataclasses import dataclass, field

from src.errors.registry import get_error


@dataclass
class AgentError(Exception):
    """Application error with code, message, and context.

    Attributes:
        code: Error code in E-XXXX format.
        message: Human-readable error message.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
        details: Additional context dictionary (never shown to users).
    """

    code: str
    message: str
    remediation: str
    is_retryable: bool = False
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code}: {self.message}"

    @classmethod
    def from_code(cls, code: str, **kwargs: object) -> "AgentError":
        """Create error from registry code with context substitution.

        Args:
            code: Error code in E-XXXX format.
            **kwargs: Context values for message template substitution.
                The special key 'details' is stored on the error when it is
                a dict, and is used for template substitution otherwise.

        Returns:
            AgentError instance with formatted message.
        """
        details = kwargs.get("details")
        extra = details if isinstance(details, dict) else {}

        error_def = get_error(code)
        if not error_def:
            return cls(
                code=code,
                message=f"Unknown error: {code}",
                remediation="Contact support.",
                details=extra,
            )

        message = error_def.message_template
        try:
            message = message.format(**kwargs)
        except KeyError:
            # Keep template if some placeholders are missing
            pass

        return cls(
            code=error_def.code,
            message=message,
            remediation=error_def.remediation,
            is_retryable=error_def.is_retryable,
            details=extra,
        )


def format_error(error: AgentError, include_remediation: bool = True) -> str:
    """Format error for display to user.

    Args:
        error: The AgentError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Formatted string suitable for a chat message.
    """
    if include_remediation:
        return f"{error.message} {error.remediation}"
    return error.message
