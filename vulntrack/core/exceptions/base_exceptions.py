"""Base exception classes for VulnTrack."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(Enum):
    """Coarse failure categories that callers map to responses or exit codes."""
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    UNAUTHORIZED = "unauthorized"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class VulnTrackException(Exception):
    """Base exception class for all VulnTrack exceptions.

    Subclasses declare ``kind``, ``default_error_code`` and
    ``default_suggestion`` as class attributes; explicit constructor
    arguments take precedence over them.
    """

    kind = ErrorKind.INTERNAL
    default_error_code: Optional[str] = None
    default_suggestion: Optional[str] = None

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None,
                 suggestion: Optional[str] = None):
        """Initialize base exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code for programmatic handling
            details: Additional details about the error
            suggestion: Suggested action to resolve the error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = dict(details or {})
        self.suggestion = suggestion or self.default_suggestion

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            'exception_type': self.__class__.__name__,
            'kind': self.kind.value,
            'message': self.message,
            'error_code': self.error_code,
            'details': self.details,
            'suggestion': self.suggestion,
        }

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}. Suggestion: {self.suggestion}"
        return self.message


class VulnTrackError(VulnTrackException):
    """Recoverable error; the request was refused and stored state is unchanged."""
    pass


class VulnTrackCriticalError(VulnTrackException):
    """Non-recoverable error."""
    pass
