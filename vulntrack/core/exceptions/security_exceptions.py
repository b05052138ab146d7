"""Security-related exception classes."""

from typing import Optional
from .base_exceptions import VulnTrackError, ErrorKind


class SecurityError(VulnTrackError):
    """Base class for security-related errors."""

    kind = ErrorKind.UNAUTHORIZED
    default_error_code = 'SECURITY_ERROR'


class UnauthorizedActionError(SecurityError):
    """A user acted on a record they do not own.

    Evidence deletion by a non-author is the only ownership check VulnTrack
    performs itself; all other authorization belongs to the caller.
    """

    default_error_code = 'UNAUTHORIZED_ACTION'

    def __init__(self, message: str, action: Optional[str] = None,
                 user: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        if action:
            self.details['action'] = action
        if user:
            self.details['user'] = user

        self.action = action
        self.user = user
