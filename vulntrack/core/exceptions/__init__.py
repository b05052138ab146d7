"""Exception classes for VulnTrack."""

from .base_exceptions import ErrorKind, VulnTrackException, VulnTrackError, VulnTrackCriticalError
from .config_exceptions import ConfigurationError, ConfigValidationError
from .security_exceptions import SecurityError, UnauthorizedActionError
from .workflow_exceptions import WorkflowError, InvalidTransitionError
from .system_exceptions import (
    SystemError, ResourceNotFoundError, InstanceNotFoundError,
    CveNotFoundError, EvidenceNotFoundError, DatabaseError
)

__all__ = [
    'ErrorKind', 'VulnTrackException', 'VulnTrackError', 'VulnTrackCriticalError',
    'ConfigurationError', 'ConfigValidationError',
    'SecurityError', 'UnauthorizedActionError',
    'WorkflowError', 'InvalidTransitionError',
    'SystemError', 'ResourceNotFoundError', 'InstanceNotFoundError',
    'CveNotFoundError', 'EvidenceNotFoundError', 'DatabaseError'
]
