"""Remediation workflow exception classes."""

from typing import Optional
from .base_exceptions import VulnTrackError, ErrorKind


class WorkflowError(VulnTrackError):
    """Base class for remediation workflow errors."""

    default_error_code = 'WORKFLOW_ERROR'

    def __init__(self, message: str, instance_id: Optional[str] = None, **kwargs):
        """Initialize workflow error.

        Args:
            message: Error message
            instance_id: Vulnerability instance the request referred to
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        if instance_id:
            self.details['instance_id'] = instance_id
        self.instance_id = instance_id


class InvalidTransitionError(WorkflowError):
    """The requested status is not reachable from the persisted one."""

    kind = ErrorKind.INVALID_TRANSITION
    default_error_code = 'INVALID_TRANSITION'

    def __init__(self, from_status: str, to_status: str,
                 instance_id: Optional[str] = None, **kwargs):
        """Initialize invalid transition error.

        Args:
            from_status: Persisted status of the instance
            to_status: Requested target status
            instance_id: Vulnerability instance identifier
            **kwargs: Additional arguments for base class
        """
        super().__init__(
            f"Invalid transition from {from_status} to {to_status}",
            instance_id=instance_id, **kwargs
        )
        self.details.update({
            'from_status': from_status,
            'to_status': to_status
        })

        self.from_status = from_status
        self.to_status = to_status
