"""System-related exception classes."""

from typing import Optional
from .base_exceptions import VulnTrackError, ErrorKind


class SystemError(VulnTrackError):
    """Base class for system-related errors."""

    default_error_code = 'SYSTEM_ERROR'


class ResourceNotFoundError(SystemError):
    """A referenced record does not exist."""

    kind = ErrorKind.NOT_FOUND
    default_error_code = 'RESOURCE_NOT_FOUND'

    def __init__(self, resource_type: str, resource_identifier: str, **kwargs):
        """Initialize resource not found error.

        Args:
            resource_type: Type of resource (instance, CVE, evidence, etc.)
            resource_identifier: Identifier for the resource
            **kwargs: Additional arguments for base class
        """
        super().__init__(f"{resource_type} not found: {resource_identifier}", **kwargs)
        self.details.update({
            'resource_type': resource_type,
            'resource_identifier': resource_identifier
        })

        self.resource_type = resource_type
        self.resource_identifier = resource_identifier


class InstanceNotFoundError(ResourceNotFoundError):
    default_error_code = 'INSTANCE_NOT_FOUND'

    def __init__(self, instance_id: str, **kwargs):
        super().__init__('Vulnerability instance', instance_id, **kwargs)
        self.instance_id = instance_id


class CveNotFoundError(ResourceNotFoundError):
    """No vulnerability definition exists for a CVE identifier."""

    default_error_code = 'CVE_NOT_FOUND'

    def __init__(self, cve_id: str, **kwargs):
        super().__init__('CVE', cve_id, **kwargs)
        self.cve_id = cve_id


class EvidenceNotFoundError(ResourceNotFoundError):
    default_error_code = 'EVIDENCE_NOT_FOUND'

    def __init__(self, evidence_id: str, **kwargs):
        super().__init__('Evidence', evidence_id, **kwargs)
        self.evidence_id = evidence_id


class DatabaseError(SystemError):
    """A storage operation failed; any open transaction was rolled back."""

    default_error_code = 'DATABASE_ERROR'
    default_suggestion = 'Check database connection and operation parameters'

    def __init__(self, operation: str, database_error: Optional[str] = None,
                 **kwargs):
        """Initialize database error.

        Args:
            operation: Database operation that failed
            database_error: Specific database error message
            **kwargs: Additional arguments for base class
        """
        message = f"Database operation failed: {operation}"
        if database_error:
            message += f" - {database_error}"

        super().__init__(message, **kwargs)
        self.details.update({
            'operation': operation,
            'database_error': database_error
        })

        self.operation = operation
        self.database_error = database_error
