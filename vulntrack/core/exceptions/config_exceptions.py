"""Configuration-related exception classes."""

from typing import List, Optional
from .base_exceptions import VulnTrackError, ErrorKind


class ConfigurationError(VulnTrackError):
    """A configuration source could not be loaded or applied."""

    kind = ErrorKind.CONFIGURATION
    default_error_code = 'CONFIG_ERROR'

    def __init__(self, message: str, config_section: Optional[str] = None,
                 config_key: Optional[str] = None, **kwargs):
        """Initialize configuration error.

        Args:
            message: Error message
            config_section: Configuration section where error occurred
            config_key: Configuration key that caused the error
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        if config_section:
            self.details['config_section'] = config_section
        if config_key:
            self.details['config_key'] = config_key

        self.config_section = config_section
        self.config_key = config_key


class ConfigValidationError(ConfigurationError):
    """The merged configuration failed ``ConfigValidator`` checks."""

    default_error_code = 'CONFIG_VALIDATION_ERROR'
    default_suggestion = 'Check configuration files and fix validation errors'

    def __init__(self, validation_errors: List[str], **kwargs):
        super().__init__(
            f"Configuration validation failed with {len(validation_errors)} errors",
            **kwargs
        )
        self.details['validation_errors'] = list(validation_errors)
        self.validation_errors = validation_errors
