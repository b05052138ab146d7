"""Configuration validator for VulnTrack."""

from typing import Dict, Any, List


class ConfigValidator:
    """Validates VulnTrack configuration for correctness."""
    
    VALID_ENVIRONMENTS = ['development', 'testing', 'production']
    VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    
    def __init__(self, config: Dict[str, Any]):
        """Initialize validator with configuration.
        
        Args:
            config: Configuration dictionary to validate
        """
        self.config = config
        self.errors: List[str] = []
    
    def validate(self) -> List[str]:
        """Validate complete configuration.
        
        Returns:
            List of validation error messages
        """
        self.errors = []
        
        self._validate_system_config()
        self._validate_logging_config()
        self._validate_database_config()
        self._validate_impact_config()
        
        return self.errors
    
    def _validate_system_config(self) -> None:
        """Validate system configuration section."""
        system = self.config.get('system', {})
        
        version = system.get('version')
        if not version or not isinstance(version, str):
            self.errors.append("System version must be a non-empty string")
        
        environment = system.get('environment')
        if environment not in self.VALID_ENVIRONMENTS:
            self.errors.append(f"Environment must be one of: {self.VALID_ENVIRONMENTS}")
    
    def _validate_logging_config(self) -> None:
        """Validate logging configuration section."""
        logging_config = self.config.get('logging', {})
        
        level = logging_config.get('level', 'INFO')
        if not isinstance(level, str) or level.upper() not in self.VALID_LOG_LEVELS:
            self.errors.append(f"Log level must be one of: {self.VALID_LOG_LEVELS}")
        
        backup_count = logging_config.get('backup_count', 5)
        if not isinstance(backup_count, int) or backup_count < 0:
            self.errors.append("logging.backup_count must be a non-negative integer")
        
        file_logging = logging_config.get('file_logging', True)
        if not isinstance(file_logging, bool):
            self.errors.append("logging.file_logging must be a boolean")
    
    def _validate_database_config(self) -> None:
        """Validate database configuration section."""
        database = self.config.get('database', {})
        
        db_type = database.get('type', 'sqlite')
        if db_type != 'sqlite':
            self.errors.append("database.type must be 'sqlite'")
        
        path = database.get('path')
        if not path or not isinstance(path, str):
            self.errors.append("database.path must be a non-empty string")
    
    def _validate_impact_config(self) -> None:
        """Validate impact scoring configuration section."""
        impact = self.config.get('impact', {})
        
        limit = impact.get('top_cve_limit', 10)
        if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
            self.errors.append("impact.top_cve_limit must be a positive integer")
    
    def is_valid(self) -> bool:
        """Check if configuration is valid.
        
        Returns:
            True if configuration is valid, False otherwise
        """
        return len(self.validate()) == 0
