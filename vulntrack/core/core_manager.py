"""Core manager class that wires VulnTrack components together."""

import time
from typing import Dict, Any, Optional

from .config import ConfigManager
from .logger import LoggerManager, WorkflowAuditLogger
from .exceptions import ConfigurationError, ConfigValidationError, SystemError


class VulnTrackCore:
    """Entry point owning configuration, logging, storage and both engines.

    Construction loads configuration and logging synchronously; the
    storage connection is opened by ``initialize()`` and released by
    ``shutdown()``.
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize VulnTrack core system.

        Args:
            config_path: Optional path to custom configuration file
        """
        self.config_path = config_path
        self.initialized = False
        self._start_time = time.time()

        self.config_manager: Optional[ConfigManager] = None
        self.logger_manager: Optional[LoggerManager] = None
        self.audit_logger: Optional[WorkflowAuditLogger] = None
        self.storage = None
        self.event_bus = None
        self.workflow_engine = None
        self.impact_engine = None
        self.evidence_service = None

        self._logger = None

        self._initialize_configuration()
        self._initialize_logging()
        self._initialize_components()

    def _initialize_configuration(self) -> None:
        """Initialize configuration management."""
        try:
            self.config_manager = ConfigManager(self.config_path)

            validation_errors = self.config_manager.validate()
            if validation_errors:
                raise ConfigValidationError(validation_errors)

        except Exception as e:
            if isinstance(e, (ConfigurationError, ConfigValidationError)):
                raise
            raise ConfigurationError(f"Configuration initialization failed: {e}")

    def _initialize_logging(self) -> None:
        """Initialize logging system."""
        try:
            self.logger_manager = LoggerManager(self.config_manager.to_dict())
            self._logger = self.logger_manager.get_logger('core')
            self.audit_logger = WorkflowAuditLogger(self.logger_manager)

        except Exception as e:
            raise SystemError(f"Logging initialization failed: {e}")

    def _initialize_components(self) -> None:
        """Create storage, event bus and engines."""
        from ..storage import SqliteVulnerabilityStorage
        from ..workflow import WorkflowEngine, WorkflowEventBus, FixEvidenceService
        from ..impact import ImpactScopeEngine

        db_path = self.config_manager.get('database.path', 'data/vulntrack.db')
        self.storage = SqliteVulnerabilityStorage(db_path)
        self.event_bus = WorkflowEventBus()

        self.workflow_engine = WorkflowEngine(self.storage, self.event_bus, self.audit_logger)
        self.evidence_service = FixEvidenceService(self.storage, self.event_bus, self.audit_logger)
        self.impact_engine = ImpactScopeEngine(
            self.storage,
            top_cve_limit=int(self.config_manager.get('impact.top_cve_limit', 10)),
            event_bus=self.event_bus,
            audit_logger=self.audit_logger,
        )

    async def initialize(self) -> None:
        """Open the storage backend."""
        if self.initialized:
            return

        try:
            await self.storage.initialize()
        except Exception as e:
            self._logger.error(f"Failed to initialize VulnTrack core: {e}", exc_info=True)
            raise SystemError(f"Core initialization failed: {e}")

        self.initialized = True
        self._logger.info("VulnTrack core system initialized successfully", extra={
            'event_type': 'system_startup',
            'version': self.get_version(),
            'environment': self.config_manager.get('system.environment'),
            'config_path': self.config_path
        })

    async def shutdown(self) -> None:
        """Close storage and flush log handlers."""
        if self.storage is not None:
            await self.storage.cleanup()

        self.initialized = False
        if self._logger:
            self._logger.info("VulnTrack core system shut down")
        if self.logger_manager:
            self.logger_manager.shutdown()

    async def __aenter__(self) -> 'VulnTrackCore':
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    def get_version(self) -> str:
        """Get VulnTrack version."""
        return self.config_manager.get('system.version', '1.0.0')

    def get_config(self, key: str, default: Any = None) -> Any:
        return self.config_manager.get(key, default)

    async def get_system_status(self) -> Dict[str, Any]:
        """Get system status information.

        Returns:
            Dictionary with version, environment and storage statistics
        """
        status = {
            'initialized': self.initialized,
            'version': self.get_version(),
            'environment': self.config_manager.get('system.environment'),
            'uptime_seconds': time.time() - self._start_time,
            'database_path': str(self.storage.db_path),
        }

        if self.initialized:
            status['storage'] = await self.storage.get_storage_stats()
            status['healthy'] = await self.storage.health_check()
        else:
            status['healthy'] = False

        return status
