"""Logger manager for centralized logging configuration."""

import logging
import logging.handlers
import re
from pathlib import Path
from typing import Dict, Any

from .structured_formatter import StructuredFormatter


ROOT_LOGGER_NAME = 'vulntrack'
AUDIT_LOGGER_NAME = 'vulntrack.audit'

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
AUDIT_RETENTION_DAYS = 30

_SIZE_PATTERN = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(B|KB|MB|GB)\s*$', re.IGNORECASE)
_SIZE_UNITS = {'B': 1, 'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}


def parse_size(size: Any) -> int:
    """Convert a size such as ``'10MB'`` to bytes, falling back to 10MB."""
    match = _SIZE_PATTERN.match(str(size))
    if not match:
        return DEFAULT_MAX_BYTES
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper()])


class LoggerManager:
    """Configures the ``vulntrack`` logger tree from the logging section.

    Application records go to the console and, when ``file_logging`` is
    set, to ``vulntrack.log``. Audit records go only to the
    ``vulntrack.audit`` logger, which does not propagate, and are written
    as JSON to ``workflow_audit.log`` (or stderr without file logging).
    """

    def __init__(self, config: Dict[str, Any]):
        """Initialize logger manager with configuration.

        Args:
            config: Full configuration dictionary; uses the ``logging``
                section and ``system.logs_dir``/``system.environment``
        """
        self.config = config
        self.logging_config = config.get('logging', {})
        self.loggers: Dict[str, logging.Logger] = {}
        self.level = self._get_log_level()
        self.file_logging = bool(self.logging_config.get('file_logging', True))
        self.logs_dir = Path(config.get('system', {}).get('logs_dir', 'logs'))
        self._setup_logging()

    def _setup_logging(self) -> None:
        if self.file_logging:
            self.logs_dir.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(self.level)
        root_logger.handlers.clear()
        root_logger.addHandler(self._console_handler())
        if self.file_logging:
            root_logger.addHandler(self._file_handler())
        self.loggers['root'] = root_logger

        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        audit_logger.setLevel(logging.INFO)
        audit_logger.propagate = False
        audit_logger.handlers.clear()
        audit_logger.addHandler(self._audit_handler())
        self.loggers['audit'] = audit_logger

    def _get_log_level(self) -> int:
        level_name = str(self.logging_config.get('level', 'INFO')).upper()
        return getattr(logging, level_name, logging.INFO)

    def _console_handler(self) -> logging.Handler:
        handler = logging.StreamHandler()

        # JSON for log shippers in production
        if self.config.get('system', {}).get('environment') == 'production':
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(logging.Formatter(
                self.logging_config.get('format', DEFAULT_FORMAT)
            ))

        handler.setLevel(self.level)
        return handler

    def _file_handler(self) -> logging.Handler:
        log_file = self.logs_dir / 'vulntrack.log'

        if self.logging_config.get('file_rotation', True):
            handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=parse_size(self.logging_config.get('max_file_size', '10MB')),
                backupCount=self.logging_config.get('backup_count', 5),
                encoding='utf-8'
            )
        else:
            handler = logging.FileHandler(log_file, encoding='utf-8')

        handler.setFormatter(StructuredFormatter())
        handler.setLevel(self.level)
        return handler

    def _audit_handler(self) -> logging.Handler:
        if self.file_logging:
            handler = logging.handlers.TimedRotatingFileHandler(
                self.logs_dir / 'workflow_audit.log',
                when='midnight',
                interval=1,
                backupCount=AUDIT_RETENTION_DAYS,
                encoding='utf-8'
            )
        else:
            handler = logging.StreamHandler()
            handler.setLevel(self.level)

        handler.setFormatter(StructuredFormatter())
        return handler

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger below ``vulntrack``; ``root`` and ``audit`` are reserved names."""
        if name not in self.loggers:
            self.loggers[name] = logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
        return self.loggers[name]

    def set_level(self, level: str) -> None:
        """Set logging level for all managed loggers and their handlers."""
        self.level = getattr(logging, level.upper(), logging.INFO)

        for logger in self.loggers.values():
            logger.setLevel(self.level)
            for handler in logger.handlers:
                handler.setLevel(self.level)

    def shutdown(self) -> None:
        """Close and detach all handlers owned by this manager."""
        for logger in self.loggers.values():
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)
