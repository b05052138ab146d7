"""Logging framework for VulnTrack."""

from .logger_manager import LoggerManager
from .audit_logger import WorkflowAuditLogger
from .structured_formatter import StructuredFormatter

__all__ = ['LoggerManager', 'WorkflowAuditLogger', 'StructuredFormatter']
