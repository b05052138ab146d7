"""Configuration management module for VulnTrack."""

from .config_manager import ConfigManager
from .config_validator import ConfigValidator

__all__ = ['ConfigManager', 'ConfigValidator']
