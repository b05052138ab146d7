"""Configuration manager for VulnTrack."""

import os
import yaml
from typing import Dict, Any, Optional, List, Callable, Tuple
from pathlib import Path

from ..exceptions import ConfigurationError


# Environment variable -> (dot-separated key, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    'VULNTRACK_ENV_NAME': ('system.environment', str),
    'VULNTRACK_LOG_LEVEL': ('logging.level', str.upper),
    'VULNTRACK_DB_PATH': ('database.path', str),
    'VULNTRACK_TOP_CVE_LIMIT': ('impact.top_cve_limit', int),
}


class ConfigManager:
    """Layered YAML configuration for VulnTrack.

    Sources are applied in order, later ones winning key by key:
    ``config/default.yml``, ``config/{VULNTRACK_ENV}.yml``, the file passed
    as ``config_path`` and finally the ``VULNTRACK_*`` variables listed in
    ``ENV_OVERRIDES``.
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional path to custom configuration file
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}
        self.loaded_sources: List[str] = []
        self.base_dir = Path(__file__).parent.parent.parent.parent
        self._load_configuration()

    def _config_files(self) -> List[Path]:
        config_dir = self.base_dir / "config"
        env = os.getenv('VULNTRACK_ENV', 'development')
        files = [config_dir / "default.yml", config_dir / f"{env}.yml"]
        if self.config_path:
            files.append(Path(self.config_path))
        return files

    def _load_configuration(self) -> None:
        """Load configuration from every source in order of priority."""
        for file_path in self._config_files():
            file_config = self._load_config_file(file_path)
            if file_config:
                self._deep_merge(self.config, file_config)
                self.loaded_sources.append(str(file_path))

        self._load_environment_variables()

    def _load_config_file(self, file_path: Path) -> Optional[Dict[str, Any]]:
        """Load configuration from YAML file.

        Returns:
            Configuration dictionary or None if file doesn't exist
        """
        if not file_path.exists():
            return None

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (yaml.YAMLError, IOError) as e:
            raise ConfigurationError(f"Failed to load configuration from {file_path}: {e}")

        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {file_path} must contain a mapping")
        return data

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> None:
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _load_environment_variables(self) -> None:
        """Apply ``VULNTRACK_*`` overrides on top of the file configuration."""
        for env_var, (key, convert) in ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if not value:
                continue
            try:
                self.set(key, convert(value))
            except ValueError as e:
                section, _, config_key = key.partition('.')
                raise ConfigurationError(
                    f"Invalid value for {env_var}: {value!r}",
                    config_section=section,
                    config_key=config_key
                ) from e
            self.loaded_sources.append(f"env:{env_var}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-separated key.

        Args:
            key: Dot-separated configuration key (e.g., 'database.path')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current = self.config

        for k in key.split('.'):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return default

        return current

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by dot-separated key."""
        keys = key.split('.')
        current = self.config

        for k in keys[:-1]:
            current = current.setdefault(k, {})

        current[keys[-1]] = value

    def get_section(self, section: str) -> Dict[str, Any]:
        return self.config.get(section, {})

    def reload(self) -> None:
        """Reload configuration from all sources."""
        self.config = {}
        self.loaded_sources = []
        self._load_configuration()

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        from .config_validator import ConfigValidator
        return ConfigValidator(self.config).validate()

    def to_dict(self) -> Dict[str, Any]:
        return self.config.copy()
