"""Simple YAML configuration loader for SpeakRelay."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

ENV_OVERRIDES = {
    "SPEAKRELAY_ENDPOINT_URL": "transcription.endpoint_url",
    "SPEAKRELAY_TOKEN": "transcription.token",
    "SPEAKRELAY_LIVE_API_KEY": "transcription.live.api_key",
}


class SpeakRelayConfig:
    """SpeakRelay configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used (plus environment overrides).
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config: Dict[str, Any] = {}
        else:
            if not self.config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
            logger.info(f"Loading configuration from: {self.config_file}")
            self.config = self._load_config()

        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}")

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (('storage', 'data_directory'),
                             ('storage', 'identity_file'),
                             ('logging', 'file_path')):
            value = config.get(section, {}).get(key) if isinstance(config.get(section), dict) else None
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

    def _apply_env_overrides(self) -> None:
        for env_name, key_path in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                self.set(key_path, value)
                logger.debug(f"Configuration key '{key_path}' taken from ${env_name}")

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'audio.flush_interval_seconds').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'relay.backend')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict or not isinstance(config_dict[key], dict):
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set")

    def get_endpoint_url(self) -> str:
        """Get transcription endpoint - CRASHES if not configured."""
        url = self.get('transcription.endpoint_url')
        if not url:
            raise ValueError("Transcription endpoint not configured: set transcription.endpoint_url "
                             "or SPEAKRELAY_ENDPOINT_URL")
        return url

    def get_live_api_key(self) -> str:
        api_key = self.get('transcription.live.api_key')
        if not api_key:
            raise ValueError("Live transcription API key not configured: set transcription.live.api_key "
                             "or SPEAKRELAY_LIVE_API_KEY")
        return api_key

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_identity_file(self) -> str:
        identity_file = self.get('storage.identity_file')
        if identity_file:
            return str(Path(identity_file).absolute())
        return str(Path(self.get_data_directory()) / "identity.json")
