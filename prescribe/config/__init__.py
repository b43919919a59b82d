"""Simple YAML configuration loader for Prescribe."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..models.audio import CaptureConfig
from ..transcription.whisper_api import resolve_api_key

logger = logging.getLogger(__name__)


class PrescribeConfig:
    """Prescribe configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used and relative paths resolve against the
                        current directory.
        """
        if config_path is None:
            self.config_file = None
            self.config: Dict[str, Any] = {}
            self._resolve_paths(self.config, Path.cwd())
            logger.info("No configuration file given; using defaults")
            return

        self.config_file = Path(config_path)
        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        self._resolve_paths(config, self.config_file.parent)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any], base_dir: Path) -> None:
        """Resolve relative paths in configuration relative to ``base_dir``."""
        for section, key, default in (('storage', 'data_directory', 'data'),
                                      ('logging', 'file_path', 'data/logs/prescribe.log')):
            config.setdefault(section, {})
            value = config[section].get(key) or default
            if not os.path.isabs(value):
                value = str(base_dir / value)
            config[section][key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'transcription.remote.model').

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

        return default if value is None else value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'segments.length_seconds')
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
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_capture_config(self) -> CaptureConfig:
        """Build the explicit capture settings from the ``audio`` block."""
        return CaptureConfig(
            sample_rate=int(self.get('audio.sample_rate', 16000)),
            channels=int(self.get('audio.channels', 1)),
            sample_width=int(self.get('audio.sample_width', 2)),
            chunk_size=int(self.get('audio.chunk_size', 1024)),
            queue_size=int(self.get('audio.queue_size', 512)),
            input_device_index=self.get('audio.input_device_index'),
            tick_interval_ms=int(self.get('audio.tick_interval_ms', 100)),
        )

    def get_api_key(self) -> Optional[str]:
        """Remote API key: explicit value first, then the configured environment variable."""
        return resolve_api_key(self.get('transcription.remote.api_key'),
                               self.get('transcription.remote.api_key_env', 'OPENAI_API_KEY'))

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())
