"""Handles loading configuration from YAML files."""

import yaml
import os
import logging
from typing import Any, Dict

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "eafutil.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    'ffmpeg_path': 'ffmpeg',
    'log_dir': None,
    'log_file': 'eafutil.log',
    'temp_dir': 'tmp',
    'whisper_model': 'base',
    'device': 'cuda',
    'whisper_fp16': True,
    'language': None,
    'no_speech_threshold': 1.0,
    'clip_value_max_length': 20,
    'author': 'eafutil',
}

class ConfigLoader:
    """Loads configuration settings from a YAML file."""

    def load_config(self, config_path: str) -> dict:
        """
        Loads configuration from the specified YAML file path.

        Keys missing from the file fall back to DEFAULT_CONFIG.

        Args:
            config_path: The path to the YAML configuration file.

        Returns:
            A dictionary containing the merged configuration settings.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file cannot be parsed as YAML or
                              if there are other reading errors.
        """
        logger.info(f"Attempting to load configuration from: {config_path}")
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found at path: {config_path}")
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not os.path.isfile(config_path):
            logger.error(f"Configuration path is not a file: {config_path}")
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e
        except IOError as e:
            logger.error(f"Error reading configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if loaded is None:
            loaded = {} # Empty file
        if not isinstance(loaded, dict):
            logger.error(f"Configuration file {config_path} did not load as a dictionary (root object).")
            raise ConfigurationError(f"Invalid YAML structure in {config_path}. Root must be a mapping (dictionary).")

        unknown = sorted(set(loaded) - set(DEFAULT_CONFIG))
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys in {config_path}: {', '.join(unknown)}")

        config = self.defaults()
        config.update({k: v for k, v in loaded.items() if k in DEFAULT_CONFIG})
        self._validate(config, config_path)
        logger.info(f"Configuration loaded successfully from {config_path}")
        return config

    def defaults(self) -> dict:
        """Returns a fresh copy of the built-in configuration."""
        return dict(DEFAULT_CONFIG)

    def _validate(self, config: dict, config_path: str) -> None:
        threshold = config.get('no_speech_threshold')
        if not isinstance(threshold, (int, float)) or isinstance(threshold, bool):
            raise ConfigurationError(f"'no_speech_threshold' in {config_path} must be a number, got {threshold!r}")
        length = config.get('clip_value_max_length')
        if not isinstance(length, int) or isinstance(length, bool) or length < 1:
            raise ConfigurationError(f"'clip_value_max_length' in {config_path} must be a positive integer, got {length!r}")
        if config.get('device') not in ('cuda', 'cpu'):
            raise ConfigurationError(f"'device' in {config_path} must be 'cuda' or 'cpu', got {config.get('device')!r}")
