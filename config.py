# config.py

import logging
import os

import yaml
from pydantic import ValidationError

from errors import ConfigError
from models.settings import ServerSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


def get_config_path() -> str:
    return os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH)


def load_config(path: str = None) -> dict:
    """
    Load configuration from the YAML file at `path`, or the path named by the
    CONFIG_PATH environment variable, or the default path.

    Returns:
        dict: Parsed configuration dictionary.

    Raises:
        ConfigError: The file is missing, unreadable or not a YAML mapping.
    """
    config_path = path or get_config_path()

    if not os.path.exists(config_path):
        logger.error(f"Configuration file '{config_path}' not found.")
        raise ConfigError(f"Configuration file '{config_path}' not found.")

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file '{config_path}': {e}")
        raise ConfigError(f"Error parsing YAML file '{config_path}': {e}") from e
    except OSError as e:
        logger.error(f"Unable to read configuration file '{config_path}': {e}")
        raise ConfigError(f"Unable to read configuration file '{config_path}': {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Configuration file '{config_path}' must contain a mapping.")

    logger.info(f"Configuration loaded successfully from '{config_path}'.")
    return config


def load_settings(config: dict) -> ServerSettings:
    """Build the server settings from a parsed configuration dictionary."""
    try:
        settings = ServerSettings.model_validate(config)
    except ValidationError as e:
        raise ConfigError(f"Invalid server settings: {e}") from e

    # Log summary of key settings
    logger.info(f"Listen address: {settings.address}:{settings.port}")
    logger.info(f"URL base: '{settings.url_base}'")
    logger.info(f"Mounted modules: {[m.mount_path for m in settings.modules]}")
    logger.info(f"Git timeout: {settings.sync.timeout}s")
    return settings
