"""
Configuration loading utilities for the form engine.

This module provides functionality to load and validate the engine
configuration (logging, submission, navigation, attachments, transport)
with fallback to defaults.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union
import logging
from copy import deepcopy

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

LOGGING_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL
}


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get the default engine configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'Formular-Portal',
            'version': '1.0.0',
            'debug': False
        },
        'logging': {
            'level': 'INFO',
            'format': LOG_FORMAT
        },
        'submission': {
            'generic_error_message': 'Ein Fehler ist aufgetreten.'
        },
        'navigation': {
            'audit_log': None,
            'scroll_behavior': 'smooth',
            'scroll_block': 'center'
        },
        'attachments': {
            'min_count': 0,
            'max_count': 5
        },
        'transport': {
            'endpoint': None,
            'timeout': 30
        }
    }


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load engine configuration.

    Missing, empty or unreadable files fall back to the defaults.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary
    """
    config_path = Path(config_path) if config_path is not None else Path("config.yaml")

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return default_config

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            logger.info("Using default configuration")
            return default_config

        config = deep_merge(default_config, user_config)

        logger.info(f"Successfully loaded configuration from {config_path}")
        return config

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration structure and value ranges.

    Args:
        config: Configuration dictionary to validate

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ['app', 'logging', 'submission', 'navigation', 'attachments', 'transport']

    for section in required_sections:
        if not isinstance(config.get(section), dict):
            logger.warning(f"Missing required configuration section: {section}")
            return False

    app = config['app']
    if 'name' not in app or 'version' not in app:
        logger.warning("Missing required app configuration (name or version)")
        return False

    level = config['logging'].get('level', 'INFO')
    if not isinstance(level, str) or level.upper() not in LOGGING_LEVELS:
        logger.warning(f"Unknown logging level: {level}")
        return False

    attachments = config['attachments']
    try:
        min_count = int(attachments.get('min_count', 0))
        max_count = attachments.get('max_count')
        if min_count < 0:
            logger.warning("attachments.min_count must not be negative")
            return False
        if max_count is not None and int(max_count) < min_count:
            logger.warning("attachments.max_count must not be below min_count")
            return False
    except (ValueError, TypeError):
        logger.warning("attachment limits must be valid integers")
        return False

    if 'timeout' in config['transport']:
        try:
            timeout = float(config['transport']['timeout'])
            if timeout <= 0:
                logger.warning("transport.timeout must be positive")
                return False
        except (ValueError, TypeError):
            logger.warning("transport.timeout must be a valid number")
            return False

    audit_log = config['navigation'].get('audit_log')
    if audit_log is not None and not isinstance(audit_log, str):
        logger.warning("navigation.audit_log must be a path string")
        return False

    return True


def get_config_value(config: Dict[str, Any], section: str, key: str, default: Any = None) -> Any:
    """
    Get a configuration value with a default.

    Args:
        config: Configuration dictionary
        section: Top-level section name
        key: Key within the section
        default: Value returned when the section or key is missing

    Returns:
        Configured value or default
    """
    section_values = config.get(section) or {}
    if not isinstance(section_values, dict):
        return default
    value = section_values.get(key)
    return default if value is None else value


def get_logging_level(level_str: Optional[str]) -> int:
    """Map string logging level to logging constant."""
    if not isinstance(level_str, str):
        return logging.INFO
    return LOGGING_LEVELS.get(level_str.upper(), logging.INFO)


def configure_logging(config: Dict[str, Any]) -> int:
    """
    Configure root logging from the ``logging`` section.

    Returns:
        The effective logging level
    """
    level = get_logging_level(get_config_value(config, 'logging', 'level', 'INFO'))
    log_format = get_config_value(config, 'logging', 'format', LOG_FORMAT)
    logging.basicConfig(level=level, format=log_format)
    logger.info(f"Logging configured to level: {logging.getLevelName(level)}")
    return level
