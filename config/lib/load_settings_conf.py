"""Settings configuration loader module.

This module handles loading and parsing of the optional settings.conf file which
controls where the local store lives and how the background workers behave.

The settings file uses INI format with a [DEFAULT] section containing key-value pairs.
Every setting has a default, so a missing file yields the defaults.

Settings:
    storage_backend: One of 'sqlite', 'memory' or 'postgres'
    storage_path: SQLite file used by the 'sqlite' backend
    db_url: Database URL used by the 'postgres' backend
    sweep_interval_seconds: Seconds between disappearing-message sweeps
    max_send_attempts: Delivery attempts before a pending message is abandoned
    log_level: Logging level name for the entry point

Example settings.conf:
    [DEFAULT]
    storage_backend = sqlite
    storage_path = /home/user/.swipeme/store.db
    sweep_interval_seconds = 60

Raises:
    SettingsError: If the settings file is invalid or contains invalid values
"""
from configparser import ConfigParser
from pathlib import Path
from typing import Dict, Any, List
import logging
import os

STORAGE_BACKENDS = ('sqlite', 'memory', 'postgres')

class ConfigValidationError:
    """Helper class to format configuration validation errors"""
    def __init__(self):
        self.missing_sections: List[str] = []
        self.invalid_values: List[str] = []

    def has_errors(self) -> bool:
        """Check if any errors exist"""
        return bool(self.missing_sections or self.invalid_values)

    def format_message(self) -> str:
        """Format error message in a clean, readable way"""
        messages = []

        if self.missing_sections:
            messages.append("Missing required sections:")
            messages.extend(f"  - {item}" for item in self.missing_sections)

        if self.invalid_values:
            if messages:
                messages.append("")
            messages.append("Invalid settings:")
            messages.extend(f"  - {item}" for item in self.invalid_values)

        return "\n".join(messages)

class SettingsError(Exception):
    """Raised when there are issues loading or parsing the settings configuration."""
    pass

# Default settings
DEFAULTS = {
    'storage_backend': 'sqlite',
    'storage_path': os.path.expanduser('~/.swipeme/store.db'),
    'db_url': 'postgresql://root@localhost:26257/defaultdb?sslmode=disable',
    'sweep_interval_seconds': '60',  # Disappearing-message sweep cadence
    'max_send_attempts': '5',  # Pending messages are abandoned after this many failed sends
    'log_level': 'INFO'
}

def load_settings_conf(settings_path: str = ".") -> Dict[str, Any]:
    """Load and parse settings.conf file, falling back to defaults

    Args:
        settings_path: Directory containing settings.conf

    Returns:
        Dictionary containing validated settings

    Raises:
        SettingsError: If parsing fails or validation fails
    """
    config_path = Path(settings_path) / 'settings.conf'
    settings = dict(DEFAULTS)

    if not config_path.exists():
        return validate_settings(settings)

    try:
        parser = ConfigParser()
        parser.read(config_path)

        errors = ConfigValidationError()

        # Settings placed in a named section instead of [DEFAULT] are ignored otherwise
        if not parser.defaults() and parser.sections():
            errors.missing_sections.append('[DEFAULT]')
            raise SettingsError(
                "Settings Configuration Validation Failed\n\n" +
                errors.format_message()
            )

        settings.update(parser.defaults())
        return validate_settings(settings)

    except Exception as e:
        if isinstance(e, SettingsError):
            raise
        raise SettingsError(f"Error parsing settings.conf: {str(e)}")

def validate_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Validate loaded settings.

    Args:
        settings: Dictionary of settings to validate

    Returns:
        Validated and processed settings

    Raises:
        SettingsError: If validation fails
    """
    errors = ConfigValidationError()

    backend = str(settings.get('storage_backend', '')).strip().lower()
    if backend not in STORAGE_BACKENDS:
        errors.invalid_values.append(
            f"storage_backend: {backend!r} (expected one of {', '.join(STORAGE_BACKENDS)})"
        )
    settings['storage_backend'] = backend

    for key in ('sweep_interval_seconds', 'max_send_attempts'):
        try:
            settings[key] = int(settings[key])
            if settings[key] < 1:
                errors.invalid_values.append(f"{key}: must be at least 1")
        except (ValueError, KeyError, TypeError):
            errors.invalid_values.append(f"{key}: {settings.get(key)!r} is not an integer")

    level = str(settings.get('log_level', '')).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        errors.invalid_values.append(f"log_level: {level!r} is not a logging level")
    settings['log_level'] = level

    if backend == 'sqlite':
        settings['storage_path'] = str(Path(os.path.expanduser(settings['storage_path'])))

    if errors.has_errors():
        raise SettingsError(
            "Settings Configuration Validation Failed\n\n" +
            errors.format_message()
        )

    return settings
