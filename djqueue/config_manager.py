"""
Configuration management using database storage.

Provides access to configuration values with defaults and type conversion.
The CONFIG_SCHEMA provides rich metadata for building user-friendly configuration UIs.
"""

import logging
from typing import Any, Dict, Optional

from .database import ConfigRepository, Database
from .models import UNSPECIFIED_ARTIST
from .notifications import DEFAULT_CAPACITY

# Configuration groups define the logical sections in the config UI
CONFIG_GROUPS = {
    "queue": {"label": "Queue", "order": 1},
    "server": {"label": "Server", "order": 2},
}

# Schema defining metadata for each editable configuration key
CONFIG_SCHEMA = {
    "unspecified_artist": {
        "group": "queue",
        "label": "Unknown Artist Label",
        "description": "Artist name stored when a guest leaves the artist empty.",
        "control": "text",
    },
    "notification_limit": {
        "group": "queue",
        "label": "Notification Limit",
        "description": "How many guest edits and cancellations the DJ panel keeps. Takes effect on restart.",
        "control": "slider",
        "min": 10,
        "max": 200,
        "step": 10,
    },
    "host": {
        "group": "server",
        "label": "Listen Address",
        "description": "Interface the web server binds to. Takes effect on restart.",
        "control": "text",
        "placeholder": "0.0.0.0",
    },
    "port": {
        "group": "server",
        "label": "Port",
        "description": "Port the web server listens on. Takes effect on restart.",
        "control": "text",
        "placeholder": "8000",
    },
}


class ConfigManager:
    """Manages configuration stored in database."""

    # Default configuration values
    DEFAULTS = {
        "unspecified_artist": UNSPECIFIED_ARTIST,
        "notification_limit": str(DEFAULT_CAPACITY),
        "host": "0.0.0.0",
        "port": "8000",
    }

    def __init__(self, database: Database):
        """
        Initialize ConfigManager.

        Args:
            database: Database instance
        """
        self.database = database
        self.repository = ConfigRepository(database)
        self.logger = logging.getLogger(__name__)
        self.repository.initialize_defaults(self.DEFAULTS)

    def get(self, key: str, default: Any = None) -> Optional[str]:
        """
        Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if not found (uses DEFAULTS if None)

        Returns:
            Configuration value as string, or None if not found
        """
        if default is None:
            default = self.DEFAULTS.get(key)

        entry = self.repository.get(key)
        if entry:
            return entry.value if entry.value else default
        return default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get configuration value as integer."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError:
            self.logger.warning("Invalid integer value for %s: %s", key, value)
            return default

    def set(self, key: str, value: Any) -> bool:
        """
        Set a configuration value.

        Args:
            key: Configuration key
            value: Value to set (will be converted to string)

        Returns:
            True if successful
        """
        self.logger.info("Config %s updated", key)
        return self.repository.set(key, str(value))

    def get_all(self) -> dict:
        """
        Get all configuration values.

        Returns:
            Dictionary of all configuration key-value pairs
        """
        entries = self.repository.get_all()
        result = self.DEFAULTS.copy()
        result.update({entry.key: entry.value for entry in entries})
        return result

    def get_config_schema(self) -> Dict[str, dict]:
        """Get the configuration schema for the editable keys."""
        return {key: dict(key_def) for key, key_def in CONFIG_SCHEMA.items()}

    def get_config_groups(self) -> Dict[str, dict]:
        """Get the configuration group definitions."""
        return CONFIG_GROUPS.copy()

    def get_full_config(self) -> dict:
        """
        Get complete configuration data for the UI.

        Returns:
            Dictionary with 'values', 'schema', and 'groups' keys.
        """
        return {
            "values": self.get_all(),
            "schema": self.get_config_schema(),
            "groups": self.get_config_groups(),
        }
