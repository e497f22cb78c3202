"""
Persistent settings for sshmux.
Stored in ~/.sshmux/config.json
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

from .session.reconnect import BackoffSchedule, DEFAULT_BACKOFF_DELAYS

logger = logging.getLogger(__name__)

# Default config location
DEFAULT_CONFIG_DIR = Path.home() / ".sshmux"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"

HOST_KEY_POLICIES = ("auto_add", "warn", "reject")


@dataclass
class ManagerSettings:
    """
    Session manager settings that persist across runs.
    """
    # Reconnect behavior
    backoff_delays: list[float] = field(default_factory=lambda: list(DEFAULT_BACKOFF_DELAYS))

    # Transport
    connect_timeout: float = 10.0
    keepalive_interval: int = 30
    host_key_policy: str = "auto_add"

    # Logging
    log_level: str = "WARNING"

    def to_dict(self) -> dict:
        """Serialize to dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> ManagerSettings:
        """Deserialize from dict, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)

    def backoff_schedule(self) -> BackoffSchedule:
        """Reconnect delays as a validated schedule."""
        return BackoffSchedule(tuple(self.backoff_delays))


class SettingsManager:
    """
    Manages loading and saving sshmux settings.

    Usage:
        manager = SettingsManager()
        settings = manager.settings

        settings.keepalive_interval = 15
        manager.save()
    """

    def __init__(self, config_path: Path = None):
        self._config_path = config_path or DEFAULT_CONFIG_FILE
        self._settings: Optional[ManagerSettings] = None

    @property
    def settings(self) -> ManagerSettings:
        """Get current settings, loading from disk if needed."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    @property
    def config_dir(self) -> Path:
        """Get the config directory path."""
        return self._config_path.parent

    def load(self) -> ManagerSettings:
        """Load settings from disk, or return defaults."""
        if not self._config_path.exists():
            logger.debug("No settings file found, using defaults")
            return ManagerSettings()

        try:
            data = json.loads(self._config_path.read_text())
            settings = ManagerSettings.from_dict(data)
            settings.backoff_schedule()
        except (json.JSONDecodeError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Failed to load settings: {e}, using defaults")
            return ManagerSettings()

        if settings.host_key_policy not in HOST_KEY_POLICIES:
            logger.warning(
                f"Unknown host_key_policy {settings.host_key_policy!r}, using 'auto_add'"
            )
            settings.host_key_policy = "auto_add"

        logger.debug(f"Loaded settings from {self._config_path}")
        return settings

    def save(self) -> None:
        """Save current settings to disk."""
        if self._settings is None:
            return

        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._config_path.write_text(
                json.dumps(self._settings.to_dict(), indent=2)
            )
            logger.debug(f"Saved settings to {self._config_path}")
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")

    def reset(self) -> ManagerSettings:
        """Reset to default settings (does not save automatically)."""
        self._settings = ManagerSettings()
        return self._settings


# Global instance for convenience
_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """Get the global settings manager instance."""
    global _manager
    if _manager is None:
        _manager = SettingsManager()
    return _manager


def get_settings() -> ManagerSettings:
    """Convenience function to get current settings."""
    return get_settings_manager().settings


def save_settings() -> None:
    """Convenience function to save current settings."""
    get_settings_manager().save()
