"""
Configuration service for reading settings from environment.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger("app.config")

DEFAULTS = {
    "RECORDS_API_BASE_URL": "http://localhost:5000/api",
    "RECORDS_API_TIMEOUT": "15",
    "RECORDS_API_MAX_RETRIES": "3",
    "ANALYTICS_MAX_WORKERS": "8",
    "ANALYTICS_CACHE_MAX_AGE_HOURS": "24",
    "ANALYTICS_CLUSTER_STRATEGY": "nearest_centroid",
    "ANALYTICS_MAX_TRACKED_STATUSES": "1000",
}


class ConfigService:
    """Service for managing application configuration."""

    def __init__(self):
        self._cache: dict[str, Any] = {}

    def get_setting(self, key: str, default: Any = None) -> Any:
        """
        Get setting value from environment.

        Priority: Explicitly set value > Environment > Default
        """
        if key in self._cache:
            return self._cache[key]

        if default is None:
            default = DEFAULTS.get(key)
        value = os.getenv(key, default)

        self._cache[key] = value

        logger.debug(f"Retrieved setting {key}={value}")
        return value

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        value = self.get_setting(key, None if default is None else str(default))
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid integer setting {key}={value!r}, using {default}")
            return int(default if default is not None else DEFAULTS[key])

    def get_float(self, key: str, default: Optional[float] = None) -> float:
        value = self.get_setting(key, None if default is None else str(default))
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid float setting {key}={value!r}, using {default}")
            return float(default if default is not None else DEFAULTS[key])

    def set_setting(self, key: str, value: str, description: Optional[str] = None) -> None:
        """Override a setting for the lifetime of the process."""
        self._cache[key] = value
        logger.info(f"Set setting {key}={value}")

    def reset(self) -> None:
        """Drop cached and overridden values so the environment is re-read."""
        self._cache.clear()

    def now(self) -> datetime:
        """
        Get current time (real or fake based on APP_NOW_MODE).

        Returns:
            Current datetime in UTC (real or fake)
        """
        now_mode = self.get_setting("APP_NOW_MODE", "real")

        if now_mode == "fake":
            fake_now_str = self.get_setting("APP_FAKE_NOW")
            if fake_now_str:
                try:
                    # Parse YYYY-MM-DD format
                    fake_date = datetime.strptime(fake_now_str, "%Y-%m-%d").replace(tzinfo=timezone.utc)
                    logger.debug(f"Using fake time: {fake_date}")
                    return fake_date
                except ValueError:
                    logger.warning(f"Invalid APP_FAKE_NOW format: {fake_now_str}, using real time")

        return datetime.now(timezone.utc)

    def is_fake_time_enabled(self) -> bool:
        """Check if fake time mode is enabled."""
        return self.get_setting("APP_NOW_MODE", "real") == "fake"


# Global instance
config_service = ConfigService()
