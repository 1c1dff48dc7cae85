"""
Environment configuration management for the prayer time engine.
Single source of truth for all environment variables.

Nothing in modules/prayer_engine reads this directly: app.py and the scripts
turn it into an explicit EngineConfig via settings.engine_config().
"""

import os
from typing import Dict, List, Optional


class Settings:
    """Application settings from environment variables."""

    def __init__(self):
        # Optional: without it overrides live in memory only
        self.database_url: Optional[str] = self._get_optional("DATABASE_URL", "") or None
        self.environment: str = self._get_optional("ENVIRONMENT", "development")
        self.debug: bool = self._get_optional("DEBUG", "false").lower() == "true"
        self.log_level: str = self._get_optional("LOG_LEVEL", "INFO")
        self.log_json: bool = self._get_optional("LOG_JSON", "false").lower() == "true"

        # Default location: Doraville, Georgia masjid
        self.mosque_latitude: float = self._get_float("MOSQUE_LATITUDE", 33.9114)
        self.mosque_longitude: float = self._get_float("MOSQUE_LONGITUDE", -84.2614)
        self.mosque_timezone: str = self._get_optional("MOSQUE_TIMEZONE", "America/New_York")

        self.calculation_method: str = self._get_optional("PRAYER_CALCULATION_METHOD", "ISNA")
        self.asr_school: str = self._get_optional("PRAYER_ASR_SCHOOL", "standard")
        self.high_latitude_rule: Optional[str] = self._get_optional("PRAYER_HIGH_LATITUDE_RULE", "") or None

        self.providers: List[str] = [
            name.strip()
            for name in self._get_optional("PRAYER_PROVIDERS", "aladhan,islamicfinder").split(",")
            if name.strip()
        ]
        self.provider_timeout: float = self._get_float("PRAYER_PROVIDER_TIMEOUT", 4.0)
        self.cache_grid_degrees: float = self._get_float("PRAYER_CACHE_GRID_DEGREES", 0.1)
        self.cache_max_age_hours: float = self._get_float("PRAYER_CACHE_MAX_AGE_HOURS", 24.0)
        self.hijri_adjustment_days: int = self._get_int("HIJRI_ADJUSTMENT_DAYS", 0)

        self.aladhan_base_url: str = self._get_optional("ALADHAN_BASE_URL", "https://api.aladhan.com")
        self.islamicfinder_base_url: str = self._get_optional(
            "ISLAMICFINDER_BASE_URL", "https://www.islamicfinder.us"
        )

    def _get_optional(self, key: str, default: str) -> str:
        """Get optional environment variable with default."""
        return os.getenv(key, default)

    def _get_float(self, key: str, default: float) -> float:
        raw = os.getenv(key)
        if raw is None or raw.strip() == "":
            return default
        try:
            return float(raw)
        except ValueError:
            raise ValueError(f"Environment variable {key} must be a number, got {raw!r}") from None

    def _get_int(self, key: str, default: int) -> int:
        raw = os.getenv(key)
        if raw is None or raw.strip() == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"Environment variable {key} must be an integer, got {raw!r}") from None

    @property
    def provider_base_urls(self) -> Dict[str, str]:
        return {
            "aladhan": self.aladhan_base_url,
            "islamicfinder": self.islamicfinder_base_url,
        }

    def engine_config(self):
        """Build the explicit EngineConfig value the engine is constructed with."""
        from modules.prayer_engine.engine import EngineConfig

        return EngineConfig.from_settings(self)


# Global settings instance
settings = Settings()
