# tests/test_settings.py
import asyncio
import json
import logging

import pytest

from config.settings import Settings
from modules.core.database import DatabaseManager
from modules.core.health import check_database, get_health_status
from modules.core.safe_logger import StructuredFormatter, log_summary
from modules.prayer_engine.methods import CalculationMethod


def test_defaults(monkeypatch):
    for key in ("DATABASE_URL", "MOSQUE_LATITUDE", "PRAYER_PROVIDERS", "PRAYER_CALCULATION_METHOD"):
        monkeypatch.delenv(key, raising=False)
    settings = Settings()

    assert settings.database_url is None
    assert settings.mosque_latitude == 33.9114
    assert settings.providers == ["aladhan", "islamicfinder"]
    assert settings.engine_config().default_method is CalculationMethod.ISNA


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MOSQUE_LATITUDE", "40.7128")
    monkeypatch.setenv("MOSQUE_LONGITUDE", "-74.006")
    monkeypatch.setenv("PRAYER_CALCULATION_METHOD", "Umm al-Qura")
    monkeypatch.setenv("PRAYER_PROVIDERS", "islamicfinder, ,aladhan")
    monkeypatch.setenv("PRAYER_PROVIDER_TIMEOUT", "2.5")
    monkeypatch.setenv("HIJRI_ADJUSTMENT_DAYS", "1")
    monkeypatch.setenv("ALADHAN_BASE_URL", "https://mirror.test")
    settings = Settings()

    assert settings.providers == ["islamicfinder", "aladhan"]
    assert settings.provider_timeout == 2.5
    assert settings.provider_base_urls["aladhan"] == "https://mirror.test"

    config = settings.engine_config()
    assert config.default_location.latitude == 40.7128
    assert config.default_method is CalculationMethod.UMM_AL_QURA
    assert config.hijri_adjustment_days == 1


def test_bad_number_rejected(monkeypatch):
    monkeypatch.setenv("PRAYER_PROVIDER_TIMEOUT", "soon")
    with pytest.raises(ValueError):
        Settings()


def test_database_check_disabled_without_url(monkeypatch):
    from config import settings as settings_module

    monkeypatch.setattr(settings_module.settings, "database_url", None)
    status = asyncio.run(check_database(DatabaseManager()))
    assert status["status"] == "disabled"


def test_system_health_without_database(monkeypatch):
    from config import settings as settings_module

    monkeypatch.setattr(settings_module.settings, "database_url", None)
    health = asyncio.run(get_health_status(DatabaseManager()))

    assert health["services"]["database"]["status"] == "disabled"
    # No engine registered in this test
    assert health["services"]["prayer_engine"]["status"] == "unhealthy"
    assert health["status"] == "unhealthy"


def test_connect_requires_url(monkeypatch):
    from config import settings as settings_module

    monkeypatch.setattr(settings_module.settings, "database_url", None)
    with pytest.raises(ValueError):
        asyncio.run(DatabaseManager().connect())


def test_structured_formatter_emits_json():
    record = logging.LogRecord("modules.prayer_engine", logging.INFO, __file__, 1, "🕌 Resolved %s", ("2025-01-15",), None)
    entry = json.loads(StructuredFormatter().format(record))
    assert entry["level"] == "INFO"
    assert entry["message"] == "🕌 Resolved 2025-01-15"


def test_log_summary(caplog):
    with caplog.at_level(logging.INFO, logger="prewarm"):
        log_summary("Prewarm complete", {"days": 7, "LocalCalculation": 7}, logger_name="prewarm")
    assert "📊 Prewarm complete | days: 7 | LocalCalculation: 7" in caplog.text
