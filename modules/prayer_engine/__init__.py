# modules/prayer_engine/__init__.py
"""
Prayer Time Resolution Engine
Always-available daily prayer schedules with remote, local and offline layers
"""

from .engine import EngineConfig, PrayerTimeEngine, build_engine
from .errors import CalculationFailure, InvalidInput, OverrideValidationError, PrayerEngineError
from .hijri import HijriDate, gregorian_to_hijri, hijri_to_gregorian
from .methods import AsrSchool, CalculationMethod, CalculationParameters, HighLatitudeRule
from .models import LayerKind, Location, PrayerName, PrayerSchedule, PrayerTime, RawSchedule, SourceLayer
from .qibla import qibla_bearing
from .router import check_module_health, get_integration_info, router, set_engine

# Public API - what other modules can import
__all__ = [
    'router',
    'get_integration_info',
    'check_module_health',
    'set_engine',
    'EngineConfig',
    'PrayerTimeEngine',
    'build_engine',
    'PrayerEngineError',
    'InvalidInput',
    'CalculationFailure',
    'OverrideValidationError',
    'HijriDate',
    'gregorian_to_hijri',
    'hijri_to_gregorian',
    'AsrSchool',
    'CalculationMethod',
    'CalculationParameters',
    'HighLatitudeRule',
    'LayerKind',
    'Location',
    'PrayerName',
    'PrayerSchedule',
    'PrayerTime',
    'RawSchedule',
    'SourceLayer',
    'qibla_bearing',
]

# Module metadata
__version__ = '1.0.0'
__description__ = 'Layered prayer time resolution with offline fallback'
