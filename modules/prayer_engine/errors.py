# modules/prayer_engine/errors.py
"""
Error taxonomy for the prayer time engine.

Callers only ever see InvalidInput or OverrideValidationError.
CalculationFailure is absorbed by the orchestrator (offline layer) and
provider problems are returned as ProviderFailure values, never raised.
"""

from typing import List, Optional

__all__ = [
    'PrayerEngineError',
    'InvalidInput',
    'CalculationFailure',
    'OverrideValidationError',
]


class PrayerEngineError(Exception):
    """Base class for every error raised by the prayer engine."""


class InvalidInput(PrayerEngineError, ValueError):
    """Bad coordinates, timezone, date or method - rejected before any computation."""


class CalculationFailure(PrayerEngineError):
    """The astronomical calculator could not produce finite times."""


class OverrideValidationError(PrayerEngineError, ValueError):
    """Admin input rejected at write time; nothing was stored."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]
