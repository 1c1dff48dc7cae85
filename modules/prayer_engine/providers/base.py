# modules/prayer_engine/providers/base.py
"""
Common contract for remote prayer time services.

Adapters return either a RawSchedule or a ProviderFailure value. They never
raise on network trouble and never retry; the orchestrator decides what to
do next.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Mapping, Optional, Union
from zoneinfo import ZoneInfo

from ..errors import OverrideValidationError
from ..methods import CalculationMethod, CalculationParameters
from ..models import DAILY_ORDER, Location, PrayerName, RawSchedule, SourceLayer
from ..time_expressions import parse_clock_time

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_TIMEOUT = 4.0

# "2025-01-15T06:20:00-05:00"; clock strings such as "06:20 (EST)" do not match
_ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T")


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    INVALID_RESPONSE = "invalid_response"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class ProviderFailure:
    provider: str
    kind: FailureKind
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.provider}: {self.kind.value} {self.detail}".strip()


ProviderResult = Union[RawSchedule, ProviderFailure]


class InvalidPayload(ValueError):
    """Internal signal raised while parsing a response; mapped to INVALID_RESPONSE."""


class PrayerTimeProvider(ABC):
    """Base class for remote prayer time adapters."""

    name: str = "provider"

    def __init__(self, timeout: float = DEFAULT_PROVIDER_TIMEOUT):
        self.timeout = timeout

    def supports(self, method: CalculationMethod) -> bool:
        return True

    @abstractmethod
    async def fetch_times(self, location: Location, on_date: date,
                          params: CalculationParameters) -> ProviderResult:
        """Fetch one day's times. Must return a ProviderFailure instead of raising."""

    async def close(self) -> None:
        """Release pooled connections, if any."""

    def failure(self, kind: FailureKind, detail: str = "") -> ProviderFailure:
        logger.warning(f"⚠️ {self.name} failed ({kind.value}): {detail}")
        return ProviderFailure(provider=self.name, kind=kind, detail=detail)

    def build_schedule(self, on_date: date, location: Location,
                       timings: Mapping[PrayerName, str], midnight: Optional[str] = None) -> RawSchedule:
        """
        Turn provider clock strings (local to the location) into a RawSchedule.

        Raises:
            InvalidPayload: if a prayer is missing or a time does not parse
        """
        tz = ZoneInfo(location.timezone)
        times = {}
        for name in DAILY_ORDER:
            value = timings.get(name)
            if value is None:
                raise InvalidPayload(f"missing {name.value}")
            times[name] = self._parse_instant(value, on_date, tz)

        isha = timings[PrayerName.ISHA]
        if not self._is_iso(isha) and times[PrayerName.ISHA] < times[PrayerName.MAGHRIB]:
            # Clock-only Isha after local midnight (high latitudes in summer)
            times[PrayerName.ISHA] += timedelta(days=1)

        ordered = [times[name] for name in DAILY_ORDER]
        if any(earlier >= later for earlier, later in zip(ordered, ordered[1:])):
            raise InvalidPayload("prayer times out of order")

        midnight_instant = self._parse_instant(midnight, on_date, tz) if midnight else None
        if midnight_instant is not None and midnight_instant < times[PrayerName.MAGHRIB]:
            # Clock-only midnight belongs to the following calendar day
            midnight_instant += timedelta(days=1)
        return RawSchedule(
            date=on_date,
            times=times,
            source_layer=SourceLayer.remote(self.name),
            midnight=midnight_instant,
        )

    @staticmethod
    def _is_iso(value) -> bool:
        return bool(_ISO_TIMESTAMP.match(str(value).strip()))

    @classmethod
    def _parse_instant(cls, value: str, on_date: date, tz: ZoneInfo) -> datetime:
        text = str(value).strip()
        # ISO 8601 (AlAdhan iso8601=true) carries its own offset
        if cls._is_iso(text):
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                raise InvalidPayload(f"bad timestamp {value!r}") from None
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)
        try:
            clock = parse_clock_time(text)
        except OverrideValidationError:
            raise InvalidPayload(f"bad time {value!r}") from None
        return datetime.combine(on_date, clock, tzinfo=tz)


def is_failure(result: Optional[ProviderResult]) -> bool:
    return isinstance(result, ProviderFailure)
