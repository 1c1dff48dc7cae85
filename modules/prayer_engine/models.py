# modules/prayer_engine/models.py
"""
Core records of the prayer time engine.

Everything here is immutable: a schedule is built once by the merger and
any later change means merging again, never editing in place.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidInput
from .hijri import HijriDate
from .methods import AsrSchool, CalculationMethod

__all__ = [
    'Location',
    'PrayerName',
    'FIVE_PRAYERS',
    'LayerKind',
    'SourceLayer',
    'RawSchedule',
    'PrayerTime',
    'PrayerSchedule',
]


@dataclass(frozen=True)
class Location:
    """A coordinate pair plus its IANA timezone. Validated on construction."""
    latitude: float
    longitude: float
    timezone: str

    def __post_init__(self):
        for axis, value, limit in (("latitude", self.latitude, 90.0), ("longitude", self.longitude, 180.0)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidInput(f"{axis} must be a number, got {value!r}")
            if not math.isfinite(value) or not -limit <= value <= limit:
                raise InvalidInput(f"{axis} out of range [-{limit:g}, {limit:g}]: {value}")
        if not isinstance(self.timezone, str) or not self.timezone:
            raise InvalidInput(f"timezone must be an IANA name, got {self.timezone!r}")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise InvalidInput(f"Unknown timezone: {self.timezone!r}") from None

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class PrayerName(str, Enum):
    FAJR = "fajr"
    SUNRISE = "sunrise"
    DHUHR = "dhuhr"
    ASR = "asr"
    MAGHRIB = "maghrib"
    ISHA = "isha"

    @property
    def display_name(self) -> str:
        return self.value.title()

    @classmethod
    def parse(cls, value: Any) -> "PrayerName":
        if isinstance(value, PrayerName):
            return value
        key = str(value).strip().lower()
        aliases = {"zuhr": "dhuhr", "duhr": "dhuhr", "shuruq": "sunrise", "shurooq": "sunrise", "ishaa": "isha"}
        try:
            return cls(aliases.get(key, key))
        except ValueError:
            raise InvalidInput(f"Unknown prayer: {value!r}") from None


# Sunrise is a marker, not a prayer: it cannot be overridden and has no Iqamah
FIVE_PRAYERS: Tuple[PrayerName, ...] = (
    PrayerName.FAJR, PrayerName.DHUHR, PrayerName.ASR, PrayerName.MAGHRIB, PrayerName.ISHA,
)

DAILY_ORDER: Tuple[PrayerName, ...] = tuple(PrayerName)


class LayerKind(str, Enum):
    REMOTE_PROVIDER = "RemoteProvider"
    LOCAL_CALCULATION = "LocalCalculation"
    MANUAL_OVERRIDE = "ManualOverride"
    OFFLINE_SCHEDULE = "OfflineSchedule"


@dataclass(frozen=True)
class SourceLayer:
    """Provenance tag: which layer produced a time."""
    kind: LayerKind
    provider: Optional[str] = None

    @classmethod
    def remote(cls, provider: str) -> "SourceLayer":
        return cls(LayerKind.REMOTE_PROVIDER, provider)

    @classmethod
    def local(cls) -> "SourceLayer":
        return cls(LayerKind.LOCAL_CALCULATION)

    @classmethod
    def override(cls) -> "SourceLayer":
        return cls(LayerKind.MANUAL_OVERRIDE)

    @classmethod
    def offline(cls) -> "SourceLayer":
        return cls(LayerKind.OFFLINE_SCHEDULE)

    def __str__(self) -> str:
        if self.kind is LayerKind.REMOTE_PROVIDER:
            return f"{self.kind.value}({self.provider})"
        return self.kind.value


@dataclass(frozen=True)
class RawSchedule:
    """
    Orchestrator output: UTC instants before any override is applied.
    This is the only thing the schedule cache ever stores.
    """
    date: date
    times: Mapping[PrayerName, datetime]
    source_layer: SourceLayer
    midnight: Optional[datetime] = None

    def __post_init__(self):
        missing = [name.value for name in DAILY_ORDER if name not in self.times]
        if missing:
            raise ValueError(f"RawSchedule missing times: {', '.join(missing)}")
        normalized = {name: self.times[name].astimezone(timezone.utc) for name in DAILY_ORDER}
        object.__setattr__(self, 'times', MappingProxyType(normalized))
        if self.midnight is not None:
            object.__setattr__(self, 'midnight', self.midnight.astimezone(timezone.utc))


@dataclass(frozen=True)
class PrayerTime:
    name: PrayerName
    adhan: datetime                       # aware, location-local
    source_layer: SourceLayer
    iqamah: Optional[datetime] = None     # annotation only, never replaces adhan


@dataclass(frozen=True)
class PrayerSchedule:
    """A fully resolved day. Built by the merger, never mutated afterwards."""
    date: date
    location: Location
    method: CalculationMethod
    asr_school: AsrSchool
    times: Mapping[PrayerName, PrayerTime]
    qibla_bearing: float
    hijri_date: HijriDate
    source_layer: SourceLayer
    midnight: Optional[datetime] = None
    tarawih: Optional[datetime] = None
    jumuah: Tuple[datetime, ...] = ()
    observances: Tuple[str, ...] = ()
    cached: bool = False

    def __post_init__(self):
        if not isinstance(self.times, MappingProxyType):
            object.__setattr__(self, 'times', MappingProxyType(dict(self.times)))
        object.__setattr__(self, 'jumuah', tuple(self.jumuah))
        object.__setattr__(self, 'observances', tuple(self.observances))

    def __getitem__(self, name) -> PrayerTime:
        return self.times[PrayerName.parse(name)]

    @property
    def is_ramadan(self) -> bool:
        return self.hijri_date.is_ramadan

    def ordered_times(self) -> Tuple[PrayerTime, ...]:
        return tuple(self.times[name] for name in DAILY_ORDER)

    def next_prayer(self, now: datetime) -> Optional[PrayerTime]:
        """First of the five prayers whose Adhan is still ahead of `now` (aware)."""
        for name in FIVE_PRAYERS:
            entry = self.times[name]
            if entry.adhan > now:
                return entry
        return None

    def current_prayer(self, now: datetime) -> Optional[PrayerTime]:
        """The prayer whose time window `now` falls in; None before Fajr."""
        current = None
        for name in FIVE_PRAYERS:
            entry = self.times[name]
            if entry.adhan <= now:
                current = entry
        if current and current.name is PrayerName.FAJR and now >= self.times[PrayerName.SUNRISE].adhan:
            # Fajr ends at sunrise; nothing is current until Dhuhr
            return None
        return current

    def time_until_next(self, now: datetime) -> Optional[timedelta]:
        upcoming = self.next_prayer(now)
        return upcoming.adhan - now if upcoming else None

    def to_dict(self, time_format: str = "24h") -> Dict[str, Any]:
        """Display-ready dict (local clock strings) for presentation layers."""
        def fmt(value: Optional[datetime]) -> Optional[str]:
            if value is None:
                return None
            if time_format == "12h":
                return value.strftime("%I:%M %p").lstrip("0")
            return value.strftime("%H:%M")

        return {
            "date": self.date.isoformat(),
            "location": {
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
                "timezone": self.location.timezone,
            },
            "method": self.method.name,
            "asr_school": self.asr_school.value,
            "times": {entry.name.value: fmt(entry.adhan) for entry in self.ordered_times()},
            "iqamah": {
                name.value: fmt(self.times[name].iqamah)
                for name in FIVE_PRAYERS if self.times[name].iqamah is not None
            },
            "sources": {entry.name.value: str(entry.source_layer) for entry in self.ordered_times()},
            "midnight": fmt(self.midnight),
            "tarawih": fmt(self.tarawih),
            "jumuah": [fmt(value) for value in self.jumuah],
            "qibla_bearing": round(self.qibla_bearing, 2),
            "hijri_date": {
                "year": self.hijri_date.year,
                "month": self.hijri_date.month,
                "day": self.hijri_date.day,
                "month_name": self.hijri_date.month_name,
                "formatted": self.hijri_date.format(),
            },
            "observances": list(self.observances),
            "source_layer": str(self.source_layer),
            "cached": self.cached,
        }
