# modules/prayer_engine/override_store.py
"""
Override Store - admin-maintained overrides, Iqamah times and Tarawih config

Input arrives as loose dicts (admin forms, JSON) and is validated with
pydantic at this boundary. Free-text time expressions are parsed here once;
stored records only hold typed values.

At most one active override exists per (date, prayer). Activating a second
one deactivates the previous record instead of duplicating it.
"""

import asyncio
import datetime as dt
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from .errors import InvalidInput, OverrideValidationError
from .hijri import HijriDate
from .models import FIVE_PRAYERS, PrayerName
from .time_expressions import (
    AbsoluteTime,
    TimeExpression,
    parse_clock_time,
    parse_time_expression,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Stored records
# =============================================================================

@dataclass(frozen=True)
class PrayerOverride:
    id: int
    date: date
    prayer: PrayerName
    override_time: time          # local clock time at the mosque
    reason: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class IqamahTimes:
    fajr: TimeExpression
    dhuhr: TimeExpression
    asr: TimeExpression
    maghrib: TimeExpression
    isha: TimeExpression
    jumuah: Tuple[AbsoluteTime, ...] = ()
    updated_at: Optional[datetime] = None

    def expression_for(self, prayer: PrayerName) -> TimeExpression:
        return getattr(self, prayer.value)


@dataclass(frozen=True)
class TarawihConfig:
    enabled: bool
    time: TimeExpression
    updated_at: Optional[datetime] = None

    def is_visible(self, hijri_date: HijriDate) -> bool:
        """Shown when switched on by an admin, and always during Ramadan."""
        return self.enabled or hijri_date.is_ramadan


# =============================================================================
# Input models
# =============================================================================

class PrayerOverrideInput(BaseModel):
    date: dt.date = Field(..., description="Gregorian date the override applies to")
    prayer: str = Field(..., description="fajr, dhuhr, asr, maghrib or isha")
    override_time: str = Field(..., description="Local clock time, e.g. '18:10' or '6:10 PM'")
    reason: Optional[str] = Field(None, max_length=500, description="Why the time was changed")
    is_active: bool = Field(default=True)


class IqamahTimesInput(BaseModel):
    fajr: str = Field(default="6:45 AM")
    dhuhr: str = Field(default="1:15 PM")
    asr: str = Field(default="4:15 PM")
    maghrib: str = Field(default="+5", description="Minutes after Maghrib Adhan")
    isha: str = Field(default="7:45 PM")
    jumuah: List[str] = Field(default_factory=lambda: ["12:30 PM", "1:15 PM"])


class TarawihConfigInput(BaseModel):
    enabled: bool = Field(default=False)
    time: str = Field(default="9:00 PM", description="Clock time or '+N after Isha'")


def _validated(model, data: Mapping[str, Any]):
    try:
        return model(**dict(data))
    except ValidationError as e:
        messages = [
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
            for error in e.errors()
        ]
        raise OverrideValidationError("; ".join(messages), errors=messages) from None


def parse_override_input(data: Mapping[str, Any]) -> Tuple[date, PrayerName, time, Optional[str], bool]:
    """
    Validate one override payload.

    Raises:
        OverrideValidationError: bad date, unknown prayer, sunrise, or bad time
    """
    data = dict(data)
    if isinstance(data.get("prayer"), PrayerName):
        data["prayer"] = data["prayer"].value
    if isinstance(data.get("override_time"), time):
        data["override_time"] = data["override_time"].strftime("%H:%M:%S")

    payload = _validated(PrayerOverrideInput, data)
    try:
        prayer = PrayerName.parse(payload.prayer)
    except InvalidInput as e:
        raise OverrideValidationError(str(e), errors=[str(e)]) from None
    if prayer not in FIVE_PRAYERS:
        raise OverrideValidationError("Sunrise cannot be overridden", errors=["prayer: sunrise is not a prayer"])

    reason = payload.reason.strip() if payload.reason else None
    return payload.date, prayer, parse_clock_time(payload.override_time), reason or None, payload.is_active


def parse_iqamah_input(data: Mapping[str, Any], updated_at: Optional[datetime] = None) -> IqamahTimes:
    payload = _validated(IqamahTimesInput, data)
    errors = []
    expressions = {}
    for prayer in FIVE_PRAYERS:
        try:
            expressions[prayer.value] = parse_time_expression(getattr(payload, prayer.value), prayer)
        except OverrideValidationError as e:
            errors.append(f"{prayer.value}: {e}")

    jumuah = []
    for index, value in enumerate(payload.jumuah):
        try:
            jumuah.append(AbsoluteTime(parse_clock_time(value)))
        except OverrideValidationError as e:
            errors.append(f"jumuah[{index}]: {e}")

    if errors:
        raise OverrideValidationError("; ".join(errors), errors=errors)
    return IqamahTimes(jumuah=tuple(sorted(jumuah, key=lambda item: item.time)), updated_at=updated_at, **expressions)


def parse_tarawih_input(data: Mapping[str, Any], updated_at: Optional[datetime] = None) -> TarawihConfig:
    payload = _validated(TarawihConfigInput, data)
    expression = parse_time_expression(payload.time, PrayerName.ISHA)
    return TarawihConfig(enabled=payload.enabled, time=expression, updated_at=updated_at)


DEFAULT_IQAMAH_TIMES = parse_iqamah_input({})
DEFAULT_TARAWIH_CONFIG = parse_tarawih_input({})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Store interface
# =============================================================================

class OverrideStore(ABC):
    """Async admin store. Reads are cheap; writes are serialized per key."""

    @abstractmethod
    async def create_override(self, data: Mapping[str, Any]) -> PrayerOverride: ...

    @abstractmethod
    async def update_override(self, override_id: int, changes: Mapping[str, Any]) -> PrayerOverride: ...

    @abstractmethod
    async def get_override(self, override_id: int) -> Optional[PrayerOverride]: ...

    @abstractmethod
    async def list_overrides(self, on_date: Optional[date] = None,
                             active_only: bool = False) -> List[PrayerOverride]: ...

    @abstractmethod
    async def delete_override(self, override_id: int) -> bool: ...

    @abstractmethod
    async def active_overrides_for(self, on_date: date) -> Dict[PrayerName, PrayerOverride]: ...

    @abstractmethod
    async def get_iqamah_times(self) -> IqamahTimes: ...

    @abstractmethod
    async def set_iqamah_times(self, data: Mapping[str, Any]) -> IqamahTimes: ...

    @abstractmethod
    async def get_tarawih_config(self) -> TarawihConfig: ...

    @abstractmethod
    async def set_tarawih_config(self, data: Mapping[str, Any]) -> TarawihConfig: ...

    async def initialize(self) -> None:
        """Prepare storage (create tables, etc.)."""

    async def deactivate_override(self, override_id: int) -> PrayerOverride:
        return await self.update_override(override_id, {"is_active": False})

    async def close(self) -> None:
        """Release resources, if any."""


def _override_fields(record: PrayerOverride) -> Dict[str, Any]:
    return {
        "date": record.date,
        "prayer": record.prayer.value,
        "override_time": record.override_time.strftime("%H:%M:%S"),
        "reason": record.reason,
        "is_active": record.is_active,
    }


_PRAYER_ORDER = {name: index for index, name in enumerate(FIVE_PRAYERS)}


def sort_overrides(records) -> List[PrayerOverride]:
    return sorted(records, key=lambda item: (item.date, _PRAYER_ORDER[item.prayer], item.id))


# =============================================================================
# In-memory implementation
# =============================================================================

LOCK_STRIPES = 64


class InMemoryOverrideStore(OverrideStore):
    """
    Process-local store, used in tests and when DATABASE_URL is not set.
    Writes take one of LOCK_STRIPES asyncio locks, picked by hashing the
    (date, prayer) key or the singleton record name.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utc_now
        self._overrides: Dict[int, PrayerOverride] = {}
        self._next_id = 1
        self._iqamah = DEFAULT_IQAMAH_TIMES
        self._tarawih = DEFAULT_TARAWIH_CONFIG
        self._locks: Dict[int, asyncio.Lock] = {}

    @staticmethod
    def _stripe(key) -> int:
        return hash(key) % LOCK_STRIPES

    def _lock_for(self, key) -> asyncio.Lock:
        return self._locks.setdefault(self._stripe(key), asyncio.Lock())

    def _supersede(self, on_date: date, prayer: PrayerName, keep_id: int, now: datetime) -> None:
        for record in list(self._overrides.values()):
            if record.id != keep_id and record.is_active and record.date == on_date and record.prayer is prayer:
                self._overrides[record.id] = replace(record, is_active=False, updated_at=now)
                logger.info(f"🔁 Override {record.id} for {prayer.value} on {on_date} superseded by {keep_id}")

    async def create_override(self, data: Mapping[str, Any]) -> PrayerOverride:
        on_date, prayer, override_time, reason, is_active = parse_override_input(data)

        async with self._lock_for((on_date, prayer)):
            now = self._clock()
            record = PrayerOverride(
                id=self._next_id,
                date=on_date,
                prayer=prayer,
                override_time=override_time,
                reason=reason,
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )
            self._next_id += 1
            if is_active:
                self._supersede(on_date, prayer, record.id, now)
            self._overrides[record.id] = record

        logger.info(f"🕌 Override {record.id} created: {prayer.value} on {on_date} at {override_time:%H:%M}")
        return record

    async def update_override(self, override_id: int, changes: Mapping[str, Any]) -> PrayerOverride:
        existing = self._overrides.get(override_id)
        if existing is None:
            raise OverrideValidationError(f"Override {override_id} not found")

        merged = _override_fields(existing)
        merged.update(changes)
        on_date, prayer, override_time, reason, is_active = parse_override_input(merged)

        # Distinct stripes, always taken in ascending order
        stripes = sorted({self._stripe((existing.date, existing.prayer)), self._stripe((on_date, prayer))})
        locks = [self._locks.setdefault(stripe, asyncio.Lock()) for stripe in stripes]
        for lock in locks:
            await lock.acquire()
        try:
            if override_id not in self._overrides:
                raise OverrideValidationError(f"Override {override_id} not found")
            now = self._clock()
            record = replace(
                self._overrides[override_id],
                date=on_date,
                prayer=prayer,
                override_time=override_time,
                reason=reason,
                is_active=is_active,
                updated_at=now,
            )
            if is_active:
                self._supersede(on_date, prayer, record.id, now)
            self._overrides[override_id] = record
        finally:
            for lock in reversed(locks):
                lock.release()

        logger.info(f"✏️ Override {override_id} updated")
        return record

    async def get_override(self, override_id: int) -> Optional[PrayerOverride]:
        return self._overrides.get(override_id)

    async def list_overrides(self, on_date: Optional[date] = None,
                             active_only: bool = False) -> List[PrayerOverride]:
        records = [
            record for record in self._overrides.values()
            if (on_date is None or record.date == on_date) and (record.is_active or not active_only)
        ]
        return sort_overrides(records)

    async def delete_override(self, override_id: int) -> bool:
        existing = self._overrides.get(override_id)
        if existing is None:
            return False
        async with self._lock_for((existing.date, existing.prayer)):
            removed = self._overrides.pop(override_id, None) is not None
        if removed:
            logger.info(f"🗑️ Override {override_id} deleted")
        return removed

    async def active_overrides_for(self, on_date: date) -> Dict[PrayerName, PrayerOverride]:
        return {
            record.prayer: record
            for record in self._overrides.values()
            if record.date == on_date and record.is_active
        }

    async def get_iqamah_times(self) -> IqamahTimes:
        return self._iqamah

    async def set_iqamah_times(self, data: Mapping[str, Any]) -> IqamahTimes:
        async with self._lock_for("iqamah"):
            self._iqamah = parse_iqamah_input(data, updated_at=self._clock())
        logger.info("🕰️ Iqamah times updated")
        return self._iqamah

    async def get_tarawih_config(self) -> TarawihConfig:
        return self._tarawih

    async def set_tarawih_config(self, data: Mapping[str, Any]) -> TarawihConfig:
        async with self._lock_for("tarawih"):
            self._tarawih = parse_tarawih_input(data, updated_at=self._clock())
        logger.info(f"🌙 Tarawih config updated (enabled={self._tarawih.enabled})")
        return self._tarawih


__all__ = [
    'PrayerOverride',
    'IqamahTimes',
    'TarawihConfig',
    'PrayerOverrideInput',
    'IqamahTimesInput',
    'TarawihConfigInput',
    'OverrideStore',
    'InMemoryOverrideStore',
    'DEFAULT_IQAMAH_TIMES',
    'DEFAULT_TARAWIH_CONFIG',
    'parse_override_input',
    'parse_iqamah_input',
    'parse_tarawih_input',
    'sort_overrides',
]
