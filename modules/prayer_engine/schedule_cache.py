# modules/prayer_engine/schedule_cache.py
"""
Schedule Cache - raw (pre-override) daily schedules keyed by location bucket

Entries expire at the earlier of the next local midnight and max_age after
storing. Overrides are never cached, so an admin edit is visible on the very
next request without invalidation.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo

from .methods import AsrSchool, CalculationMethod
from .models import Location, RawSchedule

logger = logging.getLogger(__name__)

DEFAULT_GRID_DEGREES = 0.1
DEFAULT_MAX_AGE = timedelta(hours=24)


def bucket_coordinate(value: float, grid_degrees: float = DEFAULT_GRID_DEGREES) -> float:
    """Snap a coordinate to the cache grid (0.1 degree is roughly 11 km)."""
    return round(round(value / grid_degrees) * grid_degrees, 6)


@dataclass(frozen=True)
class CacheKey:
    lat_bucket: float
    lng_bucket: float
    date: date
    method: CalculationMethod
    asr_school: AsrSchool


@dataclass(frozen=True)
class CacheEntry:
    schedule: RawSchedule
    stored_at: datetime
    expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleCache:
    """
    Thread-safe in-memory cache.

    put_if_absent is atomic: concurrent writers for the same key converge on
    the first stored entry.
    """

    def __init__(self,
                 grid_degrees: float = DEFAULT_GRID_DEGREES,
                 max_age: timedelta = DEFAULT_MAX_AGE,
                 clock: Optional[Callable[[], datetime]] = None):
        if grid_degrees <= 0:
            raise ValueError("grid_degrees must be positive")
        self.grid_degrees = grid_degrees
        self.max_age = max_age
        self._clock = clock or _utc_now
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def key_for(self, location: Location, on_date: date,
                method: CalculationMethod, asr_school: AsrSchool) -> CacheKey:
        return CacheKey(
            lat_bucket=bucket_coordinate(location.latitude, self.grid_degrees),
            lng_bucket=bucket_coordinate(location.longitude, self.grid_degrees),
            date=on_date,
            method=method,
            asr_school=asr_school,
        )

    def expiry_for(self, stored_at: datetime, timezone_name: str) -> datetime:
        """min(next local midnight after stored_at, stored_at + max_age)"""
        tz = ZoneInfo(timezone_name)
        local_now = stored_at.astimezone(tz)
        next_midnight = datetime.combine(local_now.date() + timedelta(days=1), time.min, tzinfo=tz)
        return min(next_midnight.astimezone(timezone.utc), stored_at + self.max_age)

    def get(self, key: CacheKey) -> Optional[RawSchedule]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.is_fresh(now):
                self._misses += 1
                return None
            self._hits += 1
            return entry.schedule

    def put_if_absent(self, key: CacheKey, schedule: RawSchedule, timezone_name: str) -> RawSchedule:
        """
        Store the schedule unless a fresh entry already exists.

        Returns:
            The schedule that is cached after the call (first writer wins)
        """
        now = self._clock()
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None and existing.is_fresh(now):
                return existing.schedule
            self._entries[key] = CacheEntry(
                schedule=schedule,
                stored_at=now,
                expires_at=self.expiry_for(now, timezone_name),
            )
            return schedule

    def invalidate(self, key: CacheKey) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"🧹 Purged {len(stale)} expired schedule(s)")
        return len(stale)

    def stats(self) -> Dict[str, float]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
