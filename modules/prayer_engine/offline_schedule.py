# modules/prayer_engine/offline_schedule.py
"""
Offline Schedule - bundled emergency times

Only used when the astronomical calculator itself cannot run (bad method
parameters). Times are typical mid-month values, not exact; results are
tagged OfflineSchedule and never cached.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from .models import DAILY_ORDER, Location, PrayerName, RawSchedule, SourceLayer

logger = logging.getLogger(__name__)

# (reference latitude, longitude) -> month -> local clock times in DAILY_ORDER
# Doraville, GA masjid (ISNA, standard Asr), wall clock America/New_York
BUNDLED_TABLE: Dict[Tuple[float, float], Dict[int, Tuple[str, ...]]] = {
    (33.9, -84.3): {
        1: ("06:20", "07:42", "12:47", "15:39", "17:52", "19:09"),
        2: ("06:08", "07:27", "12:51", "16:03", "18:16", "19:31"),
        3: ("06:40", "07:53", "13:47", "17:11", "19:42", "20:55"),
        4: ("06:05", "07:13", "13:40", "17:19", "20:06", "21:15"),
        5: ("05:35", "06:46", "13:37", "17:23", "20:28", "21:40"),
        6: ("05:24", "06:34", "13:40", "17:29", "20:46", "22:00"),
        7: ("05:35", "06:44", "13:45", "17:33", "20:45", "21:58"),
        8: ("05:56", "07:03", "13:44", "17:25", "20:24", "21:33"),
        9: ("06:16", "07:20", "13:35", "17:04", "19:49", "20:56"),
        10: ("06:34", "07:38", "13:26", "16:39", "19:13", "20:19"),
        11: ("05:57", "07:04", "12:26", "15:19", "17:47", "18:56"),
        12: ("06:15", "07:28", "12:37", "15:21", "17:42", "18:56"),
    },
}

# Hours of local mean solar time used when no bundled bucket is close enough
MEAN_SOLAR_HOURS: Mapping[PrayerName, float] = {
    PrayerName.FAJR: 5.0,
    PrayerName.SUNRISE: 6.25,
    PrayerName.DHUHR: 12.1,
    PrayerName.ASR: 15.5,
    PrayerName.MAGHRIB: 18.0,
    PrayerName.ISHA: 19.33,
}

DEFAULT_MATCH_RADIUS = 0.5


class OfflineSchedule:
    """Last-resort lookup: bundled table first, then a mean solar estimate."""

    def __init__(self,
                 table: Optional[Dict[Tuple[float, float], Dict[int, Tuple[str, ...]]]] = None,
                 match_radius_degrees: float = DEFAULT_MATCH_RADIUS):
        self.table = BUNDLED_TABLE if table is None else table
        self.match_radius_degrees = match_radius_degrees

    def _nearest_bucket(self, location: Location) -> Optional[Tuple[float, float]]:
        best, best_distance = None, None
        for lat, lng in self.table:
            distance = max(abs(lat - location.latitude), abs(lng - location.longitude))
            if distance <= self.match_radius_degrees and (best_distance is None or distance < best_distance):
                best, best_distance = (lat, lng), distance
        return best

    def lookup(self, location: Location, on_date: date) -> RawSchedule:
        bucket = self._nearest_bucket(location)
        if bucket is not None:
            clock_times = self.table[bucket][on_date.month]
            tz = ZoneInfo(location.timezone)
            times = {
                name: datetime.combine(on_date, time.fromisoformat(value), tzinfo=tz)
                for name, value in zip(DAILY_ORDER, clock_times)
            }
            logger.warning(f"📦 Serving bundled offline times for bucket {bucket} on {on_date}")
        else:
            times = self._mean_solar_estimate(location, on_date)
            logger.warning(
                f"📦 No bundled times near ({location.latitude}, {location.longitude}); "
                f"serving mean solar estimate for {on_date}"
            )

        return RawSchedule(date=on_date, times=times, source_layer=SourceLayer.offline())

    @staticmethod
    def _mean_solar_estimate(location: Location, on_date: date) -> Dict[PrayerName, datetime]:
        base = datetime(on_date.year, on_date.month, on_date.day, tzinfo=timezone.utc)
        shift = -location.longitude / 15.0
        return {
            name: base + timedelta(minutes=round((hours + shift) * 60.0))
            for name, hours in MEAN_SOLAR_HOURS.items()
        }
