# modules/prayer_engine/merger.py
"""
Resolution Merger - raw times + admin data -> PrayerSchedule

Pure and synchronous. Active overrides replace Adhan times; Iqamah,
Tarawih and Jumu'ah are annotations resolved against the final Adhan
times and never replace them.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Mapping, Optional, Union

from .hijri import HijriDate, observances_for
from .methods import AsrSchool, CalculationMethod
from .models import DAILY_ORDER, FIVE_PRAYERS, Location, PrayerName, PrayerSchedule, PrayerTime, RawSchedule, SourceLayer
from .override_store import IqamahTimes, PrayerOverride, TarawihConfig

logger = logging.getLogger(__name__)

FRIDAY = 4

OverridesArg = Union[Mapping[PrayerName, PrayerOverride], Iterable[PrayerOverride], None]


def _applicable_overrides(raw: RawSchedule, overrides: OverridesArg) -> Dict[PrayerName, PrayerOverride]:
    if not overrides:
        return {}
    records = overrides.values() if isinstance(overrides, Mapping) else overrides
    return {
        record.prayer: record
        for record in records
        if record.is_active and record.date == raw.date and record.prayer in FIVE_PRAYERS
    }


def merge_schedule(raw: RawSchedule,
                   overrides: OverridesArg,
                   iqamah: Optional[IqamahTimes],
                   tarawih: Optional[TarawihConfig],
                   hijri_date: HijriDate,
                   *,
                   location: Location,
                   method: CalculationMethod,
                   asr_school: AsrSchool,
                   qibla_bearing: float,
                   cached: bool = False) -> PrayerSchedule:
    """
    Build the final schedule for one day.

    Args:
        raw: Orchestrator output (UTC instants)
        overrides: Active overrides for raw.date, keyed by prayer or as a list
        iqamah: Iqamah expressions, or None to omit Iqamah annotations
        tarawih: Tarawih config, or None to omit Tarawih
        hijri_date: Hijri date of raw.date
        location: Where the schedule applies; its timezone localizes every time
        method: Calculation method the raw times were requested with
        asr_school: Asr school the raw times were requested with
        qibla_bearing: Degrees from true north
        cached: Whether raw came from the schedule cache

    Returns:
        Immutable PrayerSchedule
    """
    tz = location.tzinfo
    applied = _applicable_overrides(raw, overrides)

    adhan_times: Dict[PrayerName, datetime] = {}
    layers: Dict[PrayerName, SourceLayer] = {}
    for name in DAILY_ORDER:
        override = applied.get(name)
        if override is not None:
            adhan_times[name] = datetime.combine(raw.date, override.override_time, tzinfo=tz)
            layers[name] = SourceLayer.override()
            logger.debug(f"🕌 {name.display_name} overridden to {override.override_time:%H:%M} on {raw.date}")
        else:
            adhan_times[name] = raw.times[name].astimezone(tz)
            layers[name] = raw.source_layer

    times = {}
    for name in DAILY_ORDER:
        iqamah_at = None
        if iqamah is not None and name in FIVE_PRAYERS:
            iqamah_at = iqamah.expression_for(name).resolve(raw.date, tz, adhan_times)
            if iqamah_at < adhan_times[name]:
                # Iqamah is never earlier than its Adhan
                iqamah_at = adhan_times[name]
        times[name] = PrayerTime(name=name, adhan=adhan_times[name], source_layer=layers[name], iqamah=iqamah_at)

    tarawih_at = None
    if tarawih is not None and tarawih.is_visible(hijri_date):
        tarawih_at = tarawih.time.resolve(raw.date, tz, adhan_times)

    jumuah = ()
    if iqamah is not None and raw.date.weekday() == FRIDAY:
        jumuah = tuple(entry.resolve(raw.date, tz, adhan_times) for entry in iqamah.jumuah)

    return PrayerSchedule(
        date=raw.date,
        location=location,
        method=method,
        asr_school=asr_school,
        times=times,
        qibla_bearing=qibla_bearing,
        hijri_date=hijri_date,
        source_layer=raw.source_layer,
        midnight=raw.midnight.astimezone(tz) if raw.midnight else None,
        tarawih=tarawih_at,
        jumuah=jumuah,
        observances=tuple(observances_for(hijri_date)),
        cached=cached,
    )
