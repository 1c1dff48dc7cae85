# tests/test_merger.py
import dataclasses
from datetime import date, datetime, time, timezone

import pytest

from modules.prayer_engine.hijri import gregorian_to_hijri
from modules.prayer_engine.merger import merge_schedule
from modules.prayer_engine.methods import AsrSchool, CalculationMethod, CalculationParameters
from modules.prayer_engine.models import FIVE_PRAYERS, LayerKind, PrayerName, SourceLayer
from modules.prayer_engine.override_store import (
    DEFAULT_IQAMAH_TIMES,
    DEFAULT_TARAWIH_CONFIG,
    PrayerOverride,
    parse_iqamah_input,
    parse_tarawih_input,
)
from modules.prayer_engine.qibla import qibla_bearing

from tests.fakes import DORAVILLE

NOW = datetime(2025, 1, 14, tzinfo=timezone.utc)


def make_override(prayer, clock, on_date=date(2025, 1, 15), is_active=True, override_id=1):
    return PrayerOverride(
        id=override_id,
        date=on_date,
        prayer=prayer,
        override_time=clock,
        reason=None,
        is_active=is_active,
        created_at=NOW,
        updated_at=NOW,
    )


def merge(raw, overrides=None, iqamah=DEFAULT_IQAMAH_TIMES, tarawih=DEFAULT_TARAWIH_CONFIG):
    return merge_schedule(
        raw,
        overrides,
        iqamah,
        tarawih,
        gregorian_to_hijri(raw.date),
        location=DORAVILLE,
        method=CalculationMethod.ISNA,
        asr_school=AsrSchool.STANDARD,
        qibla_bearing=qibla_bearing(DORAVILLE.latitude, DORAVILLE.longitude),
    )


def local(on_date, hour, minute):
    return datetime.combine(on_date, time(hour, minute), tzinfo=DORAVILLE.tzinfo)


def test_no_overrides_keeps_raw_layer(raw_schedule):
    schedule = merge(raw_schedule)

    assert schedule.source_layer == SourceLayer.local()
    for entry in schedule.ordered_times():
        assert entry.source_layer == SourceLayer.local()
        assert entry.adhan == raw_schedule.times[entry.name]
        assert entry.adhan.tzinfo is not None
    assert schedule.hijri_date.format() == "15 Rajab 1446 AH"
    assert 52.0 < schedule.qibla_bearing < 53.0


def test_maghrib_override_scenario(raw_schedule):
    override = make_override(PrayerName.MAGHRIB, time(18, 10))
    schedule = merge(raw_schedule, {PrayerName.MAGHRIB: override})

    maghrib = schedule[PrayerName.MAGHRIB]
    assert maghrib.adhan == local(date(2025, 1, 15), 18, 10)
    assert maghrib.source_layer.kind is LayerKind.MANUAL_OVERRIDE
    assert schedule["isha"].source_layer == SourceLayer.local()
    # Offset Iqamah follows the overridden Adhan
    assert maghrib.iqamah == local(date(2025, 1, 15), 18, 15)


def test_override_precedence_for_every_prayer(raw_schedule):
    overrides = [
        make_override(prayer, time(3 + index, 30), override_id=index)
        for index, prayer in enumerate(FIVE_PRAYERS)
    ]
    schedule = merge(raw_schedule, overrides, iqamah=None)
    for index, prayer in enumerate(FIVE_PRAYERS):
        assert schedule[prayer].adhan.time() == time(3 + index, 30)
        assert schedule[prayer].source_layer == SourceLayer.override()
    assert schedule[PrayerName.SUNRISE].source_layer == SourceLayer.local()


def test_inactive_and_other_day_overrides_ignored(raw_schedule):
    overrides = [
        make_override(PrayerName.FAJR, time(5, 0), is_active=False),
        make_override(PrayerName.ISHA, time(20, 0), on_date=date(2025, 1, 16), override_id=2),
    ]
    schedule = merge(raw_schedule, overrides)
    assert schedule[PrayerName.FAJR].source_layer == SourceLayer.local()
    assert schedule[PrayerName.ISHA].source_layer == SourceLayer.local()


def test_absolute_iqamah_times(raw_schedule):
    schedule = merge(raw_schedule)
    on_date = date(2025, 1, 15)
    assert schedule[PrayerName.FAJR].iqamah == local(on_date, 6, 45)
    assert schedule[PrayerName.DHUHR].iqamah == local(on_date, 13, 15)
    assert schedule[PrayerName.ASR].iqamah == local(on_date, 16, 15)
    assert schedule[PrayerName.ISHA].iqamah == local(on_date, 19, 45)
    assert schedule[PrayerName.SUNRISE].iqamah is None


def test_iqamah_never_precedes_adhan(raw_schedule):
    iqamah = parse_iqamah_input({"isha": "6:00 PM"})
    schedule = merge(raw_schedule, iqamah=iqamah)
    isha = schedule[PrayerName.ISHA]
    assert isha.iqamah == isha.adhan


def test_iqamah_can_be_omitted(raw_schedule):
    schedule = merge(raw_schedule, iqamah=None)
    assert all(entry.iqamah is None for entry in schedule.ordered_times())
    assert schedule.jumuah == ()


def test_tarawih_hidden_outside_ramadan_when_disabled(raw_schedule):
    assert merge(raw_schedule).tarawih is None


def test_tarawih_shown_when_enabled(raw_schedule):
    tarawih = parse_tarawih_input({"enabled": True, "time": "+30 after isha"})
    schedule = merge(raw_schedule, tarawih=tarawih)
    assert schedule.tarawih is not None
    assert (schedule.tarawih - schedule[PrayerName.ISHA].adhan).total_seconds() == 30 * 60


def test_tarawih_visible_in_ramadan_even_when_disabled(calculator):
    ramadan_day = date(2025, 3, 15)
    raw = calculator.compute(DORAVILLE, ramadan_day, CalculationParameters(CalculationMethod.ISNA))
    schedule = merge(raw)

    assert schedule.is_ramadan
    assert not DEFAULT_TARAWIH_CONFIG.enabled
    assert schedule.tarawih == local(ramadan_day, 21, 0)


def test_jumuah_on_fridays_only(calculator):
    friday = date(2025, 1, 17)
    raw = calculator.compute(DORAVILLE, friday, CalculationParameters(CalculationMethod.ISNA))
    schedule = merge(raw)
    assert schedule.jumuah == (local(friday, 12, 30), local(friday, 13, 15))


def test_no_jumuah_midweek(raw_schedule):
    assert merge(raw_schedule).jumuah == ()


def test_observances_attached(calculator):
    first_of_ramadan = date(2025, 3, 1)
    raw = calculator.compute(DORAVILLE, first_of_ramadan, CalculationParameters(CalculationMethod.ISNA))
    assert merge(raw).observances == ("First day of Ramadan",)


def test_schedule_is_immutable(raw_schedule):
    schedule = merge(raw_schedule)
    with pytest.raises(dataclasses.FrozenInstanceError):
        schedule.cached = True
    with pytest.raises(TypeError):
        schedule.times[PrayerName.FAJR] = None


def test_next_and_current_prayer(raw_schedule):
    schedule = merge(raw_schedule)
    on_date = date(2025, 1, 15)

    before_dawn = local(on_date, 4, 0)
    assert schedule.current_prayer(before_dawn) is None
    assert schedule.next_prayer(before_dawn).name is PrayerName.FAJR

    after_fajr = local(on_date, 6, 50)
    assert schedule.current_prayer(after_fajr).name is PrayerName.FAJR
    assert schedule.next_prayer(after_fajr).name is PrayerName.DHUHR

    # Between sunrise and Dhuhr no prayer is current
    mid_morning = local(on_date, 10, 0)
    assert schedule.current_prayer(mid_morning) is None

    late = local(on_date, 22, 0)
    assert schedule.current_prayer(late).name is PrayerName.ISHA
    assert schedule.next_prayer(late) is None
    assert schedule.time_until_next(late) is None

    noon = local(on_date, 12, 0)
    assert schedule.time_until_next(noon) == schedule[PrayerName.DHUHR].adhan - noon


def test_to_dict(raw_schedule):
    override = make_override(PrayerName.MAGHRIB, time(18, 10))
    data = merge(raw_schedule, [override]).to_dict()

    assert data["date"] == "2025-01-15"
    assert data["times"]["maghrib"] == "18:10"
    assert data["iqamah"]["maghrib"] == "18:15"
    assert "sunrise" not in data["iqamah"]
    assert data["sources"]["maghrib"] == "ManualOverride"
    assert data["sources"]["fajr"] == "LocalCalculation"
    assert data["hijri_date"]["month_name"] == "Rajab"
    assert data["method"] == "ISNA"

    twelve_hour = merge(raw_schedule, [override]).to_dict(time_format="12h")
    assert twelve_hour["times"]["maghrib"] == "6:10 PM"
