# tests/test_hijri.py
from datetime import date, timedelta

import pytest

from modules.prayer_engine.hijri import (
    HijriDate,
    days_in_hijri_month,
    gregorian_to_hijri,
    hijri_to_gregorian,
    is_hijri_leap_year,
    observances_for,
)


def test_scenario_date_is_mid_rajab():
    hijri = gregorian_to_hijri(date(2025, 1, 15))
    assert hijri == HijriDate(1446, 7, 15)
    assert hijri.month_name == "Rajab"
    assert hijri.format() == "15 Rajab 1446 AH"
    assert hijri.is_sacred_month


def test_ramadan_1446_starts_on_first_of_march():
    assert gregorian_to_hijri(date(2025, 3, 1)) == HijriDate(1446, 9, 1)
    assert hijri_to_gregorian(HijriDate(1446, 9, 1)) == date(2025, 3, 1)
    assert gregorian_to_hijri(date(2025, 3, 15)).is_ramadan
    assert not gregorian_to_hijri(date(2025, 1, 15)).is_ramadan


def test_epoch():
    assert gregorian_to_hijri(date(622, 7, 19)) == HijriDate(1, 1, 1)
    with pytest.raises(ValueError):
        gregorian_to_hijri(date(622, 7, 18))


def test_round_trip_over_centuries():
    sampled = 0
    current = date(700, 1, 1)
    while current < date(2200, 1, 1):
        assert hijri_to_gregorian(gregorian_to_hijri(current)) == current
        current += timedelta(days=997)
        sampled += 1
    assert sampled >= 100


def test_consecutive_days_advance_by_one():
    start = date(2024, 12, 1)
    previous = gregorian_to_hijri(start)
    for offset in range(1, 400):
        hijri = gregorian_to_hijri(start + timedelta(days=offset))
        assert hijri > previous
        if hijri.day != 1:
            assert (hijri.year, hijri.month, hijri.day - 1) == (previous.year, previous.month, previous.day)
        else:
            assert previous.day == days_in_hijri_month(previous.year, previous.month)
        previous = hijri


def test_adjustment_shifts_by_days():
    base = gregorian_to_hijri(date(2025, 3, 1))
    shifted = gregorian_to_hijri(date(2025, 3, 1), adjustment=-1)
    assert base == HijriDate(1446, 9, 1)
    assert shifted == HijriDate(1446, 8, 29)
    assert hijri_to_gregorian(shifted, adjustment=-1) == date(2025, 3, 1)


def test_leap_years_in_thirty_year_cycle():
    leap = {year for year in range(1, 31) if is_hijri_leap_year(year)}
    assert leap == {2, 5, 7, 10, 13, 16, 18, 21, 24, 26, 29}


def test_month_lengths():
    assert days_in_hijri_month(1446, 1) == 30
    assert days_in_hijri_month(1446, 2) == 29
    assert days_in_hijri_month(1445, 12) == (30 if is_hijri_leap_year(1445) else 29)
    year_length = sum(days_in_hijri_month(1446, month) for month in range(1, 13))
    assert year_length in (354, 355)


def test_invalid_hijri_dates_rejected():
    with pytest.raises(ValueError):
        HijriDate(1446, 13, 1)
    with pytest.raises(ValueError):
        HijriDate(1446, 2, 30)
    with pytest.raises(ValueError):
        HijriDate(0, 1, 1)


def test_observances():
    assert observances_for(HijriDate(1446, 9, 1)) == ["First day of Ramadan"]
    assert observances_for(HijriDate(1446, 10, 1)) == ["Eid al-Fitr"]
    assert observances_for(HijriDate(1446, 12, 10)) == ["Eid al-Adha"]
    assert observances_for(HijriDate(1446, 7, 15)) == []
