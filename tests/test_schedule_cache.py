# tests/test_schedule_cache.py
from datetime import date, datetime, timedelta, timezone

import pytest

from modules.prayer_engine.methods import AsrSchool, CalculationMethod
from modules.prayer_engine.models import Location, RawSchedule, SourceLayer
from modules.prayer_engine.schedule_cache import ScheduleCache, bucket_coordinate

from tests.fakes import DORAVILLE, FixedClock

NY = "America/New_York"


def make_cache(now, **kwargs):
    clock = FixedClock(now)
    return ScheduleCache(clock=clock, **kwargs), clock


def key(cache, location=DORAVILLE, on_date=date(2025, 1, 15)):
    return cache.key_for(location, on_date, CalculationMethod.ISNA, AsrSchool.STANDARD)


def tagged(raw_schedule, layer):
    return RawSchedule(raw_schedule.date, raw_schedule.times, layer, raw_schedule.midnight)


def test_bucket_coordinate():
    assert bucket_coordinate(33.9114) == 33.9
    assert bucket_coordinate(-84.2614) == -84.3
    assert bucket_coordinate(33.96) == 34.0
    assert bucket_coordinate(33.9114, grid_degrees=0.5) == 34.0


def test_nearby_locations_share_a_key():
    cache = ScheduleCache()
    neighbour = Location(33.9301, -84.2599, NY)
    across_town = Location(33.96, -84.2614, NY)
    assert key(cache) == key(cache, neighbour)
    assert key(cache) != key(cache, across_town)
    assert key(cache) != key(cache, on_date=date(2025, 1, 16))


def test_entry_expires_at_next_local_midnight():
    # 20:00 EST
    cache, clock = make_cache(datetime(2025, 1, 16, 1, 0, tzinfo=timezone.utc))
    expires = cache.expiry_for(clock.now, NY)
    assert expires == datetime(2025, 1, 16, 5, 0, tzinfo=timezone.utc)


def test_entry_expires_after_max_age_when_sooner():
    cache, clock = make_cache(datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc), max_age=timedelta(hours=1))
    assert cache.expiry_for(clock.now, NY) == datetime(2025, 1, 15, 18, 0, tzinfo=timezone.utc)


def test_expiry_across_spring_forward():
    # 00:30 EST on the night DST starts; the next local midnight is EDT
    cache, clock = make_cache(datetime(2025, 3, 9, 5, 30, tzinfo=timezone.utc))
    assert cache.expiry_for(clock.now, NY) == datetime(2025, 3, 10, 4, 0, tzinfo=timezone.utc)


def test_get_hit_then_miss_after_expiry(raw_schedule):
    cache, clock = make_cache(datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc))
    cache_key = key(cache)

    assert cache.get(cache_key) is None
    cache.put_if_absent(cache_key, raw_schedule, NY)
    assert cache.get(cache_key) is raw_schedule

    clock.advance(hours=11)  # 23:00 EST, still the same local day
    assert cache.get(cache_key) is raw_schedule

    clock.advance(hours=1)   # local midnight
    assert cache.get(cache_key) is None

    stats = cache.stats()
    assert stats["hits"] == 2
    assert stats["misses"] == 2
    assert stats["hit_rate"] == 0.5


def test_first_writer_wins(raw_schedule):
    cache, clock = make_cache(datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc))
    cache_key = key(cache)
    remote = tagged(raw_schedule, SourceLayer.remote("aladhan"))

    assert cache.put_if_absent(cache_key, remote, NY) is remote
    assert cache.put_if_absent(cache_key, raw_schedule, NY) is remote
    assert cache.get(cache_key) is remote


def test_stale_entry_is_replaced(raw_schedule):
    cache, clock = make_cache(datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc))
    cache_key = key(cache)
    remote = tagged(raw_schedule, SourceLayer.remote("aladhan"))

    cache.put_if_absent(cache_key, remote, NY)
    clock.advance(days=1)
    assert cache.put_if_absent(cache_key, raw_schedule, NY) is raw_schedule


def test_purge_invalidate_and_clear(raw_schedule):
    cache, clock = make_cache(datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc))
    today = key(cache)
    tomorrow = key(cache, on_date=date(2025, 1, 16))

    cache.put_if_absent(today, raw_schedule, NY)
    clock.advance(hours=13)  # 01:00 EST the next day
    cache.put_if_absent(tomorrow, raw_schedule, NY)
    assert len(cache) == 2

    assert cache.purge_expired() == 1
    assert len(cache) == 1
    assert cache.invalidate(tomorrow)
    assert not cache.invalidate(tomorrow)

    cache.put_if_absent(today, raw_schedule, NY)
    cache.clear()
    assert len(cache) == 0
    assert cache.stats()["hits"] == 0


def test_grid_must_be_positive():
    with pytest.raises(ValueError):
        ScheduleCache(grid_degrees=0)
