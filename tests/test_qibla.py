# tests/test_qibla.py
import pytest

from modules.prayer_engine.qibla import compass_point, qibla_bearing


def test_doraville_bearing():
    # Great-circle initial bearing for 33.9114N, 84.2614W
    assert qibla_bearing(33.9114, -84.2614) == pytest.approx(52.4, abs=0.5)


def test_new_york_bearing():
    assert 58.0 <= qibla_bearing(40.7128, -74.0060) <= 59.0


def test_eastern_location_points_west():
    assert qibla_bearing(-6.2088, 106.8456) == pytest.approx(295.1, abs=0.5)


def test_bearing_range():
    for latitude in range(-80, 81, 20):
        for longitude in range(-180, 181, 45):
            bearing = qibla_bearing(latitude, longitude)
            assert 0.0 <= bearing < 360.0


def test_due_north_and_south_of_kaaba():
    assert qibla_bearing(10.0, 39.8262) == pytest.approx(0.0, abs=1e-6)
    assert qibla_bearing(40.0, 39.8262) == pytest.approx(180.0, abs=1e-6)


def test_compass_points():
    assert compass_point(52.4) == "NE"
    assert compass_point(295.1) == "NW"
    assert compass_point(359.0) == "N"
    assert compass_point(180.0) == "S"
