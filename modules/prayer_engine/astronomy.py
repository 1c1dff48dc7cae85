# modules/prayer_engine/astronomy.py
"""
Astronomical Calculator - solar-angle prayer times in UTC

Pure computation: the same (location, date, parameters) always yields the
same instants. No wall clock, no randomness, no I/O.

Algorithm follows the well known PrayTimes.org approach:
- Sun declination and equation of time from the Julian date
- Hour angle for each twilight depression angle
- Asr from the shadow-length ratio (1 standard, 2 Hanafi)
- High latitude clamping by night portion when an angle is unreachable
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Dict

from .errors import CalculationFailure
from .hijri import gregorian_to_hijri
from .methods import CalculationParameters, HighLatitudeRule, MethodParameters, MidnightMode
from .models import Location, PrayerName, RawSchedule, SourceLayer

logger = logging.getLogger(__name__)

__all__ = ['AstronomicalCalculator', 'SUN_RISE_SET_ANGLE', 'NEAREST_LATITUDE_LIMIT']

# Refraction plus solar semi-diameter
SUN_RISE_SET_ANGLE = 0.833

# Beyond this the sun may not rise or set at all; compute at this latitude instead
NEAREST_LATITUDE_LIMIT = 65.0

# Initial guesses (hours of local solar time) for the single refinement pass
_INITIAL_GUESSES = {
    "fajr": 5.0,
    "sunrise": 6.0,
    "dhuhr": 12.0,
    "asr": 13.0,
    "sunset": 18.0,
    "maghrib": 18.0,
    "isha": 18.0,
}


# =============================================================================
# Degree-based math helpers
# =============================================================================

def _sin(d: float) -> float:
    return math.sin(math.radians(d))


def _cos(d: float) -> float:
    return math.cos(math.radians(d))


def _tan(d: float) -> float:
    return math.tan(math.radians(d))


def _arccot(x: float) -> float:
    return math.degrees(math.atan(1.0 / x))


def _fix(value: float, mode: float) -> float:
    value -= mode * math.floor(value / mode)
    return value + mode if value < 0 else value


def _fix_hour(hours: float) -> float:
    return _fix(hours, 24.0)


def _time_diff(start: float, end: float) -> float:
    return _fix_hour(end - start)


def julian_date(year: int, month: int, day: int) -> float:
    """Julian date at 00:00 UTC of a Gregorian calendar date."""
    if month <= 2:
        year -= 1
        month += 12
    a = math.floor(year / 100)
    b = 2 - a + math.floor(a / 4)
    return math.floor(365.25 * (year + 4716)) + math.floor(30.6001 * (month + 1)) + day + b - 1524.5


def sun_position(jd: float):
    """
    Solar declination (degrees) and equation of time (hours) for a Julian date.
    Low precision formulae from the U.S. Naval Observatory almanac.
    """
    d = jd - 2451545.0
    g = _fix(357.529 + 0.98560028 * d, 360.0)
    q = _fix(280.459 + 0.98564736 * d, 360.0)
    ecliptic_longitude = _fix(q + 1.915 * _sin(g) + 0.020 * _sin(2 * g), 360.0)
    obliquity = 23.439 - 0.00000036 * d

    right_ascension = math.degrees(
        math.atan2(_cos(obliquity) * _sin(ecliptic_longitude), _cos(ecliptic_longitude))
    ) / 15.0
    equation_of_time = q / 15.0 - _fix_hour(right_ascension)
    declination = math.degrees(math.asin(_sin(obliquity) * _sin(ecliptic_longitude)))
    return declination, equation_of_time


# =============================================================================
# Calculator
# =============================================================================

class AstronomicalCalculator:
    """
    Computes raw prayer instants for one day.

    Cannot fail for valid input; invalid method parameters raise
    CalculationFailure so the orchestrator can fall back to the offline table.
    """

    def compute(self, location: Location, on_date: date, params: CalculationParameters) -> RawSchedule:
        method = params.method.parameters
        self._validate_parameters(method, params)

        latitude = location.latitude
        hours = self._compute_hours(latitude, location.longitude, on_date, method, params)

        # Polar day/night: the sun never crosses the horizon, use the nearest latitude where it does
        if math.isnan(hours["sunrise"]) or math.isnan(hours["sunset"]):
            latitude = math.copysign(NEAREST_LATITUDE_LIMIT, location.latitude)
            logger.info(
                f"🌍 Sun does not rise/set at {location.latitude:.4f} on {on_date}, "
                f"using nearest latitude {latitude:.1f}"
            )
            hours = self._compute_hours(latitude, location.longitude, on_date, method, params)

        if any(math.isnan(value) or math.isinf(value) for value in hours.values()):
            raise CalculationFailure(
                f"Non-finite prayer times for ({location.latitude}, {location.longitude}) on {on_date}"
            )

        base = datetime(on_date.year, on_date.month, on_date.day, tzinfo=timezone.utc)

        def instant(value: float) -> datetime:
            return base + timedelta(minutes=round(value * 60.0))

        times = {
            PrayerName.FAJR: instant(hours["fajr"]),
            PrayerName.SUNRISE: instant(hours["sunrise"]),
            PrayerName.DHUHR: instant(hours["dhuhr"]),
            PrayerName.ASR: instant(hours["asr"]),
            PrayerName.MAGHRIB: instant(hours["maghrib"]),
            PrayerName.ISHA: instant(hours["isha"]),
        }
        return RawSchedule(
            date=on_date,
            times=times,
            source_layer=SourceLayer.local(),
            midnight=instant(hours["midnight"]),
        )

    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_parameters(method: MethodParameters, params: CalculationParameters) -> None:
        def bad_angle(value) -> bool:
            return value is None or not isinstance(value, (int, float)) or not math.isfinite(value) \
                or not 0 <= value < 90

        if bad_angle(method.fajr_angle):
            raise CalculationFailure(f"Invalid Fajr angle for {params.method.name}: {method.fajr_angle!r}")
        if method.isha_interval is None and bad_angle(method.isha_angle):
            raise CalculationFailure(f"Invalid Isha angle for {params.method.name}: {method.isha_angle!r}")
        if method.isha_interval is not None and not 0 <= method.isha_interval <= 240:
            raise CalculationFailure(f"Invalid Isha interval for {params.method.name}: {method.isha_interval!r}")
        if method.maghrib_angle is not None and bad_angle(method.maghrib_angle):
            raise CalculationFailure(f"Invalid Maghrib angle for {params.method.name}: {method.maghrib_angle!r}")

    def _compute_hours(self, latitude: float, longitude: float, on_date: date,
                       method: MethodParameters, params: CalculationParameters) -> Dict[str, float]:
        jdate = julian_date(on_date.year, on_date.month, on_date.day) - longitude / (15.0 * 24.0)

        def mid_day(portion: float) -> float:
            _, equation_of_time = sun_position(jdate + portion)
            return _fix_hour(12.0 - equation_of_time)

        def sun_angle_time(angle: float, portion: float, counter_clockwise: bool = False) -> float:
            declination, _ = sun_position(jdate + portion)
            noon = mid_day(portion)
            denominator = _cos(declination) * _cos(latitude)
            if denominator == 0:
                return float("nan")
            ratio = (-_sin(angle) - _sin(declination) * _sin(latitude)) / denominator
            if ratio < -1.0 or ratio > 1.0:
                return float("nan")
            offset = math.degrees(math.acos(ratio)) / 15.0
            return noon - offset if counter_clockwise else noon + offset

        def asr_time(factor: int, portion: float) -> float:
            declination, _ = sun_position(jdate + portion)
            angle = -_arccot(factor + _tan(abs(latitude - declination)))
            return sun_angle_time(angle, portion)

        portions = {name: value / 24.0 for name, value in _INITIAL_GUESSES.items()}

        hours = {
            "fajr": sun_angle_time(method.fajr_angle, portions["fajr"], counter_clockwise=True),
            "sunrise": sun_angle_time(SUN_RISE_SET_ANGLE, portions["sunrise"], counter_clockwise=True),
            "dhuhr": mid_day(portions["dhuhr"]),
            "asr": asr_time(params.asr_school.shadow_factor, portions["asr"]),
            "sunset": sun_angle_time(SUN_RISE_SET_ANGLE, portions["sunset"]),
        }
        hours["maghrib"] = (
            sun_angle_time(method.maghrib_angle, portions["maghrib"])
            if method.maghrib_angle is not None else hours["sunset"]
        )
        hours["isha"] = (
            sun_angle_time(method.isha_angle, portions["isha"])
            if method.isha_interval is None else float("nan")
        )

        # Local solar time -> UTC hours of the date (may fall outside 0..24)
        utc_shift = -longitude / 15.0
        hours = {name: value + utc_shift for name, value in hours.items()}

        if not (math.isnan(hours["sunrise"]) or math.isnan(hours["sunset"])):
            hours = self._adjust_high_latitudes(hours, method, params.effective_high_latitude_rule)

        if method.isha_interval is not None:
            interval = method.isha_interval
            if method.isha_interval_ramadan and gregorian_to_hijri(on_date, params.hijri_adjustment_days).is_ramadan:
                interval = method.isha_interval_ramadan
            hours["isha"] = hours["maghrib"] + interval / 60.0

        hours["dhuhr"] += params.dhuhr_offset_minutes / 60.0

        night_end = hours["fajr"] if method.midnight is MidnightMode.JAFARI else hours["sunrise"]
        if math.isnan(hours["sunset"]) or math.isnan(night_end):
            # No night to halve; compute() retries at the nearest latitude
            hours["midnight"] = float("nan")
        else:
            hours["midnight"] = hours["sunset"] + _time_diff(hours["sunset"], night_end) / 2.0

        return hours

    @staticmethod
    def _adjust_high_latitudes(hours: Dict[str, float], method: MethodParameters,
                               rule: HighLatitudeRule) -> Dict[str, float]:
        """
        Clamp twilight times to a portion of the night.

        With HighLatitudeRule.NONE only unreachable (NaN) times are clamped,
        using the middle-of-night portion.
        """
        night = _time_diff(hours["sunset"], hours["sunrise"])

        def night_portion(angle: float) -> float:
            if rule is HighLatitudeRule.ANGLE_BASED:
                return angle / 60.0 * night
            if rule is HighLatitudeRule.ONE_SEVENTH:
                return night / 7.0
            return night / 2.0

        def adjust(value: float, base: float, angle: float, before_base: bool) -> float:
            portion = night_portion(angle)
            if math.isnan(value):
                if rule is HighLatitudeRule.NONE:
                    portion = night / 2.0
                return base - portion if before_base else base + portion
            if rule is HighLatitudeRule.NONE:
                return value
            diff = _time_diff(value, base) if before_base else _time_diff(base, value)
            if diff > portion:
                return base - portion if before_base else base + portion
            return value

        adjusted = dict(hours)
        adjusted["fajr"] = adjust(hours["fajr"], hours["sunrise"], method.fajr_angle, before_base=True)
        if method.isha_interval is None:
            adjusted["isha"] = adjust(hours["isha"], hours["sunset"], method.isha_angle, before_base=False)
        if method.maghrib_angle is not None:
            adjusted["maghrib"] = adjust(hours["maghrib"], hours["sunset"], method.maghrib_angle, before_base=False)
        return adjusted
