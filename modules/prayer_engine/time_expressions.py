# modules/prayer_engine/time_expressions.py
"""
Iqamah / Tarawih time expressions.

An expression is either an absolute local clock time ("18:10", "6:45 AM")
or an offset in minutes after a reference prayer ("+5", "+30 after Isha").
Free-text parsing happens once, when an admin record is stored; everything
downstream works with the typed values.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Dict, Mapping, Union

from .errors import InvalidInput, OverrideValidationError
from .models import PrayerName

__all__ = [
    'AbsoluteTime',
    'OffsetMinutes',
    'TimeExpression',
    'MAX_OFFSET_MINUTES',
    'parse_clock_time',
    'parse_time_expression',
    'expression_to_dict',
    'expression_from_dict',
]

MAX_OFFSET_MINUTES = 180

# "05:44", "5:44 PM", "%05:44%", "05:44 (EST)", "05:44:00"
_CLOCK_PATTERN = re.compile(
    r"^%?\s*(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))(?::(?P<second>\d{2}))?\s*"
    r"(?P<meridiem>[ap]\.?m\.?)?\s*%?\s*(?:\([^)]*\))?\s*$",
    re.IGNORECASE,
)

# "+5", "+5 min", "+30 after Isha", "10 minutes after maghrib"
_OFFSET_PATTERN = re.compile(
    r"^(?P<sign>[+-])?\s*(?P<minutes>\d{1,4})\s*(?:m|min|mins|minute|minutes)?"
    r"(?:\s+(?:after|from)\s+(?P<reference>[a-z']+))?\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class AbsoluteTime:
    """Fixed local clock time."""
    time: time

    def resolve(self, on_date: date, tz: tzinfo, adhan_times: Mapping[PrayerName, datetime]) -> datetime:
        return datetime.combine(on_date, self.time, tzinfo=tz)

    def __str__(self) -> str:
        return self.time.strftime("%H:%M")


@dataclass(frozen=True)
class OffsetMinutes:
    """Minutes after a reference prayer's final Adhan time."""
    minutes: int
    reference: PrayerName

    def __post_init__(self):
        if not 0 <= self.minutes <= MAX_OFFSET_MINUTES:
            raise OverrideValidationError(
                f"Offset must be between 0 and {MAX_OFFSET_MINUTES} minutes, got {self.minutes}"
            )

    def resolve(self, on_date: date, tz: tzinfo, adhan_times: Mapping[PrayerName, datetime]) -> datetime:
        return adhan_times[self.reference].astimezone(tz) + timedelta(minutes=self.minutes)

    def __str__(self) -> str:
        return f"+{self.minutes} after {self.reference.value}"


TimeExpression = Union[AbsoluteTime, OffsetMinutes]


def parse_clock_time(text: Any) -> time:
    """
    Parse a clock string into a naive time.

    Tolerates 12h/24h forms, IslamicFinder's '%05:44%' wrapping and
    AlAdhan's trailing '(EST)' zone label.

    Raises:
        OverrideValidationError: if the text is not a valid clock time
    """
    if isinstance(text, time):
        return text.replace(tzinfo=None)
    if not isinstance(text, str):
        raise OverrideValidationError(f"Expected a clock time, got {text!r}")

    match = _CLOCK_PATTERN.match(text.strip())
    if not match:
        raise OverrideValidationError(f"Invalid time format: {text!r}")

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    second = int(match.group("second") or 0)
    meridiem = match.group("meridiem")

    if meridiem:
        if not 1 <= hour <= 12:
            raise OverrideValidationError(f"Invalid 12-hour time: {text!r}")
        is_pm = meridiem.lower().startswith("p")
        hour = hour % 12 + (12 if is_pm else 0)

    if hour > 23 or minute > 59 or second > 59:
        raise OverrideValidationError(f"Time out of range: {text!r}")
    return time(hour, minute, second)


def parse_time_expression(text: Any, default_reference: PrayerName) -> TimeExpression:
    """
    Parse an Iqamah/Tarawih expression.

    Args:
        text: Clock time, '+N', '+N min' or '+N after <prayer>'
        default_reference: Prayer an offset refers to when none is named

    Returns:
        AbsoluteTime or OffsetMinutes

    Raises:
        OverrideValidationError: on malformed input or an offset outside 0-180
    """
    if isinstance(text, (AbsoluteTime, OffsetMinutes)):
        return text
    if isinstance(text, time):
        return AbsoluteTime(parse_clock_time(text))
    if not isinstance(text, str) or not text.strip():
        raise OverrideValidationError(f"Empty or invalid time expression: {text!r}")

    cleaned = text.strip()
    if ":" in cleaned:
        return AbsoluteTime(parse_clock_time(cleaned))

    match = _OFFSET_PATTERN.match(cleaned)
    # A bare number is ambiguous; require '+' or 'after <prayer>'
    if not match or not (match.group("sign") or match.group("reference")):
        raise OverrideValidationError(f"Invalid time expression: {text!r}")
    if match.group("sign") == "-":
        raise OverrideValidationError(f"Offsets cannot be negative: {text!r}")

    reference = default_reference
    if match.group("reference"):
        try:
            reference = PrayerName.parse(match.group("reference"))
        except InvalidInput:
            raise OverrideValidationError(f"Unknown reference prayer in {text!r}") from None
        if reference is PrayerName.SUNRISE:
            raise OverrideValidationError("Offsets cannot refer to sunrise")

    return OffsetMinutes(int(match.group("minutes")), reference)


def expression_to_dict(expression: TimeExpression) -> Dict[str, Any]:
    """JSON-ready form used by the PostgreSQL settings table."""
    if isinstance(expression, OffsetMinutes):
        return {"type": "offset", "minutes": expression.minutes, "reference": expression.reference.value}
    return {"type": "absolute", "time": expression.time.strftime("%H:%M")}


def expression_from_dict(data: Mapping[str, Any]) -> TimeExpression:
    if data.get("type") == "offset":
        return OffsetMinutes(int(data["minutes"]), PrayerName.parse(data["reference"]))
    return AbsoluteTime(parse_clock_time(data["time"]))
