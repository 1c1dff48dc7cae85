# modules/prayer_engine/hijri.py
"""
Gregorian <-> Hijri conversion using the tabular (arithmetic) Islamic calendar.

This is an APPROXIMATION. Real month starts depend on crescent sighting and
can differ by a day or two; results are for Ramadan detection and calendar
display only, never for religious rulings.

Arithmetic: 30-year cycle with leap years 2, 5, 7, 10, 13, 16, 18, 21, 24,
26, 29 and the civil epoch 16 July 622 (Julian). Python's date.toordinal()
is the Rata Die day count the formulas expect.
"""

from dataclasses import dataclass
from datetime import date
from typing import List

__all__ = [
    'HijriDate',
    'HIJRI_MONTHS',
    'gregorian_to_hijri',
    'hijri_to_gregorian',
    'is_hijri_leap_year',
    'days_in_hijri_month',
    'observances_for',
]

# Rata Die of 1 Muharram 1 AH (16 July 622 Julian = 19 July 622 proleptic Gregorian)
ISLAMIC_EPOCH = 227015

RAMADAN = 9

HIJRI_MONTHS = (
    "Muharram",
    "Safar",
    "Rabi' al-awwal",
    "Rabi' al-thani",
    "Jumada al-awwal",
    "Jumada al-thani",
    "Rajab",
    "Sha'ban",
    "Ramadan",
    "Shawwal",
    "Dhu al-Qi'dah",
    "Dhu al-Hijjah",
)

SACRED_MONTHS = frozenset({1, 7, 11, 12})

# (month, day) -> observance
OBSERVANCES = {
    (1, 1): "Islamic New Year",
    (1, 10): "Day of Ashura",
    (3, 12): "Mawlid an-Nabi",
    (7, 27): "Isra and Mi'raj",
    (8, 15): "Laylat al-Bara'at",
    (9, 1): "First day of Ramadan",
    (9, 27): "Laylat al-Qadr",
    (10, 1): "Eid al-Fitr",
    (12, 9): "Day of Arafah",
    (12, 10): "Eid al-Adha",
}


@dataclass(frozen=True, order=True)
class HijriDate:
    year: int
    month: int
    day: int

    def __post_init__(self):
        if self.year < 1:
            raise ValueError(f"Hijri year must be >= 1, got {self.year}")
        if not 1 <= self.month <= 12:
            raise ValueError(f"Hijri month must be 1-12, got {self.month}")
        if not 1 <= self.day <= days_in_hijri_month(self.year, self.month):
            raise ValueError(f"Invalid day {self.day} for Hijri {self.year}-{self.month}")

    @property
    def month_name(self) -> str:
        return HIJRI_MONTHS[self.month - 1]

    @property
    def is_ramadan(self) -> bool:
        return self.month == RAMADAN

    @property
    def is_sacred_month(self) -> bool:
        return self.month in SACRED_MONTHS

    def format(self) -> str:
        return f"{self.day} {self.month_name} {self.year} AH"


def is_hijri_leap_year(year: int) -> bool:
    return (14 + 11 * year) % 30 < 11


def days_in_hijri_month(year: int, month: int) -> int:
    # Odd months have 30 days, even months 29; Dhu al-Hijjah gains a day in leap years
    if month % 2 == 1 or (month == 12 and is_hijri_leap_year(year)):
        return 30
    return 29


def _fixed_from_hijri(year: int, month: int, day: int) -> int:
    return (
        day
        + 29 * (month - 1)
        + (6 * month - 1) // 11
        + (year - 1) * 354
        + (3 + 11 * year) // 30
        + ISLAMIC_EPOCH - 1
    )


def gregorian_to_hijri(gregorian: date, adjustment: int = 0) -> HijriDate:
    """
    Convert a Gregorian date to its tabular Hijri equivalent.

    Args:
        gregorian: Date to convert (on or after 19 July 622)
        adjustment: Days to shift the Hijri calendar by (local moon sighting)

    Returns:
        HijriDate
    """
    fixed = gregorian.toordinal() + adjustment
    if fixed < ISLAMIC_EPOCH:
        raise ValueError(f"{gregorian} is before the Hijri epoch")

    year = (30 * (fixed - ISLAMIC_EPOCH) + 10646) // 10631
    prior_days = fixed - _fixed_from_hijri(year, 1, 1)
    month = (11 * prior_days + 330) // 325
    day = fixed - _fixed_from_hijri(year, month, 1) + 1
    return HijriDate(year, month, day)


def hijri_to_gregorian(hijri: HijriDate, adjustment: int = 0) -> date:
    """Inverse of gregorian_to_hijri for the same adjustment."""
    return date.fromordinal(_fixed_from_hijri(hijri.year, hijri.month, hijri.day) - adjustment)


def observances_for(hijri: HijriDate) -> List[str]:
    """Islamic observances falling on this Hijri date (possibly none)."""
    name = OBSERVANCES.get((hijri.month, hijri.day))
    return [name] if name else []
