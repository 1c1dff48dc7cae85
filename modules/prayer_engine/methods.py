# modules/prayer_engine/methods.py
"""
Calculation methods used by Islamic authorities.

Angles and intervals follow the canonical PrayTimes.org / AlAdhan tables.
Each CalculationMethod member carries an immutable MethodParameters value.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .errors import InvalidInput

__all__ = [
    'AsrSchool',
    'HighLatitudeRule',
    'MidnightMode',
    'MethodParameters',
    'CalculationMethod',
    'CalculationParameters',
]


class AsrSchool(str, Enum):
    STANDARD = "standard"   # Shafi'i, Maliki, Hanbali
    HANAFI = "hanafi"

    @property
    def shadow_factor(self) -> int:
        return 2 if self is AsrSchool.HANAFI else 1

    @classmethod
    def from_identifier(cls, value: Union[str, "AsrSchool"]) -> "AsrSchool":
        if isinstance(value, AsrSchool):
            return value
        key = str(value).strip().lower()
        if key in ("standard", "shafi", "shafii", "maliki", "hanbali", "0"):
            return cls.STANDARD
        if key in ("hanafi", "1"):
            return cls.HANAFI
        raise InvalidInput(f"Unknown Asr school: {value!r}")


class HighLatitudeRule(str, Enum):
    NONE = "none"
    MIDDLE_OF_NIGHT = "middle_of_night"
    ONE_SEVENTH = "one_seventh"
    ANGLE_BASED = "angle_based"

    @property
    def aladhan_id(self) -> int:
        # AlAdhan latitudeAdjustmentMethod: 1 middle, 2 one seventh, 3 angle based
        return {
            HighLatitudeRule.NONE: 3,
            HighLatitudeRule.MIDDLE_OF_NIGHT: 1,
            HighLatitudeRule.ONE_SEVENTH: 2,
            HighLatitudeRule.ANGLE_BASED: 3,
        }[self]

    @classmethod
    def from_identifier(cls, value: Union[str, "HighLatitudeRule"]) -> "HighLatitudeRule":
        if isinstance(value, HighLatitudeRule):
            return value
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        aliases = {
            "nightmiddle": cls.MIDDLE_OF_NIGHT,
            "middle": cls.MIDDLE_OF_NIGHT,
            "oneseventh": cls.ONE_SEVENTH,
            "anglebased": cls.ANGLE_BASED,
        }
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            raise InvalidInput(f"Unknown high latitude rule: {value!r}") from None


class MidnightMode(str, Enum):
    STANDARD = "standard"   # mid sunset to sunrise
    JAFARI = "jafari"       # mid sunset to fajr


@dataclass(frozen=True)
class MethodParameters:
    """
    Fixed twilight parameters of one calculation method.

    Exactly one of isha_angle / isha_interval is set. Maghrib is sunset
    unless maghrib_angle is given.
    """
    label: str
    fajr_angle: Optional[float]
    isha_angle: Optional[float] = None
    isha_interval: Optional[int] = None          # minutes after Maghrib
    isha_interval_ramadan: Optional[int] = None  # Umm al-Qura extends Isha in Ramadan
    maghrib_angle: Optional[float] = None
    midnight: MidnightMode = MidnightMode.STANDARD
    high_latitude_rule: HighLatitudeRule = HighLatitudeRule.ANGLE_BASED
    aladhan_id: Optional[int] = None

    @property
    def uses_isha_interval(self) -> bool:
        return self.isha_interval is not None


class CalculationMethod(Enum):
    """Named calculation methods. Values are immutable parameter sets."""

    MWL = MethodParameters("Muslim World League", 18.0, isha_angle=17.0, aladhan_id=3)
    ISNA = MethodParameters("Islamic Society of North America", 15.0, isha_angle=15.0, aladhan_id=2)
    EGYPTIAN = MethodParameters("Egyptian General Authority of Survey", 19.5, isha_angle=17.5, aladhan_id=5)
    UMM_AL_QURA = MethodParameters(
        "Umm Al-Qura University, Makkah", 18.5,
        isha_interval=90, isha_interval_ramadan=120, aladhan_id=4,
    )
    KARACHI = MethodParameters("University of Islamic Sciences, Karachi", 18.0, isha_angle=18.0, aladhan_id=1)
    TEHRAN = MethodParameters(
        "Institute of Geophysics, University of Tehran", 17.7,
        isha_angle=14.0, maghrib_angle=4.5, midnight=MidnightMode.JAFARI, aladhan_id=7,
    )
    JAFARI = MethodParameters(
        "Shia Ithna-Ashari, Leva Institute, Qum", 16.0,
        isha_angle=14.0, maghrib_angle=4.0, midnight=MidnightMode.JAFARI, aladhan_id=0,
    )
    GULF = MethodParameters("Gulf Region", 19.5, isha_interval=90, aladhan_id=8)
    KUWAIT = MethodParameters("Kuwait", 18.0, isha_angle=17.5, aladhan_id=9)
    QATAR = MethodParameters("Qatar", 18.0, isha_interval=90, aladhan_id=10)
    SINGAPORE = MethodParameters("Majlis Ugama Islam Singapura", 20.0, isha_angle=18.0, aladhan_id=11)
    FRANCE = MethodParameters("Union Organization Islamic de France", 12.0, isha_angle=12.0, aladhan_id=12)
    TURKEY = MethodParameters("Diyanet İşleri Başkanlığı, Turkey", 18.0, isha_angle=17.0, aladhan_id=13)
    RUSSIA = MethodParameters("Spiritual Administration of Muslims of Russia", 16.0, isha_angle=15.0, aladhan_id=14)

    @property
    def parameters(self) -> MethodParameters:
        return self.value

    @property
    def label(self) -> str:
        return self.value.label

    @classmethod
    def from_identifier(cls, value: Union[str, int, "CalculationMethod"]) -> "CalculationMethod":
        """
        Resolve a method from a name, common alias or AlAdhan method id.

        Raises:
            InvalidInput: if nothing matches
        """
        if isinstance(value, CalculationMethod):
            return value

        if isinstance(value, int) and not isinstance(value, bool):
            for method in cls:
                if method.value.aladhan_id == value:
                    return method
            raise InvalidInput(f"Unknown calculation method id: {value}")

        if not isinstance(value, str) or not value.strip():
            raise InvalidInput(f"Unknown calculation method: {value!r}")

        key = value.strip().upper().replace("-", "_").replace(" ", "_")
        if key.isdigit():
            return cls.from_identifier(int(key))
        if key in _METHOD_ALIASES:
            return _METHOD_ALIASES[key]
        try:
            return cls[key]
        except KeyError:
            raise InvalidInput(f"Unknown calculation method: {value!r}") from None


_METHOD_ALIASES = {
    "MAKKAH": CalculationMethod.UMM_AL_QURA,
    "UMMALQURA": CalculationMethod.UMM_AL_QURA,
    "EGYPT": CalculationMethod.EGYPTIAN,
    "SHIA": CalculationMethod.JAFARI,
    "MUSLIM_WORLD_LEAGUE": CalculationMethod.MWL,
    "DIYANET": CalculationMethod.TURKEY,
}


@dataclass(frozen=True)
class CalculationParameters:
    """Everything besides location and date that shapes a computed schedule."""
    method: CalculationMethod
    asr_school: AsrSchool = AsrSchool.STANDARD
    high_latitude_rule: Optional[HighLatitudeRule] = None
    dhuhr_offset_minutes: int = 1
    hijri_adjustment_days: int = 0

    @property
    def effective_high_latitude_rule(self) -> HighLatitudeRule:
        return self.high_latitude_rule or self.method.parameters.high_latitude_rule
