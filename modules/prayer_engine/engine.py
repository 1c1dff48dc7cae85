# modules/prayer_engine/engine.py
"""
Prayer Time Engine - the public entry point

    engine = build_engine(settings)
    schedule = await engine.resolve_schedule()                 # today, mosque defaults
    week = await engine.resolve_week(location, date(2025, 1, 13))

Defaults come from an explicit EngineConfig, never from globals.
"""

import asyncio
import calendar
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .errors import InvalidInput
from .hijri import gregorian_to_hijri
from .merger import merge_schedule
from .methods import AsrSchool, CalculationMethod, CalculationParameters, HighLatitudeRule
from .models import Location, PrayerSchedule
from .orchestrator import FallbackOrchestrator
from .override_store import DEFAULT_IQAMAH_TIMES, DEFAULT_TARAWIH_CONFIG, InMemoryOverrideStore, OverrideStore
from .providers import DEFAULT_PROVIDER_TIMEOUT, build_providers
from .qibla import qibla_bearing
from .schedule_cache import DEFAULT_GRID_DEGREES, DEFAULT_MAX_AGE, ScheduleCache

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = Location(33.9114, -84.2614, "America/New_York")


@dataclass(frozen=True)
class EngineConfig:
    """Process-wide defaults and wiring, passed in explicitly."""
    default_location: Location = DEFAULT_LOCATION
    default_method: CalculationMethod = CalculationMethod.ISNA
    asr_school: AsrSchool = AsrSchool.STANDARD
    high_latitude_rule: Optional[HighLatitudeRule] = None
    dhuhr_offset_minutes: int = 1
    providers: Tuple[str, ...] = ("aladhan", "islamicfinder")
    provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT
    provider_base_urls: Mapping[str, str] = field(default_factory=dict)
    cache_grid_degrees: float = DEFAULT_GRID_DEGREES
    cache_max_age: timedelta = DEFAULT_MAX_AGE
    hijri_adjustment_days: int = 0

    @classmethod
    def from_settings(cls, settings) -> "EngineConfig":
        """
        Build from config.settings.Settings.

        Raises:
            InvalidInput: if the configured location or method is invalid
        """
        return cls(
            default_location=Location(settings.mosque_latitude, settings.mosque_longitude, settings.mosque_timezone),
            default_method=CalculationMethod.from_identifier(settings.calculation_method),
            asr_school=AsrSchool.from_identifier(settings.asr_school),
            high_latitude_rule=(
                HighLatitudeRule.from_identifier(settings.high_latitude_rule)
                if settings.high_latitude_rule else None
            ),
            providers=tuple(settings.providers),
            provider_timeout=settings.provider_timeout,
            provider_base_urls=dict(settings.provider_base_urls),
            cache_grid_degrees=settings.cache_grid_degrees,
            cache_max_age=timedelta(hours=settings.cache_max_age_hours),
            hijri_adjustment_days=settings.hijri_adjustment_days,
        )


class PrayerTimeEngine:
    """
    Resolves daily schedules: validate -> orchestrator (cache/providers/calculator)
    -> merger with overrides, Iqamah, Tarawih, Hijri date and Qibla.
    """

    def __init__(self,
                 config: Optional[EngineConfig] = None,
                 orchestrator: Optional[FallbackOrchestrator] = None,
                 store: Optional[OverrideStore] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config or EngineConfig()
        self.orchestrator = orchestrator or FallbackOrchestrator(
            providers=build_providers(
                self.config.providers,
                timeout=self.config.provider_timeout,
                base_urls=dict(self.config.provider_base_urls),
            ),
            cache=ScheduleCache(grid_degrees=self.config.cache_grid_degrees, max_age=self.config.cache_max_age),
            provider_timeout=self.config.provider_timeout,
        )
        self.store = store or InMemoryOverrideStore()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # -------------------------------------------------------------------------
    # Input validation
    # -------------------------------------------------------------------------

    def _resolve_location(self, location: Optional[Location]) -> Location:
        if location is None:
            return self.config.default_location
        if not isinstance(location, Location):
            raise InvalidInput(f"Expected a Location, got {type(location).__name__}")
        return location

    def _resolve_date(self, on_date: Optional[date], location: Location) -> date:
        if on_date is None:
            return self._clock().astimezone(location.tzinfo).date()
        if isinstance(on_date, datetime):
            return on_date.astimezone(location.tzinfo).date() if on_date.tzinfo else on_date.date()
        if not isinstance(on_date, date):
            raise InvalidInput(f"Expected a date, got {on_date!r}")
        return on_date

    def _parameters(self, method: Union[CalculationMethod, str, int, None],
                    asr_school: Union[AsrSchool, str, None]) -> CalculationParameters:
        return CalculationParameters(
            method=CalculationMethod.from_identifier(method if method is not None else self.config.default_method),
            asr_school=AsrSchool.from_identifier(asr_school if asr_school is not None else self.config.asr_school),
            high_latitude_rule=self.config.high_latitude_rule,
            dhuhr_offset_minutes=self.config.dhuhr_offset_minutes,
            hijri_adjustment_days=self.config.hijri_adjustment_days,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def resolve_schedule(self,
                               location: Optional[Location] = None,
                               on_date: Optional[date] = None,
                               method: Union[CalculationMethod, str, int, None] = None,
                               *,
                               asr_school: Union[AsrSchool, str, None] = None,
                               cancel_event: Optional[asyncio.Event] = None) -> PrayerSchedule:
        """
        Resolve one day's schedule. Always returns a schedule for valid input.

        Args:
            location: Where to resolve for (defaults to the configured mosque)
            on_date: Gregorian date (defaults to today at the location)
            method: CalculationMethod, name or AlAdhan id (defaults to config)
            asr_school: Standard or Hanafi (defaults to config)
            cancel_event: Set it to abandon remote providers mid-chain

        Raises:
            InvalidInput: bad location, date or method
        """
        location = self._resolve_location(location)
        on_date = self._resolve_date(on_date, location)
        params = self._parameters(method, asr_school)

        try:
            hijri_date = gregorian_to_hijri(on_date, self.config.hijri_adjustment_days)
        except ValueError as e:
            raise InvalidInput(str(e)) from None

        outcome = await self.orchestrator.fetch(location, on_date, params, cancel_event=cancel_event)

        try:
            overrides = await self.store.active_overrides_for(on_date)
            iqamah = await self.store.get_iqamah_times()
            tarawih = await self.store.get_tarawih_config()
        except Exception as e:
            logger.error(f"❌ Override store unavailable, resolving {on_date} without admin data: {e}")
            overrides, iqamah, tarawih = {}, DEFAULT_IQAMAH_TIMES, DEFAULT_TARAWIH_CONFIG

        schedule = merge_schedule(
            outcome.schedule,
            overrides,
            iqamah,
            tarawih,
            hijri_date,
            location=location,
            method=params.method,
            asr_school=params.asr_school,
            qibla_bearing=qibla_bearing(location.latitude, location.longitude),
            cached=outcome.cached,
        )
        logger.info(f"🕌 Resolved {on_date} ({params.method.name}) from {schedule.source_layer}")
        return schedule

    async def resolve_week(self,
                           location: Optional[Location] = None,
                           start_date: Optional[date] = None,
                           method: Union[CalculationMethod, str, int, None] = None,
                           **kwargs) -> List[PrayerSchedule]:
        """Seven consecutive schedules starting at start_date."""
        location = self._resolve_location(location)
        start_date = self._resolve_date(start_date, location)
        return [
            await self.resolve_schedule(location, start_date + timedelta(days=offset), method, **kwargs)
            for offset in range(7)
        ]

    async def resolve_month(self,
                            location: Optional[Location] = None,
                            year: Optional[int] = None,
                            month: Optional[int] = None,
                            method: Union[CalculationMethod, str, int, None] = None,
                            **kwargs) -> List[PrayerSchedule]:
        """One schedule per day of the given Gregorian month."""
        location = self._resolve_location(location)
        today = self._resolve_date(None, location)
        year = today.year if year is None else year
        month = today.month if month is None else month
        if not isinstance(year, int) or not 1 <= year <= 9999:
            raise InvalidInput(f"Invalid year: {year!r}")
        if not isinstance(month, int) or not 1 <= month <= 12:
            raise InvalidInput(f"Invalid month: {month!r}")

        days = calendar.monthrange(year, month)[1]
        return [
            await self.resolve_schedule(location, date(year, month, day), method, **kwargs)
            for day in range(1, days + 1)
        ]

    async def prewarm(self,
                      location: Optional[Location] = None,
                      days: int = 7,
                      start_date: Optional[date] = None,
                      method: Union[CalculationMethod, str, int, None] = None) -> Dict[str, Any]:
        """
        Fill the schedule cache for the next `days` days.

        Returns:
            Summary with the number of days warmed and the layers that served them
        """
        if days < 1:
            raise InvalidInput(f"days must be positive, got {days}")
        location = self._resolve_location(location)
        start_date = self._resolve_date(start_date, location)
        params = self._parameters(method, None)

        layers = Counter()
        for offset in range(days):
            outcome = await self.orchestrator.fetch(location, start_date + timedelta(days=offset), params)
            layers["cache" if outcome.cached else str(outcome.schedule.source_layer)] += 1

        logger.info(f"🔥 Prewarmed {days} day(s) from {start_date}: {dict(layers)}")
        return {"start_date": start_date.isoformat(), "days": days, "layers": dict(layers)}

    def cache_stats(self) -> Dict[str, Any]:
        cache = self.orchestrator.cache
        return cache.stats() if cache is not None else {"entries": 0, "hits": 0, "misses": 0, "hit_rate": 0.0}

    async def close(self) -> None:
        for provider in self.orchestrator.providers:
            await provider.close()
        await self.store.close()


def build_engine(settings=None) -> PrayerTimeEngine:
    """
    Wire an engine from Settings: PostgreSQL store when DATABASE_URL is set,
    in-memory store otherwise.
    """
    if settings is None:
        from config.settings import settings

    config = EngineConfig.from_settings(settings)
    if settings.database_url:
        from .database_manager import PostgresOverrideStore
        store = PostgresOverrideStore()
    else:
        logger.warning("⚠️ DATABASE_URL not set - overrides are kept in memory only")
        store = InMemoryOverrideStore()
    return PrayerTimeEngine(config=config, store=store)
