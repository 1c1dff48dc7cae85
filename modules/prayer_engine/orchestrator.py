# modules/prayer_engine/orchestrator.py
"""
Fallback Orchestrator - one ordered chain over the schedule sources

    cache -> remote providers (priority order) -> local calculation -> offline table

Every result is tagged with the layer that produced it. Provider failures
are absorbed here; the caller always gets a RawSchedule for valid input.
Manual overrides are not consulted at this stage.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence, Union

from .astronomy import AstronomicalCalculator
from .errors import CalculationFailure
from .methods import CalculationParameters
from .models import LayerKind, Location, RawSchedule
from .offline_schedule import OfflineSchedule
from .providers.base import DEFAULT_PROVIDER_TIMEOUT, FailureKind, PrayerTimeProvider, ProviderFailure
from .schedule_cache import ScheduleCache

logger = logging.getLogger(__name__)


@dataclass
class FetchOutcome:
    """Raw schedule plus how it was obtained."""
    schedule: Optional[RawSchedule]
    cached: bool = False
    failures: List[ProviderFailure] = field(default_factory=list)
    cancelled: bool = False


class FallbackOrchestrator:
    """
    Resolves raw (pre-override) times for one (location, date, parameters).

    Providers are attempted sequentially, never in parallel. Each attempt is
    bounded by the provider timeout and by what remains of the overall
    provider budget. Setting cancel_event abandons the remaining providers
    and falls through to the calculator.
    """

    def __init__(self,
                 providers: Sequence[PrayerTimeProvider] = (),
                 calculator: Optional[AstronomicalCalculator] = None,
                 cache: Optional[ScheduleCache] = None,
                 offline: Optional[OfflineSchedule] = None,
                 provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT,
                 provider_budget: Optional[float] = None):
        self.providers = list(providers)
        self.calculator = calculator or AstronomicalCalculator()
        self.cache = cache
        self.offline = offline or OfflineSchedule()
        self.provider_timeout = provider_timeout
        self.provider_budget = (
            provider_budget if provider_budget is not None
            else provider_timeout * max(1, len(self.providers))
        )

    async def fetch_raw(self, location: Location, on_date: date, params: CalculationParameters,
                        cancel_event: Optional[asyncio.Event] = None) -> RawSchedule:
        outcome = await self.fetch(location, on_date, params, cancel_event=cancel_event)
        return outcome.schedule

    async def fetch(self, location: Location, on_date: date, params: CalculationParameters,
                    cancel_event: Optional[asyncio.Event] = None) -> FetchOutcome:
        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.key_for(location, on_date, params.method, params.asr_school)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"📦 Cache hit for {on_date} ({cached.source_layer})")
                return FetchOutcome(schedule=cached, cached=True)

        outcome = await self._try_providers(location, on_date, params, cancel_event)
        if outcome.schedule is None:
            outcome.schedule = self._compute_locally(location, on_date, params)

        if cache_key is not None and outcome.schedule.source_layer.kind is not LayerKind.OFFLINE_SCHEDULE:
            outcome.schedule = self.cache.put_if_absent(cache_key, outcome.schedule, location.timezone)

        return outcome

    # -------------------------------------------------------------------------

    async def _try_providers(self, location: Location, on_date: date, params: CalculationParameters,
                             cancel_event: Optional[asyncio.Event]) -> FetchOutcome:
        outcome = FetchOutcome(schedule=None)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.provider_budget

        for provider in self.providers:
            if cancel_event is not None and cancel_event.is_set():
                outcome.cancelled = True
                break
            if not provider.supports(params.method):
                logger.debug(f"⏭️ {provider.name} does not offer {params.method.name}")
                continue

            remaining = deadline - loop.time()
            if remaining <= 0:
                outcome.failures.append(ProviderFailure(provider.name, FailureKind.TIMEOUT, "provider budget exhausted"))
                break

            result = await self._call_provider(
                provider, location, on_date, params, cancel_event,
                timeout=min(provider.timeout, self.provider_timeout, remaining),
            )
            if result is None:
                outcome.cancelled = True
                break
            if isinstance(result, ProviderFailure):
                outcome.failures.append(result)
                continue

            logger.info(f"✅ Resolved {on_date} via {result.source_layer}")
            outcome.schedule = result
            return outcome

        if outcome.cancelled:
            logger.info(f"🛑 Provider chain cancelled for {on_date}, using local calculation")
        elif outcome.failures:
            logger.warning(
                f"⚠️ All providers failed for {on_date}: "
                f"{'; '.join(str(failure) for failure in outcome.failures)}"
            )
        return outcome

    async def _call_provider(self, provider: PrayerTimeProvider, location: Location, on_date: date,
                             params: CalculationParameters, cancel_event: Optional[asyncio.Event],
                             timeout: float) -> Union[RawSchedule, ProviderFailure, None]:
        """
        Race one provider call against the timeout and the cancel event.

        Returns:
            RawSchedule or ProviderFailure, or None when cancelled
        """
        fetch_task = asyncio.ensure_future(provider.fetch_times(location, on_date, params))
        waiters = {fetch_task}
        cancel_task = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if fetch_task in done:
            try:
                return fetch_task.result()
            except Exception as e:
                logger.error(f"❌ {provider.name} raised instead of returning a failure: {e}")
                return ProviderFailure(provider.name, FailureKind.UNREACHABLE, str(e))

        if cancel_task is not None and cancel_task in done:
            return None

        return ProviderFailure(provider.name, FailureKind.TIMEOUT, f"no response within {timeout:.1f}s")

    def _compute_locally(self, location: Location, on_date: date, params: CalculationParameters) -> RawSchedule:
        try:
            return self.calculator.compute(location, on_date, params)
        except (CalculationFailure, ValueError, ArithmeticError) as e:
            logger.error(f"❌ Local calculation failed for {on_date}: {type(e).__name__}: {e} - serving offline schedule")
            return self.offline.lookup(location, on_date)
