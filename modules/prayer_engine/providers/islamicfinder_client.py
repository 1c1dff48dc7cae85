# modules/prayer_engine/providers/islamicfinder_client.py
"""
IslamicFinder API adapter
Secondary remote provider with a reusable aiohttp session.

Times come back as local clock strings wrapped in percent signs, e.g.
{"results": {"Fajr": "%05:44%", "Duha": "%07:02%", ...}}
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, Optional, Tuple

import aiohttp

from ..methods import CalculationMethod, CalculationParameters
from ..models import Location, PrayerName
from .base import DEFAULT_PROVIDER_TIMEOUT, FailureKind, InvalidPayload, PrayerTimeProvider, ProviderResult

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.islamicfinder.us"

# IslamicFinder method ids; methods not listed here are skipped
ISLAMICFINDER_METHODS = {
    CalculationMethod.KARACHI: 1,
    CalculationMethod.ISNA: 2,
    CalculationMethod.MWL: 3,
    CalculationMethod.UMM_AL_QURA: 4,
    CalculationMethod.EGYPTIAN: 5,
}

_RESULT_KEYS = {
    PrayerName.FAJR: ("Fajr",),
    PrayerName.SUNRISE: ("Sunrise", "Duha"),
    PrayerName.DHUHR: ("Dhuhr",),
    PrayerName.ASR: ("Asr",),
    PrayerName.MAGHRIB: ("Maghrib",),
    PrayerName.ISHA: ("Isha",),
}


class IslamicFinderClient(PrayerTimeProvider):
    """IslamicFinder prayer_times endpoint with session reuse"""

    name = "islamicfinder"

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_PROVIDER_TIMEOUT):
        super().__init__(timeout)
        self.base_url = base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def supports(self, method: CalculationMethod) -> bool:
        return method in ISLAMICFINDER_METHODS

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create reusable HTTP session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        """Close HTTP session - call on shutdown"""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
            logger.debug("IslamicFinderClient session closed")

    def build_params(self, location: Location, on_date: date, params: CalculationParameters) -> Dict[str, Any]:
        return {
            "latitude": str(location.latitude),
            "longitude": str(location.longitude),
            "timezone": location.timezone,
            "method": str(ISLAMICFINDER_METHODS[params.method]),
            "juristic": "1" if params.asr_school.shadow_factor == 2 else "0",
            "date": on_date.isoformat(),
            "time_format": "0",
        }

    async def _fetch_json(self, url: str, query: Dict[str, Any]) -> Tuple[int, Any]:
        session = await self._get_session()
        async with session.get(url, params=query) as response:
            if response.status >= 400:
                return response.status, None
            return response.status, await response.json(content_type=None)

    async def fetch_times(self, location: Location, on_date: date,
                          params: CalculationParameters) -> ProviderResult:
        if not self.supports(params.method):
            return self.failure(FailureKind.INVALID_RESPONSE, f"method {params.method.name} not offered")

        url = f"{self.base_url}/index.php/api/prayer_times"
        query = self.build_params(location, on_date, params)

        try:
            logger.info(f"🕌 Fetching prayer times for {on_date} from IslamicFinder")
            status, payload = await self._fetch_json(url, query)

            if status == 429:
                return self.failure(FailureKind.RATE_LIMITED, "HTTP 429")
            if status >= 400:
                return self.failure(FailureKind.UNREACHABLE, f"HTTP {status}")

            schedule = self._parse_payload(payload, location, on_date)
            logger.info(f"✅ IslamicFinder times for {on_date} received")
            return schedule

        except asyncio.TimeoutError:
            return self.failure(FailureKind.TIMEOUT, f"no response within {self.timeout}s")

        except aiohttp.ClientError as e:
            return self.failure(FailureKind.UNREACHABLE, f"{type(e).__name__}: {e}")

        except (InvalidPayload, ValueError, KeyError, TypeError) as e:
            return self.failure(FailureKind.INVALID_RESPONSE, str(e))

    def _parse_payload(self, payload: Any, location: Location, on_date: date):
        if not isinstance(payload, dict) or not isinstance(payload.get("results"), dict):
            raise InvalidPayload("IslamicFinder response has no results object")

        results = payload["results"]
        timings = {}
        for name, keys in _RESULT_KEYS.items():
            value = next((results[key] for key in keys if key in results), None)
            timings[name] = value.strip("%").strip() if isinstance(value, str) else value
        return self.build_schedule(on_date, location, timings)
