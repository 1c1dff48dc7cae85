# modules/prayer_engine/providers/aladhan_client.py
"""
AlAdhan API adapter
Free prayer times service, no API key required.

API Documentation:
- Prayer Times: https://aladhan.com/prayer-times-api
"""

import logging
from datetime import date
from typing import Any, Dict, Optional

import httpx

from ..methods import CalculationMethod, CalculationParameters
from ..models import Location, PrayerName
from .base import DEFAULT_PROVIDER_TIMEOUT, FailureKind, InvalidPayload, PrayerTimeProvider, ProviderResult

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.aladhan.com"

_TIMING_KEYS = {
    PrayerName.FAJR: "Fajr",
    PrayerName.SUNRISE: "Sunrise",
    PrayerName.DHUHR: "Dhuhr",
    PrayerName.ASR: "Asr",
    PrayerName.MAGHRIB: "Maghrib",
    PrayerName.ISHA: "Isha",
}


class AlAdhanClient(PrayerTimeProvider):
    """
    Client for AlAdhan.com timings endpoint.
    Supports every method that has an AlAdhan method id.
    """

    name = "aladhan"

    def __init__(self,
                 base_url: str = DEFAULT_BASE_URL,
                 timeout: float = DEFAULT_PROVIDER_TIMEOUT,
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(timeout)
        self.base_url = base_url.rstrip("/")
        # Injected clients are owned by the caller (tests pass a MockTransport client)
        self._client = client

    def supports(self, method: CalculationMethod) -> bool:
        return method.parameters.aladhan_id is not None

    def build_params(self, location: Location, params: CalculationParameters) -> Dict[str, Any]:
        return {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "method": params.method.parameters.aladhan_id,
            "school": 1 if params.asr_school.shadow_factor == 2 else 0,
            "latitudeAdjustmentMethod": params.effective_high_latitude_rule.aladhan_id,
            "timezonestring": location.timezone,
            "iso8601": "true",
        }

    async def fetch_times(self, location: Location, on_date: date,
                          params: CalculationParameters) -> ProviderResult:
        """
        Get prayer times for one date and location

        Args:
            location: Validated location
            on_date: Gregorian date
            params: Method and Asr school

        Returns:
            RawSchedule on success, ProviderFailure otherwise
        """
        url = f"{self.base_url}/v1/timings/{on_date.strftime('%d-%m-%Y')}"
        query = self.build_params(location, params)

        try:
            logger.info(f"🕌 Fetching prayer times for {on_date} from AlAdhan API")
            if self._client is not None:
                response = await self._client.get(url, params=query, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=query)

            if response.status_code == 429:
                return self.failure(FailureKind.RATE_LIMITED, "HTTP 429")
            response.raise_for_status()

            schedule = self._parse_response(response.json(), location, on_date)
            logger.info(
                f"✅ AlAdhan times for {on_date}: "
                f"Fajr {schedule.times[PrayerName.FAJR]:%H:%M}Z, Maghrib {schedule.times[PrayerName.MAGHRIB]:%H:%M}Z"
            )
            return schedule

        except httpx.TimeoutException:
            return self.failure(FailureKind.TIMEOUT, f"no response within {self.timeout}s")

        except httpx.HTTPStatusError as e:
            return self.failure(FailureKind.UNREACHABLE, f"HTTP {e.response.status_code}")

        except httpx.HTTPError as e:
            return self.failure(FailureKind.UNREACHABLE, f"{type(e).__name__}: {e}")

        except (InvalidPayload, ValueError, KeyError, TypeError) as e:
            return self.failure(FailureKind.INVALID_RESPONSE, str(e))

    def _parse_response(self, data: Any, location: Location, on_date: date):
        if not isinstance(data, dict) or data.get("code") != 200:
            status = data.get("status", "Unknown error") if isinstance(data, dict) else "non-object body"
            raise InvalidPayload(f"AlAdhan API error: {status}")

        timings = data["data"]["timings"]
        raw = {name: timings.get(key) for name, key in _TIMING_KEYS.items()}
        return self.build_schedule(on_date, location, raw, midnight=timings.get("Midnight"))
