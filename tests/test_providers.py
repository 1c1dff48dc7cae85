# tests/test_providers.py
import asyncio
import json
from datetime import date, datetime, timezone

import aiohttp
import httpx
import pytest

from modules.prayer_engine.methods import AsrSchool, CalculationMethod, CalculationParameters
from modules.prayer_engine.models import LayerKind, PrayerName, SourceLayer
from modules.prayer_engine.providers import (
    AlAdhanClient,
    FailureKind,
    IslamicFinderClient,
    ProviderFailure,
    build_providers,
    is_failure,
)

from tests.fakes import DORAVILLE

ON_DATE = date(2025, 1, 15)

ALADHAN_PAYLOAD = {
    "code": 200,
    "status": "OK",
    "data": {
        "timings": {
            "Fajr": "2025-01-15T06:20:00-05:00",
            "Sunrise": "2025-01-15T07:42:00-05:00",
            "Dhuhr": "2025-01-15T12:47:00-05:00",
            "Asr": "2025-01-15T15:40:00-05:00",
            "Sunset": "2025-01-15T17:53:00-05:00",
            "Maghrib": "2025-01-15T17:53:00-05:00",
            "Isha": "2025-01-15T19:08:00-05:00",
            "Imsak": "2025-01-15T06:10:00-05:00",
            "Midnight": "2025-01-16T00:47:00-05:00",
        }
    },
}


def aladhan_with(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AlAdhanClient(base_url="https://aladhan.test", timeout=1.0, client=client)


def fetch(provider, params=None):
    params = params or CalculationParameters(CalculationMethod.ISNA)
    return asyncio.run(provider.fetch_times(DORAVILLE, ON_DATE, params))


# =============================================================================
# AlAdhan
# =============================================================================

def test_aladhan_success_parses_iso_timings():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=ALADHAN_PAYLOAD)

    result = fetch(aladhan_with(handler))

    assert not is_failure(result)
    assert result.source_layer == SourceLayer.remote("aladhan")
    assert result.times[PrayerName.FAJR] == datetime(2025, 1, 15, 11, 20, tzinfo=timezone.utc)
    assert result.times[PrayerName.MAGHRIB] == datetime(2025, 1, 15, 22, 53, tzinfo=timezone.utc)
    assert result.midnight == datetime(2025, 1, 16, 5, 47, tzinfo=timezone.utc)

    assert seen["path"] == "/v1/timings/15-01-2025"
    assert seen["params"]["method"] == "2"
    assert seen["params"]["school"] == "0"
    assert seen["params"]["timezonestring"] == "America/New_York"
    assert seen["params"]["iso8601"] == "true"


def test_aladhan_accepts_clock_strings_with_zone_label():
    payload = json.loads(json.dumps(ALADHAN_PAYLOAD))
    payload["data"]["timings"] = {
        "Fajr": "06:20 (EST)",
        "Sunrise": "07:42 (EST)",
        "Dhuhr": "12:47 (EST)",
        "Asr": "15:40 (EST)",
        "Maghrib": "17:53 (EST)",
        "Isha": "19:08 (EST)",
        "Midnight": "00:47 (EST)",
    }
    result = fetch(aladhan_with(lambda request: httpx.Response(200, json=payload)))

    assert result.times[PrayerName.ISHA] == datetime(2025, 1, 16, 0, 8, tzinfo=timezone.utc)
    # Clock-only midnight rolls into the next day
    assert result.midnight == datetime(2025, 1, 16, 5, 47, tzinfo=timezone.utc)


def test_aladhan_hanafi_school_param():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json=ALADHAN_PAYLOAD)

    fetch(aladhan_with(handler), CalculationParameters(CalculationMethod.KARACHI, asr_school=AsrSchool.HANAFI))
    assert seen["school"] == "1"
    assert seen["method"] == "1"


def test_aladhan_rate_limited():
    result = fetch(aladhan_with(lambda request: httpx.Response(429)))
    assert isinstance(result, ProviderFailure)
    assert result.kind is FailureKind.RATE_LIMITED
    assert result.provider == "aladhan"


def test_aladhan_server_error_is_unreachable():
    result = fetch(aladhan_with(lambda request: httpx.Response(500)))
    assert result.kind is FailureKind.UNREACHABLE
    assert "500" in result.detail


def test_aladhan_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    result = fetch(aladhan_with(handler))
    assert result.kind is FailureKind.TIMEOUT


def test_aladhan_connection_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = fetch(aladhan_with(handler))
    assert result.kind is FailureKind.UNREACHABLE


def test_aladhan_malformed_body():
    result = fetch(aladhan_with(lambda request: httpx.Response(200, text="<html>oops</html>")))
    assert result.kind is FailureKind.INVALID_RESPONSE


def test_aladhan_error_code_in_body():
    body = {"code": 400, "status": "BAD_REQUEST", "data": "Invalid date"}
    result = fetch(aladhan_with(lambda request: httpx.Response(200, json=body)))
    assert result.kind is FailureKind.INVALID_RESPONSE


def test_aladhan_out_of_order_times_rejected():
    payload = json.loads(json.dumps(ALADHAN_PAYLOAD))
    payload["data"]["timings"]["Isha"] = "2025-01-15T17:00:00-05:00"
    result = fetch(aladhan_with(lambda request: httpx.Response(200, json=payload)))
    assert result.kind is FailureKind.INVALID_RESPONSE


def test_aladhan_missing_prayer_rejected():
    payload = json.loads(json.dumps(ALADHAN_PAYLOAD))
    del payload["data"]["timings"]["Asr"]
    result = fetch(aladhan_with(lambda request: httpx.Response(200, json=payload)))
    assert result.kind is FailureKind.INVALID_RESPONSE


def test_aladhan_supports_methods_with_ids():
    client = AlAdhanClient()
    assert all(client.supports(method) for method in CalculationMethod)


# =============================================================================
# IslamicFinder
# =============================================================================

ISLAMICFINDER_PAYLOAD = {
    "results": {
        "Fajr": "%06:20%",
        "Duha": "%07:42%",
        "Dhuhr": "%12:47%",
        "Asr": "%15:40%",
        "Maghrib": "%17:53%",
        "Isha": "%19:08%",
    },
    "settings": {"location": {"city": "Doraville"}},
    "success": True,
}


def islamicfinder_returning(monkeypatch, status=200, payload=None, error=None):
    client = IslamicFinderClient(base_url="https://islamicfinder.test", timeout=1.0)
    calls = []

    async def fake_fetch(url, query):
        calls.append((url, query))
        if error is not None:
            raise error
        return status, payload

    monkeypatch.setattr(client, "_fetch_json", fake_fetch)
    return client, calls


def test_islamicfinder_success(monkeypatch):
    client, calls = islamicfinder_returning(monkeypatch, payload=ISLAMICFINDER_PAYLOAD)
    result = fetch(client)

    assert result.source_layer == SourceLayer.remote("islamicfinder")
    assert result.source_layer.kind is LayerKind.REMOTE_PROVIDER
    assert result.times[PrayerName.SUNRISE] == datetime(2025, 1, 15, 12, 42, tzinfo=timezone.utc)

    url, query = calls[0]
    assert url == "https://islamicfinder.test/index.php/api/prayer_times"
    assert query["method"] == "2"
    assert query["date"] == "2025-01-15"

def test_islamicfinder_isha_after_midnight_rolls_to_next_day(monkeypatch):
    payload = json.loads(json.dumps(ISLAMICFINDER_PAYLOAD))
    payload["results"]["Isha"] = "%00:40%"
    client, _ = islamicfinder_returning(monkeypatch, payload=payload)
    result = fetch(client)

    assert not is_failure(result)
    assert result.times[PrayerName.ISHA] == datetime(2025, 1, 16, 5, 40, tzinfo=timezone.utc)



def test_islamicfinder_rate_limited(monkeypatch):
    client, _ = islamicfinder_returning(monkeypatch, status=429)
    assert fetch(client).kind is FailureKind.RATE_LIMITED


def test_islamicfinder_http_error(monkeypatch):
    client, _ = islamicfinder_returning(monkeypatch, status=503)
    assert fetch(client).kind is FailureKind.UNREACHABLE


def test_islamicfinder_timeout(monkeypatch):
    client, _ = islamicfinder_returning(monkeypatch, error=asyncio.TimeoutError())
    assert fetch(client).kind is FailureKind.TIMEOUT


def test_islamicfinder_client_error(monkeypatch):
    client, _ = islamicfinder_returning(monkeypatch, error=aiohttp.ClientConnectionError("refused"))
    assert fetch(client).kind is FailureKind.UNREACHABLE


def test_islamicfinder_missing_results(monkeypatch):
    client, _ = islamicfinder_returning(monkeypatch, payload={"success": False})
    assert fetch(client).kind is FailureKind.INVALID_RESPONSE


def test_islamicfinder_method_support():
    client = IslamicFinderClient()
    assert client.supports(CalculationMethod.ISNA)
    assert client.supports(CalculationMethod.UMM_AL_QURA)
    assert not client.supports(CalculationMethod.TEHRAN)
    result = fetch(client, CalculationParameters(CalculationMethod.TEHRAN))
    assert result.kind is FailureKind.INVALID_RESPONSE


# =============================================================================
# Registry
# =============================================================================

def test_build_providers_keeps_priority_and_skips_unknown():
    providers = build_providers(
        ["IslamicFinder", "nope", " aladhan "],
        timeout=2.5,
        base_urls={"aladhan": "https://mirror.test/"},
    )
    assert [provider.name for provider in providers] == ["islamicfinder", "aladhan"]
    assert all(provider.timeout == 2.5 for provider in providers)
    assert providers[1].base_url == "https://mirror.test"


def test_failure_str():
    failure = ProviderFailure("aladhan", FailureKind.TIMEOUT, "no response within 4.0s")
    assert str(failure) == "aladhan: timeout no response within 4.0s"


@pytest.mark.parametrize("method", [CalculationMethod.ISNA, CalculationMethod.MWL])
def test_aladhan_build_params_latitude_adjustment(method):
    params = AlAdhanClient().build_params(DORAVILLE, CalculationParameters(method))
    assert params["latitudeAdjustmentMethod"] == 3
    assert params["method"] == method.parameters.aladhan_id
