# tests/conftest.py
from datetime import date, datetime, timezone

import pytest

from modules.prayer_engine.astronomy import AstronomicalCalculator
from modules.prayer_engine.methods import CalculationMethod, CalculationParameters
from modules.prayer_engine.router import set_engine

from tests.fakes import DORAVILLE, FixedClock


@pytest.fixture
def doraville():
    return DORAVILLE


@pytest.fixture
def isna_params():
    return CalculationParameters(method=CalculationMethod.ISNA)


@pytest.fixture
def calculator():
    return AstronomicalCalculator()


@pytest.fixture
def scenario_date():
    return date(2025, 1, 15)


@pytest.fixture
def raw_schedule(calculator, doraville, scenario_date, isna_params):
    return calculator.compute(doraville, scenario_date, isna_params)


@pytest.fixture
def clock():
    # 12:00 EST on the scenario date
    return FixedClock(datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc))


@pytest.fixture(autouse=True)
def reset_registered_engine():
    yield
    set_engine(None)
