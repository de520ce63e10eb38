import logging

import pytest
import pytest_asyncio

from vacancy.config.environment import Environment, MarketSettings
from vacancy.market import Market, Registry


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep host configuration out of the tests."""
    for key in (
        "VACANCY_SETTINGS_FILE",
        "VACANCY_DEFAULT_INTERVAL",
        "VACANCY_DEFAULT_EXIT_PROBABILITY",
        "VACANCY_STATUS_TIMEOUT",
        "VACANCY_METRICS_ENABLED",
    ):
        monkeypatch.delenv(key, raising=False)
    Environment.reset()
    yield
    Environment.reset()


@pytest.fixture(scope="session", autouse=True)
def _quiet_market_logging():
    logging.getLogger("vacancy").setLevel(logging.WARNING)


@pytest.fixture
def registry():
    return Registry()


@pytest_asyncio.fixture
async def market():
    """A market whose actors never leave unless a test says so."""
    m = Market(settings=MarketSettings(default_interval=0.05, default_exit_probability=0.0), seed=1234)
    yield m
    await m.shutdown()

