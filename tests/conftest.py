"""Pytest configuration for all tests."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from profilestub.application.services.simulated_api import SimulatedApi
from profilestub.core.config import Settings, get_settings
from profilestub.core.logging import configure_logging

AMSTERDAM = ZoneInfo("Europe/Amsterdam")


class ManualClock:
    """Clock for tests: returns a fixed moment until advanced."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: int = 1) -> None:
        self.current += timedelta(seconds=seconds)


# Structure used by most record store tests: one database named Test with
# profile fields and one collection, also named Test.
TEST_STRUCTURE = {
    "Test": {
        "fields": {
            "Email": {"type": "email"},
            "LastName": {"type": "text"},
            "Birthdate": {"type": "empty_date"},
        },
        "collections": {
            "Test": {
                "fields": {
                    "Score": {"type": "integer", "value": -1},
                    "ActionTime": {"type": "empty_datetime"},
                },
            },
        },
    },
}


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Make every test read settings from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: in-memory database, fixed timezone."""
    test_settings = Settings(
        environment="testing",
        database_url="sqlite://",
        timezone="Europe/Amsterdam",
        log_level="WARNING",
        log_format="console",
    )
    configure_logging(test_settings)
    return test_settings


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2020, 1, 2, 3, 4, 5, tzinfo=AMSTERDAM))


@pytest.fixture
def structure() -> dict:
    return TEST_STRUCTURE


@pytest.fixture
def api(structure, settings, clock):
    """A simulated API for TEST_STRUCTURE, closed after the test."""
    simulated = SimulatedApi(structure, settings=settings, clock=clock)
    yield simulated
    simulated.close()
