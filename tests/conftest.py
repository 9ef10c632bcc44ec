"""
Shared test fixtures for the VerdantWise test suite.

Provides:
- A Flask app built with TestConfig and a per-test store directory
- A test client plus the X-Requested-With header mutations need
- Fake weather provider and fake generative client wired into the services
- Factories for plants and weather reports

Usage:
    def test_example(client, ajax, fake_provider):
        resp = client.post("/api/v1/plants", json={"customName": "Fern"}, headers=ajax)
        assert resp.status_code == 201
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional

import pytest

from verdantwise import create_app
from verdantwise.services.schemas import ForecastDay, Plant, Weather, WeatherReport
from verdantwise.services.storage import JsonStore
from verdantwise.services.watering_advice import AdviceEngine
from verdantwise.services.weather import WeatherService
from verdantwise.utils.cache import StalenessCache
from verdantwise.utils.errors import AdviceGenerationFailed

logging.getLogger("verdantwise").setLevel(logging.WARNING)

NOW = datetime(2025, 6, 2, 10, 0, tzinfo=timezone.utc)


# ============================== Fakes ======================================


class FakeProvider:
    """Stands in for WeatherProvider; counts calls and can be told to fail."""

    def __init__(self, report: Optional[WeatherReport] = None):
        self.report = report
        self.error: Optional[Exception] = None
        self.calls: List[str] = []

    def fetch_weather(self, location: str) -> WeatherReport:
        self.calls.append(location)
        if self.error is not None:
            raise self.error
        return self.report


class FakeAI:
    """
    Stands in for AIClient.

    Queue replies with ``replies.append(...)``: a model instance is returned,
    an exception is raised. ``check`` hooks run like the real client's, and
    a failing check becomes AdviceGenerationFailed.
    """

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.replies: List[Any] = []
        self.calls: List[dict] = []

    def is_configured(self, config) -> bool:
        return self.configured

    def generate_structured(self, messages, schema_cls, config, temperature=0.4, check=None):
        self.calls.append({"messages": messages, "schema": schema_cls, "config": config})
        if not self.replies:
            raise AdviceGenerationFailed(f"No reply queued for {schema_cls.__name__}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if check is not None:
            try:
                check(reply)
            except ValueError as e:
                raise AdviceGenerationFailed(str(e)) from e
        return reply


# ============================== Factories ==================================


def build_report(
    current: str = "Sunny",
    forecast: tuple = ("Sunny", "Sunny", "Sunny"),
    temperature: int = 22,
    start: date = NOW.date(),
) -> WeatherReport:
    days = [start + timedelta(days=i) for i in range(len(forecast))]
    return WeatherReport(
        current=Weather(temperature=temperature, condition=current, humidity=55, wind_speed=12),
        forecast=[
            ForecastDay(day=d.strftime("%A"), date=d.isoformat(), temperature=temperature, condition=c)
            for d, c in zip(days, forecast)
        ],
    )


def build_plant(**overrides) -> Plant:
    data = {
        "id": "plant-1",
        "customName": "Fernando",
        "commonName": "Boston Fern",
        "wateringFrequency": 7,
        "lastWatered": (NOW - timedelta(days=8)).isoformat(),
        "placement": "Outdoor",
    }
    data.update(overrides)
    return Plant.model_validate(data)


@pytest.fixture()
def report_factory():
    return build_report


@pytest.fixture()
def plant_factory():
    return build_plant


# ============================== App Fixtures ===============================


@pytest.fixture()
def app(tmp_path):
    """App with a fresh store directory; rate limits and scheduler off."""
    app = create_app("verdantwise.config.TestConfig", {"STORE_DIR": str(tmp_path / "store")})
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ajax():
    """Header every state-changing request must carry."""
    return {"X-Requested-With": "XMLHttpRequest"}


@pytest.fixture()
def services(app):
    return app.extensions["verdantwise"]


@pytest.fixture()
def fake_provider(services):
    """Replace the HTTP weather provider and drop anything cached."""
    provider = FakeProvider(build_report())
    services.weather.provider = provider
    services.weather.cache.clear()
    return provider


@pytest.fixture()
def fake_ai(services):
    """Replace the generative client used by routes and the advice engine."""
    ai = FakeAI()
    services.ai = ai
    services.engine.ai = ai
    return ai


@pytest.fixture()
def store(tmp_path):
    return JsonStore(str(tmp_path / "data"))


@pytest.fixture()
def engine():
    """
    AdviceEngine at a fixed clock with fake weather and model.

    ``engine.weather.provider`` is a FakeProvider and ``engine.ai`` a FakeAI.
    """
    weather = WeatherService(FakeProvider(build_report()), StalenessCache(12 * 3600))
    return AdviceEngine(weather, FakeAI(), now_fn=lambda: NOW)
