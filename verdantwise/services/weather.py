"""
Weather service helpers (geocode.maps.co + Open-Meteo).

Classes:
- WeatherProvider: free-text location -> coordinates -> current conditions
  plus a 3-day forecast, mapped to a small fixed condition vocabulary.
- WeatherService: WeatherProvider behind a 12-hour staleness cache that is
  persisted to the local store, with an explicit mock fallback policy.

Functions:
- code_to_condition(code): WMO weather code -> Sunny/Partly cloudy/Cloudy/Rain/Thunderstorms.
- mock_weather(): static plausible data used when a caller opts into degradation.

Notes:
- Metric units only (celsius, km/h). All numeric fields are rounded to integers.
- Provider failures raise typed errors (LocationNotFound, WeatherFetchFailed).
  Whether to fall back to mock data is decided per call site, never here.
"""

from __future__ import annotations
import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..constants import (
    CONDITION_CLOUDY,
    CONDITION_PARTLY_CLOUDY,
    CONDITION_RAIN,
    CONDITION_SUNNY,
    CONDITION_THUNDERSTORMS,
)
from ..utils.cache import StalenessCache
from ..utils.errors import LocationNotFound, StorageError, WeatherFetchFailed
from .schemas import ForecastDay, Weather, WeatherReport
from .storage import WEATHER_CACHE_KEY, JsonStore

logger = logging.getLogger(__name__)

FORECAST_DAYS = 3
TEMPERATURE_UNIT = "celsius"
WIND_SPEED_UNIT = "kmh"

_CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,weather_code,wind_speed_10m"
_DAILY_FIELDS = "weather_code,temperature_2m_max"


def code_to_condition(code: int) -> str:
    """Map a WMO weather code to the fixed condition vocabulary (ordered checks)."""
    if code <= 1:
        return CONDITION_SUNNY
    if code <= 3:
        return CONDITION_PARTLY_CLOUDY
    if 51 <= code <= 67:
        return CONDITION_RAIN
    if code >= 95:
        return CONDITION_THUNDERSTORMS
    return CONDITION_CLOUDY


def _round(value: Any) -> int:
    """Round half up, the way the UI always displayed it."""
    return int(math.floor(float(value) + 0.5))


def mock_weather(today: Optional[date] = None) -> WeatherReport:
    """
    Static, plausible weather used when the provider is unavailable and the
    call site prefers degraded advice over an error.
    """
    today = today or datetime.now(timezone.utc).date()
    days = [today + timedelta(days=i) for i in range(FORECAST_DAYS)]
    conditions = [CONDITION_SUNNY, CONDITION_PARTLY_CLOUDY, CONDITION_SUNNY]
    temps = [24, 23, 25]
    return WeatherReport(
        current=Weather(
            temperature=22,
            condition=CONDITION_SUNNY,
            humidity=60,
            wind_speed=10,
            temperature_unit=TEMPERATURE_UNIT,
            wind_speed_unit=WIND_SPEED_UNIT,
        ),
        forecast=[
            ForecastDay(day=d.strftime("%A"), date=d.isoformat(), temperature=t, condition=c)
            for d, t, c in zip(days, temps, conditions)
        ],
        is_mock=True,
    )


class WeatherProvider:
    """Thin client over the geocoding and forecast HTTP APIs."""

    def __init__(
        self,
        geocode_url: str,
        weather_url: str,
        timeout: float = 8,
        session: Optional[requests.Session] = None,
    ):
        self.geocode_url = geocode_url.rstrip("/")
        self.weather_url = weather_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get_json(self, url: str, params: Dict[str, Any], what: str) -> Any:
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except requests.RequestException as e:
            raise WeatherFetchFailed(f"{what} request failed: {e}") from e
        except ValueError as e:
            raise WeatherFetchFailed(f"{what} returned invalid JSON: {e}") from e

    def geocode(self, location: str) -> Tuple[float, float]:
        """Resolve free text to (lat, lon) using the first result."""
        data = self._get_json(f"{self.geocode_url}/search", {"q": location}, "Geocoding")
        if not data:
            raise LocationNotFound(f"No coordinates found for location: {location}")
        first = data[0]
        try:
            return float(first["lat"]), float(first["lon"])
        except (KeyError, TypeError, ValueError) as e:
            raise WeatherFetchFailed(f"Geocoding returned a malformed result for {location}") from e

    def fetch_weather(self, location: str) -> WeatherReport:
        """
        Fetch current conditions and a 3-day forecast for a location.

        Raises:
            LocationNotFound: geocoding returned no results
            WeatherFetchFailed: any HTTP/transport failure or malformed payload
        """
        lat, lon = self.geocode(location)
        data = self._get_json(
            f"{self.weather_url}/forecast",
            {
                "latitude": lat,
                "longitude": lon,
                "current": _CURRENT_FIELDS,
                "daily": _DAILY_FIELDS,
                "temperature_unit": TEMPERATURE_UNIT,
                "wind_speed_unit": WIND_SPEED_UNIT,
                "timezone": "auto",
                "forecast_days": FORECAST_DAYS,
            },
            "Weather",
        )
        try:
            return self._parse(data)
        except (KeyError, TypeError, ValueError, IndexError) as e:
            raise WeatherFetchFailed(f"Weather payload could not be parsed: {e}") from e

    @staticmethod
    def _parse(data: Dict[str, Any]) -> WeatherReport:
        cur = data["current"]
        daily = data["daily"]

        current = Weather(
            temperature=_round(cur["temperature_2m"]),
            condition=code_to_condition(int(cur["weather_code"])),
            humidity=_round(cur["relative_humidity_2m"]),
            wind_speed=_round(cur["wind_speed_10m"]),
            temperature_unit=TEMPERATURE_UNIT,
            wind_speed_unit=WIND_SPEED_UNIT,
        )

        forecast: List[ForecastDay] = []
        for i, date_str in enumerate(daily["time"]):
            day = datetime.strptime(date_str, "%Y-%m-%d")
            forecast.append(ForecastDay(
                day=day.strftime("%A"),
                date=date_str,
                temperature=_round(daily["temperature_2m_max"][i]),
                condition=code_to_condition(int(daily["weather_code"][i])),
            ))

        return WeatherReport(current=current, forecast=forecast)


def _cache_key(location: str) -> str:
    return " ".join(location.lower().split())


class WeatherService:
    """
    Cached weather access with a per-call fallback policy.

    A cached report younger than the staleness window is served without a
    network call; anything older is re-fetched. Cache entries are mirrored
    to the JSON store so they survive restarts.
    """

    def __init__(
        self,
        provider: WeatherProvider,
        cache: StalenessCache,
        store: Optional[JsonStore] = None,
    ):
        self.provider = provider
        self.cache = cache
        self.store = store
        self._load_persisted()

    def _load_persisted(self) -> None:
        if not self.store:
            return
        try:
            raw = self.store.read(WEATHER_CACHE_KEY, default={}) or {}
        except StorageError as e:
            logger.error(f"[Weather] Could not load weather cache: {e}")
            return
        entries = {}
        for key, item in raw.items():
            try:
                entries[key] = (float(item["storedAt"]), WeatherReport.model_validate(item["report"]))
            except (KeyError, TypeError, ValueError):
                logger.warning(f"[Weather] Dropping unreadable cache entry for {key!r}")
        self.cache.load(entries)

    def _persist(self) -> None:
        if not self.store:
            return
        payload = {
            key: {"storedAt": stored_at, "report": report.to_json_dict()}
            for key, (stored_at, report) in self.cache.snapshot().items()
        }
        try:
            self.store.write(WEATHER_CACHE_KEY, payload)
        except StorageError as e:
            # In-memory cache stays authoritative for this session
            logger.error(f"[Weather] Could not persist weather cache: {e}")

    def get_weather(self, location: str, allow_mock: bool = False) -> WeatherReport:
        """
        Return weather for a location, from cache when fresh.

        Args:
            location: Free-text location
            allow_mock: If True, provider failures return mock_weather()
                        instead of raising (graceful degradation)

        Raises:
            LocationNotFound / WeatherFetchFailed when allow_mock is False
        """
        key = _cache_key(location)
        cached = self.cache.get_fresh(key)
        if cached is not None:
            logger.debug(f"[Weather] cache hit: {key}")
            return cached

        logger.debug(f"[Weather] cache miss: {key} - fetching")
        try:
            report = self.provider.fetch_weather(location)
        except (LocationNotFound, WeatherFetchFailed) as e:
            if not allow_mock:
                raise
            logger.warning(f"[Weather] Using mock weather for {location!r}: {e}")
            return mock_weather()

        self.cache.put(key, report)
        self._persist()
        return report

    def refresh_stale(self) -> int:
        """
        Re-fetch every cached location whose entry is stale.

        Entries stale for more than a whole extra window were not looked up
        since the last refresh cycle; they are dropped instead of re-fetched.
        Failures are logged and the stale entry is kept. Returns the number of
        locations refreshed.
        """
        dropped = self.cache.prune(2 * self.cache.window_seconds)
        if dropped:
            logger.info(f"[Weather] Dropped {dropped} abandoned location(s)")

        refreshed = 0
        for key in self.cache.stale_keys():
            try:
                report = self.provider.fetch_weather(key)
            except (LocationNotFound, WeatherFetchFailed) as e:
                logger.warning(f"[Weather] Background refresh failed for {key!r}: {e}")
                continue
            self.cache.put(key, report)
            refreshed += 1
        if refreshed or dropped:
            self._persist()
        logger.info(f"[Weather] Refreshed {refreshed} stale location(s)")
        return refreshed
