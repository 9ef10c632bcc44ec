"""
Centralized configuration for all environments.

Select a config by setting:
  APP_CONFIG=verdantwise.config.DevConfig      # local dev
  APP_CONFIG=verdantwise.config.ProdConfig     # production (default if unset)
  APP_CONFIG=verdantwise.config.TestConfig     # pytest

Notes:
- SECRET_KEY is read from FLASK_SECRET_KEY (signs the settings cookie)
- Rate limiting uses Flask-Limiter v3 keys (RATELIMIT_*).
"""

from __future__ import annotations
import os
import secrets

from .constants import DEFAULT_AI_MODEL


class BaseConfig:
    # Secrets & basics
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    # Third-party keys
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

    # Generative model defaults (per-call overrides come from user settings)
    AI_MODEL = os.getenv("AI_MODEL", DEFAULT_AI_MODEL)
    AI_TIMEOUT_SECONDS = int(os.getenv("AI_TIMEOUT_SECONDS", "30"))
    AI_MAX_ATTEMPTS = 2  # One retry when structured output fails validation
    AI_ROUTER_CACHE_SIZE = 8  # Distinct (model, key) routers kept alive

    # Weather (free public endpoints, no key needed)
    GEOCODE_URL = os.getenv("GEOCODE_URL", "https://geocode.maps.co")
    WEATHER_URL = os.getenv("WEATHER_URL", "https://api.open-meteo.com/v1")
    WEATHER_TIMEOUT_SECONDS = 8
    WEATHER_CACHE_HOURS = 12  # Staleness window for cached weather
    WEATHER_CACHE_MAX_LOCATIONS = 64  # Oldest location evicted beyond this
    OVERVIEW_CACHE_MAX_ENTRIES = 32
    WEATHER_REFRESH_HOURS = 12  # Background re-fetch-if-stale interval
    WEATHER_SCHEDULER_ENABLED = os.getenv("WEATHER_SCHEDULER_ENABLED", "true").lower() == "true"

    # Watering decisions
    WAIT_RESUME_HOUR = 8  # Local hour to resume watering after rain
    REMINDER_CHECK_HOURS = 6  # Overdue-plant reminder interval

    # Persistence
    STORE_DIR = os.getenv("STORE_DIR", "")  # Empty -> Flask instance folder
    SETTINGS_BACKEND = os.getenv("SETTINGS_BACKEND", "local")  # "local" or "cookie"
    SETTINGS_COOKIE_NAME = "verdantwise-settings"

    # Flask-Limiter v3
    RATELIMIT_ENABLED = os.getenv("RATELIMIT_ENABLED", "true").lower() == "true"
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "60 per minute; 2000 per day")
    RATELIMIT_AI = os.getenv("RATELIMIT_AI", "10 per minute; 200 per day")

    # Photo payloads arrive as data URIs inside JSON
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024


class ProdConfig(BaseConfig):
    """Production settings (selected by default if APP_CONFIG is unset)."""
    pass


class DevConfig(BaseConfig):
    """Developer-friendly settings."""
    ENV = "development"
    DEBUG = True


class TestConfig(BaseConfig):
    """CI/pytest settings."""
    TESTING = True
    DEBUG = True
    RATELIMIT_ENABLED = False
    WEATHER_SCHEDULER_ENABLED = False
    # Never reach real providers from tests
    GEMINI_API_KEY = ""
    OPENAI_API_KEY = ""
