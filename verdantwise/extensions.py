"""
Third-party extensions wiring.

Initializes shared Flask extension instances so other modules can import
configured objects without circular dependencies. Also defines the service
container create_app() stores on ``app.extensions``.
"""

from __future__ import annotations
from dataclasses import dataclass, field

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Limiter is initialized by create_app() with app config for storage/limits.
# Routes apply per-endpoint limits with @limiter.limit(...) etc.

limiter = Limiter(key_func=get_remote_address)

EXTENSION_KEY = "verdantwise"


@dataclass
class Services:
    """Long-lived service objects shared by all requests of one app."""

    store: object
    weather: object
    ai: object
    engine: object
    plants: object
    achievements: object
    settings: object
    guard: object
    scheduler: object = field(default=None)


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]


def ai_rate_limit() -> str:
    return current_app.config.get("RATELIMIT_AI", "10 per minute")
