"""
Application factory and global configuration.

Creates the Flask app, applies security headers, configures rate limiting,
builds the long-lived services (store, weather, AI client, advice engine,
plant/settings/achievement stores) and registers blueprints, CLI commands
and the background weather refresh. This file keeps startup/config concerns
together and avoids domain logic here.
"""

from __future__ import annotations
import logging
import os
from flask import Flask, Response, jsonify
from dotenv import load_dotenv  # <-- ensure .env is loaded for local dev
from .extensions import EXTENSION_KEY, Services, limiter
from .routes.advice import advice_bp
from .routes.api import api_bp
from .routes.plants import plants_bp
from .services.achievements import AchievementStore
from .services.ai import AIClient
from .services.plants import PlantStore
from .services.reminders import run_reminder_check
from .services.settings import CookieSettingsProvider, LocalSettingsProvider
from .services.storage import JsonStore
from .services.watering_advice import AdviceEngine
from .services.weather import WeatherProvider, WeatherService
from .utils.cache import InFlightGuard, StalenessCache


def _build_services(app: Flask) -> Services:
    cfg = app.config
    store_dir = cfg.get("STORE_DIR") or app.instance_path
    os.makedirs(store_dir, exist_ok=True)
    store = JsonStore(store_dir)

    weather = WeatherService(
        WeatherProvider(cfg["GEOCODE_URL"], cfg["WEATHER_URL"], timeout=cfg["WEATHER_TIMEOUT_SECONDS"]),
        StalenessCache(cfg["WEATHER_CACHE_HOURS"] * 3600, maxsize=cfg["WEATHER_CACHE_MAX_LOCATIONS"]),
        store,
    )
    ai = AIClient.from_config(cfg)
    engine = AdviceEngine(
        weather,
        ai,
        store=store,
        overview_cache=StalenessCache(
            cfg["WEATHER_CACHE_HOURS"] * 3600, maxsize=cfg["OVERVIEW_CACHE_MAX_ENTRIES"]
        ),
        wait_resume_hour=cfg["WAIT_RESUME_HOUR"],
    )

    backend = cfg.get("SETTINGS_BACKEND", "local")
    if backend == "cookie":
        settings = CookieSettingsProvider(
            app.secret_key,
            cookie_name=cfg["SETTINGS_COOKIE_NAME"],
            secure=cfg.get("SESSION_COOKIE_SECURE", False),
        )
    elif backend == "local":
        settings = LocalSettingsProvider(store)
    else:
        raise RuntimeError(f"Unknown SETTINGS_BACKEND {backend!r} (expected 'local' or 'cookie')")

    return Services(
        store=store,
        weather=weather,
        ai=ai,
        engine=engine,
        plants=PlantStore(store),
        achievements=AchievementStore(store),
        settings=settings,
        guard=InFlightGuard(),
    )


def _start_weather_scheduler(app: Flask, services: Services) -> None:
    """Re-fetch stale weather every WEATHER_REFRESH_HOURS and log overdue-plant reminders."""
    from apscheduler.schedulers.background import BackgroundScheduler

    scheduler = BackgroundScheduler()

    # APScheduler runs jobs in background threads without app context
    def run_weather_refresh():
        with app.app_context():
            services.weather.refresh_stale()

    scheduler.add_job(
        func=run_weather_refresh,
        trigger="interval",
        hours=app.config["WEATHER_REFRESH_HOURS"],
        id="weather_refresh",
        name="Refresh Stale Weather",
        replace_existing=True,
    )

    # Cookie settings only exist inside a request
    if isinstance(services.settings, LocalSettingsProvider):
        def run_reminder_job():
            with app.app_context():
                run_reminder_check(services.plants, services.settings)

        scheduler.add_job(
            func=run_reminder_job,
            trigger="interval",
            hours=app.config["REMINDER_CHECK_HOURS"],
            id="watering_reminders",
            name="Overdue Plant Reminders",
            replace_existing=True,
        )

    scheduler.start()
    services.scheduler = scheduler
    app.logger.info("[OK] Background scheduler started (weather refresh every "
                    f"{app.config['WEATHER_REFRESH_HOURS']}h)")

    import atexit
    atexit.register(lambda: scheduler.shutdown(wait=False))


def create_app(config_object: str | None = None, overrides: dict | None = None) -> Flask:
    # Load .env early (for local dev)
    # override=False so production env vars are not overwritten by a stale .env file
    load_dotenv(override=False)

    app = Flask(__name__)

    # --- Load central config.py first ---
    # Allow APP_CONFIG to override (e.g., verdantwise.config.DevConfig)
    cfg_path = config_object or os.getenv("APP_CONFIG", "verdantwise.config.ProdConfig")
    try:
        app.config.from_object(cfg_path)
    except (ImportError, AttributeError) as e:
        app.logger.warning(f"Could not load config object {cfg_path}: {e}")
        app.config.from_object("verdantwise.config.ProdConfig")

    if overrides:
        app.config.update(overrides)

    if not app.config.get("TESTING") and not app.debug:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    limiter.init_app(app)

    if not app.config.get("RATELIMIT_ENABLED", True):
        limiter.enabled = False

    # Ensure SECRET_KEY is applied from config
    if not app.secret_key:
        app.secret_key = app.config.get("SECRET_KEY", "")

    services = _build_services(app)
    app.extensions[EXTENSION_KEY] = services

    if isinstance(services.settings, CookieSettingsProvider):
        app.after_request(services.settings.apply_cookie)

    @app.after_request
    def apply_security_headers(resp: Response) -> Response:
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        resp.headers["X-Frame-Options"] = "DENY"
        return resp

    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({
            "success": False,
            "error": "Sage needs a short break. Please try again in a minute.",
        }), 429

    # Blueprints
    app.register_blueprint(api_bp, url_prefix="/api/v1")
    app.register_blueprint(plants_bp, url_prefix="/api/v1/plants")
    app.register_blueprint(advice_bp, url_prefix="/api/v1")

    # CLI commands
    from .cli import register_commands
    register_commands(app)

    # --- Background weather refresh ---
    # Skip in test mode and in the reloader's parent process
    if app.config.get("WEATHER_SCHEDULER_ENABLED") and not app.config.get("TESTING", False):
        if not app.debug or os.environ.get("WERKZEUG_RUN_MAIN") == "true":
            try:
                _start_weather_scheduler(app, services)
            except Exception as e:
                app.logger.error(f"[ERROR] Failed to start background scheduler: {e}")

    return app
