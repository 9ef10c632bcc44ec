"""
Defines general JSON endpoints used by the front end.

Endpoints:
- /health: Liveness check
- /settings: Read and update user settings
- /achievements: Catalog with unlock state and counts
- /reminders: Overdue plants, when watering reminders are on
- /weather: Current weather and 3-day forecast for a location
"""

from flask import Blueprint, request, jsonify
from pydantic import ValidationError

from ..extensions import get_services, limiter
from ..services.achievements import COUNTER_WEATHER_CHECKS
from ..services.reminders import get_due_reminders
from ..services.settings import public_settings
from ..utils.errors import VerdantError, error_response_parts, validation_error_parts
from ..utils.validation import MAX_LOCATION_LEN, soft_sanitize


api_bp = Blueprint("api", __name__)


def enforce_ajax_for_mutations():
    """Enforce X-Requested-With header on all state-changing API requests.

    Provides CSRF protection because:
    1. Custom headers cannot be set by cross-origin requests without CORS
    2. HTML forms cannot set custom headers
    3. Only JavaScript (same-origin) can set this header

    Registered as before_request on every JSON blueprint so new
    POST/PUT/DELETE endpoints are automatically protected.
    """
    if request.method in ("POST", "PUT", "DELETE", "PATCH"):
        if request.headers.get("X-Requested-With") != "XMLHttpRequest":
            return jsonify({
                "success": False,
                "error": "Invalid request. Please refresh the page and try again."
            }), 403


api_bp.before_request(enforce_ajax_for_mutations)


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok"})


@api_bp.route("/settings", methods=["GET"])
def get_settings():
    settings = get_services().settings.load()
    return jsonify({"success": True, "settings": public_settings(settings)})


@api_bp.route("/settings", methods=["PUT", "PATCH"])
def update_settings():
    """
    Update user settings.

    Request body (JSON, camelCase, partial):
        {"theme": "dark", "location": "Paris", "timezone": "Europe/Paris", ...}

    An empty geminiApiKey leaves the stored key unchanged; null clears it.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Invalid request body"}), 400

    if "location" in data and data["location"] is not None:
        data["location"] = soft_sanitize(data["location"], MAX_LOCATION_LEN)

    provider = get_services().settings
    try:
        settings = provider.update(data)
    except ValidationError as e:
        payload, status = validation_error_parts(e)
        return jsonify(payload), status

    return jsonify({"success": True, "settings": public_settings(settings)})


@api_bp.route("/achievements", methods=["GET"])
def list_achievements():
    achievements = get_services().achievements
    return jsonify({
        "success": True,
        "achievements": [a.to_json_dict() for a in achievements.list()],
        **achievements.counts(),
    })


@api_bp.route("/reminders", methods=["GET"])
def reminders():
    services = get_services()
    reminder = get_due_reminders(services.plants.list(), services.settings.load())
    return jsonify({"success": True, **reminder})


@api_bp.route("/weather", methods=["GET"])
@limiter.limit("30 per minute")
def weather():
    """
    Current weather + 3-day forecast.

    Query: ?location=... (defaults to the location in settings).
    Errors are explicit here; the weather page shows them rather than mock data.
    """
    services = get_services()
    location = soft_sanitize(request.args.get("location") or services.settings.load().location, MAX_LOCATION_LEN)
    if not location:
        return jsonify({"success": False, "error": "Set your location in Settings to see the weather."}), 400

    try:
        report = services.weather.get_weather(location)
    except VerdantError as e:
        payload, status = error_response_parts(e, f"Weather lookup for {location!r}")
        return jsonify(payload), status

    unlocked = services.achievements.record(COUNTER_WEATHER_CHECKS)
    return jsonify({
        "success": True,
        "location": location,
        **report.to_json_dict(),
        "unlockedAchievements": [a.to_json_dict() for a in unlocked],
    })
