"""
Sage endpoints: watering advice, schedule recalculation and plant intelligence.

All endpoints are POST, rate-limited with RATELIMIT_AI, and take the model
choice and optional API key from the user's settings. Per-plant requests
are guarded so the same operation cannot run twice at once for one plant
(409 while in flight).

Endpoints (prefix /api/v1):
- /plants/<id>/watering-advice    Yes / No / Wait decision
- /plants/<id>/recalculate        proposed new frequency (not applied)
- /plants/<id>/health-check       photo diagnosis (+ regions, re-identification)
- /plants/<id>/care-tips          regenerate care tips for a saved plant
- /plants/<id>/chat               ask Sage about a plant
- /advice/weather                 proactive advice for every plant
- /advice/overview                daily garden digest
- /identify                       identify a plant from a photo
- /diagnose-regions               regions of interest on a photo
- /care-tips                      care tips for a species (new plant flow)
- /nicknames                      nickname suggestions
- /placement                      recommended placement for a species
- /placement-feedback             feedback on the user's placement choice
"""

from __future__ import annotations
from typing import Any, Dict

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from ..extensions import ai_rate_limit, get_services, limiter
from ..services import plant_intelligence
from ..services.achievements import (
    COUNTER_CHATS,
    COUNTER_HEALTH_CHECKS,
    COUNTER_PLACEMENT_FEEDBACK,
    COUNTER_TIP_REGENERATIONS,
)
from ..services.ai import AIConfig
from ..services.schedule import plant_is_overdue, utcnow
from ..utils.errors import GENERIC_MESSAGES, VerdantError, error_response_parts, log_info, validation_error_parts
from ..utils.validation import (
    MAX_LOCATION_LEN,
    is_data_uri,
    normalize_placement,
    sanitize_text,
    soft_sanitize,
    validate_recalculation_request,
)
from .api import enforce_ajax_for_mutations

advice_bp = Blueprint("advice", __name__)
advice_bp.before_request(enforce_ajax_for_mutations)


def _body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _fail(error: Exception, context: str):
    payload, status = error_response_parts(error, context)
    return jsonify(payload), status


def _bad_request(message: str):
    return jsonify({"success": False, "error": message}), 400


def _location(data: Dict[str, Any], settings) -> str:
    return soft_sanitize(data.get("location") or settings.location, MAX_LOCATION_LEN)


def _photo(data: Dict[str, Any]):
    photo = data.get("photoDataUri")
    return photo if is_data_uri(photo) else None


# ============================================================================
# Watering
# ============================================================================

@advice_bp.route("/plants/<plant_id>/watering-advice", methods=["POST"])
@limiter.limit(ai_rate_limit)
def watering_advice(plant_id: str):
    """
    Decide whether to water a plant now.

    Body (optional): {"location": "..."}; defaults to the settings location.
    Weather and model failures are reported explicitly (no mock data here).
    """
    services = get_services()
    settings = services.settings.load()
    location = _location(_body(), settings)

    try:
        plant = services.plants.get(plant_id)
        if plant_is_overdue(plant) and not location:
            return _bad_request("Set your location in Settings to get weather-aware advice.")
        with services.guard.claim(f"decide:{plant_id}"):
            decision, source = services.engine.decide_watering(
                plant, location, AIConfig.from_settings(settings), settings.timezone
            )
    except VerdantError as e:
        return _fail(e, f"Watering advice for {plant_id}")

    log_info("Watering advice", plant_id=plant_id, should_water=decision.should_water, source=source)
    return jsonify({"success": True, "advice": decision.to_json_dict(), "source": source})


@advice_bp.route("/plants/<plant_id>/recalculate", methods=["POST"])
@limiter.limit(ai_rate_limit)
def recalculate(plant_id: str):
    """
    Propose a new watering frequency from soil feedback.

    Body: {"feedback": "...", "timingDiscrepancy": "2 days early", "location"?, "environmentNotes"?}
    The result is only a proposal; POST /plants/<id>/schedule applies it.
    """
    services = get_services()
    settings = services.settings.load()
    data = _body()
    data.setdefault("location", settings.location)
    payload, err = validate_recalculation_request(data)
    if err:
        return _bad_request(err)

    try:
        plant = services.plants.get(plant_id)
        if not plant.watering_frequency:
            return _bad_request("Set a watering frequency before recalculating the schedule.")
        with services.guard.claim(f"recalculate:{plant_id}"):
            result, source = services.engine.recalculate_schedule(
                common_name=plant.common_name or plant.custom_name,
                current_frequency=plant.watering_frequency,
                feedback=payload["feedback"],
                timing_discrepancy=payload["timing_discrepancy"],
                location=payload["location"],
                config=AIConfig.from_settings(settings),
                environment_notes=payload["environment_notes"] or plant.environment_notes,
            )
    except VerdantError as e:
        return _fail(e, f"Schedule recalculation for {plant_id}")

    return jsonify({
        "success": True,
        "currentWateringFrequency": plant.watering_frequency,
        "recalculation": result.to_json_dict(),
        "source": source,
    })


@advice_bp.route("/advice/weather", methods=["POST"])
@limiter.limit(ai_rate_limit)
def weather_and_plant_advice():
    """Forecast plus advice for every plant. Falls back to mock weather if the provider fails."""
    services = get_services()
    settings = services.settings.load()
    location = _location(_body(), settings)
    if not location:
        return _bad_request("Set your location in Settings to get weather-aware advice.")

    try:
        with services.guard.claim(f"weather-advice:{location.lower()}"):
            result = services.engine.get_weather_and_plant_advice(
                location, services.plants.list(), AIConfig.from_settings(settings)
            )
    except VerdantError as e:
        return _fail(e, "Weather advice")

    return jsonify({
        "success": True,
        "location": location,
        **result["weather"].to_json_dict(),
        "plantAdvice": [a.to_json_dict() for a in result["plantAdvice"]],
        "source": result["source"],
    })


@advice_bp.route("/advice/overview", methods=["POST"])
@limiter.limit(ai_rate_limit)
def garden_overview():
    services = get_services()
    settings = services.settings.load()
    location = _location(_body(), settings)
    now = utcnow()
    plants = [
        {
            "customName": p.custom_name,
            "commonName": p.common_name,
            "isWateringOverdue": plant_is_overdue(p, now),
        }
        for p in services.plants.list()
    ]

    try:
        overview, source = services.engine.get_garden_overview(location, plants, AIConfig.from_settings(settings))
    except VerdantError as e:
        return _fail(e, "Garden overview")
    return jsonify({"success": True, **overview.to_json_dict(), "source": source})


# ============================================================================
# Plant intelligence
# ============================================================================

@advice_bp.route("/identify", methods=["POST"])
@limiter.limit(ai_rate_limit)
def identify():
    photo = _photo(_body())
    if not photo:
        return _bad_request("A photo (base64 image data URI) is required.")
    services = get_services()
    try:
        result = plant_intelligence.identify_plant(services.ai, AIConfig.from_settings(services.settings.load()), photo)
    except VerdantError as e:
        return _fail(e, "Plant identification")
    return jsonify({"success": True, "identification": result.to_json_dict()})


@advice_bp.route("/diagnose-regions", methods=["POST"])
@limiter.limit(ai_rate_limit)
def diagnose_regions():
    photo = _photo(_body())
    if not photo:
        return _bad_request("A photo (base64 image data URI) is required.")
    services = get_services()
    try:
        result = plant_intelligence.diagnose_regions(services.ai, AIConfig.from_settings(services.settings.load()), photo)
    except VerdantError as e:
        return _fail(e, "Region diagnosis")
    return jsonify({"success": True, **result.to_json_dict()})


@advice_bp.route("/plants/<plant_id>/health-check", methods=["POST"])
@limiter.limit(ai_rate_limit)
def health_check(plant_id: str):
    """
    Diagnose a saved plant from a new photo and store the result.

    Body: {"photoDataUri": "data:image/...", "notes"?: "..."}
    Updates health, annotated regions and (when re-identified) names.
    """
    data = _body()
    photo = _photo(data)
    if not photo:
        return _bad_request("A photo (base64 image data URI) is required.")

    services = get_services()
    try:
        plant = services.plants.get(plant_id)
        with services.guard.claim(f"health:{plant_id}"):
            result = plant_intelligence.check_plant_health(
                services.ai,
                AIConfig.from_settings(services.settings.load()),
                photo,
                notes=sanitize_text(data.get("notes"), 1000) or None,
                current_common_name=plant.common_name or None,
            )
        plant = services.plants.update(plant_id, {
            "health": {"isHealthy": result.is_healthy, "diagnosis": result.diagnosis},
            "annotatedRegions": [r.to_json_dict() for r in result.regions],
            "commonName": result.common_name or plant.common_name,
            "latinName": result.latin_name or plant.latin_name,
        })
    except VerdantError as e:
        return _fail(e, f"Health check for {plant_id}")
    except ValidationError as e:
        payload, status = validation_error_parts(e)
        return jsonify(payload), status

    garden = services.plants.list()
    unlocked = services.achievements.record(COUNTER_HEALTH_CHECKS, garden)
    unlocked += services.achievements.record_plant_count(garden)
    body = {
        "success": True,
        "healthCheck": result.to_json_dict(),
        "plant": plant.to_json_dict(),
        "unlockedAchievements": [a.to_json_dict() for a in unlocked],
    }
    if services.plants.last_error is not None:
        body["warning"] = GENERIC_MESSAGES["storage"]
    return jsonify(body)


@advice_bp.route("/care-tips", methods=["POST"])
@limiter.limit(ai_rate_limit)
def care_tips():
    """Care tips for a species before the plant is saved. Body: {"species": "...", ...}."""
    data = _body()
    species = soft_sanitize(data.get("species"))
    if not species:
        return _bad_request("Plant species is required.")
    services = get_services()
    settings = services.settings.load()
    try:
        result = plant_intelligence.get_care_tips(
            services.ai,
            AIConfig.from_settings(settings),
            species,
            estimated_age=soft_sanitize(data.get("estimatedAge")) or None,
            location=_location(data, settings) or None,
            environment_notes=sanitize_text(data.get("environmentNotes"), 500) or None,
            placement=normalize_placement(data.get("placement")),
        )
    except VerdantError as e:
        return _fail(e, "Care tips")
    return jsonify({"success": True, "careTips": result.to_json_dict()})


@advice_bp.route("/plants/<plant_id>/care-tips", methods=["POST"])
@limiter.limit(ai_rate_limit)
def regenerate_care_tips(plant_id: str):
    """Regenerate and store care tips (and watering schedule) for a saved plant."""
    services = get_services()
    settings = services.settings.load()
    try:
        plant = services.plants.get(plant_id)
        with services.guard.claim(f"care-tips:{plant_id}"):
            result = plant_intelligence.get_care_tips(
                services.ai,
                AIConfig.from_settings(settings),
                plant.common_name or plant.custom_name,
                estimated_age=plant.estimated_age,
                location=settings.location or None,
                environment_notes=plant.environment_notes,
                last_watered=plant.last_watered.isoformat() if plant.last_watered else None,
                placement=plant.placement,
            )
        plant = services.plants.update(plant_id, {
            "careTips": result.care_tips,
            "wateringFrequency": result.watering_frequency,
            "wateringTime": result.watering_time,
            "wateringAmount": result.watering_amount,
        })
    except VerdantError as e:
        return _fail(e, f"Care tips for {plant_id}")
    except ValidationError as e:
        payload, status = validation_error_parts(e)
        return jsonify(payload), status

    unlocked = services.achievements.record(COUNTER_TIP_REGENERATIONS, services.plants.list())
    return jsonify({
        "success": True,
        "plant": plant.to_json_dict(),
        "unlockedAchievements": [a.to_json_dict() for a in unlocked],
    })


@advice_bp.route("/nicknames", methods=["POST"])
@limiter.limit(ai_rate_limit)
def nicknames():
    data = _body()
    common = soft_sanitize(data.get("commonName"))
    latin = soft_sanitize(data.get("latinName"))
    if not common and not latin:
        return _bad_request("commonName or latinName is required.")
    services = get_services()
    try:
        result = plant_intelligence.get_nicknames(
            services.ai, AIConfig.from_settings(services.settings.load()), common, latin
        )
    except VerdantError as e:
        return _fail(e, "Nicknames")
    return jsonify({"success": True, **result.to_json_dict()})


@advice_bp.route("/placement", methods=["POST"])
@limiter.limit(ai_rate_limit)
def placement():
    species = soft_sanitize(_body().get("species"))
    if not species:
        return _bad_request("Plant species is required.")
    services = get_services()
    try:
        result = plant_intelligence.get_placement(services.ai, AIConfig.from_settings(services.settings.load()), species)
    except VerdantError as e:
        return _fail(e, "Placement")
    return jsonify({"success": True, **result.to_json_dict()})


@advice_bp.route("/placement-feedback", methods=["POST"])
@limiter.limit(ai_rate_limit)
def placement_feedback():
    data = _body()
    species = soft_sanitize(data.get("species"))
    recommended = normalize_placement(data.get("recommendedPlacement"))
    choice = normalize_placement(data.get("userChoice"))
    if not species or not recommended or not choice:
        return _bad_request("species, recommendedPlacement and userChoice are required.")

    services = get_services()
    try:
        result = plant_intelligence.get_placement_feedback(
            services.ai, AIConfig.from_settings(services.settings.load()), species, recommended, choice
        )
    except VerdantError as e:
        return _fail(e, "Placement feedback")

    unlocked = services.achievements.record(COUNTER_PLACEMENT_FEEDBACK, services.plants.list())
    return jsonify({
        "success": True,
        **result.to_json_dict(),
        "unlockedAchievements": [a.to_json_dict() for a in unlocked],
    })


@advice_bp.route("/plants/<plant_id>/chat", methods=["POST"])
@limiter.limit(ai_rate_limit)
def chat(plant_id: str):
    """
    Ask Sage about a plant. Body: {"question": "...", "photoDataUri"?: "..."}.

    Care tips and journal entries are sent as context. A suggested new
    watering amount is returned, not applied.
    """
    data = _body()
    question = sanitize_text(data.get("question"), 1200)
    if not question:
        return _bad_request("Question is required.")

    services = get_services()
    try:
        plant = services.plants.get(plant_id)
        with services.guard.claim(f"chat:{plant_id}"):
            answer = plant_intelligence.chat_about_plant(
                services.ai,
                AIConfig.from_settings(services.settings.load()),
                plant.custom_name,
                question,
                context=plant.care_tips,
                journal=plant.journal,
                placement=plant.placement,
                photo_data_uri=_photo(data),
            )
    except VerdantError as e:
        return _fail(e, f"Chat for {plant_id}")

    unlocked = services.achievements.record(COUNTER_CHATS, services.plants.list())
    return jsonify({
        "success": True,
        **answer.to_json_dict(),
        "unlockedAchievements": [a.to_json_dict() for a in unlocked],
    })
