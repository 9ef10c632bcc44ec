"""
Plant CRUD, watering and journal endpoints (JSON).

Endpoints (prefix /api/v1/plants):
- GET    /                      list plants with watering status
- POST   /                      add a plant
- GET    /<id>                  one plant with status
- PUT    /<id>                  update fields (partial, camelCase)
- DELETE /<id>                  delete (achievements stay unlocked)
- POST   /<id>/water            mark as watered now
- POST   /<id>/journal          add a journal entry
- POST   /<id>/schedule         apply an accepted schedule recalculation
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Tuple

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from ..extensions import get_services
from ..services.achievements import (
    COUNTER_JOURNAL_ENTRIES,
    COUNTER_NICKNAMES_USED,
    COUNTER_WATERINGS,
)
from ..services.schedule import next_watering_date, timing_discrepancy, utcnow, watering_status
from ..utils.errors import (
    GENERIC_MESSAGES,
    VerdantError,
    error_response_parts,
    log_warning,
    validation_error_parts,
)
from ..utils.validation import (
    MAX_NAME_LEN,
    normalize_placement,
    parse_frequency,
    sanitize_text,
    soft_sanitize,
)
from .api import enforce_ajax_for_mutations

plants_bp = Blueprint("plants", __name__)
plants_bp.before_request(enforce_ajax_for_mutations)


def _plant_payload(plant) -> Dict[str, Any]:
    return {**plant.to_json_dict(), "status": watering_status(plant, utcnow())}


def _with_storage_warning(body: Dict[str, Any]) -> Dict[str, Any]:
    error = get_services().plants.last_error
    if error is not None:
        log_warning("Plant change kept in memory only", error=error)
        body["warning"] = GENERIC_MESSAGES["storage"]
    return body


def _unlocked(achievements) -> list:
    return [a.to_json_dict() for a in achievements]


def _clean_plant_fields(data: Dict[str, Any]) -> Tuple[Dict[str, Any], Optional[str]]:
    """Normalize user-editable fields. Returns (clean, error)."""
    clean = dict(data)
    text_keys = ("customName", "commonName", "latinName", "notes", "environmentNotes", "careTips",
                 "placement", "recommendedPlacement")
    for key in text_keys:
        if clean.get(key) is not None and not isinstance(clean[key], str):
            return {}, f"{key} must be text."
    for key in ("customName", "commonName", "latinName"):
        if clean.get(key) is not None:
            clean[key] = soft_sanitize(clean[key], MAX_NAME_LEN)
    for key in ("notes", "environmentNotes", "careTips"):
        if clean.get(key) is not None:
            clean[key] = sanitize_text(clean[key], 4000)
    for key in ("placement", "recommendedPlacement"):
        if clean.get(key) is not None:
            placement = normalize_placement(clean[key])
            if placement is None:
                return {}, f"{key} must be Indoor, Outdoor or Indoor/Outdoor."
            clean[key] = placement
    if "wateringFrequency" in clean:
        days, err = parse_frequency(clean["wateringFrequency"])
        if err:
            return {}, err
        clean["wateringFrequency"] = days
    return clean, None


@plants_bp.route("", methods=["GET"])
def list_plants():
    plants = get_services().plants.list()
    return jsonify({"success": True, "plants": [_plant_payload(p) for p in plants]})


@plants_bp.route("", methods=["POST"])
def create_plant():
    """
    Add a plant.

    Request body: Plant fields in camelCase (customName required). Optional
    ``usedSuggestedNickname: true`` when the name came from Sage's suggestions.
    lastWatered defaults to now.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Invalid request body"}), 400

    used_nickname = bool(data.pop("usedSuggestedNickname", False))
    clean, err = _clean_plant_fields(data)
    if err:
        return jsonify({"success": False, "error": err}), 400
    clean.setdefault("lastWatered", utcnow().isoformat())

    services = get_services()
    try:
        plant = services.plants.add(clean)
    except ValidationError as e:
        payload, status = validation_error_parts(e)
        return jsonify(payload), status

    garden = services.plants.list()
    unlocked = services.achievements.record_plant_count(garden)
    if used_nickname:
        unlocked += services.achievements.record(COUNTER_NICKNAMES_USED, garden)

    body = {"success": True, "plant": _plant_payload(plant), "unlockedAchievements": _unlocked(unlocked)}
    return jsonify(_with_storage_warning(body)), 201


@plants_bp.route("/<plant_id>", methods=["GET"])
def get_plant(plant_id: str):
    try:
        plant = get_services().plants.get(plant_id)
    except VerdantError as e:
        payload, status = error_response_parts(e)
        return jsonify(payload), status
    return jsonify({"success": True, "plant": _plant_payload(plant)})


@plants_bp.route("/<plant_id>", methods=["PUT", "PATCH"])
def update_plant(plant_id: str):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Invalid request body"}), 400

    used_nickname = bool(data.pop("usedSuggestedNickname", False))
    clean, err = _clean_plant_fields(data)
    if err:
        return jsonify({"success": False, "error": err}), 400

    services = get_services()
    try:
        plant = services.plants.update(plant_id, clean)
    except ValidationError as e:
        payload, status = validation_error_parts(e)
        return jsonify(payload), status
    except VerdantError as e:
        payload, status = error_response_parts(e)
        return jsonify(payload), status

    garden = services.plants.list()
    # Species achievements depend on commonName, which edits can change
    unlocked = services.achievements.record_plant_count(garden)
    if used_nickname:
        unlocked += services.achievements.record(COUNTER_NICKNAMES_USED, garden)

    body = {"success": True, "plant": _plant_payload(plant), "unlockedAchievements": _unlocked(unlocked)}
    return jsonify(_with_storage_warning(body))


@plants_bp.route("/<plant_id>", methods=["DELETE"])
def delete_plant(plant_id: str):
    try:
        get_services().plants.delete(plant_id)
    except VerdantError as e:
        payload, status = error_response_parts(e)
        return jsonify(payload), status
    return jsonify(_with_storage_warning({"success": True}))


@plants_bp.route("/<plant_id>/water", methods=["POST"])
def water_plant(plant_id: str):
    """
    Mark a plant as watered now.

    Response includes ``timingDiscrepancy`` ("on time", "2 days early", ...)
    so the client can ask for soil feedback and request a recalculation.
    """
    services = get_services()
    try:
        before = services.plants.get(plant_id)
        now = utcnow()
        timing = timing_discrepancy(now, next_watering_date(before.last_watered, before.watering_frequency))
        plant = services.plants.mark_watered(plant_id, now)
    except VerdantError as e:
        payload, status = error_response_parts(e)
        return jsonify(payload), status

    unlocked = services.achievements.record(COUNTER_WATERINGS, services.plants.list())
    body = {
        "success": True,
        "plant": _plant_payload(plant),
        "timingDiscrepancy": timing,
        "unlockedAchievements": _unlocked(unlocked),
    }
    return jsonify(_with_storage_warning(body))


@plants_bp.route("/<plant_id>/journal", methods=["POST"])
def add_journal_entry(plant_id: str):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Invalid request body"}), 400
    notes, photo_url = data.get("notes"), data.get("photoUrl")
    if any(v is not None and not isinstance(v, str) for v in (notes, photo_url)):
        return jsonify({"success": False, "error": "notes and photoUrl must be text."}), 400
    notes = sanitize_text(notes, 2000)
    if not notes:
        return jsonify({"success": False, "error": "Journal notes are required."}), 400

    services = get_services()
    try:
        plant, entry = services.plants.add_journal_entry(plant_id, notes, photo_url)
    except VerdantError as e:
        payload, status = error_response_parts(e)
        return jsonify(payload), status

    unlocked = services.achievements.record(COUNTER_JOURNAL_ENTRIES, services.plants.list())
    body = {
        "success": True,
        "plant": _plant_payload(plant),
        "entry": entry.to_json_dict(),
        "unlockedAchievements": _unlocked(unlocked),
    }
    return jsonify(_with_storage_warning(body)), 201


@plants_bp.route("/<plant_id>/schedule", methods=["POST"])
def apply_schedule(plant_id: str):
    """Apply a recalculated frequency the user accepted: {"newWateringFrequency": 5}."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Invalid request body"}), 400
    days, err = parse_frequency(data.get("newWateringFrequency"))
    if err or days is None:
        return jsonify({"success": False, "error": err or "newWateringFrequency is required."}), 400

    try:
        plant = get_services().plants.apply_recalculation(plant_id, days)
    except VerdantError as e:
        payload, status = error_response_parts(e)
        return jsonify(payload), status
    return jsonify(_with_storage_warning({"success": True, "plant": _plant_payload(plant)}))
