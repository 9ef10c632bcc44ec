"""HTTP endpoints: plants, watering flow, advice, settings and weather."""

from datetime import timedelta

from verdantwise import create_app
from verdantwise.services.schedule import utcnow
from verdantwise.services.schemas import (
    CareTips,
    ChatAnswer,
    PlantHealthCheck,
    PlantIdentification,
    ScheduleRecalculation,
    WateringAdviceDecision,
)
from verdantwise.utils.errors import LocationNotFound


def _create(client, ajax, **fields):
    body = {"customName": "Fernando", "commonName": "Boston Fern", "wateringFrequency": 7, **fields}
    resp = client.post("/api/v1/plants", json=body, headers=ajax)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["plant"]


# ============================================================================
# Plants
# ============================================================================

def test_health(client):
    assert client.get("/api/v1/health").get_json() == {"status": "ok"}


def test_mutations_require_ajax_header(client):
    resp = client.post("/api/v1/plants", json={"customName": "Fernando"})
    assert resp.status_code == 403


def test_create_list_get_delete(client, ajax):
    plant = _create(client, ajax)
    assert plant["status"]["scheduled"] is True
    assert plant["status"]["overdue"] is False

    listed = client.get("/api/v1/plants").get_json()["plants"]
    assert [p["id"] for p in listed] == [plant["id"]]

    assert client.get(f"/api/v1/plants/{plant['id']}").status_code == 200
    assert client.delete(f"/api/v1/plants/{plant['id']}", headers=ajax).status_code == 200
    assert client.get(f"/api/v1/plants/{plant['id']}").status_code == 404


def test_first_plant_unlocks_achievement(client, ajax):
    resp = client.post("/api/v1/plants", json={"customName": "Fernando"}, headers=ajax)
    assert [a["id"] for a in resp.get_json()["unlockedAchievements"]] == ["first_plant"]


def test_invalid_fields_are_rejected(client, ajax):
    resp = client.post("/api/v1/plants", json={"customName": "Fern", "wateringFrequency": 0}, headers=ajax)
    assert resp.status_code == 400
    resp = client.post("/api/v1/plants", json={"customName": "Fern", "placement": "Garage"}, headers=ajax)
    assert resp.status_code == 400
    resp = client.post("/api/v1/plants", json={"commonName": "Fern"}, headers=ajax)
    assert resp.status_code == 400
    assert resp.get_json()["details"]


def test_update_plant(client, ajax):
    plant = _create(client, ajax)
    resp = client.put(f"/api/v1/plants/{plant['id']}", json={"placement": "indoor"}, headers=ajax)
    assert resp.status_code == 200
    assert resp.get_json()["plant"]["placement"] == "Indoor"


def test_water_reports_timing(client, ajax):
    plant = _create(client, ajax)
    resp = client.post(f"/api/v1/plants/{plant['id']}/water", headers=ajax)
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["timingDiscrepancy"].endswith("early")
    assert body["plant"]["lastWatered"]


def test_journal_entries_newest_first(client, ajax):
    plant = _create(client, ajax)
    client.post(f"/api/v1/plants/{plant['id']}/journal", json={"notes": "New leaf"}, headers=ajax)
    resp = client.post(f"/api/v1/plants/{plant['id']}/journal", json={"notes": "Repotted"}, headers=ajax)
    assert resp.status_code == 201
    assert [e["notes"] for e in resp.get_json()["plant"]["journal"]] == ["Repotted", "New leaf"]

    empty = client.post(f"/api/v1/plants/{plant['id']}/journal", json={"notes": " "}, headers=ajax)
    assert empty.status_code == 400


def test_apply_schedule(client, ajax):
    plant = _create(client, ajax)
    resp = client.post(f"/api/v1/plants/{plant['id']}/schedule", json={"newWateringFrequency": 5}, headers=ajax)
    assert resp.get_json()["plant"]["wateringFrequency"] == 5

    bad = client.post(f"/api/v1/plants/{plant['id']}/schedule", json={"newWateringFrequency": 0}, headers=ajax)
    assert bad.status_code == 400


def test_non_object_bodies_are_rejected(client, ajax):
    plant = _create(client, ajax)
    for path in ("journal", "schedule"):
        resp = client.post(f"/api/v1/plants/{plant['id']}/{path}", json=["notes"], headers=ajax)
        assert resp.status_code == 400

    resp = client.post(f"/api/v1/plants/{plant['id']}/journal", json={"notes": 42}, headers=ajax)
    assert resp.status_code == 400
    resp = client.post("/api/v1/plants", json={"customName": ["Fern"]}, headers=ajax)
    assert resp.status_code == 400
    resp = client.put(f"/api/v1/plants/{plant['id']}", json={"placement": 3}, headers=ajax)
    assert resp.status_code == 400


# ============================================================================
# Advice
# ============================================================================

def test_watering_advice_not_due(client, ajax, fake_provider, fake_ai):
    plant = _create(client, ajax)
    resp = client.post(f"/api/v1/plants/{plant['id']}/watering-advice", json={"location": "Paris"}, headers=ajax)
    body = resp.get_json()
    assert body["advice"]["shouldWater"] == "No"
    assert body["source"] == "schedule"
    assert fake_provider.calls == []


def test_watering_advice_outdoor_rain_waits(client, ajax, fake_provider, fake_ai, report_factory):
    last = (utcnow() - timedelta(days=10)).isoformat()
    plant = _create(client, ajax, lastWatered=last, placement="Outdoor")
    fake_provider.report = report_factory(current="Rain")
    fake_ai.replies.append(WateringAdviceDecision(should_water="Yes", reason="Water it."))

    resp = client.post(f"/api/v1/plants/{plant['id']}/watering-advice", json={"location": "Paris"}, headers=ajax)
    body = resp.get_json()
    assert body["advice"]["shouldWater"] == "Wait"
    assert body["advice"]["newWateringTime"]
    assert body["source"] == "rule"


def test_watering_advice_unknown_location(client, ajax, fake_provider, fake_ai):
    last = (utcnow() - timedelta(days=10)).isoformat()
    plant = _create(client, ajax, lastWatered=last)
    fake_provider.error = LocationNotFound("nowhere")

    resp = client.post(f"/api/v1/plants/{plant['id']}/watering-advice", json={"location": "Nowhere"}, headers=ajax)
    assert resp.status_code == 404
    assert resp.get_json()["success"] is False


def test_watering_advice_needs_location_when_due(client, ajax, fake_provider, fake_ai):
    last = (utcnow() - timedelta(days=10)).isoformat()
    plant = _create(client, ajax, lastWatered=last)
    resp = client.post(f"/api/v1/plants/{plant['id']}/watering-advice", headers=ajax)
    assert resp.status_code == 400


def test_concurrent_advice_for_same_plant_is_rejected(client, ajax, services, fake_provider, fake_ai):
    last = (utcnow() - timedelta(days=10)).isoformat()
    plant = _create(client, ajax, lastWatered=last)
    with services.guard.claim(f"decide:{plant['id']}"):
        resp = client.post(
            f"/api/v1/plants/{plant['id']}/watering-advice", json={"location": "Paris"}, headers=ajax
        )
    assert resp.status_code == 409


def test_recalculate_returns_proposal_only(client, ajax, fake_provider, fake_ai):
    plant = _create(client, ajax)
    fake_ai.replies.append(ScheduleRecalculation(new_watering_frequency=7, reasoning="Keep it."))

    resp = client.post(
        f"/api/v1/plants/{plant['id']}/recalculate",
        json={"feedback": "bone dry", "timingDiscrepancy": "3 days early", "location": "Paris"},
        headers=ajax,
    )
    body = resp.get_json()
    assert body["recalculation"]["newWateringFrequency"] == 3
    assert body["currentWateringFrequency"] == 7
    assert client.get(f"/api/v1/plants/{plant['id']}").get_json()["plant"]["wateringFrequency"] == 7


def test_intelligence_without_key_reports_failure(client, ajax):
    resp = client.post("/api/v1/placement", json={"species": "Monstera"}, headers=ajax)
    assert resp.status_code == 502
    assert resp.get_json()["success"] is False


def test_overview_prompt_without_location(client, ajax):
    resp = client.post("/api/v1/advice/overview", json={}, headers=ajax)
    assert resp.get_json()["source"] == "prompt"


# ============================================================================
# Settings & weather
# ============================================================================

def test_settings_round_trip_hides_key(client, ajax):
    resp = client.put(
        "/api/v1/settings",
        json={"theme": "dark", "location": "Paris", "geminiApiKey": "secret"},
        headers=ajax,
    )
    settings = resp.get_json()["settings"]
    assert settings["theme"] == "dark"
    assert settings["hasGeminiApiKey"] is True
    assert "geminiApiKey" not in settings

    # Empty key keeps the saved one
    resp = client.put("/api/v1/settings", json={"geminiApiKey": ""}, headers=ajax)
    assert resp.get_json()["settings"]["hasGeminiApiKey"] is True

    resp = client.put("/api/v1/settings", json={"geminiApiKey": None}, headers=ajax)
    assert resp.get_json()["settings"]["hasGeminiApiKey"] is False


def test_invalid_settings_are_rejected(client, ajax):
    assert client.put("/api/v1/settings", json={"theme": "neon"}, headers=ajax).status_code == 400
    assert client.put("/api/v1/settings", json={"timezone": "Mars/Base"}, headers=ajax).status_code == 400


def test_weather_endpoint_unlocks_weather_watcher(client, fake_provider):
    resp = client.get("/api/v1/weather?location=Paris")
    body = resp.get_json()
    assert resp.status_code == 200
    assert len(body["forecast"]) == 3
    assert [a["id"] for a in body["unlockedAchievements"]] == ["weather_watcher"]


def test_weather_endpoint_reports_provider_errors(client, fake_provider):
    fake_provider.error = LocationNotFound("nowhere")
    resp = client.get("/api/v1/weather?location=Nowhere")
    assert resp.status_code == 404


def test_achievements_listing(client):
    body = client.get("/api/v1/achievements").get_json()
    assert body["total"] == len(body["achievements"])
    assert body["unlocked"] == 0


def test_reminders_list_overdue_plants_when_enabled(client, ajax):
    last = (utcnow() - timedelta(days=10)).isoformat()
    overdue = _create(client, ajax, customName="Thirsty", lastWatered=last)
    _create(client, ajax, customName="Fine")

    body = client.get("/api/v1/reminders").get_json()
    assert body["enabled"] is True
    assert [p["id"] for p in body["plants"]] == [overdue["id"]]
    assert body["body"] == "Your plants need a drink: Thirsty"

    client.put("/api/v1/settings", json={"wateringReminders": False}, headers=ajax)
    body = client.get("/api/v1/reminders").get_json()
    assert body["enabled"] is False
    assert body["plants"] == []


def test_cookie_settings_backend(tmp_path, ajax):
    app = create_app(
        "verdantwise.config.TestConfig",
        {"STORE_DIR": str(tmp_path / "store"), "SETTINGS_BACKEND": "cookie"},
    )
    client = app.test_client()

    resp = client.put("/api/v1/settings", json={"location": "Lisbon"}, headers=ajax)
    assert "verdantwise-settings=" in resp.headers.get("Set-Cookie", "")
    assert client.get("/api/v1/settings").get_json()["settings"]["location"] == "Lisbon"


# ============================================================================
# Plant intelligence
# ============================================================================

PHOTO = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAE="


def test_identify_requires_photo(client, ajax, fake_ai):
    resp = client.post("/api/v1/identify", json={"photoDataUri": "not-a-photo"}, headers=ajax)
    assert resp.status_code == 400
    assert fake_ai.calls == []


def test_identify(client, ajax, fake_ai):
    fake_ai.replies.append(PlantIdentification(
        is_plant=True, common_name="Monstera", latin_name="Monstera deliciosa",
        confidence=0.93, estimated_age="Mature plant",
    ))
    resp = client.post("/api/v1/identify", json={"photoDataUri": PHOTO}, headers=ajax)
    body = resp.get_json()
    assert body["identification"]["latinName"] == "Monstera deliciosa"
    assert fake_ai.calls[0]["messages"][-1]["content"][1]["image_url"]["url"] == PHOTO


def test_health_check_updates_plant(client, ajax, fake_ai):
    plant = _create(client, ajax)
    fake_ai.replies.append(PlantHealthCheck(
        is_healthy=False, diagnosis="Spider mites on the underside of leaves.",
        regions=[{"label": "Leaf", "description": "Webbing", "box": {"x1": 0.1, "y1": 0.1, "x2": 0.4, "y2": 0.5}}],
        common_name="Boston Fern", latin_name="Nephrolepis exaltata", confidence=0.8,
    ))
    resp = client.post(f"/api/v1/plants/{plant['id']}/health-check", json={"photoDataUri": PHOTO}, headers=ajax)
    body = resp.get_json()

    assert body["plant"]["health"] == {"isHealthy": False, "diagnosis": "Spider mites on the underside of leaves."}
    assert body["plant"]["latinName"] == "Nephrolepis exaltata"
    assert len(body["plant"]["annotatedRegions"]) == 1
    assert "first_diagnosis" in [a["id"] for a in body["unlockedAchievements"]]


def test_chat_suggests_amount_without_applying(client, ajax, fake_ai):
    plant = _create(client, ajax)
    fake_ai.replies.append(ChatAnswer(answer="Give it a bit more.", updated_watering_amount="500-750ml"))
    resp = client.post(f"/api/v1/plants/{plant['id']}/chat", json={"question": "Bigger pot now?"}, headers=ajax)
    body = resp.get_json()

    assert body["updatedWateringAmount"] == "500-750ml"
    assert [a["id"] for a in body["unlockedAchievements"]] == ["first_chat"]
    stored = client.get(f"/api/v1/plants/{plant['id']}").get_json()["plant"]
    assert "wateringAmount" not in stored


def test_regenerated_care_tips_are_stored(client, ajax, fake_ai):
    plant = _create(client, ajax)
    fake_ai.replies.append(CareTips(
        care_tips="**Bright, indirect light.**", watering_frequency=4,
        watering_time="Morning (6-9 AM)", watering_amount="250-500ml",
    ))
    resp = client.post(f"/api/v1/plants/{plant['id']}/care-tips", headers=ajax)
    stored = resp.get_json()["plant"]
    assert stored["wateringFrequency"] == 4
    assert stored["careTips"] == "**Bright, indirect light.**"
