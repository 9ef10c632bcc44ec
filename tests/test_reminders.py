"""Overdue-plant reminders."""

from datetime import datetime, timedelta, timezone

from verdantwise.services.reminders import REMINDER_TITLE, get_due_reminders, run_reminder_check
from verdantwise.services.schemas import Settings

NOW = datetime(2025, 6, 2, 10, 0, tzinfo=timezone.utc)


def test_only_strictly_overdue_plants_are_listed(plant_factory):
    plants = [
        plant_factory(id="late", customName="Late", lastWatered=(NOW - timedelta(days=8)).isoformat()),
        plant_factory(id="due", customName="Due", lastWatered=(NOW - timedelta(days=7)).isoformat()),
        plant_factory(id="none", customName="Unscheduled", wateringFrequency=None),
    ]
    reminder = get_due_reminders(plants, Settings(), NOW)

    assert [p["id"] for p in reminder["plants"]] == ["late"]
    assert reminder["title"] == REMINDER_TITLE
    assert reminder["body"] == "Your plants need a drink: Late"


def test_nothing_when_reminders_are_off(plant_factory):
    reminder = get_due_reminders([plant_factory()], Settings(watering_reminders=False), NOW)
    assert reminder == {"enabled": False, "plants": [], "title": None, "body": None}


def test_nothing_overdue(plant_factory):
    fresh = plant_factory(lastWatered=NOW.isoformat())
    reminder = get_due_reminders([fresh], Settings(), NOW)
    assert reminder["enabled"] is True
    assert reminder["plants"] == []


def test_scheduled_check_reads_store_and_settings(services, caplog):
    services.plants.add({
        "customName": "Thirsty",
        "wateringFrequency": 3,
        "lastWatered": (datetime.now(timezone.utc) - timedelta(days=5)).isoformat(),
    })
    with caplog.at_level("INFO", logger="verdantwise.services.reminders"):
        reminder = run_reminder_check(services.plants, services.settings)

    assert [p["customName"] for p in reminder["plants"]] == ["Thirsty"]
    assert "Thirsty" in caplog.text
