"""
Watering reminders for overdue plants.

A reminder lists every plant whose watering is strictly overdue. Nothing is
produced while the user has ``wateringReminders`` switched off.
"""

from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from .schedule import next_watering_date, plant_is_overdue, utcnow
from .schemas import Plant, Settings

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Time to water your plants!"


def get_due_reminders(
    plants: Sequence[Plant],
    settings: Settings,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the reminder for the garden.

    Returns:
        {"enabled": bool, "plants": [...], "title": str | None, "body": str | None}
        ``plants`` is empty when reminders are off or nothing is overdue.
    """
    if not settings.watering_reminders:
        return {"enabled": False, "plants": [], "title": None, "body": None}

    now = now or utcnow()
    overdue = [p for p in plants if plant_is_overdue(p, now)]
    if not overdue:
        return {"enabled": True, "plants": [], "title": None, "body": None}

    names = ", ".join(p.custom_name for p in overdue)
    return {
        "enabled": True,
        "plants": [
            {
                "id": p.id,
                "customName": p.custom_name,
                "nextWatering": next_watering_date(p.last_watered, p.watering_frequency).isoformat(),
            }
            for p in overdue
        ],
        "title": REMINDER_TITLE,
        "body": f"Your plants need a drink: {names}",
    }


def run_reminder_check(plant_store, settings_provider) -> Dict[str, Any]:
    """Scheduled job body: log the current reminder, if any."""
    reminder = get_due_reminders(plant_store.list(), settings_provider.load())
    if reminder["plants"]:
        logger.info(f"[Reminders] {reminder['body']}")
    else:
        logger.debug("[Reminders] Nothing overdue (or reminders off)")
    return reminder
