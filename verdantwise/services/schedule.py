"""
Watering schedule arithmetic.

All functions are pure: callers pass ``now`` explicitly and nothing here
touches storage or mutates a plant.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from ..constants import SHOULD_WATER_WAIT, SHOULD_WATER_YES

OVERDUE_LABEL = "Overdue!"
NO_SCHEDULE_LABEL = "Every ? days"


def _utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_watering_date(last_watered: Optional[datetime], frequency_days: Optional[int]) -> Optional[datetime]:
    """lastWatered + frequency days, or None when the plant has no schedule."""
    if last_watered is None or not frequency_days:
        return None
    return _utc(last_watered) + timedelta(days=frequency_days)


def is_overdue(now: datetime, next_date: Optional[datetime]) -> bool:
    """Strictly after the next watering date. Exactly equal is not overdue."""
    if next_date is None:
        return False
    return _utc(now) > _utc(next_date)


def plant_is_overdue(plant, now: Optional[datetime] = None) -> bool:
    return is_overdue(now or utcnow(), next_watering_date(plant.last_watered, plant.watering_frequency))


def countdown(now: datetime, next_date: datetime) -> Dict[str, Any]:
    """
    Whole days and leftover hours until ``next_date``.

    Returns:
        {"overdue": bool, "days": int, "hours": int, "label": str}
        A negative remaining time is the terminal "Overdue!" state; exactly
        at the due time the countdown reads "0d 0h".
    """
    remaining = _utc(next_date) - _utc(now)
    if remaining < timedelta(0):
        return {"overdue": True, "days": 0, "hours": 0, "label": OVERDUE_LABEL}
    days = remaining.days
    hours = remaining.seconds // 3600
    return {"overdue": False, "days": days, "hours": hours, "label": f"{days}d {hours}h"}


def _relative_label(remaining: timedelta) -> str:
    if remaining.days >= 1:
        return f"in {remaining.days} day" + ("s" if remaining.days != 1 else "")
    hours = max(1, remaining.seconds // 3600)
    return f"in {hours} hour" + ("s" if hours != 1 else "")


def watering_status(plant, now: Optional[datetime] = None, advice=None) -> Dict[str, Any]:
    """
    Display status for a plant, with optional advice merged on top.

    Advice only changes what is shown ("Water now" / "Wait"); the stored
    schedule is never touched.
    """
    now = now or utcnow()
    next_date = next_watering_date(plant.last_watered, plant.watering_frequency)
    if next_date is None:
        return {"scheduled": False, "overdue": False, "nextWatering": None, "label": NO_SCHEDULE_LABEL}

    overdue = is_overdue(now, next_date)
    label = "Overdue" if overdue else _relative_label(next_date - _utc(now))
    if advice is not None:
        if advice.should_water == SHOULD_WATER_YES:
            label = "Water now"
        elif advice.should_water == SHOULD_WATER_WAIT:
            label = "Wait"

    return {
        "scheduled": True,
        "overdue": overdue,
        "nextWatering": next_date.isoformat(),
        "label": label,
        "countdown": countdown(now, next_date),
    }


def _span(delta: timedelta) -> str:
    days = delta.days
    hours = delta.seconds // 3600
    parts = []
    if days:
        parts.append(f"{days} day" + ("s" if days != 1 else ""))
    if hours or not days:
        parts.append(f"{hours} hour" + ("s" if hours != 1 else ""))
    return ", ".join(parts)


def timing_discrepancy(now: datetime, next_date: Optional[datetime], tolerance_hours: int = 12) -> str:
    """
    Describe when a watering happened relative to the schedule.

    Returns "on time" within the tolerance, otherwise e.g.
    "1 day, 4 hours early" or "2 days late".
    """
    if next_date is None:
        return "on time"
    delta = _utc(next_date) - _utc(now)
    if abs(delta) <= timedelta(hours=tolerance_hours):
        return "on time"
    if delta > timedelta(0):
        return f"{_span(delta)} early"
    return f"{_span(-delta)} late"
