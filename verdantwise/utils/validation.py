"""
Input validation and normalization.

Trims and bounds field lengths, filters suspicious characters while allowing
natural punctuation, and normalizes select values before they reach the
service layer or a prompt template.
"""

from __future__ import annotations
import re
from typing import Any, Dict, Optional, Tuple

from ..constants import PLACEMENTS

# Allowlist regex: we REMOVE anything NOT in this set.
# Keeps plant/location fields readable while dropping odd control/symbol characters.
_SAFE_CHARS_PATTERN = re.compile(r"[^\w\s\-\.,'()/&]+", re.UNICODE)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_DATA_URI = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,[A-Za-z0-9+/=\s]+$")

MAX_NAME_LEN = 80
MAX_LOCATION_LEN = 120
MAX_TEXT_LEN = 1200
MAX_FREQUENCY_DAYS = 365


def soft_sanitize(text: Optional[str], max_len: int = MAX_NAME_LEN) -> str:
    """
    Normalizes names/locations:
    - strip whitespace
    - bound length
    - remove disallowed characters via allowlist
    - collapse double spaces
    """
    t = (text or "").strip()
    if not t:
        return ""
    t = t[:max_len]
    t = _SAFE_CHARS_PATTERN.sub("", t)
    t = re.sub(r"\s{2,}", " ", t)
    return t.strip()


def sanitize_text(text: Optional[str], max_len: int = MAX_TEXT_LEN) -> str:
    """
    Free text (questions, notes, feedback) is more permissive:
    - strip & bound length
    - remove control chars only; keep reasonable punctuation
    - normalize repeated tabs/spaces
    """
    t = (text or "").strip()
    if not t:
        return ""
    t = t[:max_len]
    t = _CONTROL_CHARS.sub("", t)
    t = re.sub(r"[ \t]{2,}", " ", t)
    return t


def normalize_placement(value: Optional[str]) -> Optional[str]:
    """Return a known placement value, or None if missing/unknown."""
    v = (value or "").strip().lower()
    for placement in PLACEMENTS:
        if placement.lower() == v:
            return placement
    return None


def is_data_uri(value: Optional[str]) -> bool:
    """Check that a photo payload is a base64 image data URI."""
    return bool(value) and bool(_DATA_URI.match(value))


def parse_frequency(value: Any) -> Tuple[Optional[int], Optional[str]]:
    """
    Parse a watering frequency in days.

    Returns:
        (days, error_message). ``days`` is None when the value is absent,
        which means "no schedule".
    """
    if value is None or value == "":
        return None, None
    if isinstance(value, bool):
        return None, "Watering frequency must be a whole number of days."
    try:
        days = int(value)
    except (TypeError, ValueError):
        return None, "Watering frequency must be a whole number of days."
    if isinstance(value, float) and not value.is_integer():
        return None, "Watering frequency must be a whole number of days."
    if days < 1 or days > MAX_FREQUENCY_DAYS:
        return None, f"Watering frequency must be between 1 and {MAX_FREQUENCY_DAYS} days."
    return days, None


def validate_recalculation_request(data: Dict[str, Any]) -> Tuple[Dict[str, Any], str | None]:
    """
    Validates the body of a schedule-recalculation request.

    On success, payload has feedback, timing_discrepancy, location and
    optional environment_notes.
    """
    feedback = sanitize_text(data.get("feedback"), 500)
    timing = sanitize_text(data.get("timingDiscrepancy"), 120)
    location = soft_sanitize(data.get("location"), MAX_LOCATION_LEN)

    if not feedback:
        return {}, "Tell Sage how the soil looked so it can adjust the schedule."
    if not timing:
        return {}, "Timing discrepancy is required."
    if not location:
        return {}, "Set your location in Settings to get weather-aware advice."

    return {
        "feedback": feedback,
        "timing_discrepancy": timing,
        "location": location,
        "environment_notes": sanitize_text(data.get("environmentNotes"), 500) or None,
    }, None
