"""
Error types and handling utilities for user-facing messages and logging.

Provides consistent error handling across the application:
- A small exception taxonomy raised by the service layer
- Sanitizes error messages to prevent information leakage
- Logs detailed error information for debugging
- Provides user-friendly error messages
"""

from __future__ import annotations
from typing import Tuple
from flask import current_app


class VerdantError(Exception):
    """Base class for service-layer failures scoped to a single action."""

    error_type = "internal"
    status_code = 500


class LocationNotFound(VerdantError):
    """Geocoding returned zero results for the requested location."""

    error_type = "location"
    status_code = 404


class WeatherFetchFailed(VerdantError):
    """Weather or geocoding provider returned a non-2xx response or was unreachable."""

    error_type = "weather"
    status_code = 502


class AdviceGenerationFailed(VerdantError):
    """Generative call raised or returned output that failed schema validation."""

    error_type = "advice"
    status_code = 502


class StorageError(VerdantError):
    """Local persistence read/write failed (quota, permissions, corrupt JSON)."""

    error_type = "storage"
    status_code = 500


class PlantNotFound(VerdantError):
    error_type = "not_found"
    status_code = 404


class RequestInProgress(VerdantError):
    """An identical request for the same key is still running."""

    error_type = "busy"
    status_code = 409


# User-friendly generic error messages
GENERIC_MESSAGES = {
    "internal": "Something went wrong. Please try again.",
    "validation": "The information provided is invalid. Please check and try again.",
    "not_found": "The requested item was not found.",
    "location": "We couldn't find that location. Please check the spelling in Settings.",
    "weather": "Weather data is unavailable right now. Please try again later.",
    "advice": "Sage couldn't come up with advice right now. Please try again.",
    "storage": "Your changes couldn't be saved. They will last for this session only.",
    "busy": "That request is already in progress. Please wait a moment.",
}

# Error types that are expected (user mistakes or flaky providers), not bugs
_EXPECTED_TYPES = {"validation", "not_found", "location", "busy"}


def sanitize_error(
    error: Exception,
    error_type: str | None = None,
    log_prefix: str = ""
) -> str:
    """
    Sanitize error message for user display and log full details.

    Args:
        error: The exception that occurred
        error_type: Key into GENERIC_MESSAGES. Defaults to the exception's own
                    ``error_type`` when it is a VerdantError.
        log_prefix: Optional prefix for log message context

    Returns:
        User-friendly error message

    Examples:
        >>> try:
        ...     decision = engine.decide_watering(plant, "Paris")
        ... except VerdantError as e:
        ...     return jsonify({"success": False, "error": sanitize_error(e)}), e.status_code
    """
    if error_type is None:
        error_type = getattr(error, "error_type", "internal")

    error_message = str(error)
    log_message = f"{log_prefix}: {error_message}" if log_prefix else error_message

    if error_type in _EXPECTED_TYPES:
        current_app.logger.info(f"Expected error - {log_message}")
    else:
        current_app.logger.error(f"Unexpected error - {log_message}", exc_info=True)

    return GENERIC_MESSAGES.get(error_type, GENERIC_MESSAGES["internal"])


def error_response_parts(error: Exception, log_prefix: str = "") -> Tuple[dict, int]:
    """
    Build the (payload, status) pair routes return for a failed action.

    Args:
        error: Exception raised by the service layer
        log_prefix: Context for the log line

    Returns:
        ({"success": False, "error": message}, http_status)
    """
    status = getattr(error, "status_code", 500)
    return {"success": False, "error": sanitize_error(error, log_prefix=log_prefix)}, status


def log_warning(message: str, **context) -> None:
    """
    Log a warning with optional context.

    Examples:
        >>> log_warning("Weather fallback used", location="Paris")
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        message = f"{message} | Context: {context_str}"

    current_app.logger.warning(message)


def log_info(message: str, **context) -> None:
    """
    Log an info message with optional context.

    Examples:
        >>> log_info("Plant created", plant_id="123", plant_name="Monstera")
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        message = f"{message} | Context: {context_str}"

    current_app.logger.info(message)


def validation_error_parts(error) -> Tuple[dict, int]:
    """
    Build a 400 payload from a pydantic ValidationError.

    Field paths use the camelCase names clients send.
    """
    details = [
        f"{'.'.join(str(p) for p in err.get('loc', ())) or 'body'}: {err.get('msg', 'invalid')}"
        for err in error.errors()
    ]
    current_app.logger.info(f"Expected error - validation: {details}")
    return {"success": False, "error": GENERIC_MESSAGES["validation"], "details": details}, 400
