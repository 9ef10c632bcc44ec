"""
User settings providers.

SettingsProvider is the interface the rest of the app uses. Two backends:
- LocalSettingsProvider: JSON record in the instance store
- CookieSettingsProvider: signed ``verdantwise-settings`` cookie

The backend is chosen explicitly by the caller (create_app reads
SETTINGS_BACKEND); nothing here inspects the runtime environment.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from flask import g, request
from itsdangerous import BadSignature, URLSafeSerializer
from pydantic import ValidationError

from .schemas import Settings
from .storage import SETTINGS_KEY, JsonStore, load_or_default, save_logged

logger = logging.getLogger(__name__)

COOKIE_MAX_AGE = 60 * 60 * 24 * 365
_PENDING_COOKIE_ATTR = "verdantwise_settings_cookie"


def public_settings(settings: Settings) -> Dict[str, Any]:
    """Settings as returned to clients; the API key itself is never echoed."""
    data = settings.to_json_dict()
    data.pop("geminiApiKey", None)
    data["hasGeminiApiKey"] = bool(settings.gemini_api_key)
    return data


class SettingsProvider:
    """Load and save the Settings record."""

    def load(self) -> Settings:
        raise NotImplementedError

    def save(self, settings: Settings) -> Settings:
        raise NotImplementedError

    def update(self, changes: Dict[str, Any]) -> Settings:
        """
        Merge camelCase ``changes`` into the current settings and save.

        Raises:
            pydantic.ValidationError: invalid values (theme, model, timezone, ...)
        """
        changes = dict(changes)
        if changes.get("geminiApiKey") == "":
            # Empty means "keep the saved key"; null clears it
            changes.pop("geminiApiKey")
        merged = {**self.load().to_json_dict(), **changes}
        return self.save(Settings.model_validate(merged))


def _parse(raw: Any, source: str) -> Settings:
    if not raw:
        return Settings()
    try:
        return Settings.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"[Settings] Ignoring invalid {source} settings: {e.error_count()} error(s)")
        return Settings()


class LocalSettingsProvider(SettingsProvider):
    def __init__(self, store: JsonStore):
        self.store = store
        self._settings = _parse(load_or_default(self.store, SETTINGS_KEY, dict), "stored")

    def load(self) -> Settings:
        return self._settings

    def save(self, settings: Settings) -> Settings:
        self._settings = settings
        save_logged(self.store, SETTINGS_KEY, settings.to_json_dict())
        return settings


class CookieSettingsProvider(SettingsProvider):
    """
    Settings carried in a signed cookie on the current request.

    ``save`` queues the new cookie value on ``flask.g``; ``apply_cookie`` (an
    after_request hook) writes it to the response.
    """

    def __init__(self, secret_key: str, cookie_name: str = SETTINGS_KEY, secure: bool = False):
        self.serializer = URLSafeSerializer(secret_key, salt="verdantwise-settings")
        self.cookie_name = cookie_name
        self.secure = secure

    def load(self) -> Settings:
        pending = getattr(g, _PENDING_COOKIE_ATTR, None)
        if pending is not None:
            return pending
        token = request.cookies.get(self.cookie_name)
        if not token:
            return Settings()
        try:
            raw = self.serializer.loads(token)
        except BadSignature:
            logger.warning("[Settings] Settings cookie has a bad signature; using defaults")
            return Settings()
        return _parse(raw, "cookie")

    def save(self, settings: Settings) -> Settings:
        setattr(g, _PENDING_COOKIE_ATTR, settings)
        return settings

    def apply_cookie(self, response):
        pending: Optional[Settings] = getattr(g, _PENDING_COOKIE_ATTR, None)
        if pending is not None:
            response.set_cookie(
                self.cookie_name,
                self.serializer.dumps(pending.to_json_dict()),
                max_age=COOKIE_MAX_AGE,
                httponly=True,
                samesite="Lax",
                secure=self.secure,
            )
        return response
