"""
Generative model client (LiteLLM Router with model fallback).

Every call receives an explicit AIConfig (model + optional per-user key), so
nothing here reads user settings or global state. Routers are cached per
(model, key) pair in a bounded LRU cache owned by the AIClient instance.

Structured calls:
- embed the target pydantic model's JSON schema in the system prompt
- request JSON output
- validate the reply against the same model before returning it
- retry once on invalid output, then raise AdviceGenerationFailed
"""

from __future__ import annotations
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar

from cachetools import LRUCache
from pydantic import BaseModel

from ..constants import DEFAULT_AI_MODEL, FALLBACK_AI_MODEL
from ..utils.errors import AdviceGenerationFailed

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

PRIMARY = "primary"
FALLBACK = "fallback"
FALLBACK_GPT = "fallback-gpt"


@dataclass(frozen=True)
class AIConfig:
    """Per-call model selection. ``api_key_override`` wins over app keys."""

    model: str = DEFAULT_AI_MODEL
    api_key_override: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "AIConfig":
        return cls(model=settings.model, api_key_override=settings.gemini_api_key or None)


def _provider_model(model: str) -> str:
    return model if "/" in model else f"gemini/{model}"


def _key_fingerprint(key: Optional[str]) -> str:
    if not key:
        return ""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def _strip_code_fence(text: str) -> str:
    """Models sometimes wrap JSON in ``` fences despite being asked not to."""
    if not text.startswith("```"):
        return text
    lines = [line for line in text.split("\n") if not line.startswith("```")]
    return "\n".join(lines)


def image_part(data_uri: str) -> Dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": data_uri}}


def user_message(text: str, images: Iterable[str] = ()) -> Dict[str, Any]:
    """Build a user message, multimodal when images are given."""
    images = [i for i in images if i]
    if not images:
        return {"role": "user", "content": text}
    return {
        "role": "user",
        "content": [{"type": "text", "text": text}] + [image_part(i) for i in images],
    }


def system_message(text: str) -> Dict[str, Any]:
    return {"role": "system", "content": text}


class AIClient:
    """
    Thin wrapper around LiteLLM.

    Usage:
        client = AIClient(gemini_api_key="...", timeout=30)
        decision = client.generate_structured(messages, WateringAdviceDecision, AIConfig())
    """

    def __init__(
        self,
        gemini_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        timeout: float = 30,
        max_attempts: int = 2,
        cache_size: int = 8,
    ):
        self.gemini_api_key = gemini_api_key or None
        self.openai_api_key = openai_api_key or None
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self._routers: LRUCache = LRUCache(maxsize=cache_size)

    @classmethod
    def from_config(cls, config) -> "AIClient":
        return cls(
            gemini_api_key=config.get("GEMINI_API_KEY"),
            openai_api_key=config.get("OPENAI_API_KEY"),
            timeout=config.get("AI_TIMEOUT_SECONDS", 30),
            max_attempts=config.get("AI_MAX_ATTEMPTS", 2),
            cache_size=config.get("AI_ROUTER_CACHE_SIZE", 8),
        )

    def _gemini_key(self, config: AIConfig) -> Optional[str]:
        return config.api_key_override or self.gemini_api_key

    def is_configured(self, config: AIConfig) -> bool:
        return bool(self._gemini_key(config) or self.openai_api_key)

    def _build_router(self, config: AIConfig):
        from litellm import Router

        gemini_key = self._gemini_key(config)
        model_list: List[Dict[str, Any]] = []
        fallback_chain: List[str] = []

        if gemini_key:
            model_list.append({
                "model_name": PRIMARY,
                "litellm_params": {"model": _provider_model(config.model), "api_key": gemini_key},
            })
            if config.model != FALLBACK_AI_MODEL:
                model_list.append({
                    "model_name": FALLBACK,
                    "litellm_params": {"model": _provider_model(FALLBACK_AI_MODEL), "api_key": gemini_key},
                })
                fallback_chain.append(FALLBACK)

        if self.openai_api_key:
            model_list.append({
                "model_name": FALLBACK_GPT if gemini_key else PRIMARY,
                "litellm_params": {"model": "gpt-4o-mini", "api_key": self.openai_api_key},
            })
            if gemini_key:
                fallback_chain.append(FALLBACK_GPT)

        return Router(
            model_list=model_list,
            fallbacks=[{PRIMARY: fallback_chain}] if fallback_chain else None,
            num_retries=1,
            timeout=self.timeout,
        )

    def _router_for(self, config: AIConfig):
        cache_key = (config.model, _key_fingerprint(self._gemini_key(config)))
        router = self._routers.get(cache_key)
        if router is None:
            router = self._build_router(config)
            self._routers[cache_key] = router
        return router

    def _complete(self, config: AIConfig, messages: List[Dict[str, Any]], temperature: float) -> str:
        router = self._router_for(config)
        try:
            resp = router.completion(
                model=PRIMARY,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=temperature,
                max_tokens=2048,
            )
        except Exception as e:
            raise AdviceGenerationFailed(f"Model call failed: {str(e)[:300]}") from e
        return (resp.choices[0].message.content or "").strip()

    def generate_structured(
        self,
        messages: List[Dict[str, Any]],
        schema_cls: Type[T],
        config: AIConfig,
        temperature: float = 0.4,
        check: Optional[Callable[[T], None]] = None,
    ) -> T:
        """
        Run a structured-output call and return a validated ``schema_cls``.

        Raises:
            AdviceGenerationFailed: no key configured, the call raised, or the
                reply failed validation on every attempt.

        ``check`` may raise ValueError for semantic rules the schema cannot
        express; that counts as a failed attempt.
        """
        if not self.is_configured(config):
            raise AdviceGenerationFailed("No generative model API key configured")

        schema = json.dumps(schema_cls.model_json_schema(by_alias=True))
        framed = [system_message(
            "Respond ONLY with a single JSON object (no markdown) that conforms to this JSON schema:\n"
            f"{schema}"
        )] + list(messages)

        last_error: Optional[str] = None
        for attempt in range(1, self.max_attempts + 1):
            text = _strip_code_fence(self._complete(config, framed, temperature))
            try:
                result = schema_cls.model_validate_json(text)
                if check is not None:
                    check(result)
                return result
            except ValueError as e:
                last_error = str(e)[:300]
                logger.warning(
                    f"[AI] {schema_cls.__name__} reply failed validation "
                    f"(attempt {attempt}/{self.max_attempts}): {last_error}"
                )

        raise AdviceGenerationFailed(f"{schema_cls.__name__} output invalid: {last_error}")
