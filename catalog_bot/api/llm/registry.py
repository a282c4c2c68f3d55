"""
Реестр текстовых провайдеров: имя из настроек/сессии -> адаптер.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional

from .base import TextProvider
from .gemini import GeminiProvider
from .huggingface import HuggingFaceTextProvider
from .openai_compatible import GroqProvider, PollinationsTextProvider

logger = logging.getLogger(__name__)

DEFAULT_TEXT_ORDER = ("groq", "gemini", "pollinations")

# Старые и короткие названия провайдеров
ALIASES = {
    "hf": "huggingface",
    "hugging_face": "huggingface",
    "google": "gemini",
    "searchgpt": "pollinations",
}


def normalize_provider_name(name: str) -> str:
    key = (name or "").strip().lower()
    return ALIASES.get(key, key)


class TextProviderRegistry:
    """Хранит адаптеры по имени и вызывает их с гарантией «без исключений»."""

    def __init__(self, providers: Iterable[TextProvider]):
        self._providers: Dict[str, TextProvider] = {}
        for provider in providers:
            self._providers[provider.name] = provider

    def __contains__(self, name: str) -> bool:
        return normalize_provider_name(name) in self._providers

    def get(self, name: str) -> Optional[TextProvider]:
        return self._providers.get(normalize_provider_name(name))

    @property
    def names(self) -> list[str]:
        return list(self._providers)

    async def call_provider(
        self,
        provider_id: str,
        system_prompt: str,
        user_prompt: str,
    ) -> Optional[Dict[str, Any]]:
        provider = self.get(provider_id)
        if provider is None:
            logger.warning("[text] unknown provider %r, skipping", provider_id)
            return None
        try:
            return await provider.generate_json(system_prompt, user_prompt)
        except Exception as exc:  # адаптер нарушил контракт «не бросать»
            logger.warning("[text] %s raised past its boundary: %s", provider.name, exc)
            return None


def build_text_providers() -> TextProviderRegistry:
    return TextProviderRegistry([
        GroqProvider(),
        GeminiProvider(),
        PollinationsTextProvider(),
        HuggingFaceTextProvider(),
    ])


@lru_cache(maxsize=1)
def get_text_registry() -> TextProviderRegistry:
    """Общий реестр процесса (пул ключей Gemini живёт вместе с ним)."""
    return build_text_providers()
