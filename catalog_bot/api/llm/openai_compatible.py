"""
Провайдеры с OpenAI-совместимым API: Groq и Pollinations.

Оба работают через AsyncOpenAI с собственным base_url и /v1/chat/completions
в режиме JSON-ответа.
"""

from __future__ import annotations

from typing import Optional

from openai import AsyncOpenAI

from catalog_bot.core.config import settings

from .base import JSON_ONLY_SUFFIX, CompletionTextProvider

# Pollinations не требует ключа, но SDK не принимает пустой api_key
POLLINATIONS_DUMMY_KEY = "pollinations"


class OpenAICompatibleProvider(CompletionTextProvider):
    """Общий адаптер chat.completions с response_format=json_object."""

    def __init__(
        self,
        name: str,
        model: str,
        api_key: str,
        base_url: str,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
        system_suffix: str = "",
    ) -> None:
        self.name = name
        self.model = model
        self.api_key = (api_key or "").strip()
        self.system_suffix = system_suffix
        self._client = client
        self._base_url = base_url
        self._timeout = float(timeout or settings.TEXT_TIMEOUT)

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            # max_retries=0: повторами управляет оркестратор
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self._base_url,
                timeout=self._timeout,
                max_retries=0,
            )
        return self._client

    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt + self.system_suffix},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class GroqProvider(OpenAICompatibleProvider):
    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        super().__init__(
            name="groq",
            model=settings.GROQ_TEXT_MODEL,
            api_key=settings.GROQ_API_KEY,
            base_url=settings.GROQ_BASE_URL,
            client=client,
        )


class PollinationsTextProvider(OpenAICompatibleProvider):
    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        super().__init__(
            name="pollinations",
            model=settings.POLLINATIONS_TEXT_MODEL,
            api_key=POLLINATIONS_DUMMY_KEY,
            base_url=settings.POLLINATIONS_TEXT_URL,
            client=client,
            system_suffix=JSON_ONLY_SUFFIX,
        )
