"""Base abstractions for text (LLM) providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from catalog_bot.utils.text import safe_parse_first_json_object

logger = logging.getLogger(__name__)

JSON_ONLY_SUFFIX = "\nIMPORTANT: Output ONLY raw JSON. No code fences."


class TextProvider(ABC):
    """
    Адаптер текстового бэкенда.

    Контракт generate_json: вернуть разобранный JSON-объект или None.
    Исключения наружу не выходят, любая ошибка логируется и превращается в None.
    """

    name: str
    temperature: float = 0.1

    @property
    def configured(self) -> bool:
        """Есть ли у провайдера всё необходимое (ключи и т.п.)."""
        return True

    @abstractmethod
    async def generate_json(self, system_prompt: str, user_prompt: str) -> Optional[Dict[str, Any]]:
        """Запрос к бэкенду в JSON-режиме."""


class CompletionTextProvider(TextProvider):
    """Провайдер, у которого достаточно реализовать один запрос, возвращающий текст."""

    async def generate_json(self, system_prompt: str, user_prompt: str) -> Optional[Dict[str, Any]]:
        if not self.configured:
            logger.warning("[text] %s skipped: credentials are not configured", self.name)
            return None
        try:
            raw = await self._complete(system_prompt, user_prompt)
        except Exception as exc:
            logger.warning("[text] %s failed: %s", self.name, exc)
            return None
        parsed = safe_parse_first_json_object(raw)
        if parsed is None:
            logger.warning("[text] %s returned no JSON object (sample=%r)", self.name, (raw or "")[:200])
        return parsed

    @abstractmethod
    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        """Один запрос к бэкенду; возвращает сырой текст ответа модели."""


class CredentialPool:
    """
    Пул ключей с круговой ротацией.

    Индекс разделяется между вызовами: гонки влияют только на распределение
    нагрузки, поэтому блокировка не нужна.
    """

    def __init__(self, keys: Sequence[str]):
        self._keys: List[str] = [key for key in dict.fromkeys(k.strip() for k in keys) if key]
        self._index = 0

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    def next(self) -> str:
        if not self._keys:
            raise LookupError("credential pool is empty")
        key = self._keys[self._index % len(self._keys)]
        self._index = (self._index + 1) % len(self._keys)
        return key

    def rotation(self) -> List[str]:
        """Все ключи по одному разу, начиная с текущей позиции пула."""
        return [self.next() for _ in range(len(self._keys))]
