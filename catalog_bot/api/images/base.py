"""Base abstraction for image generation providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class ImageProvider(ABC):
    """
    Генератор изображения по текстовому промпту.

    generate_image возвращает байты картинки или None; исключения наружу не выходят.
    """

    name: str

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.transport = transport

    @property
    def configured(self) -> bool:
        return True

    async def generate_image(self, prompt: str) -> Optional[bytes]:
        if not self.configured:
            logger.warning("[img] %s skipped: credentials are not configured", self.name)
            return None
        try:
            data = await self._generate(prompt)
        except Exception as exc:
            logger.warning("[img] %s failed: %s", self.name, exc)
            return None
        return data or None

    @abstractmethod
    async def _generate(self, prompt: str) -> Optional[bytes]:
        """Один запрос к бэкенду."""
