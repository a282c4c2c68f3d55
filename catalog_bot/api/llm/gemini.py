"""
Gemini (generateContent REST API) с ротацией пула ключей.

Ключ, вернувший ошибку (429, 5xx, пустой ответ), пропускается в рамках
одного вызова, и запрос повторяется со следующим ключом пула.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from catalog_bot.core.config import settings
from catalog_bot.utils.text import safe_parse_first_json_object

from ..http import build_client
from .base import CredentialPool, TextProvider

logger = logging.getLogger(__name__)


class GeminiProvider(TextProvider):
    name = "gemini"

    def __init__(
        self,
        keys: Optional[Sequence[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        model: Optional[str] = None,
    ) -> None:
        self.pool = CredentialPool(settings.gemini_keys if keys is None else keys)
        self.transport = transport
        self.model = model or settings.GEMINI_TEXT_MODEL
        self.base_url = settings.GEMINI_BASE.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.pool)

    def _payload(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        return {
            "generationConfig": {
                "temperature": self.temperature,
                "responseMimeType": "application/json",
            },
            "systemInstruction": {
                "role": "user",
                "parts": [{"text": f"{system_prompt}\nReturn only valid JSON."}],
            },
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
        }

    async def generate_json(self, system_prompt: str, user_prompt: str) -> Optional[Dict[str, Any]]:
        if not self.configured:
            logger.warning("[text] gemini skipped: no GEMINI_API_KEYS set")
            return None

        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = self._payload(system_prompt, user_prompt)

        for key in self.pool.rotation():
            try:
                async with build_client(settings.TEXT_TIMEOUT, transport=self.transport) as client:
                    response = await client.post(url, params={"key": key}, json=payload)
            except httpx.HTTPError as exc:
                logger.warning("[text] gemini network error: %s", exc)
                continue

            if response.status_code >= 400:
                logger.warning("[text] gemini HTTP %s - %s", response.status_code, response.text[:300])
                continue

            try:
                data = response.json()
            except ValueError:
                logger.warning("[text] gemini returned non-JSON body")
                continue

            candidates = (data.get("candidates") if isinstance(data, dict) else None) or [{}]
            parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
            text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
            if not text:
                finish = (candidates[0] or {}).get("finishReason", "unknown")
                logger.warning("[text] gemini empty content (finishReason=%s)", finish)
                continue

            parsed = safe_parse_first_json_object(text)
            if parsed is not None:
                return parsed
            logger.warning("[text] gemini JSON parse error, sample=%r", text[:200])
        return None
