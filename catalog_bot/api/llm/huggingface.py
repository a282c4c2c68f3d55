"""Hugging Face Inference API: текстовая генерация как последний резервный провайдер."""

from __future__ import annotations

from typing import Optional

import httpx

from catalog_bot.core.config import settings

from ..http import build_client
from .base import CompletionTextProvider


class HuggingFaceTextProvider(CompletionTextProvider):
    name = "huggingface"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = (settings.HUGGING_FACE_API_KEY if api_key is None else api_key).strip()
        self.model = model or settings.HF_TEXT_MODEL
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        prompt = f"<s>[INST] {system_prompt}\nReturn only valid JSON.\n\n{user_prompt} [/INST]"
        payload = {
            "inputs": prompt,
            "parameters": {
                "temperature": self.temperature,
                "max_new_tokens": 900,
                "return_full_text": False,
            },
        }
        url = f"{settings.HF_INFERENCE_BASE.rstrip('/')}/{self.model}"
        async with build_client(
            settings.TEXT_TIMEOUT,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        ) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()

        data = response.json()
        if isinstance(data, list) and data:
            return str((data[0] or {}).get("generated_text") or "")
        if isinstance(data, dict):
            return str(data.get("generated_text") or "")
        return ""
