"""
Генераторы изображений: Pollinations, Hugging Face, DeepAI, Cloudflare Workers AI.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from catalog_bot.core.config import settings

from ..http import build_client
from .base import ImageProvider

logger = logging.getLogger(__name__)

POLLINATIONS_IMAGE_URL = "https://image.pollinations.ai/prompt/"
DEEPAI_TEXT2IMG_URL = "https://api.deepai.org/api/text2img"
CLOUDFLARE_RUN_URL = "https://api.cloudflare.com/client/v4/accounts/{account}/ai/run/{model}"

POLLINATIONS_TIMEOUT = 20.0
DEEPAI_TIMEOUT = 30.0

HF_NEGATIVE_PROMPT = "blurry, ugly, deformed, noisy, plain, boring, text, watermark, signature"
CLOUDFLARE_NEGATIVE_PROMPT = (
    "nsfw, nude, nudity, cleavage, erotic, sexual, suggestive, bikini, lingerie, skin, body, "
    "people, face, human, watermark, text, logo, hands, portrait, character, anime, cartoon, "
    "doll, ugly, deformed"
)
CLOUDFLARE_SAFE_SUFFIX = (
    "abstract geometric product background, shapes only, no people, no faces, no bodies, "
    "no text, SFW, corporate, clean"
)

MODERATION_REJECTION = re.compile(r"NSFW|safety|adult", re.IGNORECASE)
RATE_LIMIT_REJECTION = re.compile(r"rate|quota|limit", re.IGNORECASE)
CHARACTER_WORDS = re.compile(r"\banime|animation|character\b", re.IGNORECASE)
UNSAFE_WORDS = re.compile(r"\b(sexy|nsfw|nude|nudity)\b", re.IGNORECASE)


class PollinationsImageProvider(ImageProvider):
    """Бесплатный генератор без ключа: GET возвращает готовую картинку."""

    name = "pollinations"

    async def _generate(self, prompt: str) -> Optional[bytes]:
        url = POLLINATIONS_IMAGE_URL + quote(prompt, safe="")
        async with build_client(POLLINATIONS_TIMEOUT, transport=self.transport) as client:
            response = await client.get(url)
            response.raise_for_status()
        return response.content


class HuggingFaceImageProvider(ImageProvider):
    name = "hf"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(transport)
        self.api_key = (settings.HUGGING_FACE_API_KEY if api_key is None else api_key).strip()
        self.model = model or settings.HF_IMAGE_MODEL

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _generate(self, prompt: str) -> Optional[bytes]:
        payload = {
            "inputs": prompt,
            "parameters": {
                "negative_prompt": HF_NEGATIVE_PROMPT,
                "guidance_scale": 7.5,
                "num_inference_steps": 28,
                "width": 1024,
                "height": 1024,
            },
        }
        url = f"{settings.HF_INFERENCE_BASE.rstrip('/')}/{self.model}"
        async with build_client(
            settings.IMAGE_TIMEOUT,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.api_key}", "Accept": "image/png"},
        ) as client:
            response = await client.post(url, json=payload)

        if response.status_code >= 400:
            logger.warning("[img] hf HTTP %s: %s", response.status_code, response.text[:300])
            return None
        if not response.headers.get("content-type", "").startswith("image/"):
            logger.warning("[img] hf returned non-image payload: %s", response.text[:300])
            return None
        return response.content


class DeepAIImageProvider(ImageProvider):
    """Двухшаговый API: JSON с output_url, затем скачивание картинки."""

    name = "deepai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(transport)
        self.api_key = (settings.DEEPAI_API_KEY if api_key is None else api_key).strip()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _generate(self, prompt: str) -> Optional[bytes]:
        async with build_client(
            DEEPAI_TIMEOUT,
            transport=self.transport,
            headers={"Api-Key": self.api_key, "Accept": "application/json"},
        ) as client:
            response = await client.post(DEEPAI_TEXT2IMG_URL, data={"text": prompt})
            response.raise_for_status()
            output_url = (response.json() or {}).get("output_url")
            if not output_url:
                logger.warning("[img] deepai: no output_url in response")
                return None
            image_response = await client.get(output_url)
            image_response.raise_for_status()
        return image_response.content


def soften_prompt(prompt: str) -> str:
    """Убирает слова, на которые срабатывает модерация Cloudflare, и добавляет безопасный стиль."""
    softened = CHARACTER_WORDS.sub("abstract motion graphics", str(prompt or ""))
    softened = UNSAFE_WORDS.sub("sfw", softened).strip()
    return ". ".join([softened, CLOUDFLARE_SAFE_SUFFIX])


class CloudflareImageProvider(ImageProvider):
    """
    Cloudflare Workers AI (flux-1-schnell).

    Отказ модерации и превышение лимитов - мягкая ошибка (None), чтобы
    оркестратор перешёл к следующему провайдеру.
    """

    name = "cloudflare"

    def __init__(
        self,
        account_id: Optional[str] = None,
        api_token: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(transport)
        self.account_id = (settings.CLOUDFLARE_ACCOUNT_ID if account_id is None else account_id).strip()
        self.api_token = (settings.CLOUDFLARE_API_TOKEN if api_token is None else api_token).strip()
        self.model = model or settings.CLOUDFLARE_IMAGE_MODEL

    @property
    def configured(self) -> bool:
        return bool(self.account_id and self.api_token)

    async def _generate(self, prompt: str) -> Optional[bytes]:
        url = CLOUDFLARE_RUN_URL.format(account=self.account_id, model=self.model)
        body = {
            "prompt": soften_prompt(prompt),
            "negative_prompt": CLOUDFLARE_NEGATIVE_PROMPT,
            "width": 768,
            "height": 768,
            "num_steps": 4,
            "guidance": 3.5,
        }
        async with build_client(
            settings.IMAGE_TIMEOUT,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.api_token}", "Accept": "application/json"},
        ) as client:
            response = await client.post(url, json=body)

        if response.status_code >= 400:
            text = response.text or ""
            if MODERATION_REJECTION.search(text):
                logger.warning("[img] cloudflare rejected prompt by safety filter")
                return None
            if response.status_code == 429 or RATE_LIMIT_REJECTION.search(text):
                logger.warning("[img] cloudflare rate limited (HTTP %s)", response.status_code)
                return None
            logger.warning("[img] cloudflare HTTP %s: %s", response.status_code, text[:500])
            return None

        if response.headers.get("content-type", "").startswith("image/"):
            return response.content

        payload: Dict[str, Any] = response.json()
        if payload.get("success") is False:
            errors = payload.get("errors") or [{}]
            logger.warning("[img] cloudflare error: %s", (errors[0] or {}).get("message", "Unknown"))
            return None

        result = payload.get("result") or {}
        encoded = (
            result.get("image")
            or (result.get("images") or [None])[0]
            or (result.get("output") or [None])[0]
            or payload.get("image")
        )
        if not encoded:
            logger.warning("[img] cloudflare JSON had no image field")
            return None
        try:
            return base64.b64decode(encoded)
        except (binascii.Error, ValueError) as exc:
            logger.warning("[img] cloudflare returned invalid base64: %s", exc)
            return None


IMAGE_PROVIDER_CLASSES = {
    PollinationsImageProvider.name: PollinationsImageProvider,
    HuggingFaceImageProvider.name: HuggingFaceImageProvider,
    DeepAIImageProvider.name: DeepAIImageProvider,
    CloudflareImageProvider.name: CloudflareImageProvider,
}


def build_image_providers() -> Dict[str, ImageProvider]:
    return {name: provider_cls() for name, provider_cls in IMAGE_PROVIDER_CLASSES.items()}
