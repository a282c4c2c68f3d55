"""
Подбор изображения товара по уровням:

1. og:image официального сайта бренда;
2. логотип из Brandfetch;
3. поиск картинок DuckDuckGo;
4. генераторы изображений в заданном порядке (с повторами);
5. локально нарисованная карточка (срабатывает всегда).

Каждая успешная ветка делает ровно одну перезаливку в Supabase Storage.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from catalog_bot.api.images.base import ImageProvider
from catalog_bot.api.images.brand import brandfetch_logo, get_og_image, resolve_brand_domain
from catalog_bot.api.images.providers import build_image_providers
from catalog_bot.api.search import find_best_image_with_search
from catalog_bot.api.storage import SourceDownloadError, SupabaseStorage
from catalog_bot.core.config import settings, split_order
from catalog_bot.core.models import ProductDraft
from catalog_bot.utils.retry import SleepFunc, run_with_retries
from catalog_bot.utils.text import is_unknown, short_brand_name

from .card_renderer import CardRenderer

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_ORDER = ("cloudflare", "hf", "deepai", "pollinations")
LOCAL_PROVIDER = "local"
MAX_PROMPT_DESCRIPTION = 220

StatusCallback = Callable[[str], Awaitable[None]]


def build_image_prompt(draft: ProductDraft) -> str:
    name = (draft.name or "Unnamed Product").strip()
    plan = "" if is_unknown(draft.plan) else str(draft.plan).strip()
    description = " ".join((draft.description or "").split())
    if len(description) > MAX_PROMPT_DESCRIPTION:
        description = description[:MAX_PROMPT_DESCRIPTION] + "…"

    parts = [f"High-quality, detailed hero image for: {name}{' - ' + plan if plan else ''}."]
    if description:
        parts.append(f"Visual theme inspired by: {description}.")
    parts.append("No text, no watermarks, no logos, ultra realistic, 4K, photorealistic lighting, cinematic style")
    return " ".join(parts)


def resolve_image_order(explicit: Optional[Sequence[str]] = None) -> List[str]:
    order = [str(name).strip().lower() for name in explicit or [] if name and str(name).strip()]
    return order or split_order(settings.IMAGE_PROVIDER_ORDER) or list(DEFAULT_IMAGE_ORDER)


class ImageResolver:
    """Оркестратор подбора и генерации изображения товара."""

    def __init__(
        self,
        storage: Optional[SupabaseStorage] = None,
        providers: Optional[Dict[str, ImageProvider]] = None,
        renderer: Optional[CardRenderer] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: Optional[SleepFunc] = None,
        text_overlay: Optional[bool] = None,
    ) -> None:
        self.storage = storage or SupabaseStorage()
        self.providers = providers if providers is not None else build_image_providers()
        self.renderer = renderer or CardRenderer()
        self.transport = transport
        self.attempts = attempts or settings.IMAGE_RETRIES
        self.base_delay = settings.RETRY_BACKOFF if base_delay is None else base_delay
        self.sleep = sleep
        self.text_overlay = settings.IMAGE_TEXT_OVERLAY if text_overlay is None else text_overlay

    async def _rehost_candidate(self, url: str, filename: str, table: str, label: str) -> Optional[str]:
        logger.info("[img] %s candidate %s, rehosting", label, url)
        try:
            return await self.storage.rehost(url, filename, table)
        except SourceDownloadError as exc:
            logger.warning("[img] %s candidate unusable: %s", label, exc)
            return None

    async def try_brand_images(self, draft: ProductDraft, table: str) -> Optional[str]:
        """Уровни 1-3: настоящие изображения бренда. None, если ничего не нашлось."""
        domain = resolve_brand_domain(draft.name)
        if domain:
            site = f"https://{domain}"
            logger.info("[img] checking OG image from %s", site)
            og_image = await get_og_image(site, transport=self.transport)
            if og_image:
                hosted = await self._rehost_candidate(og_image, f"{draft.name}.jpg", table, "OG")
                if hosted:
                    return hosted

            logger.info("[img] trying Brandfetch for %s", domain)
            logo = await brandfetch_logo(domain, transport=self.transport)
            if logo:
                hosted = await self._rehost_candidate(logo, f"{draft.name}_logo.png", table, "Brandfetch")
                if hosted:
                    return hosted

        query = f"{short_brand_name(draft.name)} logo png"
        found = await find_best_image_with_search(query, transport=self.transport)
        if found:
            return await self._rehost_candidate(found, f"{draft.name}_search.jpg", table, "search")
        return None

    async def _render_card(self, draft: ProductDraft, table: str, suffix: str) -> str:
        card = self.renderer.render_card(draft)
        return await self.storage.rehost(card, f"{draft.name}_{suffix}.png", table)

    def _with_overlay(self, image: bytes, draft: ProductDraft) -> bytes:
        if not self.text_overlay:
            return image
        try:
            return self.renderer.compose_overlay(image, draft)
        except (OSError, ValueError) as exc:
            logger.warning("[img] overlay skipped: %s", exc)
            return image

    async def generate_background_with_order(
        self,
        draft: ProductDraft,
        table: str,
        order: Optional[Sequence[str]] = None,
        status: Optional[StatusCallback] = None,
    ) -> str:
        """Уровни 4-5: генераторы по порядку, затем локальная карточка."""

        async def notify(message: str) -> None:
            if status is not None:
                await status(message)

        prompt = build_image_prompt(draft)
        logger.info("[img] using image prompt: %s", prompt)

        for name in resolve_image_order(order):
            if name == LOCAL_PROVIDER:
                await notify("Rendering a local card...")
                return await self._render_card(draft, table, "local")

            provider = self.providers.get(name)
            if provider is None:
                logger.warning("[img] unknown image provider %r, skipping", name)
                continue

            await notify(f"Trying image provider: {name}...")

            async def call(_attempt: int, generator: ImageProvider = provider) -> Optional[bytes]:
                return await generator.generate_image(prompt)

            result = await run_with_retries(
                f"image:{name}",
                call,
                attempts=self.attempts,
                base_delay=self.base_delay,
                sleep=self.sleep,
            )
            if result.succeeded:
                await notify(f"{name} succeeded, rehosting image...")
                image = self._with_overlay(result.payload, draft)
                return await self.storage.rehost(image, f"{draft.name}_{name}.png", table)
            await notify(f"{name} failed, trying next...")

        logger.warning("[img] all image providers failed, drawing fallback card")
        await notify("All providers failed. Creating a fallback image...")
        return await self._render_card(draft, table, "fallback")

    async def resolve_product_image(
        self,
        draft: ProductDraft,
        table: str,
        order: Optional[Sequence[str]] = None,
        status: Optional[StatusCallback] = None,
    ) -> Optional[str]:
        """Полная лестница уровней 1-5. Бросает только StorageUploadError."""
        hosted = await self.try_brand_images(draft, table)
        if hosted:
            return hosted
        return await self.generate_background_with_order(draft, table, order, status)
