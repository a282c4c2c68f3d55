"""
Поиск настоящих изображений бренда: OpenGraph главной страницы и Brandfetch.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx

from catalog_bot.core.config import settings
from catalog_bot.utils.html_meta import extract_meta_tags
from catalog_bot.utils.text import short_brand_name

from ..http import REQUEST_ERRORS, build_client

logger = logging.getLogger(__name__)

BRANDFETCH_LOGO_URL = "https://api.brandfetch.io/v2/logo/"

# Бренды, у которых домен не совпадает с «<имя>.com»
BRAND_DOMAINS = {
    "v0": "v0.dev",
    "gamma": "gamma.app",
    "spotify": "spotify.com",
    "netflix": "netflix.com",
    "youtube": "youtube.com",
    "crunchyroll": "crunchyroll.com",
    "elevenlabs": "elevenlabs.io",
    "coursera": "coursera.org",
    "scribd": "scribd.com",
    "skillshare": "skillshare.com",
    "kittl": "kittl.com",
    "perplexity": "perplexity.ai",
}


def resolve_brand_domain(name: str) -> Optional[str]:
    """
    Домен бренда по названию товара: сначала таблица алиасов,
    иначе slug из букв и цифр + .com (не короче 3 символов).
    """
    if not name:
        return None
    brand = short_brand_name(name).lower().strip()
    for alias, domain in BRAND_DOMAINS.items():
        if alias in brand:
            return domain
    slug = re.sub(r"[^a-z0-9]", "", brand)
    return f"{slug}.com" if len(slug) >= 3 else None


async def get_og_image(
    url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    """og:image главной страницы или None."""
    try:
        async with build_client(settings.META_TIMEOUT, transport=transport) as client:
            response = await client.get(url)
    except REQUEST_ERRORS as exc:
        logger.warning("[img] OG fetch failed for %s: %s", url, exc)
        return None
    if response.status_code >= 400:
        return None
    return extract_meta_tags(response.text).get("og_image")


async def brandfetch_logo(
    domain: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    """URL логотипа из Brandfetch: PNG, иначе SVG."""
    try:
        async with build_client(settings.LOGO_TIMEOUT, transport=transport) as client:
            response = await client.get(BRANDFETCH_LOGO_URL + domain)
        if response.status_code >= 400:
            return None
        data = response.json()
    except (*REQUEST_ERRORS, ValueError) as exc:
        logger.warning("[img] Brandfetch failed for %s: %s", domain, exc)
        return None

    formats = [item for item in (data.get("formats") if isinstance(data, dict) else None) or [] if isinstance(item, dict)]
    for wanted in ("png", "svg"):
        for item in formats:
            if item.get("format") == wanted and item.get("src"):
                return item["src"]
    return None
