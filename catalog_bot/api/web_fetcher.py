"""
Загрузка одной веб-страницы и извлечение из неё текста.

Сначала прямой GET с заголовками браузера, при неудаче или слишком коротком
тексте - повтор через readability-прокси (r.jina.ai), который сам рендерит
JS-страницы и отдаёт готовый текст.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional

import httpx

from catalog_bot.core.config import settings
from catalog_bot.utils.html_meta import html_to_text

from .http import REQUEST_ERRORS, build_client

logger = logging.getLogger(__name__)

SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def normalize_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        return ""
    return url if SCHEME.match(url) else f"https://{url}"


class WebFetcher:
    """
    Клиент для получения текста страниц.

    Никогда не бросает исключений: при полном провале возвращает пустые строки.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        proxy_base: Optional[str] = None,
    ) -> None:
        self.transport = transport
        self.timeout = float(timeout or settings.FETCH_TIMEOUT)
        self.proxy_base = proxy_base or settings.READABILITY_PROXY
        self.min_text = settings.MIN_PAGE_TEXT
        self.max_proxy_chars = settings.MAX_PROXY_CHARS

    async def fetch_page(self, url: str) -> Dict[str, str]:
        """
        Возвращает {"html": ..., "text": ...} для страницы.

        Для ответа прокси html пустой: прокси отдаёт уже извлечённый текст.
        """
        normalized = normalize_url(url)
        if not normalized:
            return {"html": "", "text": ""}

        direct = await self._fetch_direct(normalized)
        if direct is not None:
            return direct

        proxied = await self._fetch_via_proxy(normalized)
        if proxied is not None:
            return proxied

        logger.info("[web] no usable text from %s", normalized)
        return {"html": "", "text": ""}

    async def _fetch_direct(self, url: str) -> Optional[Dict[str, str]]:
        try:
            async with build_client(self.timeout, transport=self.transport) as client:
                response = await client.get(url)
        except REQUEST_ERRORS as exc:
            logger.debug("[web] direct fetch failed for %s: %s", url, exc)
            return None

        if response.status_code >= 400:
            logger.debug("[web] direct fetch %s -> HTTP %s", url, response.status_code)
            return None

        html = response.text
        text = html_to_text(html)
        if len(text) > self.min_text:
            return {"html": html, "text": text}
        return None

    async def _fetch_via_proxy(self, url: str) -> Optional[Dict[str, str]]:
        target = f"{self.proxy_base}http://{SCHEME.sub('', url)}"
        try:
            async with build_client(self.timeout, transport=self.transport) as client:
                response = await client.get(target)
        except REQUEST_ERRORS as exc:
            logger.debug("[web] proxy fetch failed for %s: %s", url, exc)
            return None

        if response.status_code >= 400:
            logger.debug("[web] proxy fetch %s -> HTTP %s", url, response.status_code)
            return None

        text = response.text or ""
        if len(text) > self.min_text:
            return {"html": "", "text": text[: self.max_proxy_chars]}
        return None
