"""
Поисковые бэкенды: DuckDuckGo (HTML и Lite), Википедия и поиск картинок.

Ответы DuckDuckGo разбираются регулярными выражениями по недокументированной
разметке, поэтому каждый бэкенд спрятан за узким интерфейсом SearchBackend
(запрос -> список URL) и может быть заменён без правок агрегатора.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Protocol
from urllib.parse import quote

import httpx

from catalog_bot.core.config import settings

from .http import REQUEST_ERRORS, build_client

logger = logging.getLogger(__name__)

DDG_HTML_URL = "https://duckduckgo.com/html/"
DDG_LITE_URL = "https://duckduckgo.com/lite/"
DDG_IMAGES_URL = "https://duckduckgo.com/"
WIKI_API_URL = "https://en.wikipedia.org/w/api.php"
WIKI_PAGE_URL = "https://en.wikipedia.org/wiki/"

HTML_RESULT_LINK = re.compile(r"<a[^>]+class=\"result__a\"[^>]+href=\"([^\"]+)\"", re.IGNORECASE)
LITE_RESULT_LINK = re.compile(r"<a href=\"(https?://[^\"]+)\"", re.IGNORECASE)
IMAGE_RESULT = re.compile(r"\"image\":\"(https?://[^\"]+)\"")
ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)

WIKI_EXTRACT_LIMIT = 12000
IMAGE_URL_MIN_LENGTH = 50


def _unique(items: List[str], limit: int) -> List[str]:
    seen: set[str] = set()
    result: List[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
        if len(result) >= limit:
            break
    return result


class SearchBackend(Protocol):
    """Поисковый бэкенд: запрос -> список URL. Ошибки возвращаются пустым списком."""

    name: str

    async def search(self, query: str, limit: int = 8) -> List[str]:
        ...


class _DuckDuckGoBackend:
    name = "ddg"
    endpoint = DDG_HTML_URL
    pattern = HTML_RESULT_LINK

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.transport = transport

    def _params(self, query: str) -> dict[str, str]:
        return {"q": query}

    async def search(self, query: str, limit: int = 8) -> List[str]:
        if not query.strip():
            return []
        try:
            async with build_client(settings.FETCH_TIMEOUT, transport=self.transport) as client:
                response = await client.get(self.endpoint, params=self._params(query))
        except REQUEST_ERRORS as exc:
            logger.warning("[web] %s search failed: %s", self.name, exc)
            return []
        if response.status_code >= 400:
            logger.warning("[web] %s search -> HTTP %s", self.name, response.status_code)
            return []

        links = [link for link in self.pattern.findall(response.text) if ABSOLUTE_URL.match(link)]
        return _unique(links, limit)


class DuckDuckGoHTMLBackend(_DuckDuckGoBackend):
    name = "ddg-html"
    endpoint = DDG_HTML_URL
    pattern = HTML_RESULT_LINK

    def _params(self, query: str) -> dict[str, str]:
        return {"q": query, "ia": "web"}


class DuckDuckGoLiteBackend(_DuckDuckGoBackend):
    name = "ddg-lite"
    endpoint = DDG_LITE_URL
    pattern = LITE_RESULT_LINK


class WikipediaClient:
    """Поиск статьи и получение её текста через MediaWiki API (без ключа)."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.transport = transport

    async def _query(self, params: dict[str, str]) -> Optional[dict]:
        params = {**params, "format": "json"}
        try:
            async with build_client(settings.FETCH_TIMEOUT, transport=self.transport) as client:
                response = await client.get(WIKI_API_URL, params=params)
            if response.status_code >= 400:
                return None
            data = response.json()
        except (*REQUEST_ERRORS, ValueError) as exc:
            logger.warning("[web] wikipedia request failed: %s", exc)
            return None
        return data if isinstance(data, dict) else None

    async def best_page(self, query: str) -> Optional[str]:
        """Заголовок самой релевантной статьи."""
        if not (query or "").strip():
            return None
        data = await self._query({"action": "query", "list": "search", "srsearch": query, "srlimit": "5"})
        hits = ((data or {}).get("query") or {}).get("search") or []
        if not hits:
            return None
        return hits[0].get("title") or None

    async def extract_by_title(self, title: str) -> str:
        data = await self._query({
            "action": "query",
            "prop": "extracts",
            "explaintext": "1",
            "redirects": "1",
            "titles": title,
        })
        pages = ((data or {}).get("query") or {}).get("pages") or {}
        for page in pages.values():
            text = (page or {}).get("extract") or ""
            return text[:WIKI_EXTRACT_LIMIT]
        return ""

    @staticmethod
    def page_url(title: str) -> str:
        return WIKI_PAGE_URL + quote(title, safe="")


async def find_best_image_with_search(
    query: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    """Первый правдоподобный URL из выдачи картинок DuckDuckGo (не data:, достаточно длинный)."""
    logger.info("[img] image search for %r", query)
    params = {"q": query, "t": "h_", "iax": "images", "ia": "images"}
    try:
        async with build_client(settings.FETCH_TIMEOUT, transport=transport) as client:
            response = await client.get(DDG_IMAGES_URL, params=params)
    except REQUEST_ERRORS as exc:
        logger.warning("[img] image search failed: %s", exc)
        return None
    if response.status_code >= 400:
        return None

    for url in IMAGE_RESULT.findall(response.text):
        if len(url) > IMAGE_URL_MIN_LENGTH and "data:image" not in url:
            return url
    return None
