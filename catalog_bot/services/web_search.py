"""
Сбор доказательств о товаре из веба.

Два поисковых бэкенда -> дедупликация ссылок -> угадывание официального домена
по расстоянию Левенштейна -> типовые страницы тарифов на этом домене ->
загрузка страниц -> при скудном результате статья из Википедии.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from catalog_bot.api.search import (
    DuckDuckGoHTMLBackend,
    DuckDuckGoLiteBackend,
    SearchBackend,
    WikipediaClient,
)
from catalog_bot.api.web_fetcher import WebFetcher
from catalog_bot.core.config import settings
from catalog_bot.core.models import EvidenceBundle, SourceChunk
from catalog_bot.utils.text import alnum_key, host_of, strip_tld

logger = logging.getLogger(__name__)

QUERY_SUFFIX = "price features premium plan"
OFFICIAL_PATHS = ("/", "/pricing", "/plans", "/premium", "/subscribe", "/membership", "/features", "/help", "/faq")
RESULTS_PER_BACKEND = 8
BRAND_RESULTS_PER_BACKEND = 10


def pick_official_host(
    brand: str,
    hosts: Iterable[str],
    max_distance: Optional[int] = None,
) -> Optional[str]:
    """
    Хост, чьё имя (без TLD, только буквы и цифры) ближе всего к бренду.

    Принимается только при расстоянии не больше max_distance; при равенстве
    выигрывает первый встреченный.
    """
    limit = settings.OFFICIAL_HOST_MAX_DISTANCE if max_distance is None else max_distance
    brand_key = alnum_key(brand)
    best_host: Optional[str] = None
    best_score: Optional[int] = None
    for host in hosts:
        if not host:
            continue
        score = Levenshtein.distance(brand_key, alnum_key(strip_tld(host)))
        if best_score is None or score < best_score:
            best_host, best_score = host, score
    if best_host is not None and best_score is not None and best_score <= limit:
        return best_host
    return None


class WebSearchAggregator:
    """Агрегатор веб-доказательств. Публичные методы не бросают исключений."""

    def __init__(
        self,
        fetcher: Optional[WebFetcher] = None,
        backends: Optional[Sequence[SearchBackend]] = None,
        wiki: Optional[WikipediaClient] = None,
    ) -> None:
        self.fetcher = fetcher or WebFetcher()
        self.backends = list(backends) if backends is not None else [DuckDuckGoHTMLBackend(), DuckDuckGoLiteBackend()]
        self.wiki = wiki or WikipediaClient()

    async def _collect_urls(self, query: str, limit: int) -> List[str]:
        urls: dict[str, None] = {}
        for backend in self.backends:
            try:
                found = await backend.search(query, limit)
            except Exception as exc:  # сторонний бэкенд без гарантий
                logger.warning("[web] backend %s failed: %s", getattr(backend, "name", backend), exc)
                continue
            for url in found:
                urls.setdefault(url, None)
        return list(urls)

    async def pick_official_domain(self, brand: str) -> Optional[str]:
        """Официальный домен бренда по выдаче обоих поисковиков."""
        if not (brand or "").strip():
            return None
        urls = await self._collect_urls(brand, BRAND_RESULTS_PER_BACKEND)
        return pick_official_host(brand, (host_of(url) for url in urls))

    async def gather_evidence(self, product_name: str, plan: str = "") -> EvidenceBundle:
        query = " ".join(part for part in (product_name, plan, QUERY_SUFFIX) if part)
        urls = await self._collect_urls(query, RESULTS_PER_BACKEND)

        official = pick_official_host(product_name, (host_of(url) for url in urls))
        candidates: dict[str, None] = {}
        if official:
            # страницы тарифов официального сайта идут первыми
            for path in OFFICIAL_PATHS:
                candidates.setdefault(f"https://{official}{path}", None)
        for url in urls:
            candidates.setdefault(url, None)

        bundle = EvidenceBundle(official_host=official)
        for url in candidates:
            if bundle.page_count >= settings.MAX_PAGES:
                break
            try:
                page = await self.fetcher.fetch_page(url)
            except Exception as exc:  # одна битая страница не роняет сбор
                logger.warning("[web] page %s skipped: %s", url, exc)
                continue
            text = page.get("text") or ""
            if len(text) > settings.MIN_PAGE_TEXT:
                bundle.source_chunks.append(SourceChunk(url=url, text=text[: settings.MAX_PAGE_CHARS]))

        combined = "\n\n".join(f"SOURCE: {chunk.url}\n{chunk.text}" for chunk in bundle.source_chunks)
        combined = combined[: settings.MAX_EVIDENCE]

        if len(combined) < settings.THIN_EVIDENCE:
            wiki_chunk = await self._wikipedia_chunk(product_name)
            if wiki_chunk is not None:
                bundle.source_chunks.append(wiki_chunk)
                block = f"SOURCE: {wiki_chunk.url}\n{wiki_chunk.text}"
                combined = f"{combined}\n\n{block}" if combined else block

        bundle.combined_text = combined[: settings.MAX_EVIDENCE]
        logger.info(
            "[text] evidence: %s chars from %s pages; official=%s",
            len(bundle.combined_text),
            bundle.page_count,
            official or "-",
        )
        return bundle

    async def _wikipedia_chunk(self, product_name: str) -> Optional[SourceChunk]:
        title = await self.wiki.best_page(product_name)
        if not title:
            return None
        text = await self.wiki.extract_by_title(title)
        if len(text) <= settings.MIN_WIKI_TEXT:
            return None
        return SourceChunk(url=self.wiki.page_url(title), text=text)

    async def search_web_for_product(self, product_name: str, plan: str = "") -> str:
        """Текст доказательств в виде блоков «SOURCE: url» (не длиннее MAX_EVIDENCE)."""
        bundle = await self.gather_evidence(product_name, plan)
        return bundle.combined_text
