"""
Заполнение карточки товара с помощью LLM.

Провайдеры вызываются строго по очереди, у каждого свой бюджет повторов.
Если не ответил ни один, карточка собирается эвристиками из текста оператора,
так что enrich_with_ai всегда возвращает пригодный черновик.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from catalog_bot.api.llm.registry import (
    DEFAULT_TEXT_ORDER,
    TextProviderRegistry,
    get_text_registry,
    normalize_provider_name,
)
from catalog_bot.core.config import settings, split_order
from catalog_bot.core.models import (
    CATEGORIES_ALLOWED,
    DEFAULT_CATEGORY,
    UNKNOWN,
    ProductDraft,
    ProviderAttemptResult,
)
from catalog_bot.utils.html_meta import extract_json_ld_product, extract_meta_tags
from catalog_bot.utils.retry import SleepFunc, run_with_retries
from catalog_bot.utils.text import (
    is_unknown,
    parse_price,
    sanitize_text_for_ai,
    split_list,
    uniq_merge,
)

from .web_search import WebSearchAggregator

logger = logging.getLogger(__name__)

PLAN_HINT = re.compile(r"plan[:\-]?\s*([^\n]+)", re.IGNORECASE)
MAX_NAME_CHARS = 120
MAX_PLAN_CHARS = 80
MAX_FEATURES = 6
MAX_FEATURE_CHARS = 140
DETAIL_MIN_DESCRIPTION = 150
DETAIL_MIN_FEATURES = 3
DETAIL_MIN_EVIDENCE = 400
DETAIL_EVIDENCE_CHARS = 8000

CATEGORY_RULES = (
    ("OTT Accounts", re.compile(
        r"\b(ott|netflix|prime video|hotstar|disney|hulu|hbo|zee5|sonyliv|spotify|youtube|crunchyroll|streaming)\b",
        re.IGNORECASE,
    )),
    ("IPTV", re.compile(r"\b(iptv|m3u|live tv|channels)\b", re.IGNORECASE)),
    ("Product Key", re.compile(r"\b(product key|licen[cs]e|activation|serial|key)\b", re.IGNORECASE)),
)

SYSTEM_PROMPT = (
    'You MUST output ONLY one JSON object with EXACT keys: {"name":"string","plan":"string|unknown",'
    '"validity":"string|unknown","price":"number|unknown","description":"string","tags":["string"],'
    '"category":"string","subcategory":"string|unknown","features":["string"]}'
)

USER_PROMPT_TEMPLATE = '''User text:
"""{user_text}"""

Trusted sources (use for description & features; do NOT invent):
"""{evidence}"""

Rules:
1) Prefer user's explicit name/plan/validity/price if present.
2) Description: 1-3 factual sentences taken from the sources.
3) Features: 4-6 short factual bullets taken from the sources.
4) Category must be one of: {categories}.
5) If some field is unknown, use "unknown". Return JSON only.'''

DETAIL_SYSTEM_PROMPT = (
    'You MUST output ONLY one JSON object with EXACT keys: {"description":"string","features":["string"]}'
)

DETAIL_PROMPT_TEMPLATE = '''From ONLY the following sources, write:
A) A concise, factual 2-3 sentence description of "{name}" ({plan}).
B) 5 short factual bullet features.

Sources:
"""{evidence}"""'''


def normalize_category(ai_category: Any, *context: Any) -> str:
    """
    Приводит категорию к закрытому набору.

    Точное совпадение (без учёта регистра) выигрывает сразу, иначе правила по
    ключевым словам применяются к категории модели и контексту, иначе Download.
    """
    if ai_category:
        wanted = str(ai_category).strip().casefold()
        for allowed in CATEGORIES_ALLOWED:
            if wanted == allowed.casefold():
                return allowed

    parts: List[str] = [str(ai_category or "")]
    for item in context:
        if isinstance(item, (list, tuple, set)):
            parts.extend(str(value) for value in item if value)
        elif item:
            parts.append(str(item))
    haystack = " ".join(parts)

    for category, pattern in CATEGORY_RULES:
        if pattern.search(haystack):
            return category
    return DEFAULT_CATEGORY


def resolve_provider_order(explicit: Optional[Sequence[str]] = None) -> List[str]:
    """
    Порядок провайдеров: явный (из сессии) -> TEXT_PROVIDER_ORDER -> порядок по умолчанию.
    Резервный TEXT_FALLBACK_PROVIDER добавляется в конец, если его там нет.
    """
    order = [normalize_provider_name(name) for name in explicit or [] if name and str(name).strip()]
    if not order:
        order = [normalize_provider_name(name) for name in split_order(settings.TEXT_PROVIDER_ORDER)]
    if not order:
        order = list(DEFAULT_TEXT_ORDER)

    fallback = normalize_provider_name(settings.TEXT_FALLBACK_PROVIDER)
    if fallback:
        order.append(fallback)
    return list(dict.fromkeys(order))


def page_evidence(html: str, text: str) -> str:
    """Текст страницы товара, дополненный OpenGraph и JSON-LD фактами."""
    lines: List[str] = []
    meta = extract_meta_tags(html) if html else {}
    if meta.get("og_title"):
        lines.append(f"Title: {meta['og_title']}")
    if meta.get("og_desc"):
        lines.append(f"Summary: {meta['og_desc']}")

    product = extract_json_ld_product(html) if html else None
    if product:
        facts = {key: value for key, value in product.items() if value and value != UNKNOWN}
        if facts:
            lines.append("Structured data: " + json.dumps(facts, ensure_ascii=False))

    if text:
        lines.append(text)
    return "\n".join(lines)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(str(item) for item in value if item is not None).strip()
    return str(value).strip()


def _known_or(value: Any, *fallbacks: str) -> str:
    text = _as_text(value)
    if text and not is_unknown(text):
        return text
    for fallback in fallbacks:
        if fallback and not is_unknown(fallback):
            return fallback
    return UNKNOWN


def _coerce_features(value: Any) -> List[str]:
    items = value if isinstance(value, (list, tuple)) else split_list(value)
    features = []
    for item in items:
        text = re.sub(r"^[-•*\s]+", "", _as_text(item))[:MAX_FEATURE_CHARS]
        if text and not is_unknown(text):
            features.append(text)
    return uniq_merge(features)[:MAX_FEATURES]


class EnrichmentService:
    """
    Оркестратор текстового обогащения.

    Args:
        registry: Реестр текстовых провайдеров
        search: Агрегатор веб-доказательств
        attempts: Попыток на один провайдер (по умолчанию TEXT_RETRIES)
        base_delay: Базовая задержка между попытками (по умолчанию RETRY_BACKOFF)
        sleep: Функция ожидания (в тестах подменяется, чтобы не ждать)
    """

    def __init__(
        self,
        registry: Optional[TextProviderRegistry] = None,
        search: Optional[WebSearchAggregator] = None,
        attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        self.registry = registry or get_text_registry()
        self.search = search or WebSearchAggregator()
        self.attempts = attempts or settings.TEXT_RETRIES
        self.base_delay = settings.RETRY_BACKOFF if base_delay is None else base_delay
        self.sleep = sleep

    async def run_text_providers_with_order(
        self,
        order: Iterable[str],
        system_prompt: str,
        user_prompt: str,
    ) -> Optional[ProviderAttemptResult]:
        """Первый успешный провайдер по порядку или None, если не ответил никто."""
        for name in order:
            if name not in self.registry:
                logger.warning("[text] provider %r is not registered, skipping", name)
                continue
            logger.info("[text] trying provider: %s", name)

            async def call(_attempt: int, provider: str = name) -> Optional[Dict[str, Any]]:
                return await self.registry.call_provider(provider, system_prompt, user_prompt)

            result = await run_with_retries(
                f"text:{name}",
                call,
                attempts=self.attempts,
                base_delay=self.base_delay,
                sleep=self.sleep,
            )
            logger.info(
                "[text] %s: succeeded=%s attempts=%s error=%s",
                result.provider_name,
                result.succeeded,
                result.attempts,
                result.error,
            )
            if result.succeeded and isinstance(result.payload, dict):
                # дальше (детальный проход) провайдер ищется в реестре по имени
                result.provider_name = name
                return result
        return None

    async def enrich_with_ai(
        self,
        user_text: str,
        website_content: str = "",
        provider_order: Optional[Sequence[str]] = None,
    ) -> ProductDraft:
        """Всегда возвращает черновик; ошибки конвейера превращаются в эвристический результат."""
        clean_text = sanitize_text_for_ai(user_text)
        try:
            return await self._enrich(clean_text, website_content or "", provider_order)
        except Exception:
            logger.exception("[text] enrichment pipeline crashed, using minimal extraction")
            return self.minimal_draft(clean_text)

    @staticmethod
    def minimal_draft(clean_text: str) -> ProductDraft:
        """Черновик только из текста оператора (когда все провайдеры недоступны)."""
        name = clean_text.split("\n")[0].strip()[:MAX_NAME_CHARS] or "Product"
        return ProductDraft(
            name=name,
            plan=UNKNOWN,
            validity=UNKNOWN,
            price=parse_price(clean_text),
            description=name,
            tags=[],
            features=[],
            category=normalize_category(None, name, clean_text),
            subcategory=UNKNOWN,
        )

    async def _enrich(
        self,
        clean_text: str,
        website_content: str,
        provider_order: Optional[Sequence[str]],
    ) -> ProductDraft:
        guessed_name = clean_text.split("\n")[0][:MAX_NAME_CHARS].strip()
        plan_match = PLAN_HINT.search(clean_text)
        plan_guess = plan_match.group(1)[:MAX_PLAN_CHARS].strip() if plan_match else ""

        web_bundle = await self.search.search_web_for_product(guessed_name, plan_guess)
        evidence = sanitize_text_for_ai(f"{website_content}\n\n{web_bundle}")[: settings.MAX_PROMPT_EVIDENCE]

        user_prompt = USER_PROMPT_TEMPLATE.format(
            user_text=clean_text,
            evidence=evidence,
            categories=" | ".join(CATEGORIES_ALLOWED),
        )
        order = resolve_provider_order(provider_order)
        logger.info("[text] provider order resolved to: %s", order)

        winner = await self.run_text_providers_with_order(order, SYSTEM_PROMPT, user_prompt)
        if winner is None:
            logger.error("[text] All providers failed. Using minimal extraction.")
            return self.minimal_draft(clean_text)

        draft = self._coerce(winner.payload, clean_text, guessed_name, plan_guess)

        needs_detail = len(draft.description) < DETAIL_MIN_DESCRIPTION or len(draft.features) < DETAIL_MIN_FEATURES
        if needs_detail and len(evidence) > DETAIL_MIN_EVIDENCE:
            await self._detail_pass(winner.provider_name, draft, evidence)

        draft.category = normalize_category(
            draft.category, draft.name, draft.description, clean_text, draft.subcategory, draft.tags,
        )
        logger.info(
            "[text] filled by %s - evidence %s chars - name=%r plan=%r descChars=%s feats=%s",
            winner.provider_name,
            len(evidence),
            draft.name,
            draft.plan,
            len(draft.description),
            len(draft.features),
        )
        return draft

    @staticmethod
    def _coerce(payload: Dict[str, Any], clean_text: str, guessed_name: str, plan_guess: str) -> ProductDraft:
        raw_price = payload.get("price")
        if raw_price is None or (isinstance(raw_price, str) and not raw_price.strip()):
            price = parse_price(clean_text)
        else:
            price = parse_price(raw_price)

        name = _known_or(payload.get("name"), guessed_name)
        description = _as_text(payload.get("description"))
        return ProductDraft(
            name=name if name != UNKNOWN else "Product",
            plan=_known_or(payload.get("plan"), plan_guess),
            validity=_known_or(payload.get("validity")),
            price=price,
            description="" if is_unknown(description) else description,
            tags=uniq_merge(split_list(payload.get("tags"))),
            features=_coerce_features(payload.get("features")),
            category=_as_text(payload.get("category")) or DEFAULT_CATEGORY,
            subcategory=_known_or(payload.get("subcategory")),
        )

    async def _detail_pass(self, provider_name: str, draft: ProductDraft, evidence: str) -> None:
        """Один дополнительный запрос за описанием и фичами; ошибки только логируются."""
        prompt = DETAIL_PROMPT_TEMPLATE.format(
            name=draft.name,
            plan=draft.plan,
            evidence=evidence[:DETAIL_EVIDENCE_CHARS],
        )
        more = await self.registry.call_provider(provider_name, DETAIL_SYSTEM_PROMPT, prompt)
        if not more:
            logger.warning("[text] detail pass via %s returned nothing", provider_name)
            return

        description = _as_text(more.get("description"))
        if len(description) > len(draft.description) and not is_unknown(description):
            draft.description = description
        features = _coerce_features(more.get("features"))
        if len(features) > len(draft.features):
            draft.features = features
