"""
Текстовые утилиты пайплайна: разбор цены, дедупликация тегов, очистка текста
для LLM, извлечение JSON из ответов модели и разбор хостов.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

PRICE_TOKEN = re.compile(r"(\d[\d,\.]*)")
MARKDOWN_EMPHASIS = re.compile(r"[*_`~]")
MULTI_SPACE = re.compile(r"\s{2,}")
CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
UNKNOWN_VALUES = re.compile(r"^(unknown|null|none|n/a|na|-|\s*)$", re.IGNORECASE)
LIST_SEPARATORS = re.compile(r"[;,\n]")

# Слова, которые не несут бренда: «Netflix Premium 1 Month» -> «Netflix»
BRAND_NOISE_WORDS = (
    "premium", "pro", "plus", "subscription", "subs", "account", "license", "key",
    "activation", "fan", "mega", "plan", "tier", "access", "year", "years", "month",
    "months", "day", "days", "lifetime", "annual", "basic", "standard", "advanced",
    "creator", "business", "enterprise", "personal", "family", "student", "individual",
)
BRAND_NOISE = re.compile(r"\b(" + "|".join(BRAND_NOISE_WORDS) + r")\b", re.IGNORECASE)


def parse_price(raw: Any) -> Optional[int]:
    """
    Извлекает цену как целое число из произвольной строки.

    Берётся первая группа цифр (с разделителями тысяч и десятичной точкой),
    округление половины вверх: "₹1,299.50 for 1 year" -> 1300, "free" -> None.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw) or raw < 0:
            return None
        return int(math.floor(raw + 0.5))

    match = PRICE_TOKEN.search(str(raw))
    if not match:
        return None
    token = match.group(1).replace(",", "").rstrip(".")
    try:
        value = float(token)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return int(math.floor(value + 0.5))


def uniq_merge(*groups: Optional[Iterable[Any]]) -> list[str]:
    """
    Объединяет списки тегов, убирая пустые значения и дубликаты
    без учёта регистра и пробелов. Сохраняется первое встреченное написание.
    """
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        if not group:
            continue
        if isinstance(group, str):
            group = split_list(group)
        for item in group:
            if item is None:
                continue
            value = str(item).strip()
            key = value.casefold()
            if not value or key in seen:
                continue
            seen.add(key)
            merged.append(value)
    return merged


def split_list(value: Any) -> list[str]:
    """Приводит строку вида 'a, b; c' или список к списку строк."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return [part.strip() for part in LIST_SEPARATORS.split(str(value)) if part.strip()]


def sanitize_text_for_ai(text: Any) -> str:
    """Убирает markdown-выделение и схлопывает повторяющиеся пробелы."""
    cleaned = MARKDOWN_EMPHASIS.sub("", str(text or ""))
    return MULTI_SPACE.sub(" ", cleaned).strip()


def is_unknown(value: Any) -> bool:
    return value is None or bool(UNKNOWN_VALUES.match(str(value)))


def strip_code_fences(raw_text: str) -> str:
    return CODE_FENCE.sub(r"\1", raw_text or "").strip()


def _balanced_objects(text: str) -> Iterable[str]:
    """Перебирает сбалансированные фрагменты {...}, учитывая строки и экранирование."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    yield text[start:index + 1]
                    break
        start = text.find("{", start + 1)


def safe_parse_first_json_object(raw_text: Any) -> Optional[dict]:
    """
    Достаёт первый JSON-объект из ответа модели.

    Снимает markdown-ограждения, пробует разобрать ответ целиком, затем ищет
    первый сбалансированный {...}. Никогда не бросает исключений.
    """
    if not raw_text:
        return None
    cleaned = strip_code_fences(str(raw_text))
    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, dict):
            return parsed
    except (json.JSONDecodeError, ValueError):
        pass

    for candidate in _balanced_objects(cleaned):
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def alnum_key(value: Any) -> str:
    """Нижний регистр, только латинские буквы и цифры."""
    return re.sub(r"[^a-z0-9]+", "", str(value or "").lower())


def host_of(url: str) -> Optional[str]:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def strip_tld(host: str) -> str:
    parts = (host or "").split(".")
    return ".".join(parts[:-1]) or host


def short_brand_name(name: Any) -> str:
    """«Netflix Premium 4K - 1 Month» -> «Netflix 4K»: имя бренда без тарифных слов и чисел."""
    original = str(name or "Product").strip()
    short = re.split(r"[-–—(]", original)[0]
    short = BRAND_NOISE.sub("", short)
    short = re.sub(r"\b\d+\b", "", short)
    short = re.sub(r"\s+", " ", short).strip()
    return short or original or "Product"


def sanitize_for_filename(name: Any) -> str:
    return re.sub(r"[^a-z0-9_.-]", "_", str(name or "product"), flags=re.IGNORECASE)[:100]
