"""
Извлечение текста и метаданных из HTML страниц товара (OpenGraph, JSON-LD).
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from .text import parse_price

NON_TEXT_TAGS = ["script", "style", "noscript", "template"]
WHITESPACE = re.compile(r"\s+")
JSON_LD_TYPE = re.compile(r"^application/ld\+json$", re.IGNORECASE)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def html_to_text(html: str) -> str:
    """Убирает <script>/<style>, остальные теги и схлопывает пробелы."""
    soup = _soup(html)
    for element in soup(NON_TEXT_TAGS):
        element.decompose()
    return WHITESPACE.sub(" ", soup.get_text(" ")).strip()


def _meta_content(soup: BeautifulSoup, prop: str, attr: str = "property") -> Optional[str]:
    matcher = re.compile(rf"^{re.escape(prop)}$", re.IGNORECASE)
    for tag in soup.find_all("meta", attrs={attr: matcher}):
        content = (tag.get("content") or "").strip()
        if content:
            return content
    return None


def extract_meta_tags(html: str) -> Dict[str, Optional[str]]:
    """OpenGraph-поля страницы с запасными вариантами из Twitter Cards."""
    soup = _soup(html)
    return {
        "og_title": _meta_content(soup, "og:title") or _meta_content(soup, "twitter:title", "name"),
        "og_desc": _meta_content(soup, "og:description") or _meta_content(soup, "twitter:description", "name"),
        "og_image": (
            _meta_content(soup, "og:image:secure_url")
            or _meta_content(soup, "og:image")
            or _meta_content(soup, "twitter:image", "name")
        ),
    }


def _load_json_ld(raw: str) -> Optional[Any]:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    # Частые ошибки в разметке: комментарии и висячие запятые
    cleaned = re.sub(r"/\*[\s\S]*?\*/", "", raw)
    cleaned = re.sub(r"(?m)^\s*//.*$", "", cleaned)
    cleaned = re.sub(r",(\s*[}\]])", r"\1", cleaned)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        return None


def _is_product_node(node: Any) -> bool:
    if not isinstance(node, dict):
        return False
    node_type = node.get("@type") or node.get("type") or ""
    types = node_type if isinstance(node_type, list) else [node_type]
    return any(str(item).lower() == "product" for item in types)


def extract_json_ld_product(html: str) -> Optional[Dict[str, Any]]:
    """
    Ищет в JSON-LD первый узел типа Product.

    Returns:
        dict с ключами name, description, price, validity, features или None.
    """
    nodes: List[Any] = []
    for script in _soup(html).find_all("script", attrs={"type": JSON_LD_TYPE}):
        raw = (script.string or "").strip()
        if not raw:
            continue
        parsed = _load_json_ld(raw)
        if parsed is None:
            continue
        if isinstance(parsed, list):
            nodes.extend(parsed)
        elif isinstance(parsed, dict) and isinstance(parsed.get("@graph"), list):
            nodes.extend(parsed["@graph"])
        else:
            nodes.append(parsed)

    product = next((node for node in nodes if _is_product_node(node)), None)
    if product is None:
        return None

    offers = product.get("offers") or {}
    if isinstance(offers, list):
        offers = offers[0] if offers else {}
    if not isinstance(offers, dict):
        offers = {}
    price_spec = offers.get("priceSpecification") or {}
    raw_price = offers.get("price") or (price_spec.get("price") if isinstance(price_spec, dict) else None)

    features: List[str] = []
    for prop in product.get("additionalProperty") or []:
        if isinstance(prop, dict) and prop.get("name") and prop.get("value"):
            features.append(f"{prop['name']}: {prop['value']}")
    feature_list = product.get("featureList")
    if isinstance(feature_list, list):
        features.extend(str(item) for item in feature_list if item)

    return {
        "name": product.get("name") or None,
        "description": product.get("description") or None,
        "price": parse_price(raw_price),
        "validity": offers.get("availabilityEnds") or offers.get("validThrough") or product.get("validThrough") or "unknown",
        "features": features,
    }
