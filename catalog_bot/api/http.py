"""
Общие параметры исходящих HTTP-запросов: заголовки браузера и проверка SSL.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any, Optional

import certifi
import httpx

from catalog_bot.core.config import settings

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# httpx.InvalidURL не наследует HTTPError: битый адрес из выдачи тоже мягкая ошибка
REQUEST_ERRORS = (httpx.HTTPError, httpx.InvalidURL)

_ssl_warned = False


def ssl_verify() -> ssl.SSLContext | bool:
    """Контекст SSL на базе certifi либо False, если проверка отключена в настройках."""
    global _ssl_warned
    if settings.DISABLE_SSL_VERIFY:
        if not _ssl_warned:
            # ВНИМАНИЕ: отключение проверки SSL небезопасно
            logger.warning("SSL verification is DISABLED. This is not recommended for production!")
            _ssl_warned = True
        return False
    return ssl.create_default_context(cafile=certifi.where())


def build_client(
    timeout: float,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    headers: Optional[dict[str, str]] = None,
    **kwargs: Any,
) -> httpx.AsyncClient:
    """
    Создаёт AsyncClient с заголовками браузера и редиректами.

    transport подменяется в тестах на httpx.MockTransport.
    """
    merged = dict(BROWSER_HEADERS)
    if headers:
        merged.update(headers)
    params: dict[str, Any] = {
        "timeout": timeout,
        "follow_redirects": True,
        "headers": merged,
    }
    if transport is not None:
        params["transport"] = transport
    else:
        params["verify"] = ssl_verify()
    params.update(kwargs)
    return httpx.AsyncClient(**params)
