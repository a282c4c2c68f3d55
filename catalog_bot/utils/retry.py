"""
Повторы с экспоненциальной задержкой для одного провайдера.

Бюджет попыток принадлежит вызову: каждый провайдер в цепочке получает свой
собственный счётчик, исчерпание у одного не влияет на следующий.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from catalog_bot.core.models import ProviderAttemptResult

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


def _is_empty(payload: Any) -> bool:
    if payload is None:
        return True
    if isinstance(payload, (bytes, bytearray, dict, list, str)):
        return len(payload) == 0
    return False


async def run_with_retries(
    label: str,
    call: Callable[[int], Awaitable[Any]],
    *,
    attempts: int = 2,
    base_delay: float = 0.8,
    sleep: Optional[SleepFunc] = None,
) -> ProviderAttemptResult:
    """
    Вызывает call(attempt) до attempts раз, пока не получит непустой результат.

    Пустой результат (None, b"", {}) и любое исключение считаются мягкой ошибкой.
    Между попытками ждём base_delay * 2 ** attempt секунд.
    """
    sleep = sleep or asyncio.sleep
    attempts = max(1, int(attempts))
    last_error: Optional[str] = None

    for attempt in range(attempts):
        try:
            payload = await call(attempt)
        except Exception as exc:  # считаем мягкой ошибкой
            payload = None
            last_error = f"{exc.__class__.__name__}: {exc}"
        else:
            if not _is_empty(payload):
                return ProviderAttemptResult(
                    provider_name=label,
                    succeeded=True,
                    payload=payload,
                    attempts=attempt + 1,
                )
            last_error = "empty result"

        logger.warning("[retry] %s attempt %s/%s failed: %s", label, attempt + 1, attempts, last_error)
        if attempt + 1 < attempts:
            await sleep(base_delay * (2 ** attempt))

    logger.warning("[retry] %s giving up after %s attempts: %s", label, attempts, last_error)
    return ProviderAttemptResult(
        provider_name=label,
        succeeded=False,
        error=last_error,
        attempts=attempts,
    )
