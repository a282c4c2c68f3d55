"""
Модели данных пайплайна: черновик товара, пакет доказательств и результат попытки провайдера.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

UNKNOWN = "unknown"

CATEGORIES_ALLOWED = ("OTT Accounts", "IPTV", "Product Key", "Download")
DEFAULT_CATEGORY = "Download"


class Table:
    """Логические таблицы назначения (они же выбирают бакет в хранилище)."""

    PRODUCTS = "products"
    EXCLUSIVE = "exclusive_products"

    ALL = (PRODUCTS, EXCLUSIVE)


@dataclass(slots=True)
class ProductDraft:
    """Черновик товара, который оператор проверяет перед сохранением."""

    name: str
    plan: str = UNKNOWN
    validity: str = UNKNOWN
    price: Optional[int] = None
    description: str = ""
    tags: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)
    category: str = DEFAULT_CATEGORY
    subcategory: str = UNKNOWN
    image: Optional[str] = None
    original_price: Optional[int] = None
    stock: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        """Сериализация для хранения в данных FSM-сессии."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductDraft":
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        known.setdefault("name", "Product")
        return cls(**known)


@dataclass(slots=True)
class SourceChunk:
    url: str
    text: str


@dataclass(slots=True)
class EvidenceBundle:
    """Собранный из веба текст; живёт только в рамках одного вызова обогащения."""

    source_chunks: List[SourceChunk] = field(default_factory=list)
    combined_text: str = ""
    official_host: Optional[str] = None

    @property
    def page_count(self) -> int:
        return len(self.source_chunks)


@dataclass(slots=True)
class ProviderAttemptResult:
    """Итог работы одного провайдера (используется для логов и решения о fallback)."""

    provider_name: str
    succeeded: bool
    payload: Any = None
    error: Optional[str] = None
    attempts: int = 0
