"""
Supabase: перезаливка изображений в Storage и работа с таблицами товаров.

Клиент supabase-py синхронный, поэтому все вызовы уходят в asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import random
import string
import time
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

import httpx
from supabase import Client, create_client

from catalog_bot.core.config import settings
from catalog_bot.core.models import DEFAULT_CATEGORY, UNKNOWN, ProductDraft, Table
from catalog_bot.utils.text import parse_price, sanitize_for_filename, split_list

from .http import REQUEST_ERRORS, build_client

logger = logging.getLogger(__name__)

DEFAULT_MIME = "image/jpeg"
CACHE_CONTROL = "31536000"  # год

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/svg+xml": "svg",
}

PRODUCT_COLUMNS = (
    "id,name,plan,validity,price,originalPrice,description,category,"
    "subcategory,stock,tags,features,image,is_active"
)
EXCLUSIVE_COLUMNS = "id,name,plan,validity,description,price,tags,features,image_url,is_active"
LIST_COLUMNS = "id,name,price,is_active"


class StorageError(Exception):
    """Базовая ошибка слоя хранения."""


class SourceDownloadError(StorageError):
    """Не удалось скачать исходное изображение по URL."""


class StorageUploadError(StorageError):
    """Не удалось загрузить байты в Supabase Storage."""


class RepositoryError(StorageError):
    """Ошибка чтения или записи таблицы товаров."""


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
        raise StorageError("SUPABASE_URL / SUPABASE_KEY are not configured")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


def sniff_image_type(data: bytes) -> Optional[str]:
    """MIME по сигнатуре файла (PNG, JPEG, WEBP, GIF, SVG)."""
    if not data:
        return None
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    head = data[:512].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "image/svg+xml"
    return None


def mime_from_name(name: str) -> Optional[str]:
    path = urlparse(name).path if "://" in (name or "") else (name or "")
    guessed, _ = mimetypes.guess_type(PurePosixPath(path).name)
    return guessed if guessed in MIME_EXTENSIONS else None


def resolve_mime(data: bytes, declared: Optional[str], *names: str) -> str:
    """
    Порядок: заголовок сервера (если это image/*), сигнатура байтов,
    расширение имени файла или URL, иначе JPEG.
    """
    declared = (declared or "").split(";")[0].strip().lower()
    if declared in MIME_EXTENSIONS:
        return declared
    sniffed = sniff_image_type(data)
    if sniffed:
        return sniffed
    for name in names:
        by_name = mime_from_name(name)
        if by_name:
            return by_name
    return DEFAULT_MIME


def build_object_key(folder: str, filename_hint: str, mime: str) -> str:
    """<folder>/<ms>-<random>-<имя с правильным расширением>."""
    stem = PurePosixPath(filename_hint or "image").stem or "image"
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=10))
    filename = sanitize_for_filename(f"{stem}.{MIME_EXTENSIONS.get(mime, 'jpg')}")
    return f"{folder}/{int(time.time() * 1000)}-{suffix}-{filename}"


class SupabaseStorage:
    """Перезаливка картинок в бакет, соответствующий таблице назначения."""

    def __init__(
        self,
        client: Optional[Client] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = client
        self.transport = transport

    @property
    def client(self) -> Client:
        if self._client is None:
            try:
                self._client = get_supabase_client()
            except StorageError as exc:
                raise StorageUploadError(str(exc)) from exc
        return self._client

    @staticmethod
    def bucket_for(table: str) -> tuple[str, str]:
        if table == Table.PRODUCTS:
            return settings.SUPABASE_BUCKET_PRODUCTS, settings.SUPABASE_FOLDER_PRODUCTS
        return settings.SUPABASE_BUCKET_EXCLUSIVE, settings.SUPABASE_FOLDER_EXCLUSIVE

    async def download(self, url: str) -> tuple[bytes, Optional[str]]:
        if not (url or "").lower().startswith(("http://", "https://")):
            raise SourceDownloadError(f"not an http(s) URL: {url!r}")
        try:
            async with build_client(settings.DOWNLOAD_TIMEOUT, transport=self.transport) as client:
                response = await client.get(url)
        except REQUEST_ERRORS as exc:
            raise SourceDownloadError(f"download failed for {url}: {exc}") from exc
        if response.status_code >= 400:
            raise SourceDownloadError(f"download failed for {url}: HTTP {response.status_code}")
        if not response.content:
            raise SourceDownloadError(f"download returned empty body for {url}")
        return response.content, response.headers.get("content-type")

    async def rehost(
        self,
        source: Union[bytes, bytearray, str],
        filename_hint: str = "image.jpg",
        table: str = Table.PRODUCTS,
    ) -> str:
        """
        Копирует изображение (байты или URL) в Supabase Storage.

        Returns:
            str: Публичный URL загруженного файла

        Raises:
            SourceDownloadError: исходник по URL не скачался
            StorageUploadError: загрузка в хранилище не удалась
        """
        if isinstance(source, (bytes, bytearray)):
            data, declared, source_name = bytes(source), None, ""
        else:
            data, declared = await self.download(source)
            source_name = source
        if not data:
            raise SourceDownloadError("nothing to upload: empty image")

        mime = resolve_mime(data, declared, source_name, filename_hint)
        bucket, folder = self.bucket_for(table)
        key = build_object_key(folder, filename_hint, mime)
        logger.info("[upload] %s -> bucket %s at %s (%s, %s bytes)", filename_hint, bucket, key, mime, len(data))

        options = {"content-type": mime, "cache-control": CACHE_CONTROL, "upsert": "true"}
        try:
            bucket_api = self.client.storage.from_(bucket)
            await asyncio.to_thread(bucket_api.upload, key, data, options)
            public_url = bucket_api.get_public_url(key)
        except StorageUploadError:
            raise
        except Exception as exc:
            raise StorageUploadError(f"upload to {bucket}/{key} failed: {exc}") from exc

        return public_url.rstrip("?")

    async def ensure_hosted(self, url: Optional[str], table: str, filename_hint: str = "prod.jpg") -> Optional[str]:
        """Перезаливает только внешние http(s) ссылки; пустое значение возвращает как есть."""
        if not url or not url.lower().startswith(("http://", "https://")):
            return url
        if self._is_own_url(url):
            return url
        return await self.rehost(url, filename_hint, table)

    @staticmethod
    def _is_own_url(url: str) -> bool:
        base = (settings.SUPABASE_URL or "").rstrip("/")
        return bool(base) and url.startswith(f"{base}/storage/v1/object/public/")


def image_column(table: str) -> str:
    return "image" if table == Table.PRODUCTS else "image_url"


def draft_to_row(table: str, draft: ProductDraft) -> Dict[str, Any]:
    """Черновик -> строка таблицы (у exclusive_products нет части колонок)."""

    def known(value: Optional[str]) -> Optional[str]:
        return None if value in (None, "", UNKNOWN) else value

    row: Dict[str, Any] = {
        "name": draft.name,
        "plan": known(draft.plan),
        "validity": known(draft.validity),
        "price": draft.price,
        "description": draft.description or None,
        "tags": list(draft.tags),
        "features": list(draft.features),
        image_column(table): draft.image,
        "is_active": True,
    }
    if table == Table.PRODUCTS:
        row.update({
            "originalPrice": draft.original_price,
            "stock": draft.stock,
            "category": draft.category,
            "subcategory": known(draft.subcategory),
        })
    return row


def row_to_draft(table: str, row: Dict[str, Any]) -> ProductDraft:
    is_products = table == Table.PRODUCTS
    features = row.get("features")
    return ProductDraft(
        name=row.get("name") or "",
        plan=row.get("plan") or UNKNOWN,
        validity=row.get("validity") or UNKNOWN,
        price=parse_price(row.get("price")),
        description=row.get("description") or "",
        tags=split_list(row.get("tags")),
        features=[str(item) for item in features] if isinstance(features, list) else [],
        category=(row.get("category") if is_products else None) or DEFAULT_CATEGORY,
        subcategory=(row.get("subcategory") if is_products else None) or UNKNOWN,
        image=row.get(image_column(table)) or None,
        original_price=parse_price(row.get("originalPrice")) if is_products else None,
        stock=parse_price(row.get("stock")) if is_products else None,
    )


class ProductRepository:
    """Таблицы products / exclusive_products."""

    def __init__(self, client: Optional[Client] = None) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    async def _execute(self, query: Any) -> List[Dict[str, Any]]:
        try:
            response = await asyncio.to_thread(query.execute)
        except Exception as exc:
            raise RepositoryError(str(exc)) from exc
        return list(response.data or [])

    async def list_recent(self, table: str, limit: int = 12) -> List[Dict[str, Any]]:
        query = self.client.table(table).select(LIST_COLUMNS).order("id", desc=True).limit(limit)
        return await self._execute(query)

    async def get(self, table: str, product_id: int) -> Optional[ProductDraft]:
        columns = PRODUCT_COLUMNS if table == Table.PRODUCTS else EXCLUSIVE_COLUMNS
        rows = await self._execute(self.client.table(table).select(columns).eq("id", product_id).limit(1))
        return row_to_draft(table, rows[0]) if rows else None

    async def find_duplicate(self, table: str, name: str, price: Optional[int]) -> Optional[int]:
        query = self.client.table(table).select("id").eq("name", name)
        query = query.is_("price", "null") if price is None else query.eq("price", price)
        rows = await self._execute(query.limit(1))
        return rows[0]["id"] if rows else None

    async def insert(self, table: str, draft: ProductDraft) -> Optional[int]:
        rows = await self._execute(self.client.table(table).insert(draft_to_row(table, draft)))
        return rows[0].get("id") if rows else None

    async def update(self, table: str, product_id: int, draft: ProductDraft) -> None:
        row = draft_to_row(table, draft)
        row.pop("is_active", None)
        await self._execute(self.client.table(table).update(row).eq("id", product_id))

    async def toggle_active(self, table: str, product_id: int) -> Optional[bool]:
        rows = await self._execute(self.client.table(table).select("is_active").eq("id", product_id).limit(1))
        if not rows:
            return None
        new_state = not bool(rows[0].get("is_active"))
        await self._execute(self.client.table(table).update({"is_active": new_state}).eq("id", product_id))
        return new_state
