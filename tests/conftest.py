"""Pytest configuration and fixtures for the catalog bot."""

import os

# Settings are read once at import time, so seed them before catalog_bot is imported.
os.environ.setdefault("BOT_TOKEN", "123456:TEST-TOKEN")
os.environ.setdefault("ADMIN_IDS", "1001,1002")
os.environ["SUPABASE_URL"] = "https://project.supabase.co"
os.environ["SUPABASE_KEY"] = "service-role-key"
for _name in (
    "GROQ_API_KEY",
    "GEMINI_API_KEYS",
    "GEMINI_API_KEY",
    "HUGGING_FACE_API_KEY",
    "DEEPAI_API_KEY",
    "CLOUDFLARE_ACCOUNT_ID",
    "CLOUDFLARE_API_TOKEN",
    "TEXT_PROVIDER_ORDER",
    "IMAGE_PROVIDER_ORDER",
):
    os.environ[_name] = ""

from typing import Any, Dict, List, Optional, Union  # noqa: E402

import pytest  # noqa: E402

from catalog_bot.api.images.base import ImageProvider  # noqa: E402
from catalog_bot.api.llm.base import TextProvider  # noqa: E402
from catalog_bot.api.storage import SourceDownloadError, StorageUploadError  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


class StubTextProvider(TextProvider):
    """Text provider that replays scripted responses and counts calls."""

    def __init__(
        self,
        name: str,
        responses: Optional[List[Any]] = None,
        default: Any = None,
        log: Optional[List[str]] = None,
    ):
        self.name = name
        self.responses = list(responses or [])
        self.default = default
        self.log = log
        self.calls: List[Dict[str, str]] = []

    async def generate_json(self, system_prompt: str, user_prompt: str) -> Optional[Dict[str, Any]]:
        self.calls.append({"system": system_prompt, "user": user_prompt})
        if self.log is not None:
            self.log.append(self.name)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response


class StubImageProvider(ImageProvider):
    def __init__(self, name: str, responses: Optional[List[Any]] = None):
        super().__init__()
        self.name = name
        self.responses = list(responses or [])
        self.prompts: List[str] = []

    async def _generate(self, prompt: str) -> Optional[bytes]:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else None
        if isinstance(response, Exception):
            raise response
        return response


class StubSearch:
    """Stands in for WebSearchAggregator inside the enrichment service."""

    def __init__(self, evidence: str = "", error: Optional[Exception] = None):
        self.evidence = evidence
        self.error = error
        self.queries: List[tuple] = []

    async def search_web_for_product(self, product_name: str, plan: str = "") -> str:
        self.queries.append((product_name, plan))
        if self.error is not None:
            raise self.error
        return self.evidence


class FakeStorage:
    """In-memory replacement for SupabaseStorage: records every rehost."""

    def __init__(self, failing_sources=(), upload_error: bool = False):
        self.calls: List[Dict[str, Any]] = []
        self.failing_sources = set(failing_sources)
        self.upload_error = upload_error

    async def rehost(self, source: Union[bytes, str], filename_hint: str = "image.jpg", table: str = "products") -> str:
        self.calls.append({"source": source, "hint": filename_hint, "table": table})
        if isinstance(source, str) and source in self.failing_sources:
            raise SourceDownloadError(f"download failed for {source}")
        if self.upload_error:
            raise StorageUploadError("bucket unavailable")
        return f"https://cdn.test/{table}/{len(self.calls)}/{filename_hint}"


class StubRenderer:
    def __init__(self):
        self.cards: List[Any] = []
        self.overlays: List[Any] = []

    def render_card(self, draft) -> bytes:
        self.cards.append(draft)
        return PNG_BYTES

    def compose_overlay(self, background: bytes, draft) -> bytes:
        self.overlays.append((background, draft))
        return PNG_BYTES + b"overlay"


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def no_sleep() -> SleepRecorder:
    """Records backoff delays instead of waiting."""
    return SleepRecorder()


@pytest.fixture()
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture()
def stub_renderer() -> StubRenderer:
    return StubRenderer()
