"""Tests for image generators and real brand image lookups."""

import base64
import json

import httpx
import pytest

from catalog_bot.api.images.brand import brandfetch_logo, get_og_image, resolve_brand_domain
from catalog_bot.api.images.providers import (
    CLOUDFLARE_SAFE_SUFFIX,
    CloudflareImageProvider,
    DeepAIImageProvider,
    HuggingFaceImageProvider,
    PollinationsImageProvider,
    build_image_providers,
    soften_prompt,
)

from .conftest import PNG_BYTES, StubImageProvider


def cloudflare(handler):
    return CloudflareImageProvider(
        account_id="acc",
        api_token="cf-token",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_cloudflare_decodes_base64_json_result():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "result": {"image": base64.b64encode(PNG_BYTES).decode()}})

    assert await cloudflare(handler).generate_image("Netflix anime poster") == PNG_BYTES
    assert seen["path"] == "/client/v4/accounts/acc/ai/run/@cf/black-forest-labs/flux-1-schnell"
    assert seen["auth"] == "Bearer cf-token"
    assert "abstract motion graphics" in seen["body"]["prompt"]
    assert seen["body"]["num_steps"] == 4


@pytest.mark.asyncio
async def test_cloudflare_returns_raw_image_body():
    def handler(request):
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})

    assert await cloudflare(handler).generate_image("x") == PNG_BYTES


@pytest.mark.parametrize(
    "status, body",
    [
        (400, {"errors": [{"message": "NSFW content detected"}]}),
        (429, {"errors": [{"message": "Too many requests"}]}),
        (500, {"errors": [{"message": "internal"}]}),
        (200, {"success": False, "errors": [{"message": "model unavailable"}]}),
        (200, {"success": True, "result": {}}),
    ],
)
@pytest.mark.asyncio
async def test_cloudflare_rejections_are_soft(status, body):
    def handler(request):
        return httpx.Response(status, json=body)

    assert await cloudflare(handler).generate_image("x") is None


@pytest.mark.asyncio
async def test_unconfigured_providers_skip_network():
    def handler(request):
        raise AssertionError("no request expected")

    transport = httpx.MockTransport(handler)
    assert await CloudflareImageProvider(account_id="", api_token="", transport=transport).generate_image("x") is None
    assert await HuggingFaceImageProvider(api_key="", transport=transport).generate_image("x") is None
    assert await DeepAIImageProvider(api_key="", transport=transport).generate_image("x") is None


@pytest.mark.asyncio
async def test_pollinations_server_error_is_none():
    def handler(request):
        assert request.url.host == "image.pollinations.ai"
        return httpx.Response(500, text="busy")

    provider = PollinationsImageProvider(transport=httpx.MockTransport(handler))
    assert await provider.generate_image("Spotify background") is None


@pytest.mark.asyncio
async def test_deepai_downloads_output_url():
    def handler(request):
        if request.url.host == "api.deepai.org":
            assert request.headers["Api-Key"] == "deep-key"
            return httpx.Response(200, json={"output_url": "https://files.deepai.org/out.png"})
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})

    provider = DeepAIImageProvider(api_key="deep-key", transport=httpx.MockTransport(handler))
    assert await provider.generate_image("x") == PNG_BYTES


@pytest.mark.asyncio
async def test_deepai_without_output_url_is_none():
    def handler(request):
        return httpx.Response(200, json={"id": "1"})

    provider = DeepAIImageProvider(api_key="deep-key", transport=httpx.MockTransport(handler))
    assert await provider.generate_image("x") is None


@pytest.mark.asyncio
async def test_huggingface_image_requires_image_content_type():
    def json_handler(request):
        return httpx.Response(200, json={"estimated_time": 20})

    def image_handler(request):
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})

    assert await HuggingFaceImageProvider(api_key="hf", transport=httpx.MockTransport(json_handler)).generate_image("x") is None
    assert await HuggingFaceImageProvider(api_key="hf", transport=httpx.MockTransport(image_handler)).generate_image("x") == PNG_BYTES


def test_soften_prompt():
    softened = soften_prompt("sexy anime character for Crunchyroll")
    assert "sexy" not in softened
    assert "sfw" in softened
    assert softened.endswith(CLOUDFLARE_SAFE_SUFFIX)


def test_build_image_providers_names():
    assert set(build_image_providers()) == {"pollinations", "hf", "deepai", "cloudflare"}


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Netflix Premium 4K", "netflix.com"),
        ("Gamma Pro 1 Year", "gamma.app"),
        ("ElevenLabs Creator", "elevenlabs.io"),
        ("Notion Plus - 12 Months", "notion.com"),
        ("AI", None),
        ("", None),
    ],
)
def test_resolve_brand_domain(name, expected):
    assert resolve_brand_domain(name) == expected


@pytest.mark.asyncio
async def test_brandfetch_prefers_png_over_svg():
    def handler(request):
        assert request.url.path == "/v2/logo/netflix.com"
        return httpx.Response(200, json={"formats": [
            {"format": "svg", "src": "https://cdn.brandfetch.io/netflix.svg"},
            {"format": "png", "src": "https://cdn.brandfetch.io/netflix.png"},
        ]})

    url = await brandfetch_logo("netflix.com", transport=httpx.MockTransport(handler))
    assert url == "https://cdn.brandfetch.io/netflix.png"


@pytest.mark.asyncio
async def test_brandfetch_miss_is_none():
    def handler(request):
        return httpx.Response(404, json={"message": "not found"})

    assert await brandfetch_logo("nobrand.com", transport=httpx.MockTransport(handler)) is None


@pytest.mark.asyncio
async def test_get_og_image():
    page = '<html><head><meta property="og:image" content="https://netflix.com/og.jpg"></head></html>'

    def handler(request):
        if request.url.host == "down.example":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, text=page)

    transport = httpx.MockTransport(handler)
    assert await get_og_image("https://netflix.com", transport=transport) == "https://netflix.com/og.jpg"
    assert await get_og_image("https://down.example", transport=transport) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [RuntimeError("worker crashed"), httpx.InvalidURL("Invalid port: 'abc'")])
async def test_adapter_swallows_unexpected_errors(error):
    provider = StubImageProvider("hf", responses=[error])

    assert await provider.generate_image("Netflix Premium poster") is None
    assert provider.prompts == ["Netflix Premium poster"]


@pytest.mark.asyncio
async def test_og_image_lookup_survives_malformed_site_url():
    def handler(request):
        raise AssertionError("no request expected")

    assert await get_og_image("https://netflix.com:abc", transport=httpx.MockTransport(handler)) is None
