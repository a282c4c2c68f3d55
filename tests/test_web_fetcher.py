"""Tests for page fetching with the readability proxy fallback."""

import httpx
import pytest

from catalog_bot.api.web_fetcher import WebFetcher, normalize_url

LONG_BODY = "<html><body><p>" + "Netflix streaming plans and prices. " * 20 + "</p></body></html>"


def test_normalize_url():
    assert normalize_url("netflix.com") == "https://netflix.com"
    assert normalize_url(" http://a.test/x ") == "http://a.test/x"
    assert normalize_url("") == ""


@pytest.mark.asyncio
async def test_direct_fetch_returns_html_and_text():
    def handler(request):
        assert request.url.host == "netflix.com"
        return httpx.Response(200, text=LONG_BODY)

    fetcher = WebFetcher(transport=httpx.MockTransport(handler))
    page = await fetcher.fetch_page("netflix.com")

    assert page["html"] == LONG_BODY
    assert page["text"].startswith("Netflix streaming plans")


@pytest.mark.asyncio
async def test_short_direct_page_falls_back_to_proxy_and_caps_text():
    requested = []

    def handler(request):
        requested.append(str(request.url))
        if request.url.host == "r.jina.ai":
            return httpx.Response(200, text="x" * 25000)
        return httpx.Response(200, text="<html><body>Loading...</body></html>")

    fetcher = WebFetcher(transport=httpx.MockTransport(handler))
    page = await fetcher.fetch_page("https://app.example.com/pricing")

    assert page["html"] == ""
    assert len(page["text"]) == 20000
    assert len(requested) == 2
    assert "app.example.com/pricing" in requested[1]


@pytest.mark.asyncio
async def test_failures_return_empty_strings():
    def handler(request):
        if request.url.host == "r.jina.ai":
            raise httpx.ConnectError("proxy down", request=request)
        return httpx.Response(503, text="unavailable")

    fetcher = WebFetcher(transport=httpx.MockTransport(handler))
    assert await fetcher.fetch_page("https://down.example.com") == {"html": "", "text": ""}


@pytest.mark.asyncio
async def test_empty_url_does_not_hit_network():
    def handler(request):
        raise AssertionError("no request expected")

    fetcher = WebFetcher(transport=httpx.MockTransport(handler))
    assert await fetcher.fetch_page("   ") == {"html": "", "text": ""}


@pytest.mark.asyncio
async def test_malformed_url_returns_empty_strings():
    def handler(request):
        assert request.url.host == "r.jina.ai"
        return httpx.Response(404, text="not found")

    fetcher = WebFetcher(transport=httpx.MockTransport(handler))

    assert await fetcher.fetch_page("netflix.com:abc") == {"html": "", "text": ""}
    assert await fetcher.fetch_page("https://netflix.com:abc/plans") == {"html": "", "text": ""}
