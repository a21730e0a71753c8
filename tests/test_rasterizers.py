import base64
from urllib.parse import quote

import httpx
import pytest

from md2word.rasterizers import CodecogsMathRasterizer, DiagramCache, MermaidInkRenderer

PNG_HEADER = b"\x89PNG\r\n\x1a\n"


def _transport(status=200, content=PNG_HEADER, content_type="image/png", calls=None, error=None):
    def handler(request):
        if calls is not None:
            calls.append(request)
        if error is not None:
            raise error(f"{error.__name__} for test", request=request)
        return httpx.Response(status, content=content, headers={"content-type": content_type})

    return httpx.MockTransport(handler)


def test_mermaid_url_encodes_source_and_theme():
    renderer = MermaidInkRenderer(base_url="https://ink.test/img/")
    url = renderer.build_url("graph TD; A-->B", "forest")
    encoded, query = url[len("https://ink.test/img/"):].split("?")
    decoded = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)).decode("utf-8")
    assert decoded == "graph TD; A-->B"
    assert "theme=forest" in query
    assert "type=png" in query


def test_codecogs_url_carries_dpi_and_background():
    rasterizer = CodecogsMathRasterizer(base_url="https://cc.test/png.image", dpi=300)
    url = rasterizer.build_url("x^2")
    assert url == "https://cc.test/png.image?" + quote("\\dpi{300}\\bg{white} x^2")


@pytest.mark.asyncio
async def test_mermaid_render_returns_image_bytes():
    calls = []
    renderer = MermaidInkRenderer(base_url="https://ink.test/img/", transport=_transport(calls=calls))
    assert await renderer.render("graph TD; A-->B", "default") == PNG_HEADER
    assert calls[0].url.host == "ink.test"


@pytest.mark.asyncio
async def test_http_error_status_returns_none():
    renderer = MermaidInkRenderer(transport=_transport(status=503))
    assert await renderer.render("graph TD; A-->B", "default") is None


@pytest.mark.asyncio
async def test_timeout_returns_none():
    rasterizer = CodecogsMathRasterizer(transport=_transport(error=httpx.ReadTimeout))
    assert await rasterizer.rasterize("x") is None


@pytest.mark.asyncio
async def test_non_image_body_returns_none():
    rasterizer = CodecogsMathRasterizer(transport=_transport(content=b"<html>", content_type="text/html"))
    assert await rasterizer.rasterize("x") is None


@pytest.mark.asyncio
async def test_rasterize_returns_image_bytes():
    rasterizer = CodecogsMathRasterizer(transport=_transport())
    assert await rasterizer.rasterize(r"\frac{1}{2}") == PNG_HEADER


@pytest.mark.asyncio
async def test_cache_renders_each_theme_and_source_once(diagram_renderer):
    cache = DiagramCache()
    first = await cache.get_or_render(diagram_renderer, "graph TD; A-->B", "default")
    second = await cache.get_or_render(diagram_renderer, "graph TD; A-->B", "default")
    await cache.get_or_render(diagram_renderer, "graph TD; A-->B", "forest")
    assert first is second
    assert len(diagram_renderer.calls) == 2
    assert len(cache) == 2
    assert ("forest", "graph TD; A-->B") in cache


@pytest.mark.asyncio
async def test_cache_remembers_failures(failing_diagram_renderer):
    cache = DiagramCache()
    assert await cache.get_or_render(failing_diagram_renderer, "bad", "default") is None
    assert await cache.get_or_render(failing_diagram_renderer, "bad", "default") is None
    assert len(failing_diagram_renderer.calls) == 1


@pytest.mark.asyncio
async def test_redirect_is_followed_to_the_image():
    def handler(request):
        if request.url.path == "/png.image":
            return httpx.Response(302, headers={"location": "https://cc.test/cached/x.png"})
        return httpx.Response(200, content=PNG_HEADER, headers={"content-type": "image/png"})

    rasterizer = CodecogsMathRasterizer(base_url="https://cc.test/png.image", transport=httpx.MockTransport(handler))
    assert await rasterizer.rasterize("x") == PNG_HEADER
