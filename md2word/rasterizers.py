# md2word/rasterizers.py
import base64
import logging
from typing import Dict, Optional, Protocol, Tuple
from urllib.parse import quote

import httpx

from .config import settings

logger = logging.getLogger(__name__)


class DiagramRenderer(Protocol):
    async def render(self, source: str, theme: str) -> Optional[bytes]: ...


class MathRasterizer(Protocol):
    async def rasterize(self, latex: str) -> Optional[bytes]: ...


async def _fetch_image(url: str, timeout: float, transport: Optional[httpx.AsyncBaseTransport]) -> Optional[bytes]:
    """GET an image. Timeouts, transport errors, non-2xx statuses and non-image bodies all yield None."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Image request to %s failed: %s", url.split('?')[0], e)
        return None

    content_type = response.headers.get('content-type', '')
    if not response.content or not content_type.startswith('image/'):
        logger.warning("Image request to %s returned no image (content-type %r).", url.split('?')[0], content_type)
        return None
    return response.content


class MermaidInkRenderer:
    """Renders Mermaid source to PNG through the mermaid.ink service."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url or settings.MERMAID_INK_URL
        self.timeout = timeout if timeout is not None else settings.RASTER_TIMEOUT
        self.transport = transport

    def build_url(self, source: str, theme: str) -> str:
        encoded = base64.urlsafe_b64encode(source.encode('utf-8')).decode('ascii').rstrip('=')
        return f"{self.base_url}{encoded}?type=png&theme={theme}&bgColor=FFFFFF"

    async def render(self, source: str, theme: str = 'default') -> Optional[bytes]:
        logger.debug("Rendering diagram (%d chars) with theme '%s'.", len(source), theme)
        return await _fetch_image(self.build_url(source, theme), self.timeout, self.transport)


class CodecogsMathRasterizer:
    """Renders LaTeX to a white-background PNG through the CodeCogs equation service."""

    def __init__(self, base_url: Optional[str] = None, dpi: Optional[int] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url or settings.CODECOGS_URL
        self.dpi = dpi or settings.MATH_IMAGE_DPI
        self.timeout = timeout if timeout is not None else settings.RASTER_TIMEOUT
        self.transport = transport

    def build_url(self, latex: str) -> str:
        prefix = "\\dpi{%d}\\bg{white} " % self.dpi
        return f"{self.base_url}?{quote(prefix + latex)}"

    async def rasterize(self, latex: str) -> Optional[bytes]:
        return await _fetch_image(self.build_url(latex), self.timeout, self.transport)


class DiagramCache:
    """
    Memoizes rendered diagrams by (theme, source) for the lifetime of one export.

    Failed renders are cached as None too, so a broken diagram repeated in a
    document costs a single request.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], Optional[bytes]] = {}

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_render(self, renderer: DiagramRenderer, source: str, theme: str) -> Optional[bytes]:
        key = (theme, source)
        if key not in self._entries:
            self._entries[key] = await renderer.render(source, theme)
        else:
            logger.debug("Diagram cache hit (theme '%s').", theme)
        return self._entries[key]
