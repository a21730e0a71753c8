import struct
import zlib

import pytest


def make_png(width: int, height: int) -> bytes:
    """A small but valid RGB PNG of the requested pixel size."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        return (struct.pack(">I", len(data)) + kind + data
                + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF))

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    raw = b"".join(b"\x00" + b"\xff\xff\xff" * width for _ in range(height))
    return (b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header)
            + chunk(b"IDAT", zlib.compress(raw)) + chunk(b"IEND", b""))


class FakeDiagramRenderer:
    def __init__(self, blob=None):
        self.blob = blob
        self.calls = []

    async def render(self, source, theme):
        self.calls.append((source, theme))
        return self.blob


class FakeMathRasterizer:
    def __init__(self, blob=None):
        self.blob = blob
        self.calls = []

    async def rasterize(self, latex):
        self.calls.append(latex)
        return self.blob


@pytest.fixture
def png():
    return make_png


@pytest.fixture
def diagram_renderer():
    return FakeDiagramRenderer(make_png(1200, 400))


@pytest.fixture
def failing_diagram_renderer():
    return FakeDiagramRenderer(None)


@pytest.fixture
def math_rasterizer():
    return FakeMathRasterizer(make_png(200, 100))


@pytest.fixture
def failing_math_rasterizer():
    return FakeMathRasterizer(None)


@pytest.fixture
def truncated_diagram_renderer():
    return FakeDiagramRenderer(make_png(1200, 400)[:40])


@pytest.fixture
def truncated_math_rasterizer():
    return FakeMathRasterizer(make_png(200, 100)[:40])
