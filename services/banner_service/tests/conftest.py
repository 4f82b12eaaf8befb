"""Shared fixtures for the banner service tests.

The app is driven through FastAPI's TestClient used as a context manager so
the lifespan hook runs (fonts loaded, template store created). Storage is
redirected to a temporary directory and outbound image fetches go through an
``httpx.MockTransport`` installed on ``app.state.fetch_transport``.
"""

import io

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from fonts import FontAssets


def jpeg_bytes(size=(64, 48), color=(200, 30, 30)) -> bytes:
    img = Image.new("RGB", size, color=color)
    buf = io.BytesIO()
    img.save(buf, format="JPEG")
    return buf.getvalue()


def png_bytes(size=(100, 100), color=(0, 200, 0, 255)) -> bytes:
    img = Image.new("RGBA", size, color=color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def no_fonts():
    return FontAssets({})


@pytest.fixture
def app(tmp_path, monkeypatch):
    import main

    monkeypatch.setattr(main, "STORAGE_MODE", "local")
    monkeypatch.setattr(main, "STORAGE_DIR", tmp_path / "storage")
    monkeypatch.setattr(main, "FONT_DIR", tmp_path / "fonts")
    return main.app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def serve_image(app):
    """Install a mock transport answering fetches with the given bytes/status.

    ``routes`` maps a URL to its own bytes or status code; any other URL gets
    ``content``/``status_code``.
    """

    def _install(content: bytes = b"", status_code: int = 200, error: Exception = None, routes: dict = None):
        calls = []
        routes = routes or {}

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            calls.append(url)
            if error is not None:
                raise error
            answer = routes.get(url, content)
            if isinstance(answer, int):
                return httpx.Response(answer)
            code = status_code if url not in routes else 200
            return httpx.Response(code, content=answer, headers={"Content-Type": "image/jpeg"})

        app.state.fetch_transport = httpx.MockTransport(handler)
        return calls

    return _install
