"""End-to-end tests through the FastAPI app.

Backgrounds come from ``serve_image`` (an httpx.MockTransport) or inline
``imageData``; nothing touches the network.
"""

import base64
import io
import re
import time

import httpx
import pytest
from PIL import Image

import main
import raster
from conftest import jpeg_bytes, png_bytes
from errors import RenderError
from template_store import StoredTemplate


def _image(resp) -> Image.Image:
    return Image.open(io.BytesIO(resp.content))


def _close(pixel, expected, tolerance=6):
    return all(abs(a - b) <= tolerance for a, b in zip(pixel, expected))


@pytest.fixture
def simple_only(monkeypatch):
    """Force the rectangle overlay so pixel checks do not depend on installed fonts."""

    def broken(svg, width, height):
        raise RenderError("disabled in test")

    monkeypatch.setattr(raster, "rasterize_svg", broken)


def test_placeholder_banner(client):
    resp = client.get("/api/overlay", params={"title": "BIG SALE TODAY", "website": "shop.example"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/jpeg"
    assert resp.headers["cache-control"] == "public, max-age=300"
    assert resp.headers["x-design-theme"] == "Breaking News Boldness"
    assert resp.headers["x-processing-time"].endswith("ms")
    assert "default-overlay-" in resp.headers["content-disposition"]
    img = _image(resp)
    assert img.format == "JPEG"
    assert img.size == (1080, 1350)
    # No background: the canvas is the default theme's deepest gradient color
    assert _close(img.convert("RGB").getpixel((0, 0)), (0, 31, 63))


def test_simple_renderer_draws_title_and_website(client, simple_only):
    resp = client.get("/api/overlay", params={"title": "BIG SALE TODAY", "website": "shop.example"})
    assert resp.status_code == 200
    assert resp.headers["x-renderer"] == "simple"
    img = _image(resp).convert("RGB")
    bright = [
        img.getpixel((x, y))
        for x in range(40, 600, 4)
        for y in range(1140, 1196)
        if min(img.getpixel((x, y))) > 200
    ]
    assert len(bright) > 100
    website_reds = [img.getpixel((x, y))[0] for x in range(40, 200) for y in range(1270, 1284)]
    assert max(website_reds) > 150


def test_unreachable_image_is_500(client, serve_image):
    serve_image(error=httpx.ConnectError("connection refused"))
    resp = client.get("/api/overlay", params={"image": "http://img.test/missing.jpg", "title": "x"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch image"}
    assert resp.headers["content-type"].startswith("application/json")


def test_upstream_error_status_is_500(client, serve_image):
    serve_image(status_code=404)
    resp = client.get("/api/overlay", params={"image": "http://img.test/gone.jpg"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch image"}


def test_fetched_background_is_cover_resized(client, serve_image):
    calls = serve_image(jpeg_bytes((64, 48)))
    resp = client.get("/api/overlay", params={"image": "http://img.test/bg.jpg", "w": "300", "h": "200"})
    assert resp.status_code == 200
    assert calls == ["http://img.test/bg.jpg"]
    assert _image(resp).size == (300, 200)


def test_undecodable_background_is_400(client, serve_image):
    serve_image(b"<html>not an image</html>")
    resp = client.get("/api/overlay", params={"image": "http://img.test/page.html"})
    assert resp.status_code == 400


def test_post_json_with_inline_image(client):
    data_url = "data:image/jpeg;base64," + base64.b64encode(jpeg_bytes()).decode("ascii")
    resp = client.post("/api/overlay", json={"imageData": data_url, "title": "Hi", "w": 100, "h": 80, "design": "bebas"})
    assert resp.status_code == 200
    assert resp.headers["x-design-theme"] == "Bebas Black Gradient"
    assert _image(resp).size == (100, 80)


def test_bad_inline_image_is_400(client):
    resp = client.post("/api/overlay", json={"imageData": "data:text/plain;base64,QUJD"})
    assert resp.status_code == 400
    assert "error" in resp.json()


@pytest.mark.parametrize("body", ["not json", "[1, 2]"])
def test_bad_json_body_is_400(client, body):
    resp = client.post("/api/overlay", content=body, headers={"Content-Type": "application/json"})
    assert resp.status_code == 400


@pytest.mark.parametrize("params", [{"w": "abc"}, {"h": "-1"}, {"format": "gif"}])
def test_invalid_params_are_400(client, params):
    resp = client.get("/api/overlay", params=params)
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Invalid parameter")


def test_png_output(client):
    resp = client.get("/api/overlay", params={"format": "png", "w": "64", "h": "64"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content.startswith(b"\x89PNG")


def test_jpg_alias_always_returns_jpeg(client):
    resp = client.get("/api/overlay.jpg", params={"format": "png", "w": "64", "h": "64"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/jpeg"


def test_unknown_template_is_404_without_rendering(client, monkeypatch):
    async def must_not_render(*args, **kwargs):
        raise AssertionError("rendering attempted for a missing template")

    monkeypatch.setattr(main, "compose_banner_async", must_not_render)
    resp = client.get("/api/templates/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Template not found"}


def test_template_with_overrides(client):
    client.app.state.template_store.save(
        StoredTemplate(unique_url="promo-1", name="Promo", design="sports", parameters={"title": "Saved", "w": 200, "h": 120})
    )
    resp = client.get("/api/templates/promo-1", params={"h": "100"})
    assert resp.status_code == 200
    assert resp.headers["x-template-name"] == "Promo"
    assert resp.headers["x-design-theme"] == "Impact Headlines"
    assert _image(resp).size == (200, 100)

    resp = client.post("/api/templates/promo-1", json={"design": "luxury"})
    assert resp.status_code == 200
    assert resp.headers["x-design-theme"] == "Luxury Burgundy"


def test_simple_overlay_requires_image(client):
    resp = client.get("/api/simple-overlay", params={"title": "x"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Image URL required"}


def test_simple_overlay(client, serve_image):
    serve_image(jpeg_bytes((80, 80)))
    resp = client.get("/api/simple-overlay", params={"image": "http://img.test/a.jpg", "title": "Hi", "w": "120", "h": "90"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/jpeg"
    assert resp.headers["cache-control"] == "public, max-age=300"
    assert _image(resp).size == (120, 90)


def test_themes_listing(client):
    themes = client.get("/api/themes").json()["themes"]
    assert len(themes) == 10
    assert {"key": "antonBlack", "name": "Anton Black"}.items() <= next(t for t in themes if t["key"] == "antonBlack").items()


def test_health(client):
    body = client.get("/health").json()
    assert body == {"status": "healthy", "service": "banner-overlay", "fonts_loaded": 0, "storage_mode": "local"}


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not Found"}


def test_content_disposition_carries_epoch_millis(client):
    before = int(time.time() * 1000)
    resp = client.get("/api/overlay", params={"w": "64", "h": "64"})
    after = int(time.time() * 1000)
    match = re.search(r'filename="default-overlay-(\d+)\.jpg"', resp.headers["content-disposition"])
    assert match
    assert before <= int(match.group(1)) <= after


def test_logo_is_fetched_and_pasted(client, serve_image, simple_only):
    calls = serve_image(
        routes={
            "http://img.test/bg.jpg": jpeg_bytes((64, 64), color=(0, 0, 255)),
            "http://img.test/logo.png": png_bytes((100, 100), color=(0, 200, 0, 255)),
        }
    )
    params = {
        "image": "http://img.test/bg.jpg",
        "logoUrl": "http://img.test/logo.png",
        "logoPosition": "top-left",
        "logoSize": "50",
        "w": "400",
        "h": "500",
        "format": "png",
    }
    resp = client.get("/api/overlay", params=params)
    assert resp.status_code == 200
    assert calls == ["http://img.test/bg.jpg", "http://img.test/logo.png"]
    img = _image(resp).convert("RGB")
    # 100px logo shrunk to 50px, 20px in from the top-left corner
    assert _close(img.getpixel((45, 45)), (0, 200, 0))
    assert _close(img.getpixel((21, 21)), (0, 200, 0))
    assert _close(img.getpixel((75, 45)), (0, 0, 255), tolerance=12)
    assert _close(img.getpixel((45, 75)), (0, 0, 255), tolerance=12)
    assert _close(img.getpixel((10, 10)), (0, 0, 255), tolerance=12)


def test_logo_defaults_to_top_center(client, serve_image, simple_only):
    serve_image(routes={"http://img.test/logo.png": png_bytes((300, 100), color=(0, 200, 0, 255))})
    resp = client.get("/api/overlay", params={"logoUrl": "http://img.test/logo.png", "w": "400", "h": "500", "format": "png"})
    assert resp.status_code == 200
    img = _image(resp).convert("RGB")
    # 300x100 shrinks to 150x50, centered: x 125..275, y 20..70
    assert _close(img.getpixel((200, 45)), (0, 200, 0))
    assert _close(img.getpixel((130, 25)), (0, 200, 0))
    assert not _close(img.getpixel((110, 45)), (0, 200, 0))
    assert not _close(img.getpixel((200, 80)), (0, 200, 0))


@pytest.mark.parametrize("logo_answer", [404, b"<html>not a logo</html>"])
def test_broken_logo_is_skipped(client, serve_image, logo_answer):
    calls = serve_image(routes={"http://img.test/logo.png": logo_answer})
    resp = client.get("/api/overlay", params={"logoUrl": "http://img.test/logo.png", "w": "120", "h": "90"})
    assert resp.status_code == 200
    assert calls == ["http://img.test/logo.png"]
    assert _image(resp).size == (120, 90)


def test_declared_oversize_body_is_refused(client, monkeypatch):
    monkeypatch.setattr(main, "FETCH_MAX_MB", 1)

    def handler(request):
        return httpx.Response(200, content=b"tiny", headers={"Content-Length": str(5 * 1024 * 1024)})

    client.app.state.fetch_transport = httpx.MockTransport(handler)
    resp = client.get("/api/overlay", params={"image": "http://img.test/huge.jpg"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch image"}


def test_undeclared_oversize_body_is_abandoned_mid_stream(client, monkeypatch):
    monkeypatch.setattr(main, "FETCH_MAX_MB", 1)
    chunk = b"\0" * (64 * 1024)
    total_chunks = 64
    sent = []

    async def body():
        for _ in range(total_chunks):
            sent.append(len(chunk))
            yield chunk

    def handler(request):
        # An async iterator body goes out chunked, without Content-Length
        return httpx.Response(200, content=body())

    client.app.state.fetch_transport = httpx.MockTransport(handler)
    resp = client.get("/api/overlay", params={"image": "http://img.test/endless.jpg"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch image"}
    assert len(sent) < total_chunks


def test_fetch_timeout_is_500(client, serve_image):
    serve_image(error=httpx.ReadTimeout("timed out"))
    resp = client.get("/api/overlay", params={"image": "http://img.test/slow.jpg"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch image"}


def test_oversize_inline_image_is_413(client, monkeypatch):
    monkeypatch.setattr(main, "DATA_URL_MAX_CHARS", 100)
    data_url = "data:image/jpeg;base64," + base64.b64encode(jpeg_bytes()).decode("ascii")
    assert len(data_url) > 100
    resp = client.post("/api/overlay", json={"imageData": data_url})
    assert resp.status_code == 413
    assert resp.json() == {"error": "Image data too large"}
