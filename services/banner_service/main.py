import os
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
import time
from time import perf_counter
from typing import Any, Dict, Optional

import boto3
import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

import raster
from compositor import compose_banner_async, compute_layout, parse_overlay_request, resolve_params
from errors import ImageFetchError, ImageTooLargeError, InvalidRequestError, OverlayError, TemplateNotFoundError
from fonts import load_font_assets
from template_store import make_template_store, merge_template_params
from themes import DESIGN_THEMES

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVICE_DIR = Path(__file__).resolve().parent
FONT_DIR = Path(os.getenv("FONT_DIR", str(SERVICE_DIR / "assets" / "fonts"))).resolve()

# Storage config: template documents live in S3 (MinIO) or on local disk
STORAGE_MODE = os.getenv("STORAGE_MODE", "local").lower()  # 's3' or 'local'
STORAGE_DIR = Path((os.getenv("STORAGE_DIR", str(SERVICE_DIR / "storage"))).strip()).resolve()
S3_BUCKET_TEMPLATES = os.getenv("S3_BUCKET_TEMPLATES", "templates")

# Background fetch limits
FETCH_TIMEOUT_S = float(os.getenv("FETCH_TIMEOUT_S", "30"))
FETCH_MAX_MB = int(os.getenv("FETCH_MAX_MB", "20"))
FETCH_USER_AGENT = os.getenv("FETCH_USER_AGENT", "Mozilla/5.0 (compatible; BannerOverlay/1.0)")
DATA_URL_MAX_CHARS = int(os.getenv("DATA_URL_MAX_CHARS", "8000000"))  # ~6MB image as base64 text

DEFAULT_JPEG_QUALITY = int(os.getenv("DEFAULT_JPEG_QUALITY", "90"))
SIMPLE_JPEG_QUALITY = 85
CACHE_CONTROL = "public, max-age=300"
PORT = int(os.getenv("PORT", "8010"))


def _make_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=os.getenv("S3_ENDPOINT", "http://localhost:9000"),
        aws_access_key_id=os.getenv("S3_ACCESS_KEY", "minio"),
        aws_secret_access_key=os.getenv("S3_SECRET_KEY", "minio123"),
        region_name="us-east-1",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fonts are loaded once here and handed to the compositor per request
    app.state.fonts = load_font_assets(FONT_DIR)
    app.state.template_store = make_template_store(
        STORAGE_MODE,
        STORAGE_DIR,
        s3_client=_make_s3_client() if STORAGE_MODE == "s3" else None,
        bucket=S3_BUCKET_TEMPLATES,
    )
    # Outbound image fetches go through this transport; None means httpx's default
    app.state.fetch_transport = None
    yield


app = FastAPI(title="Banner Overlay Service", version="1.0.0", lifespan=lifespan)

# CORS middleware: configure via CORS_ALLOW_ORIGINS env (comma-separated).
origins_env = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
allow_origins = [o.strip() for o in origins_env.split(",") if o.strip()] or ["*"]
use_wildcard = "*" in allow_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if use_wildcard else allow_origins,
    allow_credentials=False if use_wildcard else True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(OverlayError)
async def overlay_error_handler(request: Request, exc: OverlayError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": OverlayError.default_message})


async def fetch_image_bytes(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bytes:
    """GET an image, streaming it under the FETCH_MAX_MB cap.

    Any network error, timeout, non-2xx status or oversized body is an
    ImageFetchError. The body is abandoned as soon as it passes the cap.
    """
    max_bytes = FETCH_MAX_MB * 1024 * 1024
    headers = {
        "User-Agent": FETCH_USER_AGENT,
        "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
    }
    chunks = []
    total = 0
    try:
        async with httpx.AsyncClient(
            follow_redirects=True, timeout=FETCH_TIMEOUT_S, headers=headers, transport=transport
        ) as client:
            async with client.stream("GET", url) as resp:
                resp.raise_for_status()
                declared = resp.headers.get("Content-Length", "")
                if declared.isdigit() and int(declared) > max_bytes:
                    logger.warning(f"Image too large: Content-Length {declared} bytes > {max_bytes} bytes ({url})")
                    raise ImageFetchError()
                async for chunk in resp.aiter_bytes():
                    total += len(chunk)
                    if total > max_bytes:
                        logger.warning(f"Image exceeded limit while streaming: {total} bytes > {max_bytes} bytes ({url})")
                        raise ImageFetchError()
                    chunks.append(chunk)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Image fetch failed for {url}: {e}")
        raise ImageFetchError() from e
    logger.info(f"Fetched image {url} ({total} bytes)")
    return b"".join(chunks)


async def _request_params(request: Request) -> Dict[str, Any]:
    """Query string for GET, JSON object body for POST."""
    if request.method == "POST":
        raw_body = await request.body()
        if not raw_body.strip():
            return {}
        try:
            body = json.loads(raw_body)
        except ValueError as e:
            raise InvalidRequestError("Invalid JSON body") from e
        if not isinstance(body, dict):
            raise InvalidRequestError("JSON body must be an object")
        return body
    return dict(request.query_params)


async def _render_banner(request: Request, raw: Dict[str, Any], extra_headers: Optional[Dict[str, str]] = None) -> Response:
    t0 = perf_counter()
    overlay_req = parse_overlay_request(raw)
    params = resolve_params(overlay_req, default_quality=DEFAULT_JPEG_QUALITY)
    transport = request.app.state.fetch_transport

    background: Optional[bytes] = None
    if overlay_req.image_data:
        if len(overlay_req.image_data) > DATA_URL_MAX_CHARS:
            logger.warning(f"imageData too large: {len(overlay_req.image_data)} chars > {DATA_URL_MAX_CHARS}")
            raise ImageTooLargeError()
        background = raster.decode_data_url(overlay_req.image_data)
    elif overlay_req.image:
        background = await fetch_image_bytes(overlay_req.image, transport)

    logo: Optional[bytes] = None
    if params.logo:
        try:
            logo = await fetch_image_bytes(params.logo.url, transport)
        except ImageFetchError:
            logger.warning(f"Logo unavailable, rendering without it: {params.logo.url}")

    try:
        result = await compose_banner_async(params, background, request.app.state.fonts, logo=logo)
    except OverlayError:
        raise
    except Exception as e:
        logger.exception(f"Banner generation failed: {e}")
        raise OverlayError() from e

    ext = "png" if params.output_format == "png" else "jpg"
    headers = {
        "Cache-Control": CACHE_CONTROL,
        "Content-Disposition": f'inline; filename="{params.theme_key.value}-overlay-{int(time.time() * 1000)}.{ext}"',
        "X-Design-Theme": params.theme.name,
        "X-Renderer": result.renderer,
        "X-Processing-Time": f"{int((perf_counter() - t0) * 1000)}ms",
    }
    headers.update(extra_headers or {})
    return Response(content=result.content, media_type=result.content_type, headers=headers)


@app.api_route("/api/overlay", methods=["GET", "POST"])
async def overlay(request: Request):
    """Render a banner from query (GET) or JSON body (POST) parameters."""
    raw = await _request_params(request)
    return await _render_banner(request, raw)


@app.get("/api/overlay.jpg")
async def overlay_jpg(request: Request):
    """Same as /api/overlay, for clients that need an image-looking URL."""
    raw = dict(request.query_params)
    raw["format"] = "jpeg"
    return await _render_banner(request, raw)


@app.api_route("/api/templates/{unique_url}", methods=["GET", "POST"])
async def template_banner(unique_url: str, request: Request):
    """Render a saved template; request parameters override the saved ones."""
    try:
        template = await request.app.state.template_store.get(unique_url)
    except Exception as e:
        logger.exception(f"Template lookup failed for {unique_url}: {e}")
        raise OverlayError("Failed to load template") from e
    if template is None:
        logger.info(f"Template not found: {unique_url}")
        raise TemplateNotFoundError()
    overrides = await _request_params(request)
    merged = merge_template_params(template, overrides)
    logger.info(f"Template {template.name} ({unique_url}): design={merged.get('design')}")
    return await _render_banner(request, merged, extra_headers={"X-Template-Name": template.name})


@app.get("/api/simple-overlay")
async def simple_overlay(request: Request):
    """Legacy font-free overlay: dark band and text bars over a fetched image."""
    raw = dict(request.query_params)
    if not raw.get("image"):
        raise InvalidRequestError("Image URL required")
    overlay_req = parse_overlay_request(raw)
    params = resolve_params(overlay_req, default_quality=SIMPLE_JPEG_QUALITY)
    background = await fetch_image_bytes(overlay_req.image, request.app.state.fetch_transport)
    try:
        base = raster.cover_resize(raster.decode_image(background), params.width, params.height)
        layout = compute_layout(params.title, params.width, params.height, params.title_size, params.website_size)
        image = raster.render_simple_overlay(base, layout, params)
        content = raster.encode_image(image, "jpeg", params.quality)
    except OverlayError:
        raise
    except Exception as e:
        logger.exception(f"Simple overlay failed: {e}")
        raise OverlayError("Image processing failed") from e
    return Response(content=content, media_type="image/jpeg", headers={"Cache-Control": CACHE_CONTROL})


@app.get("/api/themes")
async def list_themes():
    return {
        "themes": [
            {
                "key": key.value,
                "name": theme.name,
                "font_family": theme.font_family,
                "title_color": theme.title_color,
                "website_color": theme.website_color,
            }
            for key, theme in DESIGN_THEMES.items()
        ]
    }


@app.get("/health")
async def health(request: Request):
    """Health check endpoint"""
    fonts = getattr(request.app.state, "fonts", None)
    return {
        "status": "healthy",
        "service": "banner-overlay",
        "fonts_loaded": len(fonts) if fonts is not None else 0,
        "storage_mode": STORAGE_MODE,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
