"""Raster side of the pipeline: decode, resize, rasterize SVG, composite, encode.

Pillow does the bitmap work and CairoSVG turns the overlay markup into an RGBA
layer. When CairoSVG is unavailable or rejects the markup, the overlay is
redrawn with plain Pillow rectangles instead of failing the request.
"""

import base64
import binascii
import io
import logging
import re
from typing import TYPE_CHECKING, Dict, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageOps, UnidentifiedImageError

from errors import ImageDecodeError, RenderError

if TYPE_CHECKING:
    from compositor import Layout, ResolvedParams

logger = logging.getLogger(__name__)

CONTENT_TYPES: Dict[str, str] = {
    "jpeg": "image/jpeg",
    "png": "image/png",
}

_RGBA_RE = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*([0-9]*\.?[0-9]+)\s*)?\)$",
    re.IGNORECASE,
)
_DATA_URL_RE = re.compile(r"^data:image/[^;]+;base64,(.+)$", re.DOTALL)

SIMPLE_BAND_ALPHA = 178  # ~0.7 opacity
LOGO_MARGIN = 20


def parse_css_color(color: str) -> Tuple[int, int, int, int]:
    """Parse '#rrggbb', '#rgb', color names and rgb()/rgba() with a float alpha."""
    s = (color or "").strip()
    m = _RGBA_RE.match(s)
    if m:
        r, g, b = (min(255, int(m.group(i))) for i in (1, 2, 3))
        a = m.group(4)
        alpha = 255 if a is None else max(0, min(255, int(round(float(a) * 255))))
        return r, g, b, alpha
    rgb = ImageColor.getrgb(s)
    if len(rgb) == 4:
        return rgb  # type: ignore[return-value]
    return rgb[0], rgb[1], rgb[2], 255


def _safe_color(color: str, fallback: str) -> Tuple[int, int, int, int]:
    try:
        return parse_css_color(color)
    except ValueError:
        logger.warning(f"Unparseable color {color!r}; using {fallback}")
        return parse_css_color(fallback)


def decode_data_url(image_data: str) -> bytes:
    """Decode a `data:image/...;base64,` URI or bare base64 into bytes."""
    payload = image_data.strip()
    if payload.startswith("data:"):
        m = _DATA_URL_RE.match(payload)
        if not m:
            raise ImageDecodeError("Invalid data URI format")
        payload = m.group(1)
    try:
        raw = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError("Invalid base64 image data") from e
    if not raw:
        raise ImageDecodeError("Empty image data")
    return raw


def decode_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError("Unsupported or corrupt background image") from e
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    return img


def placeholder_background(width: int, height: int, color: str) -> Image.Image:
    r, g, b, _ = _safe_color(color, "#000000")
    return Image.new("RGBA", (width, height), (r, g, b, 255))


def cover_resize(img: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to fill width x height, cropping the overflow around the center."""
    return ImageOps.fit(img, (width, height), method=Image.LANCZOS, centering=(0.5, 0.5))


def rasterize_svg(svg: str, width: int, height: int) -> Image.Image:
    # cairosvg needs the native cairo library; import lazily so a missing
    # library degrades to the simple overlay instead of breaking startup
    try:
        import cairosvg  # type: ignore
    except (ImportError, OSError) as e:
        raise RenderError(f"CairoSVG unavailable: {e}") from e
    try:
        png_bytes = cairosvg.svg2png(
            bytestring=svg.encode("utf-8"),
            output_width=width,
            output_height=height,
        )
    except Exception as e:
        raise RenderError(f"SVG rasterization failed: {e}") from e
    layer = Image.open(io.BytesIO(png_bytes))
    if layer.mode != "RGBA":
        layer = layer.convert("RGBA")
    if layer.size != (width, height):
        layer = layer.resize((width, height), Image.LANCZOS)
    return layer


def render_rich_overlay(base: Image.Image, svg: str) -> Image.Image:
    layer = rasterize_svg(svg, base.width, base.height)
    return Image.alpha_composite(base.convert("RGBA"), layer)


def _bar_left(align: str, width: int, padding: int, bar_w: int) -> int:
    if align == "center":
        return round((width - bar_w) / 2)
    if align == "right":
        return width - padding - bar_w
    return padding


def render_simple_overlay(base: Image.Image, layout: "Layout", params: "ResolvedParams") -> Image.Image:
    """Font-free overlay: a dark band plus one bar per title line and one for the website.

    Bars follow the title and website alignment. Watermark text is not drawn here.
    """
    width, height = base.size
    layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)

    band_top = height - layout.overlay_height
    draw.rectangle([0, band_top, width, height], fill=(0, 0, 0, SIMPLE_BAND_ALPHA))

    title_size = params.title_size
    bar_h = max(4, round(title_size * 0.2))
    title_fill = _safe_color(params.title_color, params.theme.title_color)
    for idx, line in enumerate(layout.title_lines):
        baseline = layout.line_baseline(idx)
        bar_w = max(0, min(round(len(line) * title_size * 0.55), width - layout.padding * 2))
        x0 = _bar_left(params.title_align, width, layout.padding, bar_w)
        draw.rectangle([x0, baseline - bar_h, x0 + bar_w, baseline], fill=title_fill)

    if params.website:
        website_size = params.website_size
        site_h = max(3, round(website_size * 0.2))
        site_w = max(0, min(round(len(params.website) * website_size * 0.55), width - layout.padding * 2))
        site_fill = _safe_color(params.website_color, params.theme.website_color)
        x0 = _bar_left(params.website_align, width, layout.padding, site_w)
        draw.rectangle([x0, layout.website_y - site_h, x0 + site_w, layout.website_y], fill=site_fill)

    return Image.alpha_composite(base.convert("RGBA"), layer)


def place_logo(base: Image.Image, logo: Image.Image, position: str, size: int, margin: int = LOGO_MARGIN) -> Image.Image:
    """Composite `logo` `margin` px below the top edge, shrunk to at most `size` px wide.

    Smaller logos keep their size. `position` is top-left, top-center or top-right.
    """
    logo = logo.convert("RGBA")
    logo.thumbnail((size, logo.height), Image.LANCZOS)
    if position == "top-left":
        left = margin
    elif position == "top-right":
        left = base.width - logo.width - margin
    else:
        left = round((base.width - logo.width) / 2)
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    layer.paste(logo, (left, margin))
    logger.info(f"Logo {logo.width}x{logo.height} placed {position} at ({left}, {margin})")
    return Image.alpha_composite(base.convert("RGBA"), layer)


def render_with_fallback(base: Image.Image, svg: str, layout: "Layout", params: "ResolvedParams") -> Tuple[Image.Image, str]:
    """Try the SVG overlay first; on RenderError use the rectangle overlay.

    Returns the composited image and the name of the renderer that produced it.
    """
    try:
        return render_rich_overlay(base, svg), "svg"
    except RenderError as e:
        logger.warning(f"Rich overlay failed, using simple overlay: {e.message}")
        return render_simple_overlay(base, layout, params), "simple"


def encode_image(img: Image.Image, fmt: str, quality: int = 90) -> bytes:
    buf = io.BytesIO()
    if fmt == "png":
        img.save(buf, format="PNG")
    else:
        img.convert("RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()
