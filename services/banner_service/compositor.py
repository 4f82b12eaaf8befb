"""Banner compositor: parameter resolution, text layout and SVG overlay.

A banner is a background raster with a vector overlay on top: a vertical
gradient band anchored to the bottom edge, the wrapped title (optionally with
per-word keyword colors and a background panel), the website line, and the
optional top label, preview watermark and border. This module turns request
parameters into that SVG; `raster` rasterizes and composites it. An optional
logo is pasted onto the background before the overlay goes on.

Text layout never measures real glyphs. Widths come from a `TextMeasurer`,
by default the `0.55 * font_size` per character approximation tuned for the
bold display faces the themes use.
"""

import asyncio
import logging
import math
from time import perf_counter
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from jinja2 import Environment
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator

import raster
from errors import ImageDecodeError, InvalidRequestError
from fonts import GENERIC_FALLBACK, FontAssets
from themes import DesignTheme, ThemeKey, parse_theme_key, resolve_theme

logger = logging.getLogger(__name__)

PADDING = 40
TITLE_WEBSITE_GAP = 20
LINE_HEIGHT_FACTOR = 1.2
WORD_SPACING = 10
PANEL_PAD = 20
PANEL_OPACITY = 0.8
MAX_DIMENSION = 4096

COLOR_NAMES: Dict[str, str] = {
    "gold": "FFD700",
    "orange": "FF8C00",
    "red": "FF0000",
    "blue": "0000FF",
    "green": "00FF00",
    "purple": "800080",
    "cyan": "00FFFF",
    "white": "FFFFFF",
    "yellow": "FFFF00",
    "black": "000000",
}


def _round(x: float) -> int:
    """Round half up, so 2.5 -> 3 like the layout tables expect."""
    return int(math.floor(x + 0.5))


# ---------------------------------------------------------------------------
# Request parameters
# ---------------------------------------------------------------------------

class OverlayRequest(BaseModel):
    """Raw banner parameters as received on the query string or JSON body."""

    title: str = ""
    website: str = ""
    design: str = ThemeKey.DEFAULT.value
    w: int = Field(1080, gt=0, le=MAX_DIMENSION)
    h: int = Field(1350, gt=0, le=MAX_DIMENSION)
    image: Optional[str] = Field(None, validation_alias=AliasChoices("image", "imageUrl"))
    image_data: Optional[str] = Field(None, validation_alias=AliasChoices("imageData", "image_data"))
    hl: Optional[str] = None
    wc: Optional[str] = None
    keywords: Optional[str] = None
    title_color: Optional[str] = Field(None, validation_alias=AliasChoices("titleColor", "tc"))
    title_bg_color: Optional[str] = Field(None, validation_alias=AliasChoices("titleBgColor", "tbc"))
    title_bg_gradient: Optional[str] = Field(None, validation_alias=AliasChoices("titleBgGradient", "tbg"))
    top_text: Optional[str] = Field(None, validation_alias=AliasChoices("topText", "top_text"))
    top_text_color: str = Field("FFFFFF", validation_alias=AliasChoices("topTextColor", "top_text_color"))
    top_text_bg_color: str = Field("FF0000", validation_alias=AliasChoices("topTextBgColor", "top_text_bg_color"))
    top_text_size: int = Field(28, gt=0, le=400, validation_alias=AliasChoices("topTextSize", "top_text_size"))
    top_text_position: str = Field("left", validation_alias=AliasChoices("topTextPosition", "top_text_position"))
    border_enabled: bool = Field(False, validation_alias=AliasChoices("borderEnabled", "border_enabled"))
    border_width: int = Field(10, ge=0, le=500, validation_alias=AliasChoices("borderWidth", "border_width"))
    border_color: str = Field("000000", validation_alias=AliasChoices("borderColor", "border_color"))
    border_inset: int = Field(0, ge=0, le=MAX_DIMENSION, validation_alias=AliasChoices("borderInset", "border_inset"))
    title_font_size: Optional[int] = Field(None, gt=0, le=1000, validation_alias=AliasChoices("titleFontSize", "title_font_size"))
    website_font_size: Optional[int] = Field(None, gt=0, le=1000, validation_alias=AliasChoices("websiteFontSize", "website_font_size"))
    title_align: str = Field("left", validation_alias=AliasChoices("titleAlign", "title_align"))
    website_align: str = Field("left", validation_alias=AliasChoices("websiteAlign", "website_align"))
    watermark: Optional[str] = None
    logo_url: Optional[str] = Field(None, validation_alias=AliasChoices("logoUrl", "logo_url"))
    logo_position: str = Field("top-center", validation_alias=AliasChoices("logoPosition", "logo_position"))
    logo_size: int = Field(150, gt=0, le=MAX_DIMENSION, validation_alias=AliasChoices("logoSize", "logo_size"))
    format: str = "jpeg"
    quality: Optional[int] = Field(None, ge=1, le=100)

    model_config = {"extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _drop_empty(cls, data: Any) -> Any:
        # An empty query value means "not given", not "set to empty"
        if isinstance(data, Mapping):
            return {k: v for k, v in data.items() if v is not None and v != ""}
        return data

    @field_validator("title", "website", "design", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("format")
    @classmethod
    def _known_format(cls, v: str) -> str:
        fmt = v.strip().lower()
        if fmt == "jpg":
            fmt = "jpeg"
        if fmt not in ("jpeg", "png"):
            raise ValueError("format must be jpeg or png")
        return fmt

    @field_validator("top_text_position", "title_align", "website_align")
    @classmethod
    def _known_position(cls, v: str) -> str:
        pos = v.strip().lower()
        return pos if pos in ("left", "center", "right") else "left"

    @field_validator("logo_position")
    @classmethod
    def _known_logo_position(cls, v: str) -> str:
        pos = v.strip().lower()
        return pos if pos in ("top-left", "top-center", "top-right") else "top-center"


def parse_overlay_request(raw: Mapping[str, Any]) -> OverlayRequest:
    """Validate raw parameters, reporting the first problem as a 400."""
    try:
        return OverlayRequest.model_validate(dict(raw))
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(p) for p in err.get("loc", ())) or "request"
        raise InvalidRequestError(f"Invalid parameter '{loc}': {err.get('msg', 'invalid value')}") from e


# ---------------------------------------------------------------------------
# Parameter resolution
# ---------------------------------------------------------------------------

def resolve_color(value: str) -> str:
    """Known color name -> fixed hex, anything else -> '#' + value without its leading '#'.

    Hex digits are not validated; a malformed value reaches the rasterizer as-is.
    """
    s = value.strip()
    named = COLOR_NAMES.get(s.lower())
    if named:
        return f"#{named}"
    if s.startswith("#"):
        s = s[1:]
    return f"#{s}"


def parse_color_list(csv: Optional[str]) -> List[str]:
    if not csv:
        return []
    return [resolve_color(c) for c in csv.split(",") if c.strip()]


def parse_keywords(csv: Optional[str]) -> List[str]:
    if not csv:
        return []
    return [k.strip().upper() for k in csv.split(",") if k.strip()]


def word_color(word: str, keywords: Sequence[str], highlights: Sequence[str], default: str) -> str:
    """Color for one title word under keyword highlighting.

    The first keyword contained in the word (case-insensitive) picks
    highlights[index % len(highlights)].
    """
    if not keywords or not highlights:
        return default
    upper = word.upper()
    for idx, kw in enumerate(keywords):
        if kw.upper() in upper:
            return highlights[idx % len(highlights)]
    return default


class TopLabel(BaseModel):
    text: str
    color: str
    bg_color: str
    size: int
    position: str


class Border(BaseModel):
    width: int
    color: str
    inset: int


class Logo(BaseModel):
    url: str
    position: str
    size: int


class ResolvedParams(BaseModel):
    theme_key: ThemeKey
    theme: DesignTheme
    title: str
    website: str
    width: int
    height: int
    title_size: int
    website_size: int
    title_align: str = "left"
    website_align: str = "left"
    title_color: str
    website_color: str
    keywords: List[str] = Field(default_factory=list)
    highlight_colors: List[str] = Field(default_factory=list)
    title_bg_color: Optional[str] = None
    title_bg_gradient: List[str] = Field(default_factory=list)
    top_label: Optional[TopLabel] = None
    border: Optional[Border] = None
    watermark: Optional[str] = None
    logo: Optional[Logo] = None
    output_format: str = "jpeg"
    quality: int = 90

    @property
    def highlighting(self) -> bool:
        return bool(self.keywords) and bool(self.highlight_colors)


def resolve_params(req: OverlayRequest, *, default_quality: int = 90) -> ResolvedParams:
    """Merge request overrides onto the selected theme's defaults."""
    theme_key = parse_theme_key(req.design)
    theme = resolve_theme(req.design)

    bg_gradient = parse_color_list(req.title_bg_gradient)
    if len(bg_gradient) == 1:
        # A gradient needs two stops; one color means a flat gradient
        bg_gradient = bg_gradient * 2

    top_label = None
    if req.top_text and req.top_text.strip():
        top_label = TopLabel(
            text=req.top_text.strip().upper(),
            color=resolve_color(req.top_text_color),
            bg_color=resolve_color(req.top_text_bg_color),
            size=req.top_text_size,
            position=req.top_text_position,
        )

    border = None
    if req.border_enabled and req.border_width > 0:
        border = Border(width=req.border_width, color=resolve_color(req.border_color), inset=req.border_inset)

    logo = None
    if req.logo_url and req.logo_url.strip():
        logo = Logo(url=req.logo_url.strip(), position=req.logo_position, size=req.logo_size)

    watermark = req.watermark.strip() if req.watermark else ""

    return ResolvedParams(
        theme_key=theme_key,
        theme=theme,
        title=req.title,
        website=req.website,
        width=req.w,
        height=req.h,
        title_size=req.title_font_size or theme.title_size,
        website_size=req.website_font_size or theme.website_size,
        title_align=req.title_align,
        website_align=req.website_align,
        title_color=resolve_color(req.title_color) if req.title_color else theme.title_color,
        website_color=resolve_color(req.wc) if req.wc else theme.website_color,
        keywords=parse_keywords(req.keywords),
        highlight_colors=parse_color_list(req.hl),
        title_bg_color=resolve_color(req.title_bg_color) if req.title_bg_color and not bg_gradient else None,
        title_bg_gradient=bg_gradient,
        top_label=top_label,
        border=border,
        watermark=watermark or None,
        logo=logo,
        output_format=req.format,
        quality=req.quality or default_quality,
    )


# ---------------------------------------------------------------------------
# Text layout
# ---------------------------------------------------------------------------

class TextMeasurer(Protocol):
    def max_chars(self, max_width: float, font_size: float) -> int:
        ...

    def advance(self, text: str, font_size: float) -> float:
        ...


class ApproximateMeasurer:
    """Fixed average-character-width model (no font metrics)."""

    def __init__(self, char_width_factor: float = 0.55):
        self.char_width_factor = char_width_factor

    def max_chars(self, max_width: float, font_size: float) -> int:
        avg = font_size * self.char_width_factor
        if avg <= 0:
            return 0
        return max(0, math.floor(max_width / avg))

    def advance(self, text: str, font_size: float) -> float:
        return len(text) * font_size * self.char_width_factor


DEFAULT_MEASURER = ApproximateMeasurer()


def wrap_text(text: str, max_width: float, font_size: float, measurer: TextMeasurer = DEFAULT_MEASURER) -> List[str]:
    """Greedy word wrap by character count.

    A word longer than `max_chars` is kept whole on its own line.
    """
    words = (text or "").split()
    if not words:
        return []
    max_chars = measurer.max_chars(max_width, font_size)
    lines: List[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


class Layout(BaseModel):
    """Vertical placement in image coordinates; every offset is within [0, height]."""

    title_lines: List[str]
    line_height: int
    total_title_height: int
    title_start_y: int
    title_end_y: int
    website_y: int
    overlay_height: int
    padding: int = PADDING

    def line_baseline(self, index: int) -> int:
        return self.title_start_y + index * self.line_height


def _clamp(v: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, v))


def compute_layout(
    title: str,
    width: int,
    height: int,
    title_size: int,
    website_size: int,
    measurer: TextMeasurer = DEFAULT_MEASURER,
) -> Layout:
    max_title_width = max(1, width - PADDING * 2)
    lines = wrap_text(title, max_title_width, title_size, measurer)
    line_height = _round(title_size * LINE_HEIGHT_FACTOR)
    total = len(lines) * line_height

    website_y = height - PADDING - website_size
    title_start_y = website_y - TITLE_WEBSITE_GAP - total
    overlay_height = height - title_start_y + PADDING

    title_start_y = _clamp(title_start_y, 0, height)
    return Layout(
        title_lines=lines,
        line_height=line_height,
        total_title_height=total,
        title_start_y=title_start_y,
        title_end_y=_clamp(title_start_y + total, 0, height),
        website_y=_clamp(website_y, 0, height),
        overlay_height=_clamp(overlay_height, 0, height),
    )


# ---------------------------------------------------------------------------
# SVG overlay
# ---------------------------------------------------------------------------

def escape_xml(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


def gradient_stops(colors: Sequence[str]) -> List[Tuple[int, str]]:
    """Evenly spaced (offset_percent, color) stops; needs at least two colors."""
    n = len(colors)
    if n < 2:
        raise ValueError(f"gradient needs at least 2 colors, got {n}")
    return [(_round(k / (n - 1) * 100), c) for k, c in enumerate(colors)]


class TextRun(BaseModel):
    x: float
    y: int
    text: str
    color: str
    anchor: str = "start"


def anchor_x(align: str, width: int, padding: int) -> Tuple[int, str]:
    """x and SVG text-anchor for a whole line aligned left, center or right."""
    if align == "center":
        return _round(width / 2), "middle"
    if align == "right":
        return width - padding, "end"
    return padding, "start"


def aligned_left(align: str, width: int, padding: int, text_width: float) -> float:
    """Left edge of a `text_width` wide block aligned inside the padded width."""
    if align == "center":
        return (width - text_width) / 2
    if align == "right":
        return width - padding - text_width
    return float(padding)


def title_runs(params: ResolvedParams, layout: Layout, measurer: TextMeasurer = DEFAULT_MEASURER) -> List[TextRun]:
    """One run per line, or one run per word when keyword highlighting is on.

    Word runs are laid out left to right from the line's estimated left edge,
    so centered and right-aligned lines keep their alignment.
    """
    size = params.title_size
    runs: List[TextRun] = []
    for idx, line in enumerate(layout.title_lines):
        y = layout.line_baseline(idx)
        if not params.highlighting:
            x, anchor = anchor_x(params.title_align, params.width, layout.padding)
            runs.append(TextRun(x=x, y=y, text=line, color=params.title_color, anchor=anchor))
            continue
        words = line.split(" ")
        line_width = sum(measurer.advance(w, size) for w in words) + WORD_SPACING * (len(words) - 1)
        x = aligned_left(params.title_align, params.width, layout.padding, line_width)
        for word in words:
            color = word_color(word, params.keywords, params.highlight_colors, params.title_color)
            runs.append(TextRun(x=round(x, 2), y=y, text=word, color=color))
            x += measurer.advance(word, size) + WORD_SPACING
    return runs


def watermark_positions(width: int, height: int) -> List[Tuple[int, int]]:
    """15 anchor points, 3 columns by 5 rows, covering the canvas."""
    return [
        (_round(width / 4 + (i % 3) * width / 3), _round(height / 6 + (i // 3) * height / 5))
        for i in range(15)
    ]


_env = Environment(autoescape=False, trim_blocks=True, lstrip_blocks=True)
_env.filters["xml"] = escape_xml

OVERLAY_TEMPLATE = _env.from_string("""
<svg width="{{ width }}" height="{{ height }}" viewBox="0 0 {{ width }} {{ height }}" xmlns="http://www.w3.org/2000/svg">
  <defs>
{% if font_data_url %}
    <style>
      @font-face {
        font-family: '{{ font_family }}';
        src: url('{{ font_data_url }}') format('truetype');
      }
    </style>
{% endif %}
    <linearGradient id="grad" x1="0%" y1="0%" x2="0%" y2="100%">
{% for offset, color in gradient %}
      <stop offset="{{ offset }}%" style="stop-color:{{ color|xml }}" />
{% endfor %}
    </linearGradient>
{% if panel_gradient %}
    <linearGradient id="titleBgGrad" x1="0%" y1="0%" x2="100%" y2="0%">
{% for offset, color in panel_gradient %}
      <stop offset="{{ offset }}%" style="stop-color:{{ color|xml }};stop-opacity:{{ panel_opacity }}" />
{% endfor %}
    </linearGradient>
{% endif %}
  </defs>
  <rect x="0" y="{{ band_y }}" width="{{ width }}" height="{{ overlay_height }}" fill="url(#grad)" />
{% if panel %}
  <rect x="{{ panel.x }}" y="{{ panel.y }}" width="{{ panel.w }}" height="{{ panel.h }}"{% if panel_gradient %} fill="url(#titleBgGrad)"{% else %} fill="{{ panel.color|xml }}" opacity="{{ panel_opacity }}"{% endif %} />
{% endif %}
{% for run in title_runs %}
  <text x="{{ run.x }}" y="{{ run.y }}" text-anchor="{{ run.anchor }}" font-family="{{ font_stack }}" font-size="{{ title_size }}" font-weight="{{ font_weight }}" fill="{{ run.color|xml }}">{{ run.text|xml }}</text>
{% endfor %}
{% if website %}
  <text x="{{ website_x }}" y="{{ website_y }}" text-anchor="{{ website_anchor }}" font-family="{{ font_stack }}" font-size="{{ website_size }}" font-weight="{{ font_weight }}" fill="{{ website_color|xml }}">{{ website|xml }}</text>
{% endif %}
{% if label %}
  <rect x="{{ label.x }}" y="{{ label.y }}" width="{{ label.w }}" height="{{ label.h }}" rx="{{ label.radius }}" fill="{{ label.bg_color|xml }}" />
  <text x="{{ label.text_x }}" y="{{ label.text_y }}" text-anchor="middle" dominant-baseline="middle" letter-spacing="1" font-family="Arial, {{ generic_family }}" font-size="{{ label.size }}" font-weight="900" fill="{{ label.color|xml }}">{{ label.text|xml }}</text>
{% endif %}
{% if watermark %}
  <rect x="0" y="0" width="{{ width }}" height="{{ height }}" fill="#000000" fill-opacity="0.02" />
  <g font-family="Arial, {{ generic_family }}" font-size="40" font-weight="700" text-anchor="middle" letter-spacing="3" fill="#FFFFFF" fill-opacity="0.25" stroke="#000000" stroke-opacity="0.25" stroke-width="1.5">
{% for x, y in watermark.positions %}
    <text x="{{ x }}" y="{{ y }}" transform="rotate(-30 {{ x }} {{ y }})">{{ watermark.text|xml }}</text>
{% endfor %}
  </g>
{% endif %}
{% if border %}
  <rect x="{{ border.x }}" y="{{ border.y }}" width="{{ border.w }}" height="{{ border.h }}" fill="none" stroke="{{ border.color|xml }}" stroke-width="{{ border.width }}" />
{% endif %}
</svg>
""")

LABEL_PAD = 12
LABEL_TOP = 15
LABEL_CHAR_WIDTH = 0.6
LABEL_RADIUS = 4


def _label_geometry(label: TopLabel, width: int) -> Dict[str, Any]:
    box_h = label.size + LABEL_PAD * 2
    box_w = _round(len(label.text) * label.size * LABEL_CHAR_WIDTH + LABEL_PAD * 2)
    box_w = max(0, min(width - PADDING * 2, box_w))
    if label.position == "center":
        x = _round((width - box_w) / 2)
    elif label.position == "right":
        x = width - box_w - PADDING
    else:
        x = PADDING
    return {
        "x": x,
        "y": LABEL_TOP,
        "w": box_w,
        "h": box_h,
        "radius": LABEL_RADIUS,
        "text_x": x + box_w / 2,
        "text_y": LABEL_TOP + box_h / 2,
        "size": label.size,
        "text": label.text,
        "color": label.color,
        "bg_color": label.bg_color,
    }


def build_overlay_svg(
    params: ResolvedParams,
    layout: Layout,
    fonts: FontAssets,
    measurer: TextMeasurer = DEFAULT_MEASURER,
) -> str:
    """Full-canvas SVG overlay; the gradient band covers the bottom `overlay_height` pixels."""
    theme = params.theme
    asset = fonts.lookup(theme.font_family)
    font_family = asset.family if asset else theme.font_family
    font_stack = f"'{font_family}', {GENERIC_FALLBACK}"

    panel = None
    if params.title_bg_gradient or params.title_bg_color:
        panel = {
            "x": layout.padding,
            "y": max(0, layout.title_start_y - PANEL_PAD),
            "w": max(0, params.width - layout.padding * 2),
            "h": layout.total_title_height + PANEL_PAD * 2,
            "color": params.title_bg_color,
        }

    border = None
    if params.border:
        b = params.border
        border = {
            "x": b.inset + b.width / 2,
            "y": b.inset + b.width / 2,
            "w": max(0, params.width - b.inset * 2 - b.width),
            "h": max(0, params.height - b.inset * 2 - b.width),
            "width": b.width,
            "color": b.color,
        }

    watermark = None
    if params.watermark:
        watermark = {"text": params.watermark, "positions": watermark_positions(params.width, params.height)}

    website_x, website_anchor = anchor_x(params.website_align, params.width, layout.padding)

    return OVERLAY_TEMPLATE.render(
        width=params.width,
        height=params.height,
        font_family=font_family,
        font_data_url=asset.data_url if asset else None,
        font_stack=font_stack,
        font_weight=theme.font_weight,
        generic_family=GENERIC_FALLBACK,
        gradient=gradient_stops(theme.gradient_colors),
        band_y=params.height - layout.overlay_height,
        overlay_height=layout.overlay_height,
        panel=panel,
        panel_gradient=gradient_stops(params.title_bg_gradient) if params.title_bg_gradient else None,
        panel_opacity=PANEL_OPACITY,
        title_runs=title_runs(params, layout, measurer),
        title_size=params.title_size,
        website=params.website,
        website_x=website_x,
        website_y=layout.website_y,
        website_anchor=website_anchor,
        website_size=params.website_size,
        website_color=params.website_color,
        label=_label_geometry(params.top_label, params.width) if params.top_label else None,
        watermark=watermark,
        border=border,
    ).strip()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class BannerResult(BaseModel):
    content: bytes
    content_type: str
    renderer: str
    width: int
    height: int


def compose_banner(
    params: ResolvedParams,
    background: Optional[bytes],
    fonts: FontAssets,
    measurer: TextMeasurer = DEFAULT_MEASURER,
    logo: Optional[bytes] = None,
) -> BannerResult:
    """Render one banner: layout, logo, overlay, composite onto the background, encode.

    With no background bytes a flat canvas in the theme's deepest gradient
    color is used instead. Logo bytes that do not decode are logged and left
    out; they never fail the banner.
    """
    t0 = perf_counter()
    theme = params.theme
    layout = compute_layout(params.title, params.width, params.height, params.title_size, params.website_size, measurer)
    svg = build_overlay_svg(params, layout, fonts, measurer)

    if background is None:
        base = raster.placeholder_background(params.width, params.height, theme.deepest_color)
    else:
        base = raster.cover_resize(raster.decode_image(background), params.width, params.height)

    if logo is not None and params.logo is not None:
        try:
            base = raster.place_logo(base, raster.decode_image(logo), params.logo.position, params.logo.size)
        except ImageDecodeError as e:
            logger.warning(f"Skipping logo {params.logo.url}: {e.message}")

    image, renderer = raster.render_with_fallback(base, svg, layout, params)
    content = raster.encode_image(image, params.output_format, params.quality)
    logger.info(
        f"banner: theme={params.theme_key.value} size={params.width}x{params.height} lines={len(layout.title_lines)} "
        f"renderer={renderer} bytes={len(content)} elapsed={perf_counter() - t0:.3f}s"
    )
    return BannerResult(
        content=content,
        content_type=raster.CONTENT_TYPES[params.output_format],
        renderer=renderer,
        width=params.width,
        height=params.height,
    )


async def compose_banner_async(
    params: ResolvedParams,
    background: Optional[bytes],
    fonts: FontAssets,
    measurer: TextMeasurer = DEFAULT_MEASURER,
    logo: Optional[bytes] = None,
) -> BannerResult:
    # Rasterizing is CPU-bound; keep it off the event loop
    return await asyncio.to_thread(compose_banner, params, background, fonts, measurer, logo)
