from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, field_validator


class ThemeKey(str, Enum):
    DEFAULT = "default"
    TECH = "tech"
    ENTERTAINMENT = "entertainment"
    ANTON_BLACK = "antonBlack"
    BEBAS = "bebas"
    SPORTS = "sports"
    ANIME = "anime"
    MODERN = "modern"
    BOLD = "bold"
    LUXURY = "luxury"


class DesignTheme(BaseModel):
    name: str
    title_color: str
    website_color: str
    # Ordered from fully transparent (top of the band) to opaque (bottom)
    gradient_colors: Tuple[str, ...]
    title_size: int
    website_size: int
    font_weight: str
    font_family: str

    model_config = {"frozen": True}

    @field_validator("gradient_colors")
    @classmethod
    def _at_least_two_stops(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        if len(v) < 2:
            raise ValueError("gradient needs at least two stops")
        return v

    @property
    def deepest_color(self) -> str:
        return self.gradient_colors[-1]


def _fade(rgb: str) -> Tuple[str, ...]:
    """Build the 39-stop bottom fade used by every theme.

    Two clear stops, a linear ramp 0.05..0.95, then 18 solid stops so the
    lower half of the band is fully opaque behind the text.
    """
    alphas = ["0.0", "0.0"] + [f"{i * 0.05:.2f}" for i in range(1, 20)] + ["1.0"] * 18
    return tuple(f"rgba({rgb},{a})" for a in alphas)


DESIGN_THEMES: Dict[ThemeKey, DesignTheme] = {
    ThemeKey.DEFAULT: DesignTheme(
        name="Breaking News Boldness",
        title_color="#FFFFFF",
        website_color="#FFD700",
        gradient_colors=_fade("0,31,63"),
        title_size=60,
        website_size=28,
        font_weight="900",
        font_family="Anton",
    ),
    ThemeKey.TECH: DesignTheme(
        name="Professional Editorial",
        title_color="#FFFFFF",
        website_color="#00D9FF",
        gradient_colors=_fade("38,50,56"),
        title_size=52,
        website_size=26,
        font_weight="700",
        font_family="Montserrat",
    ),
    ThemeKey.ENTERTAINMENT: DesignTheme(
        name="Viral & Loud",
        title_color="#FFFFFF",
        website_color="#FFD700",
        gradient_colors=_fade("230,81,0"),
        title_size=64,
        website_size=32,
        font_weight="900",
        font_family="Anton",
    ),
    ThemeKey.ANTON_BLACK: DesignTheme(
        name="Anton Black",
        title_color="#FFFFFF",
        website_color="#FFD700",
        gradient_colors=_fade("0,0,0"),
        title_size=60,
        website_size=28,
        font_weight="900",
        font_family="Anton",
    ),
    ThemeKey.BEBAS: DesignTheme(
        name="Bebas Black Gradient",
        title_color="#FFFFFF",
        website_color="#FFD700",
        gradient_colors=_fade("0,0,0"),
        title_size=62,
        website_size=30,
        font_weight="400",
        font_family="Bebas Neue",
    ),
    ThemeKey.SPORTS: DesignTheme(
        name="Impact Headlines",
        title_color="#FFFFFF",
        website_color="#00FFD1",
        gradient_colors=_fade("0,77,64"),
        title_size=68,
        website_size=32,
        font_weight="900",
        font_family="Impact",
    ),
    ThemeKey.ANIME: DesignTheme(
        name="Friendly & Trustworthy",
        title_color="#FFFFFF",
        website_color="#FFD700",
        gradient_colors=_fade("255,111,0"),
        title_size=56,
        website_size=28,
        font_weight="700",
        font_family="Poppins",
    ),
    ThemeKey.MODERN: DesignTheme(
        name="Modern Authority",
        title_color="#FFFFFF",
        website_color="#00D4FF",
        gradient_colors=_fade("0,51,153"),
        title_size=54,
        website_size=26,
        font_weight="900",
        font_family="Raleway",
    ),
    ThemeKey.BOLD: DesignTheme(
        name="Stylish Credibility",
        title_color="#FFFFFF",
        website_color="#D4AF37",
        gradient_colors=_fade("62,39,35"),
        title_size=58,
        website_size=28,
        font_weight="900",
        font_family="Playfair Display",
    ),
    ThemeKey.LUXURY: DesignTheme(
        name="Luxury Burgundy",
        title_color="#FFFFFF",
        website_color="#FFD700",
        gradient_colors=_fade("128,0,32"),
        title_size=56,
        website_size=28,
        font_weight="900",
        font_family="Oswald",
    ),
}


def parse_theme_key(key: Optional[str]) -> ThemeKey:
    """Map an arbitrary user-supplied string onto a known key, else DEFAULT."""
    try:
        return ThemeKey((key or "").strip())
    except ValueError:
        return ThemeKey.DEFAULT


def resolve_theme(key: Optional[str]) -> DesignTheme:
    """Return the theme for `key`. Unknown or empty keys get the default theme."""
    return DESIGN_THEMES[parse_theme_key(key)]
