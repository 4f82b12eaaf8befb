"""Bundled font loading.

Fonts are read once at startup and turned into inline ``data:`` URIs so the
generated SVG carries its own typefaces instead of depending on whatever the
rasterizer host has installed. The result is an immutable mapping that the app
keeps in its lifespan state and passes to the compositor.
"""

import base64
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Logical family name (as used by the themes) -> file under FONT_DIR
FONT_FILES: Dict[str, str] = {
    "Bebas Neue": "BebasNeue-Regular.ttf",
    "Anton": "Anton-Regular.ttf",
    "Impact": "impact.ttf",
    "Oswald": "Oswald-Bold.ttf",
    "Poppins": "Poppins-Bold.ttf",
    "Montserrat": "Montserrat-Black.ttf",
    "Raleway": "Raleway-Black.ttf",
    "Playfair Display": "PlayfairDisplay-Black.ttf",
}

DEFAULT_FONT_FAMILY = "Bebas Neue"
GENERIC_FALLBACK = "sans-serif"


class FontAsset(BaseModel):
    family: str
    data_url: str

    model_config = {"frozen": True}


class FontAssets:
    """Read-only family -> FontAsset mapping with a default-font fallback."""

    def __init__(self, assets: Mapping[str, FontAsset], default_family: str = DEFAULT_FONT_FAMILY):
        self._assets = MappingProxyType(dict(assets))
        self.default_family = default_family

    def __len__(self) -> int:
        return len(self._assets)

    def __contains__(self, family: object) -> bool:
        return family in self._assets

    @property
    def families(self):
        return sorted(self._assets)

    def lookup(self, family: str) -> Optional[FontAsset]:
        """Asset for `family`, else the default family's asset, else None."""
        asset = self._assets.get(family)
        if asset is None:
            asset = self._assets.get(self.default_family)
        return asset


def font_data_url(raw: bytes) -> str:
    b64 = base64.b64encode(raw).decode("ascii")
    return f"data:font/truetype;charset=utf-8;base64,{b64}"


def load_font_assets(font_dir: Path, files: Optional[Mapping[str, str]] = None) -> FontAssets:
    """Load every configured font file under `font_dir`.

    A missing or unreadable file is logged and skipped; it never aborts startup.
    """
    files = FONT_FILES if files is None else files
    loaded: Dict[str, FontAsset] = {}
    for family, filename in files.items():
        path = Path(font_dir) / filename
        try:
            raw = path.read_bytes()
        except OSError as e:
            logger.error(f"Failed to load font {filename} for '{family}': {e}")
            continue
        loaded[family] = FontAsset(family=family, data_url=font_data_url(raw))
        logger.info(f"Loaded font {filename} ({len(raw)} bytes)")
    logger.info(f"Font assets ready: {len(loaded)}/{len(files)} families from {font_dir}")
    return FontAssets(loaded)
