"""Font lookup and text measuring shared by the renderers and the rasterizer."""

from __future__ import annotations

from functools import lru_cache

from PIL import ImageFont

from keyimage.utils.logging import get_logger

logger = get_logger(__name__)

FONT_CANDIDATES = (
    "DejaVuSans.ttf",
    "arial.ttf",
    "Arial.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/System/Library/Fonts/Helvetica.ttc",
    "C:/Windows/Fonts/arial.ttf",
)


@lru_cache(maxsize=64)
def load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Return a font of roughly ``size`` pixels.

    Tries the usual system TrueType fonts first and falls back to Pillow's
    bundled default font.
    """
    size = max(1, int(size))
    for path in FONT_CANDIDATES:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    logger.debug(f"no TrueType font found, using Pillow default at size {size}")
    return ImageFont.load_default(size=size)


def measure_text(text: str, font_size: float) -> tuple[float, float]:
    """Return the (width, height) in pixels of ``text`` rendered at ``font_size``."""
    font = load_font(int(round(font_size)))
    lines = text.split("\n") if text else [""]
    width = 0.0
    height = 0.0
    for line in lines:
        left, top, right, bottom = font.getbbox(line or " ")
        width = max(width, float(right - left))
        height += float(bottom - top)
    return width, height
