"""Vector overlay: building, normalizing for export, rasterizing."""

from .normalizer import OverlayNormalizer, has_arrowhead
from .rasterize import overlay_extents, rasterize_overlay
from .svg import build_overlay, has_drawables, overlay_from_string, overlay_to_string

__all__ = [
    "OverlayNormalizer",
    "build_overlay",
    "has_arrowhead",
    "has_drawables",
    "overlay_extents",
    "overlay_from_string",
    "overlay_to_string",
    "rasterize_overlay",
]
