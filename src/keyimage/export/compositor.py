# keyimage/src/keyimage/export/compositor.py
"""Composite the native bitmap and the normalized overlay into one image.

Output window (native space):

- a crop rectangle, scaled from display to native space, is the window as is;
- otherwise, if the annotation extents stick out of the bitmap on any side,
  the window is the union of bitmap and extents plus ``padding`` on every side;
- otherwise the window is the whole bitmap.

Area of the window not covered by the bitmap is filled with the background
colour. The bitmap and the overlay are snapshotted first, so live edits made
while an export is awaiting never reach the output.
"""

from __future__ import annotations

import asyncio
import io
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List, Optional, Union

import numpy as np
from PIL import Image

from keyimage.config import KeyImageConfig
from keyimage.errors import OverlayRasterizationFailed, SurfaceUnavailable
from keyimage.geometry.transform import (
    Bounds,
    DisplayGeometry,
    Rect,
    display_bounds_to_native,
    display_rect_to_native,
    snap_rect_outward,
)
from keyimage.overlay.normalizer import OverlayNormalizer
from keyimage.overlay.rasterize import overlay_extents, rasterize_overlay
from keyimage.overlay.svg import has_drawables
from keyimage.utils.logging import get_logger

logger = get_logger(__name__)

Surface = Union[Image.Image, np.ndarray]


@dataclass
class CompositeResult:
    image: Image.Image
    window: Rect
    overlay_rendered: bool
    warnings: List[str] = field(default_factory=list)


def snapshot_surface(surface: Surface) -> Image.Image:
    """Private RGB copy of a bitmap surface (PIL image or uint8 array)."""
    if isinstance(surface, Image.Image):
        img = surface.copy()
    else:
        arr = np.asarray(surface)
        if arr.dtype != np.uint8:
            raise TypeError(f"bitmap array must be uint8, got {arr.dtype}")
        img = Image.fromarray(np.ascontiguousarray(arr).copy())
    if img.mode != "RGB":
        img = img.convert("RGB")
    return img


def compute_output_window(
    bitmap_width: int,
    bitmap_height: int,
    geometry: DisplayGeometry,
    crop: Optional[Rect],
    extents: Optional[Bounds],
    padding: int,
) -> Rect:
    """Native-space output window.

    Args:
        crop: crop rectangle in display space, or None.
        extents: annotation extents in native space, or None when there are none.
        padding: margin added on every side when auto-expanding (native px).
    """
    if crop is not None:
        native = display_rect_to_native(crop, geometry)
        x = int(round(native.x))
        y = int(round(native.y))
        w = max(1, int(round(native.width)))
        h = max(1, int(round(native.height)))
        return Rect(x, y, w, h)

    bitmap = Bounds(0.0, 0.0, float(bitmap_width), float(bitmap_height))
    if extents is None or bitmap.contains(extents):
        return Rect(0, 0, bitmap_width, bitmap_height)

    union = bitmap.union(extents)
    snapped = snap_rect_outward(union.min_x, union.min_y, union.max_x, union.max_y)
    return Rect(
        snapped.x - padding,
        snapped.y - padding,
        snapped.width + 2 * padding,
        snapped.height + 2 * padding,
    )


def place_bitmap(output: Image.Image, bitmap: Image.Image, window: Rect) -> None:
    """Paste the part of ``bitmap`` that overlaps ``window`` onto ``output``, in place.

    A window starting at a negative offset shifts the destination right/down by
    that amount while the source read position clamps to zero.
    """
    src_x0 = max(0, int(window.x))
    src_y0 = max(0, int(window.y))
    src_x1 = min(bitmap.width, int(window.right))
    src_y1 = min(bitmap.height, int(window.bottom))
    if src_x1 <= src_x0 or src_y1 <= src_y0:
        logger.debug(f"window {window} does not overlap the bitmap")
        return
    region = bitmap.crop((src_x0, src_y0, src_x1, src_y1))
    output.paste(region, (src_x0 - int(window.x), src_y0 - int(window.y)))


def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


class Compositor:
    """Builds the export image from a bitmap surface and a live overlay."""

    def __init__(
        self,
        config: KeyImageConfig | None = None,
        normalizer: OverlayNormalizer | None = None,
    ) -> None:
        self.config = config or KeyImageConfig()
        self.normalizer = normalizer or OverlayNormalizer(self.config)

    def output_window(
        self,
        bitmap_size: tuple[int, int],
        geometry: DisplayGeometry,
        crop: Optional[Rect],
        normalized: ET.Element,
    ) -> Rect:
        """Output window for an overlay already normalized but not yet reprojected."""
        extents = None
        if crop is None:
            display_extents = overlay_extents(normalized)
            if display_extents is not None:
                extents = display_bounds_to_native(display_extents, geometry)
        return compute_output_window(
            bitmap_size[0], bitmap_size[1], geometry, crop, extents, self.config.padding_px
        )

    async def compose(
        self,
        surface: Optional[Surface],
        overlay: Optional[ET.Element],
        geometry: DisplayGeometry,
        crop: Optional[Rect] = None,
    ) -> CompositeResult:
        """Composite ``surface`` and ``overlay`` into the output window.

        Raises:
            SurfaceUnavailable: if the bitmap surface or the overlay is missing.
        """
        if surface is None:
            raise SurfaceUnavailable("No image is displayed, nothing to export.")
        if overlay is None:
            raise SurfaceUnavailable("The annotation layer is not available.")

        bitmap = snapshot_surface(surface)
        normalized = self.normalizer.normalize(overlay)
        window = self.output_window(bitmap.size, geometry, crop, normalized)
        logger.info(
            f"output window x={window.x}, y={window.y}, {window.width}x{window.height} "
            f"(bitmap {bitmap.width}x{bitmap.height}, crop={'yes' if crop else 'no'})"
        )

        output = Image.new("RGB", (int(window.width), int(window.height)), self.config.background_color)
        place_bitmap(output, bitmap, window)

        warnings: List[str] = []
        overlay_rendered = False
        if has_drawables(normalized):
            self.normalizer.reproject(normalized, window, geometry)
            try:
                layer = await asyncio.to_thread(
                    rasterize_overlay, normalized, halo_color=self.config.halo_color
                )
            except OverlayRasterizationFailed as exc:
                logger.warning(f"exporting without annotations: {exc}")
                warnings.append(str(exc))
            else:
                if layer.size != output.size:
                    layer = layer.resize(output.size, Image.BILINEAR)
                output.paste(layer, (0, 0), layer)
                overlay_rendered = True

        return CompositeResult(output, window, overlay_rendered, warnings)

    async def encode(self, image: Image.Image) -> bytes:
        payload = await asyncio.to_thread(encode_png, image)
        logger.info(f"encoded {image.width}x{image.height} PNG, {len(payload)} bytes")
        return payload
