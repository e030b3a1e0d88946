# keyimage/src/keyimage/engine.py
"""Rendering-engine interface consumed by the exporter and the editor widget.

``RenderingEngine`` is the contract a host viewer implements. ``ArrayRenderingEngine``
is a self-contained implementation over a 2D NumPy image, colormapped with
matplotlib and placed on the surface through the :class:`Camera`.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Callable, List, Optional, Protocol, Union, runtime_checkable

import matplotlib
import numpy as np
from PIL import Image

from keyimage.annotations.model import ImageRef
from keyimage.annotations.renderers import RenderFrame, render_annotations
from keyimage.annotations.store import AnnotationStore
from keyimage.geometry.camera import Camera, affine_native_to_world, native_to_world, world_to_native
from keyimage.geometry.transform import DisplayGeometry, Point, world_to_display
from keyimage.overlay.svg import build_overlay
from keyimage.utils.logging import get_logger

logger = get_logger(__name__)

Surface = Union[Image.Image, np.ndarray]
ResizeHandler = Callable[[DisplayGeometry], None]


@runtime_checkable
class RenderingEngine(Protocol):
    def get_bitmap_surface(self) -> Optional[Surface]: ...

    def get_vector_overlay(self) -> Optional[ET.Element]: ...

    def get_camera(self) -> Camera: ...

    def world_to_surface(self, point: Point) -> Point: ...

    def surface_to_world(self, point: Point) -> Point: ...

    def get_display_geometry(self) -> DisplayGeometry: ...

    def get_image_ref(self) -> ImageRef: ...

    def on_resize(self, handler: ResizeHandler) -> None: ...


def array_to_pil(
    arr: np.ndarray,
    vmin: float | None = None,
    vmax: float | None = None,
    cmap: str = "gray",
) -> Image.Image:
    """Map a 2D NumPy array to an 8-bit RGB PIL image with a colormap."""
    arr = np.asarray(arr, dtype=float)

    if vmin is None:
        vmin = float(np.nanmin(arr))
    if vmax is None:
        vmax = float(np.nanmax(arr))

    if vmax <= vmin:
        vmax = vmin + 1e-6

    norm = (arr - vmin) / (vmax - vmin)
    norm = np.clip(np.nan_to_num(norm, nan=0.0), 0.0, 1.0)

    cmap_fn = matplotlib.colormaps[cmap]
    rgba = cmap_fn(norm)
    rgb = (rgba[..., :3] * 255).astype(np.uint8)
    return Image.fromarray(rgb)


class ArrayRenderingEngine:
    """Reference engine rendering a 2D NumPy image onto a native-resolution surface.

    World space is image pixel space. The native surface is ``pixel_ratio``
    times the display size. Annotations come from ``store`` and are filtered
    by ``image_ref.image_id``.

    Events (via callback registration):
        on_resize(handler): Handler called as handler(display_geometry)
    """

    def __init__(
        self,
        image: np.ndarray,
        *,
        store: AnnotationStore | None = None,
        image_ref: ImageRef | None = None,
        display_width: float | None = None,
        display_height: float | None = None,
        pixel_ratio: float = 1.0,
        cmap: str = "gray",
        camera: Camera | None = None,
        background_color: str = "#000000",
    ) -> None:
        image = np.asarray(image)
        if image.ndim != 2:
            raise ValueError("ArrayRenderingEngine expects a 2D numpy array")

        self.image = image
        self.img_height, self.img_width = image.shape
        self.store = store if store is not None else AnnotationStore()
        self.image_ref = image_ref or ImageRef(study_id=None, series_id=None, image_id="image")
        self.camera = camera or Camera()
        self.cmap = cmap
        self.background_color = background_color
        self._pixel_ratio = float(pixel_ratio)

        self._geometry = DisplayGeometry.from_pixel_ratio(
            display_width if display_width is not None else self.img_width,
            display_height if display_height is not None else self.img_height,
            self._pixel_ratio,
        )

        self._colored: Optional[Image.Image] = None
        self._colored_key: Optional[tuple] = None

        self._resize_handlers: List[ResizeHandler] = []

        logger.info(
            f"ArrayRenderingEngine initialized: image={self.img_width}x{self.img_height}, "
            f"native={self._geometry.native_width}x{self._geometry.native_height}, "
            f"display={self._geometry.display_width:g}x{self._geometry.display_height:g}, cmap={cmap}"
        )

    # ------------- engine interface -------------

    def get_display_geometry(self) -> DisplayGeometry:
        return self._geometry

    def get_camera(self) -> Camera:
        return self.camera

    def get_image_ref(self) -> ImageRef:
        return self.image_ref

    def world_to_surface(self, point: Point) -> Point:
        return world_to_native(point, self.camera, self.img_width, self.img_height, self._geometry)

    def surface_to_world(self, point: Point) -> Point:
        return native_to_world(point, self.camera, self.img_width, self.img_height, self._geometry)

    def get_bitmap_surface(self) -> Image.Image:
        """The image as currently shown, at native surface resolution."""
        geometry = self._geometry
        coeffs = affine_native_to_world(self.camera, self.img_width, self.img_height, geometry)
        return self._colored_image().transform(
            (geometry.native_width, geometry.native_height),
            Image.AFFINE,
            coeffs,
            resample=Image.BILINEAR,
            fillcolor=self.background_color,
        )

    def render_frame(self) -> RenderFrame:
        """Render frame for the current camera and geometry snapshot."""
        geometry = self._geometry
        camera = self.camera

        def to_native(p: Point) -> Point:
            return world_to_native(p, camera, self.img_width, self.img_height, geometry)

        return RenderFrame(
            geometry=geometry,
            zoom=camera.zoom,
            world_to_display=lambda p: world_to_display(p, geometry, to_native),
            image_id=self.image_ref.image_id,
            store=self.store,
        )

    def get_vector_overlay(self) -> ET.Element:
        frame = self.render_frame()
        prims = render_annotations(self.store.for_image(self.image_ref.image_id), frame)
        return build_overlay(prims, frame.geometry)

    def on_resize(self, handler: ResizeHandler) -> None:
        """Register callback for surface resizes.

        Handler is called with: the new DisplayGeometry.
        """
        self._resize_handlers.append(handler)

    # ------------- public API -------------

    def resize(
        self,
        display_width: float,
        display_height: float,
        pixel_ratio: float | None = None,
    ) -> DisplayGeometry:
        """Resize the surface; native and display size change together."""
        if pixel_ratio is not None:
            self._pixel_ratio = float(pixel_ratio)
        self._geometry = DisplayGeometry.from_pixel_ratio(display_width, display_height, self._pixel_ratio)
        logger.info(
            f"surface resized: native={self._geometry.native_width}x{self._geometry.native_height}, "
            f"display={display_width:g}x{display_height:g}"
        )
        for handler in list(self._resize_handlers):
            try:
                handler(self._geometry)
            except Exception:
                logger.exception("Error in resize handler")
        return self._geometry

    def set_window_level(self, center: float | None, width: float | None) -> None:
        """Window/level in image intensity units; None for the full data range."""
        self.camera.window_center = center
        self.camera.window_width = width

    def get_window_level(self) -> tuple[float, float]:
        """Current (center, width); the full data range when no window is set."""
        cam = self.camera
        if cam.window_center is not None and cam.window_width is not None:
            return cam.window_center, cam.window_width
        lo, hi = self.data_range()
        return (lo + hi) / 2.0, max(hi - lo, 1e-6)

    def data_range(self) -> tuple[float, float]:
        return float(np.nanmin(self.image)), float(np.nanmax(self.image))

    def set_cmap(self, cmap: str) -> None:
        self.cmap = cmap

    # ------------- internals -------------

    def _colored_image(self) -> Image.Image:
        vmin, vmax = self.camera.vmin_vmax()
        key = (vmin, vmax, self.cmap)
        if self._colored is None or self._colored_key != key:
            self._colored = array_to_pil(self.image, vmin=vmin, vmax=vmax, cmap=self.cmap)
            self._colored_key = key
        return self._colored
