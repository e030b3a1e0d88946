# keyimage/src/keyimage/geometry/camera.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from .transform import DisplayGeometry, Point


@dataclass
class Camera:
    """Viewport camera of the reference engine.

    ``zoom`` is a homothety about the surface centre applied on top of the
    fit-to-surface scale; ``pan_x``/``pan_y`` shift the image in native pixels.
    ``window_center``/``window_width`` are the window/level (brightness/contrast)
    settings; ``None`` means the full data range.
    """

    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    window_center: float | None = None
    window_width: float | None = None

    def __post_init__(self) -> None:
        if self.zoom <= 0:
            raise ValueError(f"zoom must be positive, got {self.zoom}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Camera":
        return cls(**data)

    # ------------------ core operations ------------------

    def reset(self) -> None:
        """Fit whole image, no pan."""
        self.zoom = 1.0
        self.pan_x = 0.0
        self.pan_y = 0.0

    def zoom_by(self, factor: float, min_zoom: float = 0.05, max_zoom: float = 50.0) -> None:
        """Multiply zoom by ``factor`` (> 1 zooms in), clamped to [min_zoom, max_zoom]."""
        if factor <= 0:
            return
        self.zoom = max(min_zoom, min(max_zoom, self.zoom * factor))

    def pan(self, dx: float, dy: float) -> None:
        """Pan by (dx, dy) native pixels."""
        self.pan_x += dx
        self.pan_y += dy

    def vmin_vmax(self) -> tuple[float | None, float | None]:
        """Window/level expressed as (vmin, vmax) for the colormap."""
        if self.window_center is None or self.window_width is None:
            return None, None
        half = max(self.window_width, 1e-6) / 2.0
        return self.window_center - half, self.window_center + half


def fit_scale(img_width: int, img_height: int, geometry: DisplayGeometry) -> float:
    """Scale at which the whole image fits inside the native surface."""
    return min(geometry.native_width / img_width, geometry.native_height / img_height)


def world_to_native(
    point: Point,
    camera: Camera,
    img_width: int,
    img_height: int,
    geometry: DisplayGeometry,
) -> Point:
    """World (image pixel) coords -> native surface coords."""
    s = fit_scale(img_width, img_height, geometry) * camera.zoom
    x, y = point
    nx = geometry.native_width / 2.0 + camera.pan_x + (x - img_width / 2.0) * s
    ny = geometry.native_height / 2.0 + camera.pan_y + (y - img_height / 2.0) * s
    return nx, ny


def native_to_world(
    point: Point,
    camera: Camera,
    img_width: int,
    img_height: int,
    geometry: DisplayGeometry,
) -> Point:
    """Native surface coords -> world (image pixel) coords."""
    s = fit_scale(img_width, img_height, geometry) * camera.zoom
    nx, ny = point
    x = (nx - geometry.native_width / 2.0 - camera.pan_x) / s + img_width / 2.0
    y = (ny - geometry.native_height / 2.0 - camera.pan_y) / s + img_height / 2.0
    return x, y


def affine_native_to_world(
    camera: Camera,
    img_width: int,
    img_height: int,
    geometry: DisplayGeometry,
) -> tuple[float, float, float, float, float, float]:
    """Coefficients (a, b, c, d, e, f) of native->world, as PIL's AFFINE transform expects."""
    s = fit_scale(img_width, img_height, geometry) * camera.zoom
    c = img_width / 2.0 - (geometry.native_width / 2.0 + camera.pan_x) / s
    f = img_height / 2.0 - (geometry.native_height / 2.0 + camera.pan_y) / s
    return (1.0 / s, 0.0, c, 0.0, 1.0 / s, f)
