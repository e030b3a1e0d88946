# keyimage/src/keyimage/geometry/transform.py
"""Coordinate transforms between world, native-bitmap and display space.

Spaces
------
- world: physical image coordinates, independent of the display.
- native: pixel grid of the rendering surface's backing store.
- display: presentation pixel grid shown to the user,
  ``display = native / scale`` with ``scale = native_size / display_size``.
- overlay: the frame annotation shapes are authored in. It equals display
  space unless an overlay has been reprojected for export.

World <-> native is owned by the rendering engine (it knows the camera); the
functions here compose it with the native <-> display scale taken from a single
:class:`DisplayGeometry` snapshot. Nothing is cached across snapshots.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterable, Tuple

Point = Tuple[float, float]
PointMapper = Callable[[Point], Point]


@dataclass(frozen=True)
class DisplayGeometry:
    """Native and display size of the rendering surface, captured together."""

    native_width: int
    native_height: int
    display_width: float
    display_height: float

    def __post_init__(self) -> None:
        if min(self.native_width, self.native_height) <= 0:
            raise ValueError(
                f"native size must be positive, got {self.native_width}x{self.native_height}"
            )
        if min(self.display_width, self.display_height) <= 0:
            raise ValueError(
                f"display size must be positive, got {self.display_width}x{self.display_height}"
            )

    @classmethod
    def from_pixel_ratio(
        cls, display_width: float, display_height: float, pixel_ratio: float = 1.0
    ) -> "DisplayGeometry":
        """Geometry for a surface whose backing store is ``pixel_ratio`` times the display size."""
        return cls(
            native_width=int(round(display_width * pixel_ratio)),
            native_height=int(round(display_height * pixel_ratio)),
            display_width=float(display_width),
            display_height=float(display_height),
        )

    @property
    def scale_x(self) -> float:
        return self.native_width / self.display_width

    @property
    def scale_y(self) -> float:
        return self.native_height / self.display_height

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["scale_x"] = self.scale_x
        d["scale_y"] = self.scale_y
        return d


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle ``{x, y, width, height}``."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class Bounds:
    """Extents ``[min_x, max_x] x [min_y, max_y]``."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def union(self, other: "Bounds") -> "Bounds":
        return Bounds(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
        )

    def contains(self, other: "Bounds") -> bool:
        return (
            other.min_x >= self.min_x
            and other.min_y >= self.min_y
            and other.max_x <= self.max_x
            and other.max_y <= self.max_y
        )

    @classmethod
    def of_points(cls, points: Iterable[Point]) -> "Bounds | None":
        pts = list(points)
        if not pts:
            return None
        xs = [p[0] for p in pts]
        ys = [p[1] for p in pts]
        return cls(min(xs), min(ys), max(xs), max(ys))


# ------------------ native <-> display ------------------


def native_to_display(point: Point, geometry: DisplayGeometry) -> Point:
    """Native bitmap pixel -> display pixel."""
    x, y = point
    return x / geometry.scale_x, y / geometry.scale_y


def display_to_native(point: Point, geometry: DisplayGeometry) -> Point:
    """Display pixel -> native bitmap pixel."""
    x, y = point
    return x * geometry.scale_x, y * geometry.scale_y


def display_rect_to_native(rect: Rect, geometry: DisplayGeometry) -> Rect:
    x, y = display_to_native((rect.x, rect.y), geometry)
    return Rect(x, y, rect.width * geometry.scale_x, rect.height * geometry.scale_y)


def native_rect_to_display(rect: Rect, geometry: DisplayGeometry) -> Rect:
    x, y = native_to_display((rect.x, rect.y), geometry)
    return Rect(x, y, rect.width / geometry.scale_x, rect.height / geometry.scale_y)


def display_bounds_to_native(bounds: Bounds, geometry: DisplayGeometry) -> Bounds:
    min_x, min_y = display_to_native((bounds.min_x, bounds.min_y), geometry)
    max_x, max_y = display_to_native((bounds.max_x, bounds.max_y), geometry)
    return Bounds(min_x, min_y, max_x, max_y)


# ------------------ world <-> display ------------------


def world_to_display(
    point: Point,
    geometry: DisplayGeometry,
    world_to_native: PointMapper,
) -> Point:
    """World point -> display pixel, through the engine's world->native mapping."""
    return native_to_display(world_to_native(point), geometry)


def display_to_world(
    point: Point,
    geometry: DisplayGeometry,
    native_to_world: PointMapper,
) -> Point:
    """Display pixel -> world point, through the engine's native->world mapping."""
    return native_to_world(display_to_native(point, geometry))


def snap_rect_outward(min_x: float, min_y: float, max_x: float, max_y: float) -> Rect:
    """Smallest integer-aligned rectangle containing the given extents."""
    x0 = math.floor(min_x)
    y0 = math.floor(min_y)
    x1 = math.ceil(max_x)
    y1 = math.ceil(max_y)
    return Rect(x0, y0, x1 - x0, y1 - y0)
