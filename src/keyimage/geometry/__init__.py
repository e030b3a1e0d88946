"""Coordinate spaces and camera model."""

from .camera import Camera, native_to_world, world_to_native
from .transform import (
    Bounds,
    DisplayGeometry,
    Point,
    Rect,
    display_rect_to_native,
    display_to_native,
    display_to_world,
    native_rect_to_display,
    native_to_display,
    world_to_display,
)

__all__ = [
    "Bounds",
    "Camera",
    "DisplayGeometry",
    "Point",
    "Rect",
    "display_rect_to_native",
    "display_to_native",
    "display_to_world",
    "native_rect_to_display",
    "native_to_display",
    "native_to_world",
    "world_to_display",
    "world_to_native",
]
