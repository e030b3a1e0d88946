# tests/geometry/test_transform.py

from __future__ import annotations

import pytest

from keyimage.geometry.camera import Camera, native_to_world, world_to_native
from keyimage.geometry.transform import (
    Bounds,
    DisplayGeometry,
    Rect,
    display_rect_to_native,
    display_to_world,
    native_rect_to_display,
    snap_rect_outward,
    world_to_display,
)


def _mappers(camera: Camera, img_w: int, img_h: int, geometry: DisplayGeometry):
    def w2n(p):
        return world_to_native(p, camera, img_w, img_h, geometry)

    def n2w(p):
        return native_to_world(p, camera, img_w, img_h, geometry)

    return w2n, n2w


@pytest.mark.parametrize(
    "geometry",
    [
        DisplayGeometry(512, 512, 512, 512),
        DisplayGeometry(1600, 1200, 800, 600),
        DisplayGeometry.from_pixel_ratio(333, 251, 1.5),
    ],
)
@pytest.mark.parametrize(
    "camera",
    [Camera(), Camera(zoom=2.5, pan_x=13.0, pan_y=-7.5), Camera(zoom=0.3, pan_x=-40.0)],
)
def test_world_display_roundtrip(geometry: DisplayGeometry, camera: Camera) -> None:
    """displayToWorld(worldToDisplay(p)) recovers p within half a pixel."""
    img_w, img_h = 300, 200
    w2n, n2w = _mappers(camera, img_w, img_h, geometry)
    for p in [(0.0, 0.0), (150.0, 100.0), (299.0, 199.0), (42.3, 17.7), (-20.0, 250.0)]:
        d = world_to_display(p, geometry, w2n)
        back = display_to_world(d, geometry, n2w)
        assert back[0] == pytest.approx(p[0], abs=0.5)
        assert back[1] == pytest.approx(p[1], abs=0.5)


def test_crop_scales_from_display_to_native() -> None:
    geometry = DisplayGeometry(1600, 1200, 800, 600)
    native = display_rect_to_native(Rect(100, 100, 200, 150), geometry)
    assert native == Rect(200, 200, 400, 300)
    assert native_rect_to_display(native, geometry) == Rect(100, 100, 200, 150)


def test_geometry_rejects_empty_surface() -> None:
    with pytest.raises(ValueError):
        DisplayGeometry(0, 100, 100, 100)
    with pytest.raises(ValueError):
        DisplayGeometry(100, 100, 100, 0)


def test_from_pixel_ratio() -> None:
    g = DisplayGeometry.from_pixel_ratio(400, 300, 2.0)
    assert (g.native_width, g.native_height) == (800, 600)
    assert g.scale_x == pytest.approx(2.0)
    assert g.to_dict()["scale_y"] == pytest.approx(2.0)


def test_bounds_union_and_contains() -> None:
    a = Bounds(0, 0, 10, 10)
    b = Bounds(-5, 2, 8, 20)
    u = a.union(b)
    assert u == Bounds(-5, 0, 10, 20)
    assert u.contains(a) and u.contains(b)
    assert not a.contains(b)
    assert Bounds.of_points([]) is None
    assert Bounds.of_points([(1, 2), (-3, 4)]) == Bounds(-3, 2, 1, 4)


def test_snap_rect_outward() -> None:
    r = snap_rect_outward(-30.4, 0.2, 540.1, 9.0)
    assert r == Rect(-31, 0, 572, 9)
