# tests/overlay/test_rasterize.py

from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from keyimage.errors import OverlayRasterizationFailed
from keyimage.geometry.transform import Bounds
from keyimage.overlay.rasterize import arrowhead_length, overlay_extents, rasterize_overlay
from keyimage.overlay.svg import ARROWHEAD_REF, overlay_from_string


def _overlay(markup: str, size: int = 20, view_box: str | None = None) -> ET.Element:
    vb = view_box or f"0 0 {size} {size}"
    return overlay_from_string(
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" viewBox="{vb}">'
        f"<defs/>{markup}</svg>"
    )


def test_line_is_drawn_on_transparent_layer() -> None:
    root = _overlay('<line x1="2" y1="10" x2="18" y2="10" stroke="#ffffff" stroke-width="3"/>')
    img = rasterize_overlay(root)
    assert img.mode == "RGBA"
    assert img.size == (20, 20)
    assert img.getpixel((10, 10)) == (255, 255, 255, 255)
    assert img.getpixel((10, 2))[3] == 0


def test_view_box_maps_user_space_to_pixels() -> None:
    # viewBox twice as large as the pixel size: the line at user y=20 lands on row 10.
    root = _overlay(
        '<line x1="4" y1="20" x2="36" y2="20" stroke="#ffffff" stroke-width="6"/>',
        view_box="0 0 40 40",
    )
    img = rasterize_overlay(root)
    assert img.getpixel((10, 10))[3] == 255
    assert img.getpixel((10, 3))[3] == 0


def test_halo_is_drawn_under_stroke() -> None:
    root = _overlay(
        '<line x1="2" y1="10" x2="18" y2="10" stroke="#ffffff" stroke-width="1" data-halo="2"/>'
    )
    img = rasterize_overlay(root, halo_color="#000000")
    assert img.getpixel((10, 10))[:3] == (255, 255, 255)
    assert img.getpixel((10, 11)) == (0, 0, 0, 255)


def test_malformed_overlay_raises() -> None:
    root = _overlay('<polyline points="1 2 3" stroke="#ffffff"/>')
    with pytest.raises(OverlayRasterizationFailed):
        rasterize_overlay(root)

    bad_size = _overlay("", size=0, view_box="0 0 1 1")
    with pytest.raises(OverlayRasterizationFailed):
        rasterize_overlay(bad_size)


def test_text_is_drawn() -> None:
    root = _overlay(
        '<g><text x="30" y="30" font-size="30" fill="#ffffff" text-anchor="middle" '
        'dominant-baseline="central">W</text></g>',
        size=60,
    )
    img = rasterize_overlay(root)
    assert img.getbbox() is not None


def test_extents_of_stroked_line() -> None:
    root = _overlay('<line x1="10" y1="10" x2="30" y2="10" stroke="#fff" stroke-width="2"/>')
    assert overlay_extents(root) == Bounds(9, 9, 31, 11)


def test_extents_include_arrowhead() -> None:
    root = _overlay(
        f'<line x1="0" y1="10" x2="30" y2="10" stroke="#fff" stroke-width="1" marker-end="{ARROWHEAD_REF}"/>'
    )
    ext = overlay_extents(root)
    head = arrowhead_length(1.0)
    assert ext.max_x == pytest.approx(30.5)
    assert ext.max_y == pytest.approx(10 + head * 0.5 + 0.5)


def test_extents_reach_outside_view_box() -> None:
    root = _overlay('<circle cx="-5" cy="10" r="4" stroke="#fff" stroke-width="2" fill="none"/>')
    ext = overlay_extents(root)
    assert ext.min_x == pytest.approx(-10.0)


def test_extents_empty_and_malformed() -> None:
    assert overlay_extents(_overlay("")) is None
    assert overlay_extents(_overlay('<polyline points="1 2 3" stroke="#fff"/>')) is None
