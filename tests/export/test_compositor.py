# tests/export/test_compositor.py

from __future__ import annotations

import io
import logging

import numpy as np
import pytest
from PIL import Image

from keyimage.annotations.renderers import LinePrimitive
from keyimage.config import KeyImageConfig
from keyimage.errors import SurfaceUnavailable
from keyimage.export.compositor import (
    Compositor,
    compute_output_window,
    encode_png,
    place_bitmap,
    snapshot_surface,
)
from keyimage.geometry.transform import Bounds, DisplayGeometry, Rect
from keyimage.overlay.svg import build_overlay, overlay_from_string


def test_auto_expand_window_arithmetic() -> None:
    geometry = DisplayGeometry(512, 512, 512, 512)
    window = compute_output_window(512, 512, geometry, None, Bounds(-30, 100, 540, 200), padding=20)
    assert window.x == -50
    assert window.width == 610
    # y extents stay inside the bitmap, padding still applies on every side
    assert window.y == -20
    assert window.height == 552


def test_extents_inside_bitmap_give_full_frame() -> None:
    geometry = DisplayGeometry(512, 512, 512, 512)
    window = compute_output_window(512, 512, geometry, None, Bounds(10, 10, 500, 500), padding=20)
    assert window == Rect(0, 0, 512, 512)
    assert compute_output_window(512, 512, geometry, None, None, padding=20) == Rect(0, 0, 512, 512)


def test_crop_defines_window_without_padding() -> None:
    geometry = DisplayGeometry(1600, 1200, 800, 600)
    crop = Rect(100, 100, 200, 150)
    window = compute_output_window(1600, 1200, geometry, crop, Bounds(-500, -500, 5000, 5000), padding=20)
    assert window == Rect(200, 200, 400, 300)


def test_place_bitmap_with_negative_offset() -> None:
    bitmap = Image.new("RGB", (4, 4), (255, 255, 255))
    out = Image.new("RGB", (8, 8), (0, 0, 0))
    place_bitmap(out, bitmap, Rect(-2, -2, 8, 8))
    assert out.getpixel((2, 2)) == (255, 255, 255)
    assert out.getpixel((5, 5)) == (255, 255, 255)
    assert out.getpixel((1, 1)) == (0, 0, 0)
    assert out.getpixel((6, 6)) == (0, 0, 0)


def test_place_bitmap_without_overlap_is_noop() -> None:
    bitmap = Image.new("RGB", (4, 4), (255, 255, 255))
    out = Image.new("RGB", (3, 3), (0, 0, 0))
    place_bitmap(out, bitmap, Rect(10, 10, 3, 3))
    assert out.getextrema() == ((0, 0), (0, 0), (0, 0))


def test_snapshot_surface_copies() -> None:
    arr = np.zeros((5, 6, 3), dtype=np.uint8)
    img = snapshot_surface(arr)
    arr[:] = 255
    assert img.size == (6, 5)
    assert img.getpixel((0, 0)) == (0, 0, 0)
    with pytest.raises(TypeError):
        snapshot_surface(np.zeros((5, 5), dtype=float))


def test_encode_png_is_lossless() -> None:
    img = Image.new("RGB", (7, 3), (12, 34, 56))
    payload = encode_png(img)
    assert payload.startswith(b"\x89PNG")
    back = Image.open(io.BytesIO(payload))
    assert back.size == (7, 3)
    assert back.convert("RGB").getpixel((6, 2)) == (12, 34, 56)


@pytest.mark.asyncio
async def test_missing_surface_aborts() -> None:
    geometry = DisplayGeometry(10, 10, 10, 10)
    overlay = build_overlay([], geometry)
    comp = Compositor()
    with pytest.raises(SurfaceUnavailable):
        await comp.compose(None, overlay, geometry)
    with pytest.raises(SurfaceUnavailable):
        await comp.compose(Image.new("RGB", (10, 10)), None, geometry)


@pytest.mark.asyncio
async def test_empty_overlay_exports_bitmap_only() -> None:
    geometry = DisplayGeometry(10, 10, 10, 10)
    bitmap = Image.new("RGB", (10, 10), (9, 9, 9))
    result = await Compositor().compose(bitmap, build_overlay([], geometry), geometry)
    assert result.window == Rect(0, 0, 10, 10)
    assert not result.overlay_rendered
    assert result.warnings == []
    assert result.image.getpixel((5, 5)) == (9, 9, 9)


@pytest.mark.asyncio
async def test_empty_overlay_with_relative_size_still_exports() -> None:
    geometry = DisplayGeometry(10, 10, 10, 10)
    bitmap = Image.new("RGB", (10, 10), (9, 9, 9))
    overlay = overlay_from_string('<svg xmlns="http://www.w3.org/2000/svg" width="100%" height="100%"/>')
    result = await Compositor().compose(bitmap, overlay, geometry)
    assert result.window == Rect(0, 0, 10, 10)
    assert not result.overlay_rendered
    assert result.image.getpixel((5, 5)) == (9, 9, 9)


@pytest.mark.asyncio
async def test_rasterization_failure_falls_back_to_bitmap(caplog: pytest.LogCaptureFixture) -> None:
    geometry = DisplayGeometry(10, 10, 10, 10)
    bitmap = Image.new("RGB", (10, 10), (9, 9, 9))
    overlay = overlay_from_string(
        '<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10" viewBox="0 0 10 10">'
        '<polyline points="1 2 3" stroke="red"/></svg>'
    )
    with caplog.at_level(logging.WARNING, logger="keyimage"):
        result = await Compositor().compose(bitmap, overlay, geometry)
    assert not result.overlay_rendered
    assert len(result.warnings) == 1
    assert result.image.size == (10, 10)
    assert result.image.getpixel((5, 5)) == (9, 9, 9)
    assert "exporting without annotations" in caplog.text


@pytest.mark.asyncio
async def test_off_frame_annotation_expands_with_black_fill() -> None:
    geometry = DisplayGeometry(100, 100, 100, 100)
    bitmap = Image.new("RGB", (100, 100), (200, 200, 200))
    overlay = build_overlay(
        [LinePrimitive("a", -30, 50, 40, 50, "white", 1.0, arrowhead=True)],
        geometry,
    )
    comp = Compositor(KeyImageConfig(padding_px=20))
    result = await comp.compose(bitmap, overlay, geometry)

    assert result.overlay_rendered
    assert result.window.x < -30 - 19
    assert result.window.y == -20
    assert result.image.size == (result.window.width, result.window.height)
    # outside the source frame: background
    assert result.image.getpixel((0, 0)) == (0, 0, 0)
    # inside the source frame, away from the line: bitmap
    bx = int(-result.window.x) + 80
    by = int(-result.window.y) + 10
    assert result.image.getpixel((bx, by)) == (200, 200, 200)
    # the line itself crosses the expanded area in white
    line_x = int(-result.window.x) - 20
    line_y = int(-result.window.y) + 50
    assert result.image.getpixel((line_x, line_y)) == (255, 255, 255)


@pytest.mark.asyncio
async def test_crop_exports_native_window() -> None:
    geometry = DisplayGeometry(200, 200, 100, 100)
    arr = np.zeros((200, 200, 3), dtype=np.uint8)
    arr[40:60, 40:60] = 255
    overlay = build_overlay([], geometry)
    result = await Compositor().compose(arr, overlay, geometry, crop=Rect(20, 20, 10, 10))
    assert result.window == Rect(40, 40, 20, 20)
    assert result.image.size == (20, 20)
    assert result.image.getextrema() == ((255, 255), (255, 255), (255, 255))
