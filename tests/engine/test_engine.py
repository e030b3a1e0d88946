# tests/engine/test_engine.py

from __future__ import annotations

import logging
from typing import List

import numpy as np
import pytest

from keyimage.annotations.model import Annotation, AnnotationKind, ImageRef
from keyimage.engine import ArrayRenderingEngine, RenderingEngine, array_to_pil
from keyimage.geometry.transform import DisplayGeometry
from keyimage.overlay.svg import drawable_children


def _engine(**kwargs) -> ArrayRenderingEngine:
    img = np.arange(100 * 80, dtype=float).reshape(80, 100)
    return ArrayRenderingEngine(img, image_ref=ImageRef("s", "se", "img"), **kwargs)


def test_engine_satisfies_protocol() -> None:
    assert isinstance(_engine(), RenderingEngine)


def test_array_to_pil_gray_range() -> None:
    img = array_to_pil(np.array([[0.0, 1.0], [0.5, np.nan]]), cmap="gray")
    assert img.mode == "RGB"
    assert img.getpixel((0, 0)) == (0, 0, 0)
    assert img.getpixel((1, 0)) == (255, 255, 255)
    # NaN maps to the bottom of the colormap
    assert img.getpixel((1, 1)) == (0, 0, 0)


def test_bitmap_is_native_resolution() -> None:
    engine = _engine(display_width=50, display_height=40, pixel_ratio=2.0)
    bitmap = engine.get_bitmap_surface()
    assert bitmap.size == (100, 80)
    g = engine.get_display_geometry()
    assert (g.native_width, g.native_height, g.display_width, g.display_height) == (100, 80, 50, 40)


def test_surface_world_roundtrip_with_camera() -> None:
    engine = _engine(pixel_ratio=1.5)
    engine.camera.zoom_by(2.0)
    engine.camera.pan(12.0, -4.0)
    for p in [(0.0, 0.0), (50.0, 40.0), (99.0, 79.0)]:
        back = engine.surface_to_world(engine.world_to_surface(p))
        assert back == pytest.approx(p, abs=1e-6)


def test_zoom_scales_about_surface_centre() -> None:
    engine = _engine()
    centre = engine.world_to_surface((50.0, 40.0))
    engine.camera.zoom_by(2.0)
    assert engine.world_to_surface((50.0, 40.0)) == pytest.approx(centre)
    assert engine.world_to_surface((60.0, 40.0))[0] == pytest.approx(centre[0] + 20.0)


def test_overlay_only_contains_visible_image_annotations() -> None:
    engine = _engine()
    engine.store.add(Annotation(AnnotationKind.ARROW, [(10, 10), (30, 30)], image_id="img"))
    engine.store.add(Annotation(AnnotationKind.ARROW, [(10, 10), (30, 30)], image_id="other-img"))
    overlay = engine.get_vector_overlay()
    assert len(drawable_children(overlay)) == 2  # outline + fill of the one arrow
    assert overlay.get("viewBox") == "0 0 100 80"


def test_resize_notifies_handlers(caplog: pytest.LogCaptureFixture) -> None:
    engine = _engine()
    seen: List[DisplayGeometry] = []

    def bad(_g):
        raise RuntimeError("boom")

    engine.on_resize(bad)
    engine.on_resize(seen.append)
    with caplog.at_level(logging.ERROR, logger="keyimage"):
        g = engine.resize(200, 160, pixel_ratio=2.0)

    assert seen == [g]
    assert (g.native_width, g.native_height) == (400, 320)
    assert engine.get_display_geometry() is g
    assert "Error in resize handler" in caplog.text


def test_window_level_changes_bitmap() -> None:
    engine = _engine()
    before = engine.get_bitmap_surface().getpixel((50, 40))
    engine.set_window_level(center=0.0, width=1.0)
    after = engine.get_bitmap_surface().getpixel((50, 40))
    assert before != after
    assert after == (255, 255, 255)


def test_rejects_non_2d_image() -> None:
    with pytest.raises(ValueError):
        ArrayRenderingEngine(np.zeros((4, 4, 3)))


def test_window_level_defaults_to_data_range() -> None:
    engine = _engine()
    assert engine.data_range() == (0.0, 7999.0)
    assert engine.get_window_level() == pytest.approx((3999.5, 7999.0))
    engine.set_window_level(center=10.0, width=4.0)
    assert engine.get_window_level() == (10.0, 4.0)
