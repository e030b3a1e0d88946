# tests/annotations/test_renderers.py

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from keyimage.annotations.model import Annotation, AnnotationKind
from keyimage.annotations.renderers import (
    CirclePrimitive,
    GroupPrimitive,
    LinePrimitive,
    RenderFrame,
    TextPrimitive,
    render_annotation,
    render_annotations,
    text_at,
    text_layout_key,
)
from keyimage.annotations.store import AnnotationStore
from keyimage.geometry.transform import DisplayGeometry

GEOMETRY = DisplayGeometry(200, 200, 200, 200)


def _frame(zoom: float = 1.0, store: AnnotationStore | None = None, measure=None, image_id="img-1") -> RenderFrame:
    kwargs = {}
    if measure is not None:
        kwargs["measure"] = measure
    return RenderFrame(
        geometry=GEOMETRY,
        zoom=zoom,
        world_to_display=lambda p: (p[0], p[1]),
        image_id=image_id,
        store=store,
        **kwargs,
    )


def test_arrow_renders_outline_then_fill_from_tail_to_tip() -> None:
    ann = Annotation(AnnotationKind.ARROW, [(10, 20), (50, 60)], image_id="img-1")
    prims = render_annotation(ann, _frame())
    assert len(prims) == 2
    outline, fill = prims
    assert isinstance(outline, LinePrimitive) and isinstance(fill, LinePrimitive)
    assert (fill.x1, fill.y1, fill.x2, fill.y2) == (50, 60, 10, 20)
    assert outline.arrowhead and fill.arrowhead
    assert outline.stroke == ann.style.outline_color
    assert fill.stroke == ann.style.color
    assert outline.width == pytest.approx(fill.width + 2.0)


def test_arrow_widths_scale_with_zoom() -> None:
    ann = Annotation(AnnotationKind.ARROW, [(10, 20), (50, 60)], image_id="img-1")
    outline, fill = render_annotation(ann, _frame(zoom=2.0))
    assert fill.width == pytest.approx(3.0)
    assert outline.width == pytest.approx(7.0)


def test_arrow_preview_is_a_dot() -> None:
    ann = Annotation(AnnotationKind.ARROW, [(10, 20)], image_id="img-1", is_preview=True)
    prims = render_annotation(ann, _frame())
    assert [type(p) for p in prims] == [CirclePrimitive, CirclePrimitive]
    assert prims[0].r == pytest.approx(3.0)

    single = Annotation(AnnotationKind.ARROW, [(10, 20)], image_id="img-1")
    assert render_annotation(single, _frame()) == []


def test_annotations_of_other_images_are_skipped() -> None:
    ann = Annotation(AnnotationKind.ARROW, [(10, 20), (50, 60)], image_id="other")
    assert render_annotation(ann, _frame()) == []
    mine = Annotation(AnnotationKind.ARROW, [(10, 20), (50, 60)], image_id="img-1")
    assert render_annotation(mine, _frame(image_id=None)) == []
    assert len(render_annotations([ann, mine], _frame())) == 2


def test_text_renders_group_with_outline_and_fill() -> None:
    measure = MagicMock(return_value=(40.0, 10.0))
    ann = Annotation(AnnotationKind.TEXT, [(100, 100)], image_id="img-1", text="lesion")
    prims = render_annotation(ann, _frame(zoom=1.5, measure=measure))
    assert len(prims) == 1
    group = prims[0]
    assert isinstance(group, GroupPrimitive)
    outline, fill = group.children
    assert isinstance(outline, TextPrimitive) and isinstance(fill, TextPrimitive)
    assert fill.font_size == pytest.approx(14.0 * 1.5)
    assert outline.stroke == ann.style.outline_color
    assert fill.fill == ann.style.color


def test_empty_text_renders_nothing() -> None:
    ann = Annotation(AnnotationKind.TEXT, [(100, 100)], image_id="img-1", text="")
    assert render_annotation(ann, _frame()) == []


def test_text_leader_line_starts_on_box_edge() -> None:
    measure = MagicMock(return_value=(40.0, 10.0))
    ann = Annotation(AnnotationKind.TEXT, [(100, 100), (200, 100)], image_id="img-1", text="x")
    prims = render_annotation(ann, _frame(measure=measure))
    assert [type(p) for p in prims] == [LinePrimitive, LinePrimitive, GroupPrimitive]
    outline, fill = prims[0], prims[1]
    assert not outline.arrowhead and not fill.arrowhead
    # half width 20 + padding 4
    assert (fill.x1, fill.y1) == pytest.approx((124.0, 100.0))
    assert (fill.x2, fill.y2) == (200.0, 100.0)


def test_layout_hint_cache_measures_once_per_key() -> None:
    store = AnnotationStore()
    ann = store.add(Annotation(AnnotationKind.TEXT, [(100, 100)], image_id="img-1", text="abc"))
    measure = MagicMock(return_value=(30.0, 12.0))

    render_annotation(ann, _frame(zoom=1.0, store=store, measure=measure))
    render_annotation(ann, _frame(zoom=1.001, store=store, measure=measure))
    assert measure.call_count == 1
    assert store.get_layout_hint(ann.uid).key == text_layout_key("abc", 1.0)

    render_annotation(ann, _frame(zoom=2.0, store=store, measure=measure))
    assert measure.call_count == 2

    store.set_text(ann.uid, "abcd")
    assert store.get_layout_hint(ann.uid) is None
    render_annotation(ann, _frame(zoom=2.0, store=store, measure=measure))
    assert measure.call_count == 3
    measure.assert_called_with("abcd", pytest.approx(28.0))


def test_layout_hints_live_outside_annotation() -> None:
    store = AnnotationStore()
    ann = store.add(Annotation(AnnotationKind.TEXT, [(1, 1)], image_id="img-1", text="t"))
    render_annotation(ann, _frame(store=store, measure=MagicMock(return_value=(5.0, 5.0))))
    assert not hasattr(ann, "layout_hint")
    store.remove(ann.uid)
    assert store.get_layout_hint(ann.uid) is None


def test_text_at_finds_topmost_label_under_point() -> None:
    measure = MagicMock(return_value=(40.0, 10.0))
    frame = _frame(measure=measure)
    below = Annotation(AnnotationKind.TEXT, [(100, 100)], image_id="img-1", text="below")
    above = Annotation(AnnotationKind.TEXT, [(110, 100)], image_id="img-1", text="above")
    other = Annotation(AnnotationKind.TEXT, [(50, 50)], image_id="img-2", text="elsewhere")
    arrow = Annotation(AnnotationKind.ARROW, [(100, 100), (150, 150)], image_id="img-1")
    anns = [below, above, other, arrow]

    assert text_at(anns, frame, (105, 100)) is above
    # box half width 20 + padding 4 around x=100
    assert text_at(anns, frame, (77, 100)) is below
    assert text_at(anns, frame, (75, 100)) is None
    assert text_at(anns, frame, (50, 50)) is None
