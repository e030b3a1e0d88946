# keyimage/src/keyimage/annotations/renderers.py
"""Arrow and text renderers.

Each annotation kind maps to one pure render function
``(annotation, frame) -> list[Primitive]`` producing overlay primitives in
display space. Base stroke widths and font sizes are multiplied by the
frame's zoom, and every shape is emitted twice: a wider dark outline pass,
then the light pass on top.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union

from keyimage.geometry.transform import DisplayGeometry, Point, PointMapper
from keyimage.utils.fonts import measure_text
from keyimage.utils.logging import get_logger

from .model import Annotation, AnnotationKind
from .store import AnnotationStore, LayoutHint

logger = get_logger(__name__)

MeasureFn = Callable[[str, float], Tuple[float, float]]


@dataclass(frozen=True)
class LinePrimitive:
    annotation_uid: str
    x1: float
    y1: float
    x2: float
    y2: float
    stroke: str
    width: float
    arrowhead: bool = False          # arrowhead marker at (x2, y2)


@dataclass(frozen=True)
class CirclePrimitive:
    annotation_uid: str
    cx: float
    cy: float
    r: float
    stroke: str
    width: float


@dataclass(frozen=True)
class TextPrimitive:
    annotation_uid: str
    cx: float
    cy: float
    text: str
    font_size: float
    fill: str
    stroke: Optional[str] = None
    stroke_width: float = 0.0


@dataclass(frozen=True)
class GroupPrimitive:
    annotation_uid: str
    children: Tuple["Primitive", ...] = ()


Primitive = Union[LinePrimitive, CirclePrimitive, TextPrimitive, GroupPrimitive]


@dataclass
class RenderFrame:
    """Everything a renderer needs for one frame.

    ``world_to_display`` must be built from the same ``geometry`` snapshot.
    """

    geometry: DisplayGeometry
    zoom: float
    world_to_display: PointMapper
    image_id: Optional[str]
    store: Optional[AnnotationStore] = None
    measure: MeasureFn = field(default=measure_text)


def text_layout_key(text: str, zoom: float) -> tuple[str, float]:
    return text, round(zoom, 2)


# ------------- arrow -------------


def render_arrow(annotation: Annotation, frame: RenderFrame) -> List[Primitive]:
    style = annotation.style
    uid = annotation.uid
    width = style.line_width * frame.zoom
    outline_width = (style.line_width + style.outline_extra) * frame.zoom
    pts = [frame.world_to_display(p) for p in annotation.points]

    if len(pts) >= 2:
        (tip_x, tip_y), (tail_x, tail_y) = pts[0], pts[1]
        return [
            LinePrimitive(uid, tail_x, tail_y, tip_x, tip_y, style.outline_color, outline_width, True),
            LinePrimitive(uid, tail_x, tail_y, tip_x, tip_y, style.color, width, True),
        ]

    if len(pts) == 1 and annotation.is_preview:
        cx, cy = pts[0]
        r = style.preview_radius
        return [
            CirclePrimitive(uid, cx, cy, r, style.outline_color, outline_width),
            CirclePrimitive(uid, cx, cy, r, style.color, width),
        ]

    return []


# ------------- text -------------


def _text_box_size(annotation: Annotation, frame: RenderFrame, font_size: float) -> tuple[float, float]:
    """Measured (w, h) of the text, from the layout side table when still valid."""
    key = text_layout_key(annotation.text, frame.zoom)
    store = frame.store
    if store is not None:
        hint = store.get_layout_hint(annotation.uid)
        if hint is not None and hint.key == key:
            return hint.width, hint.height

    # Cache miss: measure now, then place in the same frame.
    w, h = frame.measure(annotation.text, font_size)
    logger.debug(f"measured text {annotation.uid} at zoom {key[1]}: {w:.1f}x{h:.1f}")
    if store is not None:
        store.set_layout_hint(annotation.uid, LayoutHint(key=key, width=w, height=h))
    return w, h


def _box_edge_toward(cx: float, cy: float, half_w: float, half_h: float, target: Point) -> Point:
    """Point on the box boundary along the ray from its centre to ``target``."""
    dx = target[0] - cx
    dy = target[1] - cy
    if dx == 0 and dy == 0:
        return cx, cy
    tx = half_w / abs(dx) if dx else math.inf
    ty = half_h / abs(dy) if dy else math.inf
    t = min(tx, ty, 1.0)
    return cx + dx * t, cy + dy * t


def render_text(annotation: Annotation, frame: RenderFrame) -> List[Primitive]:
    if not annotation.points:
        return []
    style = annotation.style
    uid = annotation.uid
    font_size = style.font_size * frame.zoom
    cx, cy = frame.world_to_display(annotation.points[0])

    prims: List[Primitive] = []

    if len(annotation.points) >= 2:
        w, h = _text_box_size(annotation, frame, font_size)
        pad = style.text_padding * frame.zoom
        target = frame.world_to_display(annotation.points[1])
        sx, sy = _box_edge_toward(cx, cy, w / 2.0 + pad, h / 2.0 + pad, target)
        width = style.line_width * frame.zoom
        outline_width = (style.line_width + style.outline_extra) * frame.zoom
        prims.append(LinePrimitive(uid, sx, sy, target[0], target[1], style.outline_color, outline_width))
        prims.append(LinePrimitive(uid, sx, sy, target[0], target[1], style.color, width))
    else:
        # Keep the side-table warm so a later edit re-measures only once.
        _text_box_size(annotation, frame, font_size)

    outline = TextPrimitive(
        uid, cx, cy, annotation.text, font_size,
        fill=style.outline_color,
        stroke=style.outline_color,
        stroke_width=style.outline_extra * frame.zoom,
    )
    fill = TextPrimitive(uid, cx, cy, annotation.text, font_size, fill=style.color)
    prims.append(GroupPrimitive(uid, (outline, fill)))
    return prims


def text_at(annotations: List[Annotation], frame: RenderFrame, point: Point) -> Optional[Annotation]:
    """Topmost text annotation whose padded box contains the display ``point``."""
    px, py = point
    for ann in reversed(annotations):
        if ann.kind is not AnnotationKind.TEXT or not ann.text or not ann.points:
            continue
        if frame.image_id is None or ann.image_id != frame.image_id:
            continue
        w, h = _text_box_size(ann, frame, ann.style.font_size * frame.zoom)
        pad = ann.style.text_padding * frame.zoom
        cx, cy = frame.world_to_display(ann.points[0])
        if abs(px - cx) <= w / 2.0 + pad and abs(py - cy) <= h / 2.0 + pad:
            return ann
    return None


RENDERERS: Dict[AnnotationKind, Callable[[Annotation, RenderFrame], List[Primitive]]] = {
    AnnotationKind.ARROW: render_arrow,
    AnnotationKind.TEXT: render_text,
}


def render_annotation(annotation: Annotation, frame: RenderFrame) -> List[Primitive]:
    """Render one annotation, or nothing if it does not belong to the visible image."""
    if frame.image_id is None or annotation.image_id != frame.image_id:
        logger.debug(
            f"skipping annotation {annotation.uid}: image {annotation.image_id!r} "
            f"is not the visible image {frame.image_id!r}"
        )
        return []
    if annotation.kind is AnnotationKind.TEXT and not annotation.text:
        return []
    return RENDERERS[annotation.kind](annotation, frame)


def render_annotations(annotations: List[Annotation], frame: RenderFrame) -> List[Primitive]:
    prims: List[Primitive] = []
    for ann in annotations:
        prims.extend(render_annotation(ann, frame))
    return prims
