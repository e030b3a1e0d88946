# keyimage/src/keyimage/overlay/svg.py
"""Build and serialize the SVG vector overlay.

The overlay is an ``xml.etree.ElementTree`` tree. Its root carries
``width``/``height`` and a ``viewBox``; a freshly rendered overlay has
``viewBox="0 0 display_width display_height"`` (overlay space == display space).
"""

from __future__ import annotations

import copy
import xml.etree.ElementTree as ET
from typing import Iterable

from keyimage.annotations.renderers import (
    CirclePrimitive,
    GroupPrimitive,
    LinePrimitive,
    Primitive,
    TextPrimitive,
)
from keyimage.geometry.transform import DisplayGeometry, Rect

SVG_NS = "http://www.w3.org/2000/svg"
ARROWHEAD_ID = "keyimage-arrowhead"
ARROWHEAD_REF = f"url(#{ARROWHEAD_ID})"
MARKER_ATTRS = ("marker-end", "marker-start", "marker-mid")
UID_ATTR = "data-annotation-uid"

DRAWABLE_TAGS = {"line", "polyline", "polygon", "path", "circle", "ellipse", "rect", "text", "g"}


def fmt(value: float) -> str:
    """Compact decimal string for SVG attributes."""
    s = f"{float(value):.3f}".rstrip("0").rstrip(".")
    return "0" if s in ("", "-0") else s


def local_name(tag: str) -> str:
    """Tag name without an ``{namespace}`` prefix."""
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def new_svg(width: float, height: float, view_box: Rect | None = None) -> ET.Element:
    vb = view_box or Rect(0.0, 0.0, width, height)
    root = ET.Element(
        "svg",
        {
            "xmlns": SVG_NS,
            "width": fmt(width),
            "height": fmt(height),
            "viewBox": f"{fmt(vb.x)} {fmt(vb.y)} {fmt(vb.width)} {fmt(vb.height)}",
        },
    )
    defs = ET.SubElement(root, "defs")
    marker = ET.SubElement(
        defs,
        "marker",
        {
            "id": ARROWHEAD_ID,
            "markerWidth": "6",
            "markerHeight": "6",
            "refX": "5",
            "refY": "3",
            "orient": "auto",
            "markerUnits": "strokeWidth",
        },
    )
    ET.SubElement(marker, "path", {"d": "M0,0 L6,3 L0,6", "fill": "none", "stroke": "context-stroke"})
    return root


def _element_for(prim: Primitive) -> ET.Element:
    if isinstance(prim, LinePrimitive):
        el = ET.Element(
            "line",
            {
                "x1": fmt(prim.x1),
                "y1": fmt(prim.y1),
                "x2": fmt(prim.x2),
                "y2": fmt(prim.y2),
                "stroke": prim.stroke,
                "stroke-width": fmt(prim.width),
                "stroke-linecap": "round",
            },
        )
        if prim.arrowhead:
            el.set("marker-end", ARROWHEAD_REF)
    elif isinstance(prim, CirclePrimitive):
        el = ET.Element(
            "circle",
            {
                "cx": fmt(prim.cx),
                "cy": fmt(prim.cy),
                "r": fmt(prim.r),
                "stroke": prim.stroke,
                "stroke-width": fmt(prim.width),
                "fill": "none",
            },
        )
    elif isinstance(prim, TextPrimitive):
        el = ET.Element(
            "text",
            {
                "x": fmt(prim.cx),
                "y": fmt(prim.cy),
                "font-size": fmt(prim.font_size),
                "fill": prim.fill,
                "text-anchor": "middle",
                "dominant-baseline": "central",
            },
        )
        if prim.stroke:
            el.set("stroke", prim.stroke)
            el.set("stroke-width", fmt(prim.stroke_width))
        el.text = prim.text
    elif isinstance(prim, GroupPrimitive):
        el = ET.Element("g")
        for child in prim.children:
            el.append(_element_for(child))
    else:
        raise TypeError(f"unsupported primitive {type(prim).__name__}")
    el.set(UID_ATTR, prim.annotation_uid)
    return el


def build_overlay(primitives: Iterable[Primitive], geometry: DisplayGeometry) -> ET.Element:
    """Overlay in display space for the given primitives, in drawing order."""
    root = new_svg(geometry.display_width, geometry.display_height)
    for prim in primitives:
        root.append(_element_for(prim))
    return root


def clone_overlay(root: ET.Element) -> ET.Element:
    return copy.deepcopy(root)


def drawable_children(root: ET.Element) -> list[ET.Element]:
    return [el for el in root if local_name(el.tag) in DRAWABLE_TAGS]


def has_drawables(root: ET.Element | None) -> bool:
    return root is not None and bool(drawable_children(root))


def parse_view_box(root: ET.Element) -> Rect:
    """The root's viewBox, defaulting to ``0 0 width height``."""
    vb = root.get("viewBox")
    if vb:
        parts = [float(p) for p in vb.replace(",", " ").split()]
        if len(parts) != 4:
            raise ValueError(f"malformed viewBox {vb!r}")
        return Rect(*parts)
    return Rect(0.0, 0.0, parse_length(root.get("width", "0")), parse_length(root.get("height", "0")))


def parse_length(value: str, em: float = 16.0) -> float:
    """Parse an SVG length such as ``"14"``, ``"14px"`` or ``"1.8em"``."""
    v = value.strip()
    if v.endswith("px"):
        return float(v[:-2])
    if v.endswith("em"):
        return float(v[:-2]) * em
    return float(v)


def overlay_to_string(root: ET.Element) -> str:
    return ET.tostring(root, encoding="unicode")


def overlay_from_string(markup: str) -> ET.Element:
    """Parse SVG markup into an overlay tree with plain (un-namespaced) tags."""
    root = ET.fromstring(markup)
    for el in root.iter():
        el.tag = local_name(el.tag)
    root.set("xmlns", SVG_NS)
    return root
