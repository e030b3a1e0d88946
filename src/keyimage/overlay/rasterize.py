# keyimage/src/keyimage/overlay/rasterize.py
"""Rasterize the SVG overlay subset produced by the renderers onto Pillow images.

Supported elements: ``line`` (with arrowhead markers), ``polyline``,
``polygon``, ``path`` (M/L/H/V/Z commands), ``circle``, ``ellipse``, ``rect``,
``text`` and nested ``g``. ``stroke``, ``fill``, ``stroke-width`` and
``font-size`` are inherited from enclosing groups. Elements flagged with a
halo width are first drawn widened in the halo colour.

Also computes overlay extents geometrically (coordinates, stroke widths,
arrowhead length, font metrics) without drawing anything.
"""

from __future__ import annotations

import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, replace
from typing import Iterator, List, Optional, Sequence, Tuple

from PIL import Image, ImageColor, ImageDraw

from keyimage.errors import OverlayRasterizationFailed
from keyimage.geometry.transform import Bounds, Point, Rect
from keyimage.utils.fonts import load_font, measure_text
from keyimage.utils.logging import get_logger

from .normalizer import HALO_ATTR
from .svg import drawable_children, local_name, parse_length, parse_view_box

logger = get_logger(__name__)

Color = Tuple[int, int, int, int]

_PATH_TOKEN = re.compile(r"[MmLlHhVvZz]|-?\d*\.?\d+(?:[eE][-+]?\d+)?")
_ANCHORS = {"start": "l", "middle": "m", "end": "r"}
_BASELINES = {"central": "m", "middle": "m", "hanging": "t", "text-before-edge": "t"}


@dataclass(frozen=True)
class _Style:
    stroke: Optional[str] = None
    fill: Optional[str] = "black"
    stroke_width: float = 1.0
    font_size: float = 16.0
    halo: float = 0.0


@dataclass(frozen=True)
class _Frame:
    view_box: Rect
    sx: float
    sy: float

    def map(self, p: Point) -> Point:
        return (p[0] - self.view_box.x) * self.sx, (p[1] - self.view_box.y) * self.sy

    @property
    def scale(self) -> float:
        return (self.sx + self.sy) / 2.0


def arrowhead_length(stroke_width: float) -> float:
    """Arrowhead side length in user units for a given stroke width."""
    return max(6.0, 4.0 * stroke_width)


def _color(value: Optional[str]) -> Optional[Color]:
    if value is None:
        return None
    v = value.strip()
    if not v or v in ("none", "transparent", "context-stroke", "context-fill"):
        return None
    r, g, b, *a = ImageColor.getcolor(v, "RGBA")
    return (r, g, b, a[0] if a else 255)


def _num(el: ET.Element, name: str, default: float = 0.0) -> float:
    raw = el.get(name)
    if raw is None or raw == "":
        return default
    return parse_length(raw)


def _style_for(el: ET.Element, parent: _Style) -> _Style:
    style = parent
    if el.get("stroke") is not None:
        style = replace(style, stroke=el.get("stroke"))
    if el.get("fill") is not None:
        style = replace(style, fill=el.get("fill"))
    if el.get("stroke-width") is not None:
        style = replace(style, stroke_width=parse_length(el.get("stroke-width")))
    if el.get("font-size") is not None:
        style = replace(style, font_size=parse_length(el.get("font-size")))
    if el.get(HALO_ATTR) is not None:
        style = replace(style, halo=parse_length(el.get(HALO_ATTR)))
    return style


def _parse_points(raw: str) -> List[Point]:
    values = [float(v) for v in raw.replace(",", " ").split()]
    if len(values) % 2:
        raise ValueError(f"odd number of coordinates in points {raw!r}")
    return list(zip(values[0::2], values[1::2]))


def _parse_path(d: str) -> List[Tuple[List[Point], bool]]:
    """Subpaths of a path made of M/L/H/V/Z commands, as (points, closed)."""
    tokens = _PATH_TOKEN.findall(d)
    subpaths: List[Tuple[List[Point], bool]] = []
    current: List[Point] = []
    x = y = 0.0
    cmd = ""
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.isalpha():
            cmd = tok
            i += 1
            if cmd in "Zz":
                if current:
                    subpaths.append((current, True))
                    x, y = current[0]
                current = []
            continue
        if not cmd:
            raise ValueError(f"path data {d!r} does not start with a command")
        if cmd in "MmLl":
            dx, dy = float(tokens[i]), float(tokens[i + 1])
            i += 2
            if cmd.islower():
                dx, dy = x + dx, y + dy
            x, y = dx, dy
            if cmd in "Mm":
                if len(current) > 1:
                    subpaths.append((current, False))
                current = [(x, y)]
                cmd = "l" if cmd == "m" else "L"
            else:
                current.append((x, y))
        elif cmd in "Hh":
            v = float(tokens[i])
            i += 1
            x = x + v if cmd == "h" else v
            current.append((x, y))
        elif cmd in "Vv":
            v = float(tokens[i])
            i += 1
            y = y + v if cmd == "v" else v
            current.append((x, y))
        else:
            raise ValueError(f"unsupported path command {cmd!r}")
    if len(current) > 1:
        subpaths.append((current, False))
    return subpaths


def _arrowhead(tail: Point, tip: Point, length: float) -> Tuple[Point, Point]:
    angle = math.atan2(tip[1] - tail[1], tip[0] - tail[0])
    spread = math.radians(30)
    left = (tip[0] - length * math.cos(angle - spread), tip[1] - length * math.sin(angle - spread))
    right = (tip[0] - length * math.cos(angle + spread), tip[1] - length * math.sin(angle + spread))
    return left, right


# ------------- drawing -------------


class _Painter:
    def __init__(self, image: Image.Image, frame: _Frame, halo_color: str) -> None:
        self.draw = ImageDraw.Draw(image)
        self.frame = frame
        self.halo_color = _color(halo_color)

    def _px(self, user_width: float) -> int:
        return max(1, int(round(user_width * self.frame.scale)))

    def _passes(self, style: _Style) -> Iterator[Tuple[Optional[Color], int]]:
        """(colour, extra pixel width) for the halo pass then the main pass."""
        stroke = _color(style.stroke)
        if stroke is None:
            return
        if style.halo > 0 and self.halo_color is not None:
            yield self.halo_color, 2 * self._px(style.halo)
        yield stroke, 0

    def element(self, el: ET.Element, parent: _Style) -> None:
        tag = local_name(el.tag)
        if el.get("display") == "none" or el.get("visibility") == "hidden":
            return
        style = _style_for(el, parent)
        if tag == "g":
            for child in el:
                self.element(child, style)
        elif tag == "line":
            p1 = (_num(el, "x1"), _num(el, "y1"))
            p2 = (_num(el, "x2"), _num(el, "y2"))
            self._polyline([p1, p2], style)
            if el.get("marker-end"):
                self._polyline_head(p1, p2, style)
            if el.get("marker-start"):
                self._polyline_head(p2, p1, style)
        elif tag in ("polyline", "polygon"):
            pts = _parse_points(el.get("points", ""))
            closed = tag == "polygon"
            self._fill_polygon(pts, style, closed)
            self._polyline(pts + pts[:1] if closed else pts, style)
        elif tag == "path":
            for pts, closed in _parse_path(el.get("d", "")):
                self._fill_polygon(pts, style, closed)
                self._polyline(pts + pts[:1] if closed else pts, style)
        elif tag in ("circle", "ellipse"):
            cx, cy = _num(el, "cx"), _num(el, "cy")
            if tag == "circle":
                rx = ry = _num(el, "r")
            else:
                rx, ry = _num(el, "rx"), _num(el, "ry")
            self._ellipse(cx - rx, cy - ry, cx + rx, cy + ry, style)
        elif tag == "rect":
            x, y = _num(el, "x"), _num(el, "y")
            w, h = _num(el, "width"), _num(el, "height")
            self._rectangle(x, y, x + w, y + h, style)
        elif tag == "text":
            self._text(el, style)

    def _polyline(self, pts: Sequence[Point], style: _Style) -> None:
        if len(pts) < 2:
            return
        mapped = [self.frame.map(p) for p in pts]
        base = self._px(style.stroke_width)
        for color, extra in self._passes(style):
            self.draw.line(mapped, fill=color, width=base + extra, joint="curve")

    def _polyline_head(self, tail: Point, tip: Point, style: _Style) -> None:
        left, right = _arrowhead(tail, tip, arrowhead_length(style.stroke_width))
        self._polyline([left, tip, right], style)

    def _fill_polygon(self, pts: Sequence[Point], style: _Style, closed: bool) -> None:
        fill = _color(style.fill)
        if not closed or fill is None or len(pts) < 3:
            return
        self.draw.polygon([self.frame.map(p) for p in pts], fill=fill)

    def _box(self, x0: float, y0: float, x1: float, y1: float) -> List[float]:
        a = self.frame.map((x0, y0))
        b = self.frame.map((x1, y1))
        return [min(a[0], b[0]), min(a[1], b[1]), max(a[0], b[0]), max(a[1], b[1])]

    def _ellipse(self, x0: float, y0: float, x1: float, y1: float, style: _Style) -> None:
        box = self._box(x0, y0, x1, y1)
        fill = _color(style.fill)
        if fill is not None:
            self.draw.ellipse(box, fill=fill)
        base = self._px(style.stroke_width)
        for color, extra in self._passes(style):
            self.draw.ellipse(box, outline=color, width=base + extra)

    def _rectangle(self, x0: float, y0: float, x1: float, y1: float, style: _Style) -> None:
        box = self._box(x0, y0, x1, y1)
        fill = _color(style.fill)
        if fill is not None:
            self.draw.rectangle(box, fill=fill)
        base = self._px(style.stroke_width)
        for color, extra in self._passes(style):
            self.draw.rectangle(box, outline=color, width=base + extra)

    def _text(self, el: ET.Element, style: _Style) -> None:
        text = "".join(el.itertext())
        if not text:
            return
        fill = _color(style.fill)
        if fill is None:
            return
        x, y = self.frame.map((_num(el, "x"), _num(el, "y")))
        font = load_font(int(round(style.font_size * self.frame.sy)))
        anchor = _ANCHORS.get(el.get("text-anchor", "start"), "l") + _BASELINES.get(
            el.get("dominant-baseline", ""), "s"
        )
        stroke_width = 0
        stroke_fill = None
        if style.halo > 0 and self.halo_color is not None:
            stroke_width = self._px(style.halo)
            stroke_fill = self.halo_color
        elif _color(style.stroke) is not None and style.stroke_width > 0:
            stroke_width = self._px(style.stroke_width)
            stroke_fill = _color(style.stroke)
        self.draw.text(
            (x, y), text, fill=fill, font=font, anchor=anchor,
            stroke_width=stroke_width, stroke_fill=stroke_fill,
        )


def rasterize_overlay(root: ET.Element, *, halo_color: str = "#000000") -> Image.Image:
    """Draw ``root`` onto a transparent RGBA image of the root's width x height.

    Raises:
        OverlayRasterizationFailed: when the overlay data is malformed.
    """
    try:
        width = int(round(parse_length(root.get("width", "0"))))
        height = int(round(parse_length(root.get("height", "0"))))
        if width <= 0 or height <= 0:
            raise ValueError(f"overlay has no drawable size ({width}x{height})")
        vb = parse_view_box(root)
        if vb.width <= 0 or vb.height <= 0:
            raise ValueError(f"degenerate viewBox {vb}")
        frame = _Frame(vb, width / vb.width, height / vb.height)
        image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        painter = _Painter(image, frame, halo_color)
        for el in drawable_children(root):
            painter.element(el, _Style())
    except (ValueError, TypeError, IndexError, ZeroDivisionError, OSError) as exc:
        raise OverlayRasterizationFailed(f"Could not draw annotations: {exc}") from exc
    return image


# ------------- extents -------------


def _element_bounds(el: ET.Element, parent: _Style, out: List[Bounds]) -> None:
    tag = local_name(el.tag)
    if el.get("display") == "none":
        return
    style = _style_for(el, parent)
    half = style.stroke_width / 2.0 + style.halo if _color(style.stroke) is not None else 0.0

    def grow(points: Sequence[Point], margin: float) -> None:
        b = Bounds.of_points(points)
        if b is not None:
            out.append(Bounds(b.min_x - margin, b.min_y - margin, b.max_x + margin, b.max_y + margin))

    if tag == "g":
        for child in el:
            _element_bounds(child, style, out)
    elif tag == "line":
        p1 = (_num(el, "x1"), _num(el, "y1"))
        p2 = (_num(el, "x2"), _num(el, "y2"))
        pts = [p1, p2]
        length = arrowhead_length(style.stroke_width)
        if el.get("marker-end"):
            pts.extend(_arrowhead(p1, p2, length))
        if el.get("marker-start"):
            pts.extend(_arrowhead(p2, p1, length))
        grow(pts, half)
    elif tag in ("polyline", "polygon"):
        grow(_parse_points(el.get("points", "")), half)
    elif tag == "path":
        for pts, _closed in _parse_path(el.get("d", "")):
            grow(pts, half)
    elif tag in ("circle", "ellipse"):
        cx, cy = _num(el, "cx"), _num(el, "cy")
        rx = ry = _num(el, "r") if tag == "circle" else 0.0
        if tag == "ellipse":
            rx, ry = _num(el, "rx"), _num(el, "ry")
        grow([(cx - rx, cy - ry), (cx + rx, cy + ry)], half)
    elif tag == "rect":
        x, y = _num(el, "x"), _num(el, "y")
        grow([(x, y), (x + _num(el, "width"), y + _num(el, "height"))], half)
    elif tag == "text":
        text = "".join(el.itertext())
        if not text:
            return
        w, h = measure_text(text, style.font_size)
        x, y = _num(el, "x"), _num(el, "y")
        anchor = el.get("text-anchor", "start")
        x0 = x - w / 2.0 if anchor == "middle" else (x - w if anchor == "end" else x)
        baseline = el.get("dominant-baseline", "")
        y0 = y - h / 2.0 if baseline in ("central", "middle") else (y if baseline == "hanging" else y - h)
        grow([(x0, y0), (x0 + w, y0 + h)], style.halo)


def overlay_extents(root: ET.Element) -> Optional[Bounds]:
    """Union of the drawn extents of ``root`` in its own user space, or None if empty."""
    boxes: List[Bounds] = []
    for el in drawable_children(root):
        try:
            _element_bounds(el, _Style(), boxes)
        except (ValueError, TypeError, IndexError) as exc:
            logger.debug(f"ignoring malformed <{local_name(el.tag)}> in extents: {exc}")
    if not boxes:
        return None
    result = boxes[0]
    for b in boxes[1:]:
        result = result.union(b)
    return result
