# keyimage/src/keyimage/overlay/normalizer.py
"""Turn a live overlay snapshot into an export-ready overlay.

Steps, all applied to a deep copy so the live view is never touched:

1. suppress callout leader lines around text groups (arrow shafts, which
   carry an arrowhead marker, are always kept);
2. force the export scheme: solid white strokes of a fixed width with a thin
   dark halo, white text fill;
3. boost font sizes by a fixed factor;
4. optionally reproject the frame onto a native-space output window.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Optional

from keyimage.config import KeyImageConfig
from keyimage.geometry.transform import DisplayGeometry, Rect, native_rect_to_display
from keyimage.utils.logging import get_logger

from .svg import (
    MARKER_ATTRS,
    clone_overlay,
    drawable_children,
    fmt,
    local_name,
    new_svg,
    parse_length,
    parse_view_box,
)

logger = get_logger(__name__)

HALO_FILTER_ID = "keyimage-halo"
HALO_ATTR = "data-halo"
STROKED_TAGS = {"line", "path", "polyline", "polygon", "circle", "ellipse", "rect"}
_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")


def has_arrowhead(el: ET.Element) -> bool:
    return any(el.get(attr) for attr in MARKER_ATTRS)


def _is_line(el: ET.Element) -> bool:
    return local_name(el.tag) == "line"


def _is_text_group(el: ET.Element) -> bool:
    if local_name(el.tag) != "g":
        return False
    return any(local_name(d.tag) == "text" for d in el.iter())


def _root_size(root: ET.Element) -> tuple[float, float]:
    """Pixel size of an overlay root; relative lengths fall back to the viewBox, then 0."""
    try:
        return parse_length(root.get("width", "0")), parse_length(root.get("height", "0"))
    except ValueError:
        logger.debug(f"overlay size {root.get('width')!r}x{root.get('height')!r} is not absolute")
    try:
        vb = parse_view_box(root)
    except ValueError:
        logger.debug(f"overlay viewBox {root.get('viewBox')!r} is unusable, using 0x0")
        return 0.0, 0.0
    return vb.width, vb.height


class OverlayNormalizer:
    """Export-ready overlays from live overlay snapshots."""

    def __init__(self, config: KeyImageConfig | None = None) -> None:
        self.config = config or KeyImageConfig()

    def normalize(
        self,
        overlay: ET.Element,
        window: Optional[Rect] = None,
        geometry: Optional[DisplayGeometry] = None,
    ) -> ET.Element:
        """Return a normalized clone of ``overlay``.

        With ``window`` (native space) and ``geometry`` the clone is also
        reprojected so it rasterizes at the window's resolution.
        """
        if not drawable_children(overlay):
            logger.debug("overlay has no drawable children, returning empty overlay")
            vb = overlay.get("viewBox")
            clone = new_svg(*_root_size(overlay))
            if vb:
                clone.set("viewBox", vb)
        else:
            clone = clone_overlay(overlay)
            removed = self.suppress_leader_lines(clone)
            self.apply_export_styles(clone)
            self.boost_font_size(clone)
            logger.debug(f"normalized overlay: {removed} leader line(s) removed")

        if window is not None:
            if geometry is None:
                raise ValueError("reprojecting needs the display geometry")
            self.reproject(clone, window, geometry)
        return clone

    # ------------- leader lines -------------

    def suppress_leader_lines(self, root: ET.Element) -> int:
        """Remove callout leader lines adjacent to text groups, in place.

        Looks at up to ``leader_lines_before`` lines directly before each text
        group and ``leader_lines_after`` line after it. A line carrying an
        arrowhead marker is never removed and ends the scan.
        """
        before = self.config.leader_lines_before
        after = self.config.leader_lines_after
        children = list(root)
        doomed: list[ET.Element] = []
        for index, child in enumerate(children):
            if not _is_text_group(child):
                continue

            taken = 0
            for i in range(index - 1, -1, -1):
                el = children[i]
                if taken >= before or not _is_line(el) or has_arrowhead(el):
                    break
                doomed.append(el)
                taken += 1

            taken = 0
            for i in range(index + 1, len(children)):
                el = children[i]
                if taken >= after:
                    break
                if _is_line(el):
                    if has_arrowhead(el):
                        break
                    doomed.append(el)
                    taken += 1
                elif local_name(el.tag) != "g":
                    break

        seen: set[int] = set()
        for el in doomed:
            if id(el) in seen:
                continue
            seen.add(id(el))
            root.remove(el)
        return len(seen)

    # ------------- styles -------------

    def apply_export_styles(self, root: ET.Element) -> None:
        cfg = self.config
        self._ensure_halo_filter(root)
        for el in self._drawn_elements(root):
            tag = local_name(el.tag)
            if tag in STROKED_TAGS:
                el.set("stroke", cfg.export_color)
                el.set("stroke-width", fmt(cfg.export_stroke_width))
                el.attrib.pop("stroke-dasharray", None)
                el.attrib.pop("stroke-dashoffset", None)
                el.set("filter", f"url(#{HALO_FILTER_ID})")
                el.set(HALO_ATTR, fmt(cfg.halo_width))
                fill = el.get("fill")
                if not fill or fill in ("none", "transparent"):
                    el.set("fill", "none")
            elif tag == "text":
                el.set("fill", cfg.export_color)
                el.set("stroke", "none")
                el.attrib.pop("stroke-width", None)
                el.set("filter", f"url(#{HALO_FILTER_ID})")
                el.set(HALO_ATTR, fmt(cfg.halo_width))

    def _ensure_halo_filter(self, root: ET.Element) -> None:
        defs = next((el for el in root if local_name(el.tag) == "defs"), None)
        if defs is None:
            defs = ET.Element("defs")
            root.insert(0, defs)
        if any(el.get("id") == HALO_FILTER_ID for el in defs):
            return
        flt = ET.SubElement(defs, "filter", {"id": HALO_FILTER_ID})
        for _ in range(2):
            ET.SubElement(
                flt,
                "feDropShadow",
                {"dx": "0", "dy": "0", "stdDeviation": fmt(self.config.halo_width / 2.0),
                 "flood-color": self.config.halo_color},
            )

    @staticmethod
    def _drawn_elements(root: ET.Element):
        """Every element below ``root`` except the contents of ``<defs>``."""
        for child in drawable_children(root):
            yield from child.iter()

    def boost_font_size(self, root: ET.Element) -> None:
        scale = self.config.export_font_scale
        for el in root.iter():
            if local_name(el.tag) != "text":
                continue
            current = el.get("font-size")
            match = _NUMBER.search(current) if current else None
            if match:
                el.set("font-size", str(round(float(match.group(1)) * scale)))
            else:
                el.set("font-size", f"{fmt(scale)}em")

    # ------------- frame -------------

    @staticmethod
    def reproject(root: ET.Element, window: Rect, geometry: DisplayGeometry) -> None:
        """Make ``root`` rasterize onto ``window`` (native space), in place.

        The output size becomes the window's pixel size and the viewBox becomes
        the window expressed in overlay (display) space, so every shape lands on
        the same image content it covers on screen.
        """
        vb = native_rect_to_display(window, geometry)
        root.set("width", fmt(window.width))
        root.set("height", fmt(window.height))
        root.set("viewBox", f"{fmt(vb.x)} {fmt(vb.y)} {fmt(vb.width)} {fmt(vb.height)}")
        root.set("preserveAspectRatio", "none")
