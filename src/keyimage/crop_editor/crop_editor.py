# keyimage/src/keyimage/crop_editor/crop_editor.py
"""Interactive crop-rectangle editor.

A small state machine over pointer events in display space:

    IDLE --down outside / no rect--> CREATING --up--> IDLE
    IDLE --down on handle----------> RESIZING --up--> IDLE
    IDLE --down inside rect--------> MOVING   --up--> IDLE

The editor is purely geometric: it only produces the crop rectangle (display
space) that the compositor later scales to native space.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from keyimage.errors import InvalidCropGeometry
from keyimage.geometry.transform import Point, Rect
from keyimage.utils.logging import get_logger

logger = get_logger(__name__)


class EditorState(str, Enum):
    IDLE = "idle"
    CREATING = "creating"
    MOVING = "moving"
    RESIZING = "resizing"


class Handle(str, Enum):
    NW = "nw"
    NE = "ne"
    SE = "se"
    SW = "sw"
    N = "n"
    E = "e"
    S = "s"
    W = "w"


# Corners first: hit-testing walks this order.
HANDLE_ORDER: Tuple[Handle, ...] = (
    Handle.NW, Handle.NE, Handle.SE, Handle.SW,
    Handle.N, Handle.E, Handle.S, Handle.W,
)

HANDLE_EDGES: Dict[Handle, frozenset] = {
    Handle.NW: frozenset({"left", "top"}),
    Handle.NE: frozenset({"right", "top"}),
    Handle.SE: frozenset({"right", "bottom"}),
    Handle.SW: frozenset({"left", "bottom"}),
    Handle.N: frozenset({"top"}),
    Handle.E: frozenset({"right"}),
    Handle.S: frozenset({"bottom"}),
    Handle.W: frozenset({"left"}),
}

HANDLE_CURSORS: Dict[Handle, str] = {
    Handle.NW: "nwse-resize",
    Handle.SE: "nwse-resize",
    Handle.NE: "nesw-resize",
    Handle.SW: "nesw-resize",
    Handle.N: "ns-resize",
    Handle.S: "ns-resize",
    Handle.E: "ew-resize",
    Handle.W: "ew-resize",
}

CURSOR_MOVE = "move"
CURSOR_CREATE = "crosshair"


@dataclass(frozen=True)
class DragState:
    """Transient drag bookkeeping, alive only between pointer-down and pointer-up."""

    mode: EditorState
    start: Point
    original_crop: Optional[Rect] = None
    handle: Optional[Handle] = None


def handle_positions(rect: Rect) -> Dict[Handle, Point]:
    cx = rect.x + rect.width / 2.0
    cy = rect.y + rect.height / 2.0
    return {
        Handle.NW: (rect.x, rect.y),
        Handle.NE: (rect.right, rect.y),
        Handle.SE: (rect.right, rect.bottom),
        Handle.SW: (rect.x, rect.bottom),
        Handle.N: (cx, rect.y),
        Handle.E: (rect.right, cy),
        Handle.S: (cx, rect.bottom),
        Handle.W: (rect.x, cy),
    }


def validate_crop(rect: Rect, display_width: float, display_height: float, min_size: float) -> Rect:
    """Clamp ``rect`` into the surface.

    Raises:
        InvalidCropGeometry: if it cannot keep ``min_size`` in both dimensions.
    """
    width = min(rect.width, display_width)
    height = min(rect.height, display_height)
    if width < min_size or height < min_size:
        raise InvalidCropGeometry(
            f"Crop {rect.width:.1f}x{rect.height:.1f} is smaller than {min_size:.0f} px "
            f"on a {display_width:.0f}x{display_height:.0f} surface"
        )
    x = max(0.0, min(rect.x, display_width - width))
    y = max(0.0, min(rect.y, display_height - height))
    return Rect(x, y, width, height)


class CropEditor:
    """Crop-rectangle editor driven by display-space pointer events.

    Events (via callback registration):
        on_crop_changed(handler): Handler called as handler(rect or None)
    """

    def __init__(
        self,
        display_width: float,
        display_height: float,
        *,
        min_size: float = 10.0,
        handle_tolerance: float = 8.0,
    ) -> None:
        self._display_w = float(display_width)
        self._display_h = float(display_height)
        self.min_size = float(min_size)
        self.handle_tolerance = float(handle_tolerance)

        self._crop: Optional[Rect] = None
        self._rubber_band: Optional[Rect] = None
        self._drag: Optional[DragState] = None

        self._crop_changed_handlers: List[Callable[[Optional[Rect]], None]] = []

    # ------------- properties -------------

    @property
    def crop(self) -> Optional[Rect]:
        return self._crop

    @property
    def rubber_band(self) -> Optional[Rect]:
        """Rectangle being created, even while still below the minimum size."""
        return self._rubber_band

    @property
    def drag(self) -> Optional[DragState]:
        return self._drag

    @property
    def state(self) -> EditorState:
        return self._drag.mode if self._drag is not None else EditorState.IDLE

    @property
    def display_size(self) -> Tuple[float, float]:
        return self._display_w, self._display_h

    # ------------- public API -------------

    def on_crop_changed(self, handler: Callable[[Optional[Rect]], None]) -> None:
        """Register callback for crop changes.

        Handler is called with: the new crop rectangle, or None when cleared.
        """
        self._crop_changed_handlers.append(handler)

    def set_crop(self, rect: Optional[Rect]) -> Optional[Rect]:
        """Set the crop programmatically; invalid rectangles are clamped or dropped."""
        if rect is None:
            self._set_crop(None)
            return None
        try:
            clean = validate_crop(rect, self._display_w, self._display_h, self.min_size)
        except InvalidCropGeometry as exc:
            logger.warning(f"rejected crop: {exc}")
            clean = None
        self._set_crop(clean)
        return clean

    def clear(self) -> None:
        self._drag = None
        self._rubber_band = None
        self._set_crop(None)

    def set_display_size(self, display_width: float, display_height: float) -> None:
        """Follow a surface resize; the current crop is re-validated against it."""
        self._display_w = float(display_width)
        self._display_h = float(display_height)
        self._drag = None
        self._rubber_band = None
        if self._crop is not None:
            self.set_crop(self._crop)

    def hit_test(self, x: float, y: float) -> Tuple[str, Optional[Handle]]:
        """Classify a display point.

        Returns:
            ("handle", handle), ("body", None) or ("outside", None).
        """
        rect = self._crop
        if rect is None:
            return "outside", None
        tol = self.handle_tolerance
        positions = handle_positions(rect)
        for handle in HANDLE_ORDER:
            hx, hy = positions[handle]
            if abs(x - hx) <= tol and abs(y - hy) <= tol:
                return "handle", handle
        if rect.x <= x <= rect.right and rect.y <= y <= rect.bottom:
            return "body", None
        return "outside", None

    def cursor_at(self, x: float, y: float) -> str:
        """CSS cursor for the pointer at (x, y), also when nothing is dragged."""
        if self._drag is not None:
            if self._drag.mode is EditorState.MOVING:
                return CURSOR_MOVE
            if self._drag.mode is EditorState.RESIZING and self._drag.handle is not None:
                return HANDLE_CURSORS[self._drag.handle]
            return CURSOR_CREATE
        kind, handle = self.hit_test(x, y)
        if kind == "handle" and handle is not None:
            return HANDLE_CURSORS[handle]
        if kind == "body":
            return CURSOR_MOVE
        return CURSOR_CREATE

    # ------------- pointer events -------------

    def pointer_down(self, x: float, y: float) -> EditorState:
        x, y = self._clamp_point(x, y)
        kind, handle = self.hit_test(x, y)

        if kind == "handle":
            self._drag = DragState(EditorState.RESIZING, (x, y), self._crop, handle)
        elif kind == "body":
            self._drag = DragState(EditorState.MOVING, (x, y), self._crop)
        else:
            # A press outside discards the old rectangle entirely.
            self._drag = DragState(EditorState.CREATING, (x, y))
            self._rubber_band = Rect(x, y, 0.0, 0.0)
            if self._crop is not None:
                self._set_crop(None)

        logger.debug(f"pointer_down at ({x:.1f}, {y:.1f}) -> {self.state.value}")
        return self.state

    def pointer_move(self, x: float, y: float) -> str:
        """Update the drag, if any; returns the cursor to show."""
        x, y = self._clamp_point(x, y)
        drag = self._drag
        if drag is None:
            return self.cursor_at(x, y)

        if drag.mode is EditorState.CREATING:
            self._update_creating(drag, x, y)
        elif drag.mode is EditorState.MOVING:
            self._update_moving(drag, x, y)
        elif drag.mode is EditorState.RESIZING:
            self._update_resizing(drag, x, y)
        return self.cursor_at(x, y)

    def pointer_up(self, x: float | None = None, y: float | None = None) -> Optional[Rect]:
        if self._drag is None:
            return self._crop
        if x is not None and y is not None:
            self.pointer_move(x, y)
        mode = self._drag.mode
        self._drag = None
        self._rubber_band = None
        if self._crop is not None:
            c = self._crop
            logger.info(
                f"crop {mode.value} finished: x={c.x:.1f}, y={c.y:.1f}, w={c.width:.1f}, h={c.height:.1f}"
            )
        else:
            logger.debug(f"{mode.value} finished without a crop rectangle")
        return self._crop

    def pointer_leave(self) -> Optional[Rect]:
        """Pointer left the surface: finish any drag where it stands."""
        return self.pointer_up()

    # ------------- internals -------------

    def _update_creating(self, drag: DragState, x: float, y: float) -> None:
        sx, sy = drag.start
        rect = Rect(min(sx, x), min(sy, y), abs(x - sx), abs(y - sy))
        self._rubber_band = rect
        if rect.width >= self.min_size and rect.height >= self.min_size:
            self._set_crop(rect)
        elif self._crop is not None:
            self._set_crop(None)

    def _update_moving(self, drag: DragState, x: float, y: float) -> None:
        orig = drag.original_crop
        if orig is None:
            return
        dx = x - drag.start[0]
        dy = y - drag.start[1]
        nx = max(0.0, min(orig.x + dx, self._display_w - orig.width))
        ny = max(0.0, min(orig.y + dy, self._display_h - orig.height))
        self._set_crop(Rect(nx, ny, orig.width, orig.height))

    def _update_resizing(self, drag: DragState, x: float, y: float) -> None:
        orig = drag.original_crop
        current = self._crop
        if orig is None or current is None or drag.handle is None:
            return
        edges = HANDLE_EDGES[drag.handle]
        dx = x - drag.start[0]
        dy = y - drag.start[1]

        left, right = current.x, current.right
        top, bottom = current.y, current.bottom

        if "left" in edges:
            new_left = max(0.0, orig.x + dx)
            if orig.right - new_left > self.min_size:
                left, right = new_left, orig.right
        elif "right" in edges:
            new_right = min(self._display_w, orig.right + dx)
            if new_right - orig.x > self.min_size:
                left, right = orig.x, new_right

        if "top" in edges:
            new_top = max(0.0, orig.y + dy)
            if orig.bottom - new_top > self.min_size:
                top, bottom = new_top, orig.bottom
        elif "bottom" in edges:
            new_bottom = min(self._display_h, orig.bottom + dy)
            if new_bottom - orig.y > self.min_size:
                top, bottom = orig.y, new_bottom

        self._set_crop(Rect(left, top, right - left, bottom - top))

    def _clamp_point(self, x: float, y: float) -> Point:
        return max(0.0, min(self._display_w, float(x))), max(0.0, min(self._display_h, float(y)))

    def _set_crop(self, rect: Optional[Rect]) -> None:
        if rect == self._crop:
            return
        self._crop = rect
        for handler in list(self._crop_changed_handlers):
            try:
                handler(rect)
            except Exception:
                logger.exception("Error in crop_changed handler")
