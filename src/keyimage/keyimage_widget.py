# keyimage/src/keyimage/keyimage_widget.py
"""NiceGUI key-image editor: annotate, crop and save the current view."""

from __future__ import annotations

from typing import Callable, List, Optional

from nicegui import events, ui

from keyimage.annotations.model import Annotation, AnnotationKind
from keyimage.annotations.renderers import text_at
from keyimage.config import KeyImageConfig
from keyimage.crop_editor.crop_editor import CropEditor, EditorState, handle_positions
from keyimage.engine import ArrayRenderingEngine
from keyimage.errors import KeyImageError
from keyimage.export.exporter import ExportResult, KeyImageExporter
from keyimage.geometry.transform import DisplayGeometry, Point, display_to_world, native_to_display
from keyimage.overlay.svg import fmt, overlay_to_string
from keyimage.upload import KeyImageUploader
from keyimage.utils.logging import get_logger

logger = get_logger(__name__)

TOOLS = ("zoom", "pan", "wl", "arrow", "text", "crop")
NAVIGATION_TOOLS = ("zoom", "pan", "wl")
TOOL_LABELS = {"zoom": "Zoom", "pan": "Pan", "wl": "W/L", "arrow": "Arrow", "text": "Text", "crop": "Crop"}
TOOL_CURSORS = {"zoom": "zoom-in", "pan": "grab", "wl": "ns-resize"}
MIN_ARROW_LENGTH_PX = 2.0           # shorter drags are treated as a stray click
ZOOM_DRAG_PX = 100.0                # vertical drag that doubles / halves the zoom


class KeyImageEditorWidget:
    """Key-image editor hosting an engine view, annotation tools and the crop editor.

    - The bitmap is shown at native resolution; annotations and the crop
      rectangle are drawn as SVG content over it.
    - Mouse positions arrive in native pixels and are converted to display
      space before reaching the tools.
    - Zoom, Pan and W/L drags change the engine camera and refresh the view.
    - The Text tool drags from the callout tip to the label; clicking an
      existing label opens it for editing.
    - "Save KeyImage" exports the view and hands it to ``uploader`` (if any).

    Events (via callback registration):
        on_exported(handler): Handler called as handler(export_result)
    """

    def __init__(
        self,
        engine: ArrayRenderingEngine,
        *,
        uploader: KeyImageUploader | None = None,
        parent=None,
        config: KeyImageConfig | None = None,
    ) -> None:
        self.engine = engine
        self.store = engine.store
        self.uploader = uploader

        if config is None:
            self.config = KeyImageConfig()
        else:
            self.config = config

        geometry = engine.get_display_geometry()
        self.crop_editor = CropEditor(
            geometry.display_width,
            geometry.display_height,
            min_size=self.config.min_crop_size,
            handle_tolerance=self.config.handle_tolerance_px,
        )
        self.exporter = KeyImageExporter(engine, self.crop_editor, self.config)

        self._tool: Optional[str] = None
        self._cursor: str = "default"
        self._drawing: Optional[Annotation] = None      # arrow being dragged
        self._text_tip: Optional[Point] = None           # display point where a text drag began
        self._pending_text_points: Optional[List[Point]] = None
        self._editing_text: Optional[str] = None          # uid of the text being edited
        self._nav: Optional[dict] = None                  # camera snapshot at drag start
        self.last_result: Optional[ExportResult] = None

        self._exported_handlers: List[Callable[[ExportResult], None]] = []

        container = parent if parent is not None else ui.element("div").classes("w-full")

        with container:
            with ui.row().classes("items-center gap-2"):
                self.tool_buttons = {
                    name: ui.button(TOOL_LABELS[name], on_click=lambda name=name: self.set_tool(name))
                    for name in TOOLS
                }
                ui.button("Reset view", on_click=self.reset_view)
                ui.button("Clear crop", on_click=self.clear_crop)
                self.save_button = ui.button("Save KeyImage", on_click=self.save)

            self.interactive = (
                ui.interactive_image(
                    engine.get_bitmap_surface(),
                    events=["mousedown", "mousemove", "mouseup", "mouseout"],
                )
                .classes("w-full")
                .style(self._image_style())
            )
            self.interactive.on_mouse(self._on_mouse)

            with ui.dialog() as self.text_dialog, ui.card():
                ui.label("Annotation text")
                self.text_input = ui.input(placeholder="Enter text")
                with ui.row():
                    ui.button("OK", on_click=self._confirm_text)
                    ui.button("Cancel", on_click=self._cancel_text)

        self.crop_editor.on_crop_changed(lambda _rect: self._redraw_overlays())
        engine.on_resize(self._on_engine_resize)

        self._redraw_overlays()

        logger.info(
            f"KeyImageEditorWidget initialized: native={geometry.native_width}x{geometry.native_height}, "
            f"display={geometry.display_width:g}x{geometry.display_height:g}, "
            f"uploader={'yes' if uploader else 'no'}"
        )

    # ------------- public API -------------

    @property
    def tool(self) -> Optional[str]:
        return self._tool

    def set_tool(self, tool: Optional[str]) -> None:
        """Activate one of ``TOOLS``; None (or the active tool again) deactivates."""
        if tool is not None and tool not in TOOLS:
            raise ValueError(f"unknown tool {tool!r}")
        self._tool = None if tool == self._tool else tool
        self._drawing = None
        self._nav = None
        self._text_tip = None
        for name, button in self.tool_buttons.items():
            button.props(f"color={'primary' if name == self._tool else 'grey'}")
        if self._tool is None:
            self._set_cursor("default")
        else:
            self._set_cursor(TOOL_CURSORS.get(self._tool, "crosshair"))
        logger.debug(f"active tool: {self._tool}")

    def reset_view(self) -> None:
        """Back to fit-to-surface with the full intensity range."""
        self.engine.camera.reset()
        self.engine.set_window_level(None, None)
        self.refresh()

    def clear_crop(self) -> None:
        self.crop_editor.clear()

    def add_text(
        self,
        point_display: Point,
        text: str,
        target_display: Point | None = None,
    ) -> Optional[Annotation]:
        """Add a text label centred at a display point.

        With ``target_display`` the label becomes a callout whose leader line
        ends at that point.
        """
        if not text:
            return None
        points = [self._display_to_world(point_display)]
        if target_display is not None:
            points.append(self._display_to_world(target_display))
        ann = Annotation(
            AnnotationKind.TEXT,
            points,
            image_id=self.engine.get_image_ref().image_id,
            text=text,
            style=self.config.annotation_style,
        )
        self.store.add(ann)
        logger.info(f"text {ann.uid} added ({'callout' if target_display else 'label'})")
        self._redraw_overlays()
        return ann

    def edit_text(self, uid: str, text: str) -> None:
        """Replace the text of an existing label; empty text removes it."""
        if not text:
            self.store.remove(uid)
            logger.info(f"text {uid} removed")
        else:
            self.store.set_text(uid, text)
        self._redraw_overlays()

    def on_exported(self, handler: Callable[[ExportResult], None]) -> None:
        """Register callback for finished exports.

        Handler is called with: the ExportResult
        """
        self._exported_handlers.append(handler)

    async def save(self) -> Optional[ExportResult]:
        """Export the current view and upload it; failures become notifications."""
        try:
            result = await self.exporter.start_export()
        except KeyImageError as exc:
            logger.error(f"export failed: {exc}")
            ui.notify(str(exc), type="negative")
            return None
        except Exception as exc:
            logger.exception("Error while exporting key image")
            ui.notify(f"Saving the key image failed: {exc}", type="negative")
            return None

        self.last_result = result
        for warning in result.warnings:
            ui.notify(warning, type="warning")
        for handler in list(self._exported_handlers):
            try:
                handler(result)
            except Exception:
                logger.exception("Error in exported handler")

        if self.uploader is not None and not await self._upload(result):
            return result

        ui.notify("KeyImage saved successfully!", type="positive")
        return result

    async def retry_upload(self) -> bool:
        """Upload the last exported image again, without re-exporting."""
        if self.uploader is None or self.last_result is None:
            ui.notify("There is no key image to upload again.", type="warning")
            return False
        if not await self._upload(self.last_result):
            return False
        ui.notify("KeyImage saved successfully!", type="positive")
        return True

    def refresh(self) -> None:
        """Redraw bitmap and overlays, e.g. after a camera change."""
        self.interactive.set_source(self.engine.get_bitmap_surface())
        self.interactive.style(self._image_style())
        self._redraw_overlays()

    # ------------- internals: upload -------------

    async def _upload(self, result: ExportResult) -> bool:
        try:
            await self.uploader.upload(result)
        except KeyImageError as exc:
            ui.notify(str(exc), type="negative")
            return False
        except Exception as exc:
            logger.exception("Error while uploading key image")
            ui.notify(f"Upload failed: {exc}", type="negative")
            return False
        return True

    # ------------- internals: rendering -------------

    def _image_style(self) -> str:
        g = self.engine.get_display_geometry()
        return (
            f"aspect-ratio: {g.native_width} / {g.native_height}; "
            f"object-fit: contain; cursor: {self._cursor};"
        )

    def _redraw_overlays(self) -> None:
        """Overlay and crop rectangle as SVG content in native image pixels."""
        g = self.engine.get_display_geometry()
        overlay = self.engine.get_vector_overlay()

        parts: list[str] = [f'<g transform="scale({fmt(g.scale_x)} {fmt(g.scale_y)})">']
        for el in overlay:
            parts.append(overlay_to_string(el))
        parts.append(self._crop_svg())
        parts.append("</g>")

        self.interactive.content = "".join(parts)
        self.interactive.update()

    def _crop_svg(self) -> str:
        cfg = self.config
        rect = self.crop_editor.crop
        band = self.crop_editor.rubber_band
        if rect is None:
            if band is None or band.width <= 0 or band.height <= 0:
                return ""
            return (
                f'<rect x="{fmt(band.x)}" y="{fmt(band.y)}" width="{fmt(band.width)}" '
                f'height="{fmt(band.height)}" stroke="{cfg.crop_stroke_color}" stroke-width="1" '
                f'stroke-dasharray="4 2" fill="none" />'
            )

        parts = [
            f'<rect x="{fmt(rect.x)}" y="{fmt(rect.y)}" width="{fmt(rect.width)}" '
            f'height="{fmt(rect.height)}" stroke="{cfg.crop_stroke_color}" stroke-width="2" '
            f'fill="{cfg.crop_stroke_color}" fill-opacity="{cfg.crop_fill_opacity}" />'
        ]
        half = cfg.handle_size_px / 2.0
        for hx, hy in handle_positions(rect).values():
            parts.append(
                f'<rect x="{fmt(hx - half)}" y="{fmt(hy - half)}" width="{fmt(cfg.handle_size_px)}" '
                f'height="{fmt(cfg.handle_size_px)}" fill="{cfg.crop_stroke_color}" stroke="black" '
                f'stroke-width="1" />'
            )
        return "".join(parts)

    def _set_cursor(self, cursor: str) -> None:
        if cursor == self._cursor:
            return
        self._cursor = cursor
        self.interactive.style(self._image_style())

    # ------------- internals: events -------------

    def _on_mouse(self, e: events.MouseEventArguments) -> None:
        """Route NiceGUI mouse events to the active tool."""
        g = self.engine.get_display_geometry()
        vx, vy = native_to_display((float(e.image_x), float(e.image_y)), g)
        vx = max(0.0, min(g.display_width, vx))
        vy = max(0.0, min(g.display_height, vy))

        if self._tool == "crop":
            self._on_crop_mouse(e, vx, vy)
        elif self._tool == "arrow":
            self._on_arrow_mouse(e, vx, vy)
        elif self._tool == "text":
            self._on_text_mouse(e, vx, vy)
        elif self._tool in NAVIGATION_TOOLS:
            self._on_navigate_mouse(e, vx, vy)

    def _on_navigate_mouse(self, e: events.MouseEventArguments, vx: float, vy: float) -> None:
        """Zoom / pan / window-level drags, applied relative to the camera at drag start."""
        if e.type == "mousedown" and e.button == 0:
            cam = self.engine.camera
            self._nav = {
                "start": (vx, vy),
                "zoom": cam.zoom,
                "pan": (cam.pan_x, cam.pan_y),
                "wl": self.engine.get_window_level(),
            }
            return

        nav = self._nav
        if nav is None:
            return
        if e.type in ("mouseup", "mouseout"):
            self._nav = None
            return
        if e.type != "mousemove" or not (e.buttons & 1):
            return

        g = self.engine.get_display_geometry()
        cam = self.engine.camera
        dx = vx - nav["start"][0]
        dy = vy - nav["start"][1]

        if self._tool == "zoom":
            # drag up zooms in
            cam.zoom = nav["zoom"]
            cam.zoom_by(2.0 ** (-dy / ZOOM_DRAG_PX))
        elif self._tool == "pan":
            px0, py0 = nav["pan"]
            cam.pan_x = px0 + dx * g.scale_x
            cam.pan_y = py0 + dy * g.scale_y
        else:
            center0, width0 = nav["wl"]
            lo, hi = self.engine.data_range()
            span = max(hi - lo, 1e-6)
            self.engine.set_window_level(
                center0 + dy * span / g.display_height,
                max(width0 + dx * span / g.display_width, 1e-6),
            )
        self.refresh()

    def _on_text_mouse(self, e: events.MouseEventArguments, vx: float, vy: float) -> None:
        """Click an existing label to edit it; otherwise drag from the callout tip to the label."""
        if e.type == "mousedown" and e.button == 0:
            hit = text_at(
                self.store.for_image(self.engine.get_image_ref().image_id),
                self.engine.render_frame(),
                (vx, vy),
            )
            if hit is not None:
                self._editing_text = hit.uid
                self._pending_text_points = None
                self.text_input.value = hit.text
                self.text_dialog.open()
                return
            self._text_tip = (vx, vy)
            return

        tip = self._text_tip
        if tip is None or e.type not in ("mouseup", "mouseout"):
            return
        self._text_tip = None
        label = (vx, vy)
        if ((label[0] - tip[0]) ** 2 + (label[1] - tip[1]) ** 2) ** 0.5 < MIN_ARROW_LENGTH_PX:
            self._pending_text_points = [tip]
        else:
            self._pending_text_points = [label, tip]
        self._editing_text = None
        self.text_input.value = ""
        self.text_dialog.open()

    def _on_crop_mouse(self, e: events.MouseEventArguments, vx: float, vy: float) -> None:
        editor = self.crop_editor
        if e.type == "mousedown" and e.button == 0:
            editor.pointer_down(vx, vy)
            self._set_cursor(editor.cursor_at(vx, vy))
        elif e.type == "mousemove":
            was_creating = editor.state is EditorState.CREATING
            self._set_cursor(editor.pointer_move(vx, vy))
            if was_creating and editor.crop is None:
                # Rubber band still below the minimum size.
                self._redraw_overlays()
        elif e.type == "mouseup" and e.button == 0:
            editor.pointer_up(vx, vy)
            self._redraw_overlays()
        elif e.type == "mouseout":
            editor.pointer_leave()
            self._redraw_overlays()

    def _on_arrow_mouse(self, e: events.MouseEventArguments, vx: float, vy: float) -> None:
        if e.type == "mousedown" and e.button == 0:
            tip = self._display_to_world((vx, vy))
            self._drawing = Annotation(
                AnnotationKind.ARROW,
                [tip],
                image_id=self.engine.get_image_ref().image_id,
                style=self.config.annotation_style,
                is_preview=True,
            )
            self.store.add(self._drawing)
            self._redraw_overlays()
            return

        ann = self._drawing
        if ann is None:
            return

        if e.type == "mousemove" and (e.buttons & 1):
            ann.points = [ann.points[0], self._display_to_world((vx, vy))]
            ann.is_preview = False
            self._redraw_overlays()
        elif e.type in ("mouseup", "mouseout"):
            self._drawing = None
            if len(ann.points) < 2 or self._display_length(ann) < MIN_ARROW_LENGTH_PX:
                self.store.remove(ann.uid)
                logger.debug(f"discarded arrow {ann.uid}: too short")
            else:
                ann.is_preview = False
                logger.info(f"arrow {ann.uid} added")
            self._redraw_overlays()

    def _confirm_text(self) -> None:
        points = self._pending_text_points
        uid = self._editing_text
        self._pending_text_points = None
        self._editing_text = None
        self.text_dialog.close()
        text = (self.text_input.value or "").strip()
        if uid is not None:
            if self.store.get(uid) is not None:
                self.edit_text(uid, text)
        elif points:
            self.add_text(points[0], text, points[1] if len(points) > 1 else None)

    def _cancel_text(self) -> None:
        self._pending_text_points = None
        self._editing_text = None
        self.text_dialog.close()

    def _on_engine_resize(self, geometry: DisplayGeometry) -> None:
        # The exporter has already moved the crop editor onto the new geometry.
        self.refresh()

    # ------------- internals: coordinates -------------

    def _display_to_world(self, point: Point) -> Point:
        return display_to_world(point, self.engine.get_display_geometry(), self.engine.surface_to_world)

    def _display_length(self, ann: Annotation) -> float:
        frame = self.engine.render_frame()
        (x1, y1), (x2, y2) = (frame.world_to_display(p) for p in ann.points[:2])
        return ((x2 - x1) ** 2 + (y2 - y1) ** 2) ** 0.5

