# keyimage/src/keyimage/export/exporter.py
"""Export session: snapshot engine state, composite, encode, attach metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

from keyimage.config import KeyImageConfig
from keyimage.crop_editor.crop_editor import CropEditor, validate_crop
from keyimage.engine import RenderingEngine
from keyimage.errors import ExportInProgress, InvalidCropGeometry
from keyimage.geometry.transform import DisplayGeometry, Rect
from keyimage.utils.logging import get_logger

from .compositor import Compositor

logger = get_logger(__name__)


@dataclass(frozen=True)
class KeyImageMetadata:
    study_id: Optional[str]
    series_id: Optional[str]
    image_id: Optional[str]
    width: int
    height: int

    def to_dict(self) -> dict[str, Any]:
        """Wire form ``{studyId, seriesId, imageId, width, height}``."""
        return {
            "studyId": self.study_id,
            "seriesId": self.series_id,
            "imageId": self.image_id,
            "width": self.width,
            "height": self.height,
        }


@dataclass
class ExportResult:
    payload: bytes
    metadata: KeyImageMetadata
    window: Rect
    overlay_rendered: bool = True
    warnings: List[str] = field(default_factory=list)


class KeyImageExporter:
    """Produces key-image payloads from a rendering engine and an optional crop editor.

    One export at a time: calling ``start_export`` while another export is
    awaiting raises :class:`ExportInProgress`.
    """

    def __init__(
        self,
        engine: RenderingEngine,
        crop_editor: CropEditor | None = None,
        config: KeyImageConfig | None = None,
        compositor: Compositor | None = None,
    ) -> None:
        self.engine = engine
        self.crop_editor = crop_editor
        self.config = config or KeyImageConfig()
        self.compositor = compositor or Compositor(self.config)
        self._in_flight = False

        if crop_editor is not None:
            engine.on_resize(self._on_engine_resize)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def start_export(self) -> ExportResult:
        """Export the current view.

        Raises:
            ExportInProgress: another export has not finished yet.
            SurfaceUnavailable: no bitmap surface or overlay to export.
        """
        if self._in_flight:
            raise ExportInProgress("A key image is already being saved.")
        self._in_flight = True
        try:
            # Snapshot everything before the first await.
            geometry = self.engine.get_display_geometry()
            surface = self.engine.get_bitmap_surface()
            overlay = self.engine.get_vector_overlay()
            crop = self._current_crop(geometry)
            ref = self.engine.get_image_ref()

            composite = await self.compositor.compose(surface, overlay, geometry, crop)
            payload = await self.compositor.encode(composite.image)
        finally:
            self._in_flight = False

        metadata = KeyImageMetadata(
            study_id=ref.study_id,
            series_id=ref.series_id,
            image_id=ref.image_id,
            width=composite.image.width,
            height=composite.image.height,
        )
        logger.info(
            f"key image exported: {metadata.width}x{metadata.height}, {len(payload)} bytes, "
            f"image={metadata.image_id}, annotations={'yes' if composite.overlay_rendered else 'no'}"
        )
        return ExportResult(
            payload=payload,
            metadata=metadata,
            window=composite.window,
            overlay_rendered=composite.overlay_rendered,
            warnings=composite.warnings,
        )

    # ------------- internals -------------

    def _current_crop(self, geometry: DisplayGeometry) -> Optional[Rect]:
        """The editor's crop checked against ``geometry``: clamped, or None if it no longer fits."""
        if self.crop_editor is None or self.crop_editor.crop is None:
            return None
        crop = self.crop_editor.crop
        try:
            checked = validate_crop(
                crop, geometry.display_width, geometry.display_height, self.config.min_crop_size
            )
        except InvalidCropGeometry as exc:
            logger.warning(f"exporting without crop: {exc}")
            return None
        if checked != crop:
            logger.debug(f"crop clamped to the surface: {crop} -> {checked}")
        return checked

    def _on_engine_resize(self, geometry: DisplayGeometry) -> None:
        self.crop_editor.set_display_size(geometry.display_width, geometry.display_height)
