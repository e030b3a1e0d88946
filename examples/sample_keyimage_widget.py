from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Dict

import numpy as np
from nicegui import ui

from keyimage.annotations.model import Annotation, AnnotationKind, ImageRef
from keyimage.engine import ArrayRenderingEngine
from keyimage.keyimage_widget import KeyImageEditorWidget
from keyimage.upload import FileField, KeyImageUploader, UploadResponse
from keyimage.utils.logging import configure_logging


def create_demo_image(height: int = 256, width: int = 256) -> np.ndarray:
    """Simple demo image: a bright disc on a gradient + noise."""
    yy, xx = np.mgrid[0:height, 0:width]
    img = xx / float(width)
    disc = (xx - width * 0.6) ** 2 + (yy - height * 0.45) ** 2 < (min(width, height) * 0.18) ** 2
    img = img + 0.8 * disc
    img += 0.05 * np.random.randn(height, width)
    return img


def save_to_folder(folder: Path):
    """Demo transport: store the PNG locally instead of POSTing it."""

    async def transport(url: str, fields: Dict[str, str], files: Dict[str, FileField]) -> UploadResponse:
        filename, payload, _ctype = files["image"]
        dst = folder / filename
        dst.write_bytes(payload)
        return UploadResponse(200, "OK", json.dumps({"path": str(dst), "fields": fields}))

    return transport


if __name__ in {"__main__", "__mp_main__"}:
    configure_logging(level="DEBUG")

    img = create_demo_image()
    ref = ImageRef(study_id="1.2.3", series_id="1.2.3.4", image_id="1.2.3.4.5")
    engine = ArrayRenderingEngine(img, image_ref=ref, display_width=512, display_height=512, pixel_ratio=2.0)
    engine.store.add(
        Annotation(AnnotationKind.ARROW, [(150, 115), (220, 40)], image_id=ref.image_id)
    )
    engine.store.add(
        Annotation(AnnotationKind.TEXT, [(60, 200), (150, 115)], image_id=ref.image_id, text="lesion")
    )

    out_dir = Path(tempfile.mkdtemp(prefix="keyimage_demo_"))
    uploader = KeyImageUploader(save_to_folder(out_dir))

    with ui.column().classes("items-start gap-2 w-2/3"):
        ui.label("KeyImageEditorWidget demo").classes("text-lg font-bold")
        widget = KeyImageEditorWidget(engine, uploader=uploader)

        def on_exported(result) -> None:
            ui.notify(f"window={result.window.to_dict()}, saved under {out_dir}", timeout=2.0)

        widget.on_exported(on_exported)

        with ui.row():
            ui.button("Zoom in", on_click=lambda: (engine.camera.zoom_by(1.25), widget.refresh()))
            ui.button("Zoom out", on_click=lambda: (engine.camera.zoom_by(0.8), widget.refresh()))
            ui.button("Reset view", on_click=lambda: (engine.camera.reset(), widget.refresh()))

    ui.run()
