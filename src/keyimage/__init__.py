"""
keyimage: key-image capture for medical image viewers.

This package provides:
- Annotation model, store and Arrow/Text renderers producing an SVG overlay
- CropEditor: crop-rectangle state machine driven by pointer events
- OverlayNormalizer and Compositor: export-ready overlay and PNG composite
- KeyImageExporter / KeyImageUploader: single-flight export and upload hand-off
- ArrayRenderingEngine: reference engine over a 2D NumPy image
- KeyImageEditorWidget (``keyimage.keyimage_widget``): NiceGUI editor

For logging configuration in standalone scripts/demos:
    ```python
    from keyimage.utils.logging import configure_logging
    configure_logging(level="DEBUG")
    ```

When used as a library (imported by other applications), logging is
automatically handled by the parent application's configuration.
"""

import logging

from keyimage.utils.logging import configure_logging, get_logger

from keyimage.annotations import Annotation, AnnotationKind, AnnotationStore, ImageRef
from keyimage.config import AnnotationStyle, KeyImageConfig
from keyimage.crop_editor import CropEditor
from keyimage.engine import ArrayRenderingEngine, RenderingEngine
from keyimage.errors import (
    ExportInProgress,
    InvalidCropGeometry,
    KeyImageError,
    OverlayRasterizationFailed,
    SurfaceUnavailable,
    UploadRejected,
)
from keyimage.export import Compositor, ExportResult, KeyImageExporter, KeyImageMetadata
from keyimage.geometry import DisplayGeometry, Rect
from keyimage.overlay import OverlayNormalizer
from keyimage.upload import KeyImageUploader, UploadResponse

# Ensure keyimage logger has NullHandler so logs don't propagate to root
# when no application has configured logging. Applications/demos call
# configure_logging() to replace this with a real handler.
_logger = logging.getLogger("keyimage")
if not _logger.handlers:
    _logger.addHandler(logging.NullHandler())

__all__ = [
    "Annotation",
    "AnnotationKind",
    "AnnotationStore",
    "AnnotationStyle",
    "ArrayRenderingEngine",
    "Compositor",
    "CropEditor",
    "DisplayGeometry",
    "ExportInProgress",
    "ExportResult",
    "ImageRef",
    "InvalidCropGeometry",
    "KeyImageConfig",
    "KeyImageError",
    "KeyImageExporter",
    "KeyImageMetadata",
    "KeyImageUploader",
    "OverlayNormalizer",
    "OverlayRasterizationFailed",
    "Rect",
    "RenderingEngine",
    "SurfaceUnavailable",
    "UploadRejected",
    "UploadResponse",
    "configure_logging",
    "get_logger",
]

__version__ = "0.1.0"
