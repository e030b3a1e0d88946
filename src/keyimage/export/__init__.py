"""Compositing and export of key images."""

from .compositor import CompositeResult, Compositor, compute_output_window, encode_png, place_bitmap
from .exporter import ExportResult, KeyImageExporter, KeyImageMetadata

__all__ = [
    "CompositeResult",
    "Compositor",
    "ExportResult",
    "KeyImageExporter",
    "KeyImageMetadata",
    "compute_output_window",
    "encode_png",
    "place_bitmap",
]
