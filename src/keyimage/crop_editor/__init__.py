"""Crop-rectangle editor."""

from .crop_editor import (
    CropEditor,
    DragState,
    EditorState,
    Handle,
    handle_positions,
    validate_crop,
)

__all__ = [
    "CropEditor",
    "DragState",
    "EditorState",
    "Handle",
    "handle_positions",
    "validate_crop",
]
