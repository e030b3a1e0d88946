"""Annotation data, storage and renderers."""

from .model import Annotation, AnnotationKind, ImageRef
from .renderers import (
    CirclePrimitive,
    GroupPrimitive,
    LinePrimitive,
    Primitive,
    RenderFrame,
    TextPrimitive,
    render_annotation,
    render_annotations,
)
from .store import AnnotationStore, LayoutHint

__all__ = [
    "Annotation",
    "AnnotationKind",
    "AnnotationStore",
    "CirclePrimitive",
    "GroupPrimitive",
    "ImageRef",
    "LayoutHint",
    "LinePrimitive",
    "Primitive",
    "RenderFrame",
    "TextPrimitive",
    "render_annotation",
    "render_annotations",
]
