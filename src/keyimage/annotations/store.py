# keyimage/src/keyimage/annotations/store.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional

from keyimage.utils.logging import get_logger

from .model import Annotation

logger = get_logger(__name__)


@dataclass(frozen=True)
class LayoutHint:
    """Cached layout measurement for one annotation.

    ``key`` is the validity key (for text: ``(text, rounded zoom)``); the hint is
    stale as soon as the caller's current key differs.
    """

    key: Hashable
    width: float
    height: float


class AnnotationStore:
    """In-memory annotation store.

    Layout hints live in a side table keyed by annotation uid, never on the
    annotation itself.
    """

    def __init__(self, annotations: Optional[List[Annotation]] = None) -> None:
        self._annotations: Dict[str, Annotation] = {}
        self._layout_hints: Dict[str, LayoutHint] = {}
        for ann in annotations or []:
            self.add(ann)

    def __len__(self) -> int:
        return len(self._annotations)

    def add(self, annotation: Annotation) -> Annotation:
        self._annotations[annotation.uid] = annotation
        logger.debug(f"added {annotation.kind.value} annotation {annotation.uid}")
        return annotation

    def get(self, uid: str) -> Optional[Annotation]:
        return self._annotations.get(uid)

    def remove(self, uid: str) -> None:
        self._annotations.pop(uid, None)
        self._layout_hints.pop(uid, None)

    def all(self) -> List[Annotation]:
        return list(self._annotations.values())

    def for_image(self, image_id: Optional[str]) -> List[Annotation]:
        """Annotations attached to ``image_id``, in insertion order."""
        return [a for a in self._annotations.values() if a.image_id == image_id]

    # ------------- text payload -------------

    def get_text(self, uid: str) -> str:
        ann = self._annotations[uid]
        return ann.text

    def set_text(self, uid: str, text: str) -> None:
        ann = self._annotations[uid]
        if ann.text != text:
            ann.text = text
            # Key mismatch would invalidate it anyway; drop eagerly.
            self._layout_hints.pop(uid, None)

    # ------------- layout-hint side table -------------

    def get_layout_hint(self, uid: str) -> Optional[LayoutHint]:
        return self._layout_hints.get(uid)

    def set_layout_hint(self, uid: str, hint: LayoutHint) -> None:
        self._layout_hints[uid] = hint
