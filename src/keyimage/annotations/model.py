# keyimage/src/keyimage/annotations/model.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from keyimage.config import AnnotationStyle


class AnnotationKind(str, Enum):
    ARROW = "arrow"
    TEXT = "text"


@dataclass(frozen=True)
class ImageRef:
    """Identifiers of the displayed image, used for export metadata."""

    study_id: Optional[str]
    series_id: Optional[str]
    image_id: Optional[str]


@dataclass
class Annotation:
    """A user annotation with geometry in world space.

    Arrow: ``points[0]`` is the tip (where it points), ``points[1]`` the tail.
    Text: ``points[0]`` is the centre of the text box; an optional
    ``points[1]`` is a callout target joined by a leader line.
    """

    kind: AnnotationKind
    points: List[Tuple[float, float]]
    image_id: Optional[str] = None
    text: str = ""
    style: AnnotationStyle = field(default_factory=AnnotationStyle)
    uid: str = field(default_factory=lambda: uuid.uuid4().hex)
    is_preview: bool = False

    def __post_init__(self) -> None:
        self.kind = AnnotationKind(self.kind)
        self.points = [(float(x), float(y)) for x, y in self.points]
