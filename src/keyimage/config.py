# keyimage/src/keyimage/config.py

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from keyimage.utils.logging import get_logger

logger = get_logger(__name__)

UPLOAD_URL_ENV = "KEYIMAGE_UPLOAD_URL"
PADDING_ENV = "KEYIMAGE_PADDING_PX"


@dataclass(frozen=True)
class AnnotationStyle:
    """Base (un-zoomed) drawing style for annotations.

    Widths and font sizes are multiplied by the camera zoom at render time.
    """

    line_width: float = 1.5
    font_size: float = 14.0
    color: str = "rgb(255, 255, 255)"
    outline_color: str = "rgb(0, 0, 0)"
    outline_extra: float = 2.0              # outline pass is line_width + outline_extra
    text_padding: float = 4.0               # box padding around measured text
    preview_radius: float = 3.0             # dot drawn for a one-point arrow preview


@dataclass
class KeyImageConfig:
    # Export framing
    padding_px: int = 5                     # auto-expand margin (native px)
    background_color: str = "#000000"       # fill for area not covered by the bitmap

    # Crop editor (display px)
    min_crop_size: float = 10.0
    handle_tolerance_px: float = 8.0
    handle_size_px: float = 8.0
    crop_stroke_color: str = "#ffcc00"
    crop_fill_opacity: float = 0.1

    # Export overlay scheme
    export_color: str = "#ffffff"
    export_stroke_width: float = 2.0
    export_font_scale: float = 1.8
    halo_color: str = "#000000"
    halo_width: float = 1.0

    # Leader-line suppression around text groups
    leader_lines_before: int = 3
    leader_lines_after: int = 1

    # Upload collaborator
    upload_url: str = "/api/keyimage/upload"
    upload_filename: str = "keyimage.png"

    # Widget display resolution (logical pixel grid); None -> native size
    display_width_px: int | None = None
    display_height_px: int | None = None

    annotation_style: AnnotationStyle = field(default_factory=AnnotationStyle)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KeyImageConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        style = kwargs.get("annotation_style")
        if isinstance(style, dict):
            kwargs["annotation_style"] = AnnotationStyle(**style)
        return cls(**kwargs)

    @classmethod
    def from_env(cls, **overrides: Any) -> "KeyImageConfig":
        """Build a config with KEYIMAGE_* environment overrides applied.

        Explicit keyword overrides win over the environment.
        """
        env: dict[str, Any] = {}
        url = os.environ.get(UPLOAD_URL_ENV)
        if url:
            env["upload_url"] = url
        padding = os.environ.get(PADDING_ENV)
        if padding:
            try:
                env["padding_px"] = int(padding)
            except ValueError:
                logger.warning(f"ignoring {PADDING_ENV}={padding!r}: not an integer")
        env.update(overrides)
        return cls(**env)
