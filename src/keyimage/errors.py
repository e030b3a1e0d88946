"""Exceptions raised by the key-image export pipeline.

Every error carries a message meant for the user (``str(exc)``).
"""

from __future__ import annotations


class KeyImageError(Exception):
    """Base class for key-image errors."""


class SurfaceUnavailable(KeyImageError):
    """The bitmap surface or the vector overlay handle is missing.

    Fatal to the current export; no partial output is produced.
    """


class OverlayRasterizationFailed(KeyImageError):
    """The vector overlay could not be drawn onto the output bitmap.

    Non-fatal: the compositor falls back to the bitmap-only image.
    """


class InvalidCropGeometry(KeyImageError):
    """A crop rectangle cannot be made to satisfy the crop invariants."""


class ExportInProgress(KeyImageError):
    """An export was requested while another one is still running."""


class UploadRejected(KeyImageError):
    """The upload collaborator refused the key image."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
