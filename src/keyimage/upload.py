# keyimage/src/keyimage/upload.py
"""Hand a finished key image to the upload endpoint.

Network I/O stays outside the package: the caller injects a ``transport``,
an (async or plain) callable ``transport(url, fields, files) -> UploadResponse``
that performs the multipart POST. ``files`` maps a form field to
``(filename, payload, content_type)``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Tuple, Union

from keyimage.errors import UploadRejected
from keyimage.export.exporter import ExportResult
from keyimage.utils.logging import get_logger

logger = get_logger(__name__)

FileField = Tuple[str, bytes, str]
Transport = Callable[
    [str, Dict[str, str], Dict[str, FileField]],
    Union["UploadResponse", Awaitable["UploadResponse"]],
]

DETAIL_MAX_CHARS = 200


@dataclass(frozen=True)
class UploadResponse:
    status: int
    reason: str = ""
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.body)


def build_upload_form(
    result: ExportResult,
    filename: str = "keyimage.png",
) -> tuple[Dict[str, str], Dict[str, FileField]]:
    """Form fields and file part for one export result.

    Identifier fields are only sent when known.
    """
    meta = result.metadata
    fields: Dict[str, str] = {}
    if meta.study_id:
        fields["study_iuid"] = meta.study_id
    if meta.series_id:
        fields["series_iuid"] = meta.series_id
    if meta.image_id:
        fields["sop_iuid"] = meta.image_id
    files = {"image": (filename, result.payload, "image/png")}
    return fields, files


def rejection_message(response: UploadResponse) -> str:
    """User-facing message for a failed upload response."""
    fallback = f"HTTP {response.status}: {response.reason}".rstrip(": ")
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message")
        if detail:
            return str(detail)
        return fallback
    if response.body:
        return response.body[:DETAIL_MAX_CHARS]
    return fallback


class KeyImageUploader:
    """Sends export results through an injected transport.

    The last result handed to :meth:`upload` is kept, so a rejected upload can
    be retried without exporting again.
    """

    def __init__(self, transport: Transport, url: str = "/api/keyimage/upload", filename: str = "keyimage.png") -> None:
        self.transport = transport
        self.url = url
        self.filename = filename
        self.last_result: ExportResult | None = None

    async def upload(self, result: ExportResult) -> Any:
        """Upload ``result`` and return the decoded JSON reply (or None if not JSON).

        Raises:
            UploadRejected: non-2xx response.
        """
        self.last_result = result
        fields, files = build_upload_form(result, self.filename)
        logger.info(
            f"uploading key image to {self.url}: {len(result.payload)} bytes, fields={sorted(fields)}"
        )
        try:
            response = self.transport(self.url, fields, files)
            if hasattr(response, "__await__"):
                response = await response
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.warning(f"upload to {self.url} failed: {message}")
            raise UploadRejected(f"Upload failed: {message}") from exc

        if not response.ok:
            message = rejection_message(response)
            logger.warning(f"upload rejected ({response.status}): {message}")
            raise UploadRejected(message, status=response.status)

        logger.info(f"upload accepted ({response.status})")
        if not response.body:
            return None
        try:
            return response.json()
        except ValueError:
            logger.debug("upload reply is not JSON")
            return None

    async def retry_upload(self) -> Any:
        """Resend the last export result.

        Raises:
            RuntimeError: nothing has been uploaded yet.
            UploadRejected: non-2xx response.
        """
        if self.last_result is None:
            raise RuntimeError("There is no key image to upload again.")
        return await self.upload(self.last_result)
