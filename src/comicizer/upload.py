"""Document loading for the pipeline input."""

from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from comicizer.constants import MAX_DOCUMENT_SIZE, PDF_MIME_TYPE
from comicizer.errors import UploadError
from comicizer.security import validate_file_size

_PDF_MAGIC = b"%PDF-"


@dataclass(frozen=True)
class UploadedDocument:
    """A document ready to be sent to the pipeline."""

    data_base64: str
    mime_type: str
    name: str

    @property
    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.data_base64)


def detect_mime_type(path: Path, head: bytes) -> str | None:
    """Determine the MIME type from the extension, falling back to content.

    A file whose extension claims PDF but lacks the PDF header yields None.
    """
    guessed, _ = mimetypes.guess_type(path.name)
    is_pdf = head.startswith(_PDF_MAGIC)
    if guessed == PDF_MIME_TYPE:
        return PDF_MIME_TYPE if is_pdf else None
    if guessed is None and is_pdf:
        return PDF_MIME_TYPE
    return guessed


def load_document(
    path: Path | str, max_size: int = MAX_DOCUMENT_SIZE
) -> UploadedDocument:
    """Read and base64-encode a PDF.

    Raises:
        UploadError: If the file is missing, too large, or not a PDF
    """
    path = Path(path)
    if not path.is_file():
        raise UploadError(f"File not found: {path}")
    validate_file_size(path, max_size)

    try:
        data = path.read_bytes()
    except OSError as e:
        raise UploadError(f"Cannot read {path}: {e}") from e

    mime_type = detect_mime_type(path, data[: len(_PDF_MAGIC)])
    if mime_type != PDF_MIME_TYPE:
        raise UploadError(
            f"Please upload a PDF file: {path.name} is {mime_type or 'not a valid PDF'}"
        )

    logger.debug(f"[Upload] Loaded {path.name} ({len(data)} bytes)")
    return UploadedDocument(
        data_base64=base64.b64encode(data).decode("ascii"),
        mime_type=PDF_MIME_TYPE,
        name=path.name,
    )


__all__ = ["UploadedDocument", "detect_mime_type", "load_document"]
