"""Writing generated comic pages to disk."""

from __future__ import annotations

import base64
import binascii
import re
from pathlib import Path
from typing import Any

from loguru import logger

from comicizer.constants import MANIFEST_FILENAME
from comicizer.security import atomic_write_bytes, atomic_write_json
from comicizer.types import ComicPage, ProcessingState

_DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>;[^,]*)?,(?P<payload>.*)$",
    re.DOTALL,
)

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def decode_data_uri(url: str) -> tuple[str, bytes] | None:
    """Decode a base64 data URI into ``(mime_type, bytes)``, or None."""
    match = _DATA_URI_PATTERN.match(url)
    if not match or ";base64" not in (match.group("params") or ""):
        return None
    try:
        data = base64.b64decode(match.group("payload"), validate=False)
    except (binascii.Error, ValueError):
        return None
    return (match.group("mime") or "image/png").lower(), data


class ComicWriter:
    """Write pages as image files plus a ``comic.json`` manifest.

    Pages carrying a data URI are decoded to ``page-001.png`` style files;
    pages with a remote URL are only recorded in the manifest.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)
        self.files: dict[int, str] = {}

    def write_page(self, page: ComicPage) -> Path | None:
        decoded = decode_data_uri(page.image_url)
        if decoded is None:
            logger.debug(f"[Output] Page {page.page_number} is remote")
            return None
        mime_type, data = decoded
        extension = _EXTENSIONS.get(mime_type, ".png")
        path = self.output_dir / f"page-{page.page_number:03d}{extension}"
        atomic_write_bytes(path, data)
        self.files[page.page_number] = path.name
        logger.info(f"[Output] Saved {path}")
        return path

    def write_manifest(
        self, source: str, pages: list[ComicPage], state: ProcessingState
    ) -> Path:
        entries: list[dict[str, Any]] = []
        for page in pages:
            entry: dict[str, Any] = {
                "pageNumber": page.page_number,
                "description": page.description,
            }
            if page.page_number in self.files:
                entry["file"] = self.files[page.page_number]
            else:
                entry["imageUrl"] = page.image_url
            entries.append(entry)

        manifest = {
            "source": source,
            "status": state.status.value,
            "error": state.error,
            "pages": entries,
        }
        path = self.output_dir / MANIFEST_FILENAME
        atomic_write_json(path, manifest)
        logger.info(f"[Output] Saved manifest {path}")
        return path


__all__ = ["ComicWriter", "decode_data_uri"]
