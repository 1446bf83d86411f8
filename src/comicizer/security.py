"""File safety helpers for comicizer."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from comicizer.errors import UploadError


def atomic_write_bytes(path: Path, data: bytes, mode: int | None = None) -> None:
    """Write bytes to ``path`` via a temp file in the same directory + rename.

    Args:
        path: Target file path
        data: Content to write
        mode: Optional permission bits applied before the rename
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        suffix=".tmp", prefix=f".{path.name}.", dir=path.parent
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def atomic_write_text(
    path: Path, content: str, encoding: str = "utf-8", mode: int | None = None
) -> None:
    atomic_write_bytes(path, content.encode(encoding), mode=mode)


def atomic_write_json(
    path: Path, obj: Any, indent: int = 2, mode: int | None = None
) -> None:
    """Write JSON to ``path`` atomically, keeping non-ASCII text readable."""
    atomic_write_text(
        path, json.dumps(obj, indent=indent, ensure_ascii=False), mode=mode
    )


def validate_file_size(path: Path, max_size_bytes: int) -> None:
    """Validate that a file is within size limits.

    Raises:
        UploadError: If file exceeds size limit
    """
    size = path.stat().st_size
    if size > max_size_bytes:
        raise UploadError(
            f"File too large: {path.name} is {size} bytes (max: {max_size_bytes} bytes)"
        )


def mask_secret(value: str, visible: int = 4) -> str:
    """Mask a secret for display, keeping only the last ``visible`` characters."""
    if not value:
        return ""
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{'*' * 8}{value[-visible:]}"


__all__ = [
    "atomic_write_bytes",
    "atomic_write_json",
    "atomic_write_text",
    "mask_secret",
    "validate_file_size",
]
