"""Unit tests for writing comic pages and the manifest."""

from __future__ import annotations

import base64
import json
from pathlib import Path

from comicizer.cli.output import ComicWriter, decode_data_uri
from comicizer.cli.progress import describe_state
from comicizer.types import ComicPage, ProcessingState, ProcessingStatus

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
PNG_URI = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


class TestDecodeDataUri:
    def test_png(self) -> None:
        assert decode_data_uri(PNG_URI) == ("image/png", PNG_BYTES)

    def test_mime_is_lowercased(self) -> None:
        decoded = decode_data_uri("data:Image/JPEG;base64,QUJD")
        assert decoded == ("image/jpeg", b"ABC")

    def test_non_base64_and_remote_urls(self) -> None:
        assert decode_data_uri("data:text/plain,hello") is None
        assert decode_data_uri("https://cdn.test/p1.png") is None


class TestComicWriter:
    """Tests for page files and the manifest."""

    def test_writes_inline_pages(self, tmp_path: Path) -> None:
        writer = ComicWriter(tmp_path / "out")
        path = writer.write_page(ComicPage(1, PNG_URI, "first"))
        assert path == tmp_path / "out" / "page-001.png"
        assert path.read_bytes() == PNG_BYTES

    def test_jpeg_extension(self, tmp_path: Path) -> None:
        writer = ComicWriter(tmp_path)
        path = writer.write_page(ComicPage(12, "data:image/jpeg;base64,QUJD", "x"))
        assert path is not None
        assert path.name == "page-012.jpg"

    def test_remote_page_is_not_downloaded(self, tmp_path: Path) -> None:
        writer = ComicWriter(tmp_path)
        assert writer.write_page(ComicPage(1, "https://cdn.test/1.png", "x")) is None
        assert writer.files == {}

    def test_manifest(self, tmp_path: Path) -> None:
        writer = ComicWriter(tmp_path)
        pages = [
            ComicPage(1, PNG_URI, "first"),
            ComicPage(2, "https://cdn.test/2.png", "second"),
        ]
        for page in pages:
            writer.write_page(page)
        state = ProcessingState(status=ProcessingStatus.COMPLETE, progress=100)

        path = writer.write_manifest("paper.pdf", pages, state)

        assert json.loads(path.read_text(encoding="utf-8")) == {
            "source": "paper.pdf",
            "status": "COMPLETE",
            "error": None,
            "pages": [
                {"pageNumber": 1, "description": "first", "file": "page-001.png"},
                {
                    "pageNumber": 2,
                    "description": "second",
                    "imageUrl": "https://cdn.test/2.png",
                },
            ],
        }


class TestDescribeState:
    def test_generating(self) -> None:
        state = ProcessingState(
            status=ProcessingStatus.GENERATING_IMAGES,
            total_steps=4,
            current_step=2,
            current_step_description="Drawing page 2 of 4",
        )
        assert describe_state(state) == "Drawing pages (2/4): Drawing page 2 of 4"

    def test_terminal_states_hide_step(self) -> None:
        state = ProcessingState(
            status=ProcessingStatus.ERROR, current_step_description="stale"
        )
        assert describe_state(state) == "Failed"
