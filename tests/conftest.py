"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from comicizer.config import ComicizerConfig

# =============================================================================
# Fakes
# =============================================================================


class FakeTransport:
    """Transport returning queued responses and recording every call.

    Queued items that are exceptions are raised instead of returned. When
    the queue is exhausted the last item is repeated.
    """

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, dict[str, Any], dict[str, str]]] = []

    async def post(
        self,
        endpoint: str,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> dict[str, Any]:
        self.calls.append((endpoint, dict(payload), dict(headers)))
        if len(self.responses) > 1:
            item = self.responses.pop(0)
        else:
            item = self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def endpoints(self) -> list[str]:
        return [call[0] for call in self.calls]

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [call[1] for call in self.calls]


class FakeClock:
    """Monotonic clock advanced only by the fake ``sleep``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config() -> ComicizerConfig:
    """Default configuration with in-memory API keys."""
    return ComicizerConfig.model_validate(
        {
            "openrouter": {
                "base_url": "https://openrouter.test/api/v1",
                "api_key": "or-test-key",
                "text_model": "text-model",
                "image_model": "image-model",
                "referer": "http://localhost:3000",
                "title": "Paper Comicizer",
            },
            "crsai": {
                "base_url": "https://crsai.test",
                "api_key": "crsai-test-key",
                "text_model": "crsai-text",
                "image_model": "nano-banana-pro",
                "chat_path": "/v1/chat/completions",
            },
            "log": {"dir": None},
        }
    )


@pytest.fixture
def make_transport():
    """Factory for transports returning the given responses in order."""
    return FakeTransport


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def pdf_file(tmp_path: Path) -> Path:
    """A minimal file that passes the PDF checks."""
    path = tmp_path / "paper.pdf"
    path.write_bytes(b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\n%%EOF\n")
    return path


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at a temp dir and clear API key environment variables."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("CRSAI_API_KEY", raising=False)
    monkeypatch.delenv("COMICIZER_CONFIG", raising=False)
    monkeypatch.delenv("COMICIZER_LOG_DIR", raising=False)
    return home
