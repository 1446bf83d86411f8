"""Common type definitions for comicizer."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class PagePlan(BaseModel):
    """One planned comic page before rendering."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page_number: int = Field(alias="pageNumber", gt=0)
    description: str = Field(min_length=1)
    visual_cue: str = Field(default="", alias="visualCue")


@dataclass(frozen=True)
class ComicPage:
    """One rendered page. ``image_url`` is a data URI or a remote URL."""

    page_number: int
    image_url: str
    description: str

    @classmethod
    def from_plan(cls, plan: PagePlan, image_url: str) -> ComicPage:
        return cls(
            page_number=plan.page_number,
            image_url=image_url,
            description=plan.description,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "pageNumber": self.page_number,
            "imageUrl": self.image_url,
            "description": self.description,
        }


class ProcessingStatus(str, Enum):
    """Pipeline status, progressing linearly from IDLE."""

    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    PLANNING = "PLANNING"
    GENERATING_IMAGES = "GENERATING_IMAGES"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ProcessingState:
    """Snapshot of orchestration progress.

    Snapshots are immutable; the orchestrator publishes a new one on every
    transition so readers never observe a half-updated state.
    """

    status: ProcessingStatus = ProcessingStatus.IDLE
    progress: float = 0
    total_steps: int = 0
    current_step: int = 0
    error: str | None = None
    current_step_description: str | None = None

    def evolve(self, **changes: object) -> ProcessingState:
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)


@dataclass(frozen=True)
class JobHandle:
    """Handle of a submitted asynchronous image job."""

    id: str
    submitted_at: float


@dataclass(frozen=True)
class ImageResult:
    """An image reference located in a provider response."""

    url: str
    mime_type: str


# Progress callbacks may be plain functions or coroutine functions
ProgressCallback = Callable[[ProcessingState], Union[None, Awaitable[None]]]
PageCallback = Callable[[ComicPage], Union[None, Awaitable[None]]]


__all__ = [
    "ComicPage",
    "ImageResult",
    "JobHandle",
    "PageCallback",
    "PagePlan",
    "ProcessingState",
    "ProcessingStatus",
    "ProgressCallback",
]
