"""Comic generation workflow.

This module runs the three sequential steps of a conversion:

1. Analyze: the text model summarizes the document.
2. Plan: the text model proposes pages as JSON, recovered by
   ``PlanRecoveryParser``.
3. Generate: one image per planned page, in page order.

``PipelineOrchestrator`` is the single writer of ``ProcessingState`` and
publishes an immutable snapshot after every transition.
"""

from __future__ import annotations

import asyncio
import base64
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from loguru import logger

from comicizer.constants import (
    PROGRESS_ANALYZING,
    PROGRESS_COMPLETE,
    PROGRESS_GENERATING,
    PROGRESS_GENERATING_SPAN,
    PROGRESS_PLANNING,
)
from comicizer.errors import (
    AuthError,
    ComicizerError,
    ExtractionEmptyError,
    classify_error,
)
from comicizer.extract import ResponseExtractor, default_extractor
from comicizer.plan_parser import PlanRecoveryParser
from comicizer.prompts import PromptManager
from comicizer.types import (
    ComicPage,
    PageCallback,
    PagePlan,
    ProcessingState,
    ProcessingStatus,
    ProgressCallback,
)

if TYPE_CHECKING:
    from comicizer.config import ComicizerConfig
    from comicizer.credentials import ApiKeyStore
    from comicizer.providers import ChatCompletionsClient, ImageGenerator
    from comicizer.transport import HttpTransport

# Fixed number of top-level steps reported before the page count is known
_PRE_PLAN_STEPS = 3


async def _notify(callback: Callable[[Any], Any] | None, value: Any) -> None:
    """Invoke a plain or coroutine callback."""
    if callback is None:
        return
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class PipelineOrchestrator:
    """Drive analysis, planning and page generation for one document.

    Args:
        chat_client: Client issuing the analysis and planning calls
        image_generator: Backend rendering one page prompt into an image
        parser: Plan recovery parser
        extractor: Response extractor for the chat calls
        prompts: Prompt manager used for the per-page image prompts
    """

    def __init__(
        self,
        chat_client: ChatCompletionsClient,
        image_generator: ImageGenerator,
        *,
        parser: PlanRecoveryParser | None = None,
        extractor: ResponseExtractor | None = None,
        prompts: PromptManager | None = None,
        transports: list[HttpTransport] | None = None,
    ) -> None:
        self.chat_client = chat_client
        self.image_generator = image_generator
        self.parser = parser or PlanRecoveryParser()
        self.extractor = extractor or default_extractor
        self.prompts = prompts or PromptManager()
        self._transports = list(transports or [])
        self._state = ProcessingState()
        self._pages: list[ComicPage] = []
        self._on_progress: ProgressCallback | None = None

    @classmethod
    def from_config(
        cls,
        config: ComicizerConfig,
        *,
        store: ApiKeyStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> PipelineOrchestrator:
        """Build an orchestrator with HTTP transports and resolved API keys.

        Raises:
            AuthError: If a required API key cannot be resolved
        """
        from comicizer.credentials import resolve_api_key
        from comicizer.providers import create_chat_client, create_image_generator
        from comicizer.transport import HttpTransport

        transports: dict[str, HttpTransport] = {}

        def transport_for(name: str) -> HttpTransport:
            if name not in transports:
                transports[name] = HttpTransport(
                    timeout=config.request_timeout, provider=name
                )
            return transports[name]

        text_key = resolve_api_key(config.text_provider, store, config)
        image_key = resolve_api_key(config.image_provider, store, config)
        chat_client = create_chat_client(
            config, transport_for(config.text_provider), text_key
        )
        image_generator = create_image_generator(
            config,
            transport_for(config.image_provider),
            image_key,
            sleep=sleep,
            clock=clock,
        )
        logger.debug(
            f"[Pipeline] Text via {config.text_provider}, "
            f"images via {config.image_provider}"
        )
        return cls(
            chat_client,
            image_generator,
            prompts=PromptManager(config.prompts),
            transports=list(transports.values()),
        )

    @property
    def state(self) -> ProcessingState:
        """Current state snapshot."""
        return self._state

    @property
    def pages(self) -> list[ComicPage]:
        """Pages completed by the current or last run, in order."""
        return list(self._pages)

    async def _publish(self, **changes: Any) -> None:
        self._state = self._state.evolve(**changes)
        await _notify(self._on_progress, self._state)

    async def run(
        self,
        file_bytes: bytes | str,
        mime_type: str,
        on_progress: ProgressCallback | None = None,
        on_page: PageCallback | None = None,
    ) -> list[ComicPage]:
        """Convert a document into comic pages.

        Args:
            file_bytes: Raw document bytes, or an already base64-encoded string
            mime_type: MIME type of the document
            on_progress: Receives a ``ProcessingState`` after each transition
            on_page: Receives each ``ComicPage`` as soon as it is generated

        Returns:
            Generated pages in ascending page order

        Raises:
            AuthError: Missing or rejected credentials; state resets to IDLE
            ComicizerError: Any other pipeline failure; state becomes ERROR
        """
        self._pages = []
        self._state = ProcessingState()
        self._on_progress = on_progress

        if isinstance(file_bytes, bytes):
            data_base64 = base64.b64encode(file_bytes).decode("ascii")
        else:
            data_base64 = file_bytes

        try:
            await self._publish(
                status=ProcessingStatus.ANALYZING,
                progress=PROGRESS_ANALYZING,
                total_steps=_PRE_PLAN_STEPS,
                current_step=1,
                current_step_description="Reading the paper",
            )
            analysis = await self._analyze(data_base64, mime_type)

            await self._publish(
                status=ProcessingStatus.PLANNING,
                progress=PROGRESS_PLANNING,
                current_step=2,
                current_step_description="Planning the comic pages",
            )
            plans = await self._plan(analysis)

            total = len(plans)
            await self._publish(
                status=ProcessingStatus.GENERATING_IMAGES,
                progress=PROGRESS_GENERATING,
                total_steps=total,
                current_step=0,
                current_step_description=None,
            )
            for index, plan in enumerate(plans):
                await self._publish(
                    current_step=index + 1,
                    current_step_description=f"Drawing page {index + 1} of {total}",
                )
                page = await self._generate_page(analysis, plan)
                self._pages.append(page)
                await _notify(on_page, page)
                await self._publish(
                    progress=PROGRESS_GENERATING
                    + (index + 1) / total * PROGRESS_GENERATING_SPAN
                )

            await self._publish(
                status=ProcessingStatus.COMPLETE,
                progress=PROGRESS_COMPLETE,
                current_step_description=None,
            )
        except Exception as e:
            error = classify_error(e)
            if isinstance(error, AuthError):
                logger.warning(f"[Pipeline] Authentication failed: {error}")
                await self._publish(
                    status=ProcessingStatus.IDLE,
                    error=str(error),
                    current_step_description=None,
                )
            else:
                if isinstance(error, ComicizerError):
                    logger.error(f"[Pipeline] {type(error).__name__}: {error}")
                else:
                    logger.exception(f"[Pipeline] Unexpected failure: {error}")
                await self._publish(
                    status=ProcessingStatus.ERROR,
                    error=str(error) or type(error).__name__,
                )
            if error is e:
                raise
            raise error from e

        logger.success(f"[Pipeline] Generated {len(self._pages)} pages")
        return list(self._pages)

    async def _analyze(self, data_base64: str, mime_type: str) -> str:
        response = await self.chat_client.analyze(data_base64, mime_type)
        analysis = self.extractor.text_from(response)
        if not analysis:
            raise ExtractionEmptyError(
                "Failed to analyze the paper: the model returned no text",
                step="analysis",
                provider=self.chat_client.name,
            )
        logger.info(f"[Pipeline] Analysis complete ({len(analysis)} chars)")
        return analysis

    async def _plan(self, analysis: str) -> list[PagePlan]:
        response = await self.chat_client.plan(analysis)
        raw_text = self.extractor.text_from(response)
        if not raw_text:
            raise ExtractionEmptyError(
                "No plan generated: the model returned no text",
                step="planning",
                provider=self.chat_client.name,
            )
        plans = self.parser.parse(raw_text)
        logger.info(f"[Pipeline] Planned {len(plans)} pages")
        return plans

    async def _generate_page(self, context: str, plan: PagePlan) -> ComicPage:
        logger.info(f"[Pipeline] Generating page {plan.page_number}")
        image = await self.image_generator.generate(
            self.prompts.image_prompt(context, plan)
        )
        return ComicPage.from_plan(plan, image.url)

    async def aclose(self) -> None:
        """Close transports created by ``from_config``."""
        for transport in self._transports:
            await transport.aclose()

    async def __aenter__(self) -> PipelineOrchestrator:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()


__all__ = ["PipelineOrchestrator"]
