"""Submit-then-poll driver for asynchronous image generation jobs.

The draw backend accepts a job, returns an opaque id, and must then be
polled until the job succeeds, fails, or is reported unknown. Polling
uses a fixed interval and a fixed attempt budget:

- the first poll is issued immediately, later polls wait one interval;
- a transient error on one attempt (network failure, malformed response)
  is logged and polling continues, except on the final attempt where it
  is re-raised;
- explicit failure, unknown job and authentication errors end polling at
  once;
- no attempt starts once ``interval * max_attempts`` seconds have passed
  since the first one, and an attempt still in flight when that budget
  runs out is cancelled, so callers are never blocked indefinitely.

``sleep`` and ``clock`` are injectable so tests can simulate the whole
budget without real delays.

Example:
    >>> poller = AsyncJobPoller(transport, base_url, headers)
    >>> handle = await poller.submit("a robot cat", {"model": "nano-banana-pro"})
    >>> image = await poller.poll_until_done(handle)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from comicizer.config import PollingConfig
from comicizer.constants import (
    CRSAI_CODE_NOT_FOUND,
    CRSAI_CODE_OK,
    CRSAI_DRAW_PATH,
    CRSAI_RESULT_PATH,
    DEFAULT_IMAGE_MIME_TYPE,
    PROVIDER_CRSAI,
)
from comicizer.errors import (
    ComicizerError,
    JobFailedError,
    JobNotFoundError,
    JobTimeoutError,
    TransportError,
)
from comicizer.transport import Transport, join_url
from comicizer.types import ImageResult, JobHandle

# Submit payload fields the draw API expects on every request.
# webHook "-1" asks for an immediate id instead of a callback.
_SUBMIT_DEFAULTS: dict[str, Any] = {
    "urls": [],
    "webHook": "-1",
    "shutProgress": False,
}


class JobState(str, Enum):
    """States of a single job as seen by the poller."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class PollOutcome:
    """Interpretation of one poll response."""

    state: JobState
    image: ImageResult | None = None
    reason: str | None = None


def interpret_poll_response(response: Any) -> PollOutcome:
    """Map a draw-result response onto a job state.

    Raises:
        TransportError: If the response is not a JSON object
    """
    if not isinstance(response, dict):
        raise TransportError(
            f"Malformed poll response: {type(response).__name__}",
            provider=PROVIDER_CRSAI,
        )

    code = response.get("code")
    data = response.get("data")

    if code == CRSAI_CODE_NOT_FOUND:
        return PollOutcome(JobState.NOT_FOUND, reason=response.get("message"))

    if code != CRSAI_CODE_OK or not isinstance(data, dict):
        return PollOutcome(
            JobState.POLLING,
            reason=f"unexpected response code {code}: {response.get('message')}",
        )

    status = data.get("status")
    if status == "succeeded":
        results = data.get("results") or []
        if not isinstance(results, list):
            return PollOutcome(
                JobState.POLLING,
                reason=f"malformed results: {type(results).__name__}",
            )
        for result in results:
            url = result.get("url") if isinstance(result, dict) else None
            if isinstance(url, str) and url:
                return PollOutcome(
                    JobState.SUCCEEDED,
                    image=ImageResult(url=url, mime_type=DEFAULT_IMAGE_MIME_TYPE),
                )
        return PollOutcome(JobState.POLLING, reason="succeeded without results")
    if status == "failed":
        reason = data.get("failure_reason") or data.get("error") or "Unknown error"
        return PollOutcome(JobState.FAILED, reason=str(reason))
    if status in ("processing", "pending"):
        return PollOutcome(JobState.POLLING)
    return PollOutcome(JobState.POLLING, reason=f"unknown status {status!r}")


class AsyncJobPoller:
    """Drive the submit/poll protocol of the draw API.

    Args:
        transport: Object with an async ``post(endpoint, payload, headers)``
        base_url: API base URL
        headers: Request headers, including authorization
        config: Interval and attempt budget
        sleep: Coroutine used to wait between attempts
        clock: Monotonic clock in seconds
        submit_path: Path of the submit endpoint
        result_path: Path of the result endpoint
    """

    def __init__(
        self,
        transport: Transport,
        base_url: str,
        headers: Mapping[str, str],
        config: PollingConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        submit_path: str = CRSAI_DRAW_PATH,
        result_path: str = CRSAI_RESULT_PATH,
        provider: str = PROVIDER_CRSAI,
    ) -> None:
        self.transport = transport
        self.base_url = base_url
        self.headers = dict(headers)
        self.config = config or PollingConfig()
        self.provider = provider
        self._sleep = sleep
        self._clock = clock
        self._submit_url = join_url(base_url, submit_path)
        self._result_url = join_url(base_url, result_path)

    async def submit(
        self, prompt: str, parameters: Mapping[str, Any] | None = None
    ) -> JobHandle:
        """Submit a generation job.

        Raises:
            JobFailedError: If the backend does not return a job id
        """
        payload = {**_SUBMIT_DEFAULTS, "prompt": prompt, **(parameters or {})}
        logger.debug(
            f"[Poller] Submitting job (model={payload.get('model')}, "
            f"prompt {len(prompt)} chars)"
        )
        response = await self.transport.post(self._submit_url, payload, self.headers)

        if not isinstance(response, dict):
            response = {}
        data = response.get("data")
        job_id = data.get("id") if isinstance(data, dict) else None
        if response.get("code") != CRSAI_CODE_OK or not job_id:
            raise JobFailedError(
                f"Invalid submit response: {response.get('message') or response}",
                provider=self.provider,
            )

        handle = JobHandle(id=str(job_id), submitted_at=self._clock())
        logger.info(f"[Poller] Job {handle.id} submitted")
        return handle

    async def poll_until_done(self, handle: JobHandle) -> ImageResult:
        """Poll ``handle`` until a terminal state.

        Raises:
            JobFailedError: Backend reported the job as failed
            JobNotFoundError: Backend does not know the job
            JobTimeoutError: Attempt budget or wall-clock bound exhausted
            ComicizerError: Non-retryable errors, or a transient error on the
                final attempt
        """
        interval = self.config.interval_seconds
        max_attempts = self.config.max_attempts
        budget = interval * max_attempts
        started = self._clock()
        attempt = 0

        logger.debug(
            f"[Poller] Polling job {handle.id}: max {max_attempts} attempts, "
            f"{interval}s interval, {budget:.0f}s budget"
        )

        while attempt < max_attempts:
            if attempt > 0:
                await self._sleep(interval)
                if self._clock() - started >= budget:
                    logger.warning(
                        f"[Poller] Job {handle.id} exceeded {budget:.0f}s budget"
                    )
                    break
            attempt += 1
            remaining = budget - (self._clock() - started)

            try:
                response = await asyncio.wait_for(
                    self.transport.post(
                        self._result_url, {"id": handle.id}, self.headers
                    ),
                    timeout=remaining,
                )
                outcome = interpret_poll_response(response)
            except TimeoutError:
                logger.warning(
                    f"[Poller] Job {handle.id} exceeded {budget:.0f}s budget "
                    f"during attempt {attempt}"
                )
                break
            except ComicizerError as e:
                if not e.retryable or attempt >= max_attempts:
                    raise
                logger.warning(
                    f"[Poller] Attempt {attempt}/{max_attempts} for job {handle.id} "
                    f"failed: {e}"
                )
                continue

            if outcome.state is JobState.SUCCEEDED and outcome.image is not None:
                elapsed = self._clock() - started
                logger.info(
                    f"[Poller] Job {handle.id} succeeded after {attempt} attempts "
                    f"({elapsed:.0f}s)"
                )
                return outcome.image
            if outcome.state is JobState.FAILED:
                logger.error(f"[Poller] Job {handle.id} failed: {outcome.reason}")
                raise JobFailedError(
                    outcome.reason or "Unknown error",
                    job_id=handle.id,
                    provider=self.provider,
                )
            if outcome.state is JobState.NOT_FOUND:
                logger.error(f"[Poller] Job {handle.id} not found")
                raise JobNotFoundError(handle.id, provider=self.provider)

            if outcome.reason:
                logger.debug(
                    f"[Poller] Attempt {attempt}/{max_attempts}: {outcome.reason}"
                )
            else:
                logger.debug(
                    f"[Poller] Still processing (attempt {attempt}/{max_attempts})"
                )

        elapsed = self._clock() - started
        raise JobTimeoutError(
            attempts=attempt, elapsed=elapsed, job_id=handle.id, provider=self.provider
        )

    async def run(
        self, prompt: str, parameters: Mapping[str, Any] | None = None
    ) -> ImageResult:
        """Submit a job and poll it to completion."""
        handle = await self.submit(prompt, parameters)
        return await self.poll_until_done(handle)


__all__ = [
    "AsyncJobPoller",
    "JobState",
    "PollOutcome",
    "interpret_poll_response",
]
