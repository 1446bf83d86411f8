"""Unit tests for the asynchronous image job poller."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import pytest

from comicizer.config import PollingConfig
from comicizer.errors import (
    AuthError,
    JobFailedError,
    JobNotFoundError,
    JobTimeoutError,
    TransportError,
)
from comicizer.poller import AsyncJobPoller, JobState, interpret_poll_response
from comicizer.types import ImageResult, JobHandle

BASE_URL = "https://crsai.test"
HEADERS = {"Authorization": "Bearer k"}


def job_status(status: str, **data: Any) -> dict[str, Any]:
    return {
        "code": 0,
        "msg": "success",
        "data": {"id": "job-1", "status": status, **data},
    }


SUCCEEDED = job_status("succeeded", results=[{"url": "https://cdn.test/p1.png"}])
PROCESSING = job_status("processing", progress=40)


@pytest.fixture
def make_poller(fake_clock):
    def factory(transport, **config: Any) -> AsyncJobPoller:
        return AsyncJobPoller(
            transport,
            BASE_URL,
            HEADERS,
            PollingConfig(**config),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )

    return factory


HANDLE = JobHandle(id="job-1", submitted_at=0.0)


# =============================================================================
# Response interpretation
# =============================================================================


class TestInterpretPollResponse:
    """Tests for mapping poll responses onto job states."""

    def test_succeeded_with_url(self) -> None:
        outcome = interpret_poll_response(SUCCEEDED)
        assert outcome.state is JobState.SUCCEEDED
        assert outcome.image == ImageResult("https://cdn.test/p1.png", "image/png")

    def test_succeeded_without_results_keeps_polling(self) -> None:
        """Test that success without an image URL is not terminal."""
        outcome = interpret_poll_response(job_status("succeeded", results=[]))
        assert outcome.state is JobState.POLLING

    @pytest.mark.parametrize("results", [1, "https://cdn.test/p1.png", {"url": "x"}])
    def test_succeeded_with_malformed_results_keeps_polling(self, results) -> None:
        """Test that a non-list results field is treated as still processing."""
        outcome = interpret_poll_response(job_status("succeeded", results=results))
        assert outcome.state is JobState.POLLING
        assert "malformed results" in (outcome.reason or "")

    def test_failed_reason(self) -> None:
        outcome = interpret_poll_response(
            job_status("failed", failure_reason="content policy")
        )
        assert outcome.state is JobState.FAILED
        assert outcome.reason == "content policy"

    def test_failed_without_reason(self) -> None:
        outcome = interpret_poll_response(job_status("failed"))
        assert outcome.reason == "Unknown error"

    @pytest.mark.parametrize("status", ["processing", "pending", "queued"])
    def test_non_terminal_statuses(self, status: str) -> None:
        assert interpret_poll_response(job_status(status)).state is JobState.POLLING

    def test_not_found_code(self) -> None:
        outcome = interpret_poll_response({"code": -22, "msg": "task not found"})
        assert outcome.state is JobState.NOT_FOUND

    def test_other_error_codes_keep_polling(self) -> None:
        outcome = interpret_poll_response({"code": 500, "message": "busy"})
        assert outcome.state is JobState.POLLING
        assert "busy" in (outcome.reason or "")

    def test_non_object_raises_transport_error(self) -> None:
        with pytest.raises(TransportError):
            interpret_poll_response(["not", "an", "object"])


# =============================================================================
# Submit
# =============================================================================


class TestSubmit:
    """Tests for job submission."""

    @pytest.mark.asyncio
    async def test_submit_payload_and_handle(self, make_transport, make_poller) -> None:
        """Test that the draw request carries the fixed fields."""
        transport = make_transport({"code": 0, "data": {"id": "job-42"}})
        poller = make_poller(transport)

        handle = await poller.submit(
            "a robot cat", {"model": "nano-banana-pro", "aspectRatio": "2:3"}
        )

        assert handle.id == "job-42"
        endpoint, payload, headers = transport.calls[0]
        assert endpoint == "https://crsai.test/v1/draw/nano-banana"
        assert payload == {
            "urls": [],
            "webHook": "-1",
            "shutProgress": False,
            "prompt": "a robot cat",
            "model": "nano-banana-pro",
            "aspectRatio": "2:3",
        }
        assert headers == HEADERS

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            {"code": 0, "data": {}},
            {"code": 1, "data": {"id": "job-1"}, "message": "quota exceeded"},
            {"code": 0, "data": None},
        ],
    )
    async def test_invalid_submit_response(
        self, make_transport, make_poller, response
    ) -> None:
        """Test that a missing id or a non-zero code fails the job."""
        poller = make_poller(make_transport(response))
        with pytest.raises(JobFailedError, match="Invalid submit response"):
            await poller.submit("prompt")


# =============================================================================
# Polling
# =============================================================================


class TestPollUntilDone:
    """Tests for the polling loop and its budget."""

    @pytest.mark.asyncio
    async def test_first_poll_is_immediate(
        self, make_transport, make_poller, fake_clock
    ) -> None:
        transport = make_transport(SUCCEEDED)
        image = await make_poller(transport).poll_until_done(HANDLE)

        assert image.url == "https://cdn.test/p1.png"
        assert fake_clock.sleeps == []
        endpoint, payload, _ = transport.calls[0]
        assert endpoint == "https://crsai.test/v1/draw/result"
        assert payload == {"id": "job-1"}

    @pytest.mark.asyncio
    async def test_success_on_last_attempt(
        self, make_transport, make_poller, fake_clock
    ) -> None:
        """Test that success on attempt 60 is returned after exactly 60 calls."""
        transport = make_transport(*([PROCESSING] * 59), SUCCEEDED)
        image = await make_poller(transport).poll_until_done(HANDLE)

        assert image.url == "https://cdn.test/p1.png"
        assert len(transport.calls) == 60
        assert fake_clock.sleeps == [3.0] * 59

    @pytest.mark.asyncio
    async def test_timeout_after_max_attempts(
        self, make_transport, make_poller, fake_clock
    ) -> None:
        """Test that a job that never finishes times out within the budget."""
        transport = make_transport(PROCESSING, job_status("pending"))
        started = fake_clock()

        with pytest.raises(JobTimeoutError) as exc_info:
            await make_poller(transport).poll_until_done(HANDLE)

        assert len(transport.calls) == 60
        assert len(fake_clock.sleeps) == 59
        elapsed = fake_clock() - started
        assert elapsed == pytest.approx(59 * 3.0)
        assert elapsed <= 3.0 * 60
        assert exc_info.value.attempts == 60
        assert exc_info.value.job_id == "job-1"
        assert "may still be generating" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_wall_clock_budget_stops_polling(
        self, make_transport, make_poller, fake_clock
    ) -> None:
        """Test that slow polls count against the overall budget."""

        class SlowTransport:
            calls = 0

            async def post(self, endpoint, payload, headers):
                SlowTransport.calls += 1
                fake_clock.now += 10.0
                return PROCESSING

        with pytest.raises(JobTimeoutError):
            await make_poller(
                SlowTransport(), interval_seconds=1.0, max_attempts=20
            ).poll_until_done(HANDLE)

        assert SlowTransport.calls == 2

    @pytest.mark.asyncio
    async def test_hung_poll_is_cut_at_budget(self) -> None:
        """Test that a poll still in flight when the budget runs out is cancelled."""

        class HangingTransport:
            calls = 0

            async def post(self, endpoint, payload, headers):
                HangingTransport.calls += 1
                await asyncio.sleep(5.0)
                return SUCCEEDED

        poller = AsyncJobPoller(
            HangingTransport(),
            BASE_URL,
            HEADERS,
            PollingConfig(interval_seconds=0.05, max_attempts=2),
        )
        started = time.monotonic()

        with pytest.raises(JobTimeoutError) as exc_info:
            await poller.poll_until_done(HANDLE)

        assert time.monotonic() - started < 1.0
        assert HangingTransport.calls == 1
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_malformed_results_keep_polling(
        self, make_transport, make_poller
    ) -> None:
        transport = make_transport(job_status("succeeded", results=1), SUCCEEDED)
        image = await make_poller(transport).poll_until_done(HANDLE)
        assert image.url == "https://cdn.test/p1.png"
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_failed_job_stops_immediately(
        self, make_transport, make_poller
    ) -> None:
        transport = make_transport(
            PROCESSING, job_status("failed", failure_reason="nsfw")
        )
        with pytest.raises(JobFailedError) as exc_info:
            await make_poller(transport).poll_until_done(HANDLE)

        assert exc_info.value.reason == "nsfw"
        assert "Image generation failed: nsfw" in str(exc_info.value)
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_not_found_stops_immediately(
        self, make_transport, make_poller
    ) -> None:
        transport = make_transport({"code": -22, "msg": "not found"})
        with pytest.raises(JobNotFoundError, match="Task not found: job-1"):
            await make_poller(transport).poll_until_done(HANDLE)
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_transient_errors_are_absorbed(
        self, make_transport, make_poller
    ) -> None:
        """Test that a network error on one attempt does not end polling."""
        transport = make_transport(
            TransportError("connection reset"),
            ["malformed"],
            PROCESSING,
            SUCCEEDED,
        )
        image = await make_poller(transport).poll_until_done(HANDLE)
        assert image.url == "https://cdn.test/p1.png"
        assert len(transport.calls) == 4

    @pytest.mark.asyncio
    async def test_transient_error_on_final_attempt_is_raised(
        self, make_transport, make_poller
    ) -> None:
        transport = make_transport(PROCESSING, TransportError("gateway timeout"))
        with pytest.raises(TransportError, match="gateway timeout"):
            await make_poller(transport, max_attempts=3).poll_until_done(HANDLE)
        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_auth_error_is_not_absorbed(
        self, make_transport, make_poller
    ) -> None:
        transport = make_transport(AuthError("Unauthorized (401)", provider="crsai"))
        with pytest.raises(AuthError):
            await make_poller(transport).poll_until_done(HANDLE)
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_run_submits_then_polls(self, make_transport, make_poller) -> None:
        transport = make_transport({"code": 0, "data": {"id": "job-1"}}, SUCCEEDED)
        image = await make_poller(transport).run("prompt", {"model": "m"})
        assert image.url == "https://cdn.test/p1.png"
        assert transport.endpoints == [
            "https://crsai.test/v1/draw/nano-banana",
            "https://crsai.test/v1/draw/result",
        ]
