from unittest.mock import AsyncMock

import httpx
import pytest

from quickimage.core.exceptions import PollingFailedError, PollingTimeoutError, TransportError
from quickimage.services.job_poller import JobPoller, JobState, VideoJob


def scripted_fetch(*responses):
    """Returns the given responses in order, one per poll."""
    return AsyncMock(side_effect=list(responses))


@pytest.mark.asyncio
async def test_running_then_complete():
    # 1. Setup
    fetch = scripted_fetch(
        httpx.Response(202),
        httpx.Response(202),
        httpx.Response(202),
        httpx.Response(200, content=b"MP4DATA"),
    )
    sleep = AsyncMock()
    job = VideoJob(job_id="gen-1")

    # 2. Execute
    result = await JobPoller(fetch, interval=0.25, sleep=sleep).run(job)

    # 3. Assert
    assert result == b"MP4DATA"
    assert job.result == b"MP4DATA"
    assert job.attempts == 4
    assert fetch.await_count == 4
    fetch.assert_awaited_with("gen-1")
    sleep.assert_awaited_with(0.25)
    assert job.history == [JobState.SUBMITTED, JobState.POLLING, JobState.COMPLETE]
    assert job.is_terminal


@pytest.mark.asyncio
async def test_unexpected_status_fails_at_once():
    fetch = scripted_fetch(httpx.Response(500, text="internal error"))
    job = VideoJob(job_id="gen-1")

    with pytest.raises(PollingFailedError) as exc_info:
        await JobPoller(fetch, sleep=AsyncMock()).run(job)

    assert exc_info.value.status_code == 500
    assert exc_info.value.raw_body == "internal error"
    assert fetch.await_count == 1
    assert job.state == JobState.FAILED
    assert job.history.count(JobState.FAILED) == 1
    assert JobState.COMPLETE not in job.history


@pytest.mark.asyncio
async def test_attempt_cap_times_out():
    fetch = AsyncMock(return_value=httpx.Response(202))
    job = VideoJob(job_id="gen-1")

    with pytest.raises(PollingTimeoutError) as exc_info:
        await JobPoller(fetch, max_attempts=3, sleep=AsyncMock()).run(job)

    assert exc_info.value.attempts == 3
    assert fetch.await_count == 3
    assert job.state == JobState.FAILED


@pytest.mark.asyncio
async def test_transport_error_fails_job():
    fetch = AsyncMock(side_effect=httpx.ReadTimeout("timed out"))
    job = VideoJob(job_id="gen-1")

    with pytest.raises(TransportError):
        await JobPoller(fetch, sleep=AsyncMock()).run(job)

    assert job.state == JobState.FAILED


@pytest.mark.asyncio
async def test_terminal_job_cannot_be_polled_again():
    job = VideoJob(job_id="gen-1")
    await JobPoller(scripted_fetch(httpx.Response(200, content=b"x")), sleep=AsyncMock()).run(job)

    with pytest.raises(ValueError):
        await JobPoller(scripted_fetch(httpx.Response(200)), sleep=AsyncMock()).run(job)

    assert job.history == [JobState.SUBMITTED, JobState.POLLING, JobState.COMPLETE]


def test_states_only_move_forward():
    job = VideoJob(job_id="gen-1")

    with pytest.raises(ValueError):
        job.advance(JobState.COMPLETE)

    job.advance(JobState.FAILED)
    with pytest.raises(ValueError):
        job.advance(JobState.POLLING)
