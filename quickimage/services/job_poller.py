import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

import httpx
import structlog

from quickimage.core.exceptions import PollingFailedError, PollingTimeoutError, TransportError

logger = structlog.get_logger()

STATUS_COMPLETE = 200
STATUS_STILL_RUNNING = 202


class JobState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETE = "complete"
    FAILED = "failed"


# Allowed forward moves; terminal states have none
_TRANSITIONS = {
    JobState.SUBMITTED: {JobState.POLLING, JobState.FAILED},
    JobState.POLLING: {JobState.POLLING, JobState.COMPLETE, JobState.FAILED},
    JobState.COMPLETE: set(),
    JobState.FAILED: set(),
}


@dataclass
class VideoJob:
    """
    A provider-side job handle. Created on successful submission and only
    ever moves forward until it is Complete or Failed.
    """

    job_id: str
    state: JobState = JobState.SUBMITTED
    result: Optional[bytes] = None
    attempts: int = 0
    history: List[JobState] = field(default_factory=lambda: [JobState.SUBMITTED])

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.COMPLETE, JobState.FAILED)

    def advance(self, new_state: JobState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Job {self.job_id} cannot move from {self.state.value} to {new_state.value}")
        # Repeated polls stay in POLLING without growing the history
        if new_state != self.state:
            self.history.append(new_state)
        self.state = new_state


StatusFetcher = Callable[[str], Awaitable[httpx.Response]]


class JobPoller:
    """
    Polls a job on a fixed interval (no backoff, no jitter).
    202 keeps polling, 200 completes with the body, anything else fails at once.
    `max_attempts=None` polls until a terminal status is seen.
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        interval: float = 0.25,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetch_status = fetch_status
        self.interval = interval
        self.max_attempts = max_attempts
        self.sleep = sleep

    async def run(self, job: VideoJob) -> bytes:
        job.advance(JobState.POLLING)

        while True:
            if self.max_attempts is not None and job.attempts >= self.max_attempts:
                job.advance(JobState.FAILED)
                logger.warning("job_poll_timeout", job_id=job.job_id, attempts=job.attempts)
                raise PollingTimeoutError(job.job_id, job.attempts)

            await self.sleep(self.interval)
            job.attempts += 1

            try:
                response = await self.fetch_status(job.job_id)
            except TransportError:
                job.advance(JobState.FAILED)
                raise
            except httpx.HTTPError as e:
                job.advance(JobState.FAILED)
                raise TransportError(e) from e

            logger.debug("job_polled", job_id=job.job_id, attempt=job.attempts, status_code=response.status_code)

            if response.status_code == STATUS_STILL_RUNNING:
                job.advance(JobState.POLLING)
                continue

            if response.status_code == STATUS_COMPLETE:
                job.result = response.content
                job.advance(JobState.COMPLETE)
                logger.info("job_complete", job_id=job.job_id, attempts=job.attempts)
                return job.result

            job.advance(JobState.FAILED)
            logger.error("job_failed", job_id=job.job_id, status_code=response.status_code)
            raise PollingFailedError(response.status_code, response.text)
