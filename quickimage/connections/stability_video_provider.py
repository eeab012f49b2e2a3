import asyncio
from typing import Optional

import httpx
import structlog

from quickimage.connections.http import build_client, send
from quickimage.core.config import Settings
from quickimage.core.exceptions import MissingCredentialsError, ProviderRejectedError
from quickimage.domain.interfaces import VideoGenerator
from quickimage.processors.video_frame import prepare_video_frame
from quickimage.services.job_poller import JobPoller, VideoJob

logger = structlog.get_logger()

CFG_SCALE_DEFAULT = 1.8
MOTION_BUCKET_ID_DEFAULT = 127


class StabilityVideoGenerator(VideoGenerator):
    """
    Stable Video Diffusion image-to-video.
    Submission returns a generation id; the video is fetched by polling.
    """

    key_name = "STABILITY_API_KEY"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None, sleep=asyncio.sleep):
        self.api_key = settings.STABILITY_API_KEY
        self.base_url = settings.STABILITY_BASE_URL.rstrip("/")
        self.timeout = settings.HTTP_TIMEOUT
        self.poll_interval = settings.VIDEO_POLL_INTERVAL
        self.poll_max_attempts = settings.VIDEO_POLL_MAX_ATTEMPTS
        self.transport = transport
        self.sleep = sleep

    async def generate_video(self, image_data: bytes) -> bytes:
        if not self.api_key:
            raise MissingCredentialsError("Stability", self.key_name)

        frame = await asyncio.to_thread(prepare_video_frame, image_data)

        async with build_client(self.timeout, self.transport) as client:
            # 1. Submit Job
            logger.info("submitting_video_job")
            resp = await send(
                client,
                "POST",
                f"{self.base_url}/image-to-video",
                files={"image": ("image.png", frame, "image/png")},
                data={"seed": "0", "cfg_scale": str(CFG_SCALE_DEFAULT), "motion_bucket_id": str(MOTION_BUCKET_ID_DEFAULT)},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            if resp.status_code != 200:
                raise ProviderRejectedError(resp.status_code, resp.text)

            job_id = resp.json().get("id")
            if not job_id:
                raise ProviderRejectedError(resp.status_code, resp.text, message="Stability returned no generation id")
            logger.info("video_job_submitted", job_id=job_id)

            # 2. Poll for Completion
            async def fetch_status(generation_id: str) -> httpx.Response:
                return await send(
                    client,
                    "GET",
                    f"{self.base_url}/image-to-video/result/{generation_id}",
                    headers={"Authorization": f"Bearer {self.api_key}", "Accept": "video/*"},
                )

            poller = JobPoller(
                fetch_status,
                interval=self.poll_interval,
                max_attempts=self.poll_max_attempts,
                sleep=self.sleep,
            )
            return await poller.run(VideoJob(job_id=job_id))
