import asyncio
import io

import pytest
from PIL import Image

from quickimage.core.config import Settings
from quickimage.domain.interfaces import ImageGenerator, VideoGenerator
from quickimage.domain.models import CredentialStatus, ImageMetadata, ImageModel
from quickimage.storage.artifact_store import ArtifactStore


def make_png(color="red", size=(64, 64), mode="RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color=color).save(buffer, "PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the developer's .env and environment keys."""
    return Settings(
        _env_file=None,
        IMAGE_FOLDER=tmp_path / "images",
        OPENAI_API_KEY="sk-test-openai",
        STABILITY_API_KEY="sk-test-stability",
        OPENAI_BASE_URL="https://openai.test/v1",
        STABILITY_BASE_URL="https://stability.test/v2beta",
        VIDEO_POLL_INTERVAL=0,
    )


@pytest.fixture
def store(settings):
    return ArtifactStore(settings.IMAGE_FOLDER)


@pytest.fixture
def save_image(store, png_bytes):
    """Stores an artifact + sidecar pair the way a finished generation would."""

    async def _save(image_id: str, prompt: str, model: str = "dall-e-3"):
        await store.write_artifact(image_id, png_bytes)
        await store.write_metadata(image_id, ImageMetadata(id=image_id, model=model, prompt=prompt))

    return _save


class FakeGenerator(ImageGenerator):
    """Serves every model; returns `raw` or raises `error`."""

    models = tuple(ImageModel)

    def __init__(self, raw=None, error=None):
        self.raw = raw
        self.error = error
        self.requests = []

    def credentials_status(self):
        return {m: CredentialStatus(exists=True, name="FAKE_KEY") for m in self.models}

    async def generate(self, request):
        self.requests.append(request)
        # Yield so concurrent calls interleave
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        return self.raw


class FakeVideoGenerator(VideoGenerator):
    def __init__(self, error=None):
        self.error = error
        self.received = None

    async def generate_video(self, image_data):
        self.received = image_data
        if self.error:
            raise self.error
        return b"MP4DATA"
