from abc import ABC, abstractmethod
from typing import Dict, Tuple

from quickimage.domain.models import CredentialStatus, GenerationRequest, ImageModel, RawImage


class ImageGenerator(ABC):
    # Models this client can serve; the factory maps each one to exactly one client
    models: Tuple[ImageModel, ...] = ()

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> RawImage:
        """Returns raw image bytes (fetched, never just a temporary URL)"""
        pass

    @abstractmethod
    def credentials_status(self) -> Dict[ImageModel, CredentialStatus]:
        """Reports whether the API key each model needs is configured"""
        pass


class VideoGenerator(ABC):
    @abstractmethod
    async def generate_video(self, image_data: bytes) -> bytes:
        """Submits an image-to-video job and waits for the video bytes"""
        pass
