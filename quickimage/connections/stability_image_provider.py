from typing import Any, Dict, Optional

import httpx
import structlog

from quickimage.connections.http import build_client, send
from quickimage.connections.options import parse_options
from quickimage.core.config import Settings
from quickimage.core.exceptions import MissingCredentialsError, ProviderRejectedError, UnsupportedModelError
from quickimage.domain.interfaces import ImageGenerator
from quickimage.domain.models import (
    CredentialStatus,
    GenerationRequest,
    ImageModel,
    RawImage,
    StableCoreOptions,
    StableDiffusionOptions,
)

logger = structlog.get_logger()

STATUS_COMPLETE = 200

# Model -> generate endpoint path
ENDPOINTS = {
    ImageModel.STABLE_DIFFUSION_3: "/stable-image/generate/sd3",
    ImageModel.STABLE_IMAGE_CORE: "/stable-image/generate/core",
}

# Stability names the jpeg output format "jpeg"; the file keeps ".jpg"
EXTENSIONS = {"png": "png", "jpeg": "jpg", "webp": "webp"}


class StabilityImageGenerator(ImageGenerator):
    """
    Stable Diffusion 3 and Stable Image Core.
    Both endpoints take a multipart form and answer with raw image bytes.
    """

    models = (ImageModel.STABLE_DIFFUSION_3, ImageModel.STABLE_IMAGE_CORE)
    key_name = "STABILITY_API_KEY"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.STABILITY_API_KEY
        self.base_url = settings.STABILITY_BASE_URL.rstrip("/")
        self.timeout = settings.HTTP_TIMEOUT
        self.transport = transport

    def credentials_status(self) -> Dict[ImageModel, CredentialStatus]:
        return {model: CredentialStatus(exists=bool(self.api_key), name=self.key_name) for model in self.models}

    def _build_form(self, model: ImageModel, request: GenerationRequest) -> Dict[str, Any]:
        if model is ImageModel.STABLE_IMAGE_CORE:
            core = parse_options(StableCoreOptions, request.provider_options)
            form = {"prompt": request.prompt, "output_format": core.output_format, "aspect_ratio": core.aspect_ratio}
            if core.style_preset:
                form["style_preset"] = core.style_preset
            return form

        sd3 = parse_options(StableDiffusionOptions, request.provider_options)
        return {"prompt": request.prompt, "output_format": sd3.output_format, "aspect_ratio": sd3.aspect_ratio}

    async def generate(self, request: GenerationRequest) -> RawImage:
        try:
            model = ImageModel(request.model)
        except ValueError:
            raise UnsupportedModelError(request.model)
        if model not in ENDPOINTS:
            raise UnsupportedModelError(request.model)
        if not self.api_key:
            raise MissingCredentialsError("Stability", self.key_name)

        form = self._build_form(model, request)

        async with build_client(self.timeout, self.transport) as client:
            headers = {"Authorization": f"Bearer {self.api_key}", "Accept": "image/*"}

            logger.info("stability_image_requested", image_id=request.id, model=model.value)
            # The "none" file part forces multipart/form-data encoding
            resp = await send(
                client,
                "POST",
                f"{self.base_url}{ENDPOINTS[model]}",
                data=form,
                files={"none": ""},
                headers=headers,
            )

        if resp.status_code != STATUS_COMPLETE:
            raise ProviderRejectedError(resp.status_code, resp.text)

        fields = {"aspect_ratio": form["aspect_ratio"]}
        if "style_preset" in form:
            fields["style_preset"] = form["style_preset"]

        return RawImage(data=resp.content, extension=EXTENSIONS[form["output_format"]], provider_fields=fields)
