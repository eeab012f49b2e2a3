import base64
from typing import Dict, Optional

import httpx
import structlog

from quickimage.connections.http import build_client, send
from quickimage.connections.options import parse_options
from quickimage.core.config import Settings
from quickimage.core.exceptions import MissingCredentialsError, ProviderRejectedError, UnsupportedModelError
from quickimage.domain.interfaces import ImageGenerator
from quickimage.domain.models import CredentialStatus, DallEOptions, GenerationRequest, ImageModel, RawImage

logger = structlog.get_logger()

# Returned image URLs expire after roughly this long
TEMPORARY_URL_VALID_MINUTES = 60


class OpenAIImageGenerator(ImageGenerator):
    """
    DALL-E via the Images API.
    The API answers with a short-lived URL, so the bytes are downloaded
    before control returns to the orchestrator.
    """

    models = (ImageModel.DALL_E_3,)
    key_name = "OPENAI_API_KEY"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.OPENAI_API_KEY
        self.base_url = settings.OPENAI_BASE_URL.rstrip("/")
        self.timeout = settings.HTTP_TIMEOUT
        self.transport = transport

    def credentials_status(self) -> Dict[ImageModel, CredentialStatus]:
        return {model: CredentialStatus(exists=bool(self.api_key), name=self.key_name) for model in self.models}

    async def generate(self, request: GenerationRequest) -> RawImage:
        if request.model not in {m.value for m in self.models}:
            raise UnsupportedModelError(request.model)
        if not self.api_key:
            raise MissingCredentialsError("OpenAI", self.key_name)

        options = parse_options(DallEOptions, request.provider_options)

        async with build_client(self.timeout, self.transport) as client:
            headers = {"Authorization": f"Bearer {self.api_key}"}
            payload = {
                "model": request.model,
                "prompt": request.prompt,
                "size": options.size,
                "style": options.style,
                "quality": options.quality,
                "n": 1,
            }

            # 1. Request the image
            logger.info("openai_image_requested", image_id=request.id, size=options.size)
            resp = await send(client, "POST", f"{self.base_url}/images/generations", json=payload, headers=headers)
            if resp.status_code != 200:
                raise ProviderRejectedError(resp.status_code, resp.text)

            try:
                items = resp.json().get("data") or []
                item = items[0] if items else None
            except (ValueError, AttributeError, TypeError, KeyError) as e:
                # json.JSONDecodeError is a ValueError
                raise ProviderRejectedError(
                    resp.status_code, resp.text, message="OpenAI returned an unreadable body"
                ) from e
            if not isinstance(item, dict):
                raise ProviderRejectedError(resp.status_code, resp.text, message="OpenAI returned no image")

            # 2. Fetch the bytes while the URL is still valid
            image_url = item.get("url")
            if item.get("b64_json"):
                data = base64.b64decode(item["b64_json"])
            elif image_url:
                logger.info(
                    "downloading_temporary_image", image_id=request.id, valid_minutes=TEMPORARY_URL_VALID_MINUTES
                )
                file_resp = await send(client, "GET", image_url)
                if file_resp.status_code != 200:
                    raise ProviderRejectedError(file_resp.status_code, file_resp.text)
                data = file_resp.content
            else:
                raise ProviderRejectedError(resp.status_code, resp.text, message="OpenAI returned no url or b64_json")

        return RawImage(
            data=data,
            extension="png",
            revised_prompt=item.get("revised_prompt"),
            temporary_url=image_url,
            provider_fields={"size": options.size, "style": options.style, "quality": options.quality},
        )
