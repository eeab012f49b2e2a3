import httpx
import pytest

from quickimage.connections.stability_image_provider import StabilityImageGenerator
from quickimage.core.exceptions import InvalidOptionsError, MissingCredentialsError, ProviderRejectedError
from quickimage.domain.models import GenerationRequest, ImageModel


def _form_field(content: bytes, name: str) -> bytes:
    """Pulls a single text field out of a multipart body."""
    marker = f'name="{name}"'.encode()
    start = content.index(marker) + len(marker)
    value_start = content.index(b"\r\n\r\n", start) + 4
    return content[value_start : content.index(b"\r\n", value_start)]


@pytest.fixture
def captured():
    return []


@pytest.fixture
def generator_factory(settings, captured):
    def _build(status=200, content=b"IMAGEBYTES", **setting_overrides):
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(status, content=content)

        effective = settings.model_copy(update=setting_overrides) if setting_overrides else settings
        return StabilityImageGenerator(effective, transport=httpx.MockTransport(handler))

    return _build


@pytest.mark.asyncio
async def test_sd3_sends_multipart_form(generator_factory, captured):
    generator = generator_factory()

    raw = await generator.generate(
        GenerationRequest(
            id="img1",
            model="stabilitydiffusion-3",
            prompt="a lighthouse",
            provider_options={"aspect_ratio": "16:9"},
        )
    )

    request = captured[0]
    assert request.url == "https://stability.test/v2beta/stable-image/generate/sd3"
    assert request.headers["Accept"] == "image/*"
    assert request.headers["Authorization"] == "Bearer sk-test-stability"
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert _form_field(request.content, "prompt") == b"a lighthouse"
    assert _form_field(request.content, "aspect_ratio") == b"16:9"
    assert _form_field(request.content, "output_format") == b"png"
    assert b'name="style_preset"' not in request.content

    assert raw.data == b"IMAGEBYTES"
    assert raw.extension == "png"
    assert raw.provider_fields == {"aspect_ratio": "16:9"}


@pytest.mark.asyncio
async def test_core_sends_style_preset(generator_factory, captured):
    generator = generator_factory()

    raw = await generator.generate(
        GenerationRequest(
            id="img1",
            model="stable-image-core",
            prompt="a lighthouse",
            provider_options={"style_preset": "pixel-art", "output_format": "jpeg"},
        )
    )

    request = captured[0]
    assert request.url.path == "/v2beta/stable-image/generate/core"
    assert _form_field(request.content, "style_preset") == b"pixel-art"
    assert _form_field(request.content, "output_format") == b"jpeg"
    # Stored under the conventional file extension
    assert raw.extension == "jpg"
    assert raw.provider_fields == {"aspect_ratio": "1:1", "style_preset": "pixel-art"}


@pytest.mark.asyncio
async def test_style_preset_not_accepted_for_sd3(generator_factory, captured):
    generator = generator_factory()

    with pytest.raises(InvalidOptionsError):
        await generator.generate(
            GenerationRequest(model="stabilitydiffusion-3", prompt="x", provider_options={"style_preset": "anime"})
        )

    assert captured == []


@pytest.mark.asyncio
async def test_rejection_keeps_raw_body(generator_factory):
    body = b'{"name": "content_moderation", "errors": ["flagged"]}'
    generator = generator_factory(status=403, content=body)

    with pytest.raises(ProviderRejectedError) as exc_info:
        await generator.generate(GenerationRequest(model="stable-image-core", prompt="x"))

    assert exc_info.value.status_code == 403
    assert exc_info.value.raw_body == body.decode()


@pytest.mark.asyncio
async def test_missing_key_fails_before_any_request(generator_factory, captured):
    generator = generator_factory(STABILITY_API_KEY=None)

    with pytest.raises(MissingCredentialsError):
        await generator.generate(GenerationRequest(model="stable-image-core", prompt="x"))

    assert captured == []


def test_credentials_status_covers_both_models(generator_factory):
    status = generator_factory().credentials_status()

    assert set(status) == {ImageModel.STABLE_DIFFUSION_3, ImageModel.STABLE_IMAGE_CORE}
    assert all(s.exists and s.name == "STABILITY_API_KEY" for s in status.values())
