from pathlib import Path
from typing import Dict, List, Mapping, Optional

import aiofiles
import structlog

from quickimage.core.exceptions import QuickImageError, UnsupportedModelError
from quickimage.core.telemetry import tracer
from quickimage.domain.interfaces import ImageGenerator, VideoGenerator
from quickimage.domain.models import (
    ErrorDetails,
    GenerationRequest,
    GenerationResult,
    GenerationStage,
    ImageMetadata,
    ImageModel,
    RawImage,
    VideoResult,
)
from quickimage.processors.background_removal import BackgroundRemovalProcessor
from quickimage.processors.base import RemovalMode
from quickimage.processors.jpeg_conversion import JpegConversionProcessor
from quickimage.storage.artifact_store import ArtifactStore

logger = structlog.get_logger()

ERROR_PREFIX = "Error: "
VIDEO_SUFFIX = ".mp4"

# Sidecar fields a provider may fill through RawImage.provider_fields
PROVIDER_METADATA_FIELDS = ("size", "style", "quality", "aspect_ratio", "style_preset")


def resolve_model(value: str) -> ImageModel:
    try:
        return ImageModel(value)
    except ValueError:
        raise UnsupportedModelError(value)


def to_error_details(error: Exception) -> ErrorDetails:
    if isinstance(error, QuickImageError):
        return ErrorDetails(code=error.code, message=error.message)
    return ErrorDetails(code=QuickImageError.code, message=f"Unexpected error: {error}")


class GenerationOrchestrator:
    """
    Runs one generation attempt per call:

        Received -> ProviderInvoked -> (PostProcessing)? -> Persisted -> Reported
        Received -> ProviderInvoked -> Failed -> Reported

    Holds configuration and collaborators only, so concurrent calls for
    different ids need no coordination. Nothing is retried and no exception
    escapes `generate`; failures come back as a GenerationResult.
    """

    def __init__(
        self,
        store: ArtifactStore,
        generators: Mapping[ImageModel, ImageGenerator],
        background_remover: Optional[BackgroundRemovalProcessor] = None,
        jpeg_converter: Optional[JpegConversionProcessor] = None,
        video_generator: Optional[VideoGenerator] = None,
    ):
        self.store = store
        self.generators = dict(generators)
        self.background_remover = background_remover or BackgroundRemovalProcessor()
        self.jpeg_converter = jpeg_converter or JpegConversionProcessor()
        self.video_generator = video_generator

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        log = logger.bind(image_id=request.id, model=request.model)
        stages: List[GenerationStage] = [GenerationStage.RECEIVED]
        wrote_files = False
        raw: Optional[RawImage] = None

        log.info("generation_received", prompt=request.prompt)

        with tracer.start_as_current_span("generate_image") as span:
            span.set_attribute("image.id", request.id)
            span.set_attribute("image.model", request.model)

            try:
                # 1. Pick the provider client
                model = resolve_model(request.model)
                generator = self.generators.get(model)
                if generator is None:
                    raise UnsupportedModelError(request.model)

                # 2. Call the provider
                stages.append(GenerationStage.PROVIDER_INVOKED)
                raw = await generator.generate(request)

                # 3. Persist the artifact
                artifact_path = await self.store.write_artifact(request.id, raw.data, raw.extension)
                wrote_files = True

                # 4. Best-effort post-processing
                derived_paths: Dict[str, Path] = {}
                if request.post_process.wants_background_removal or request.post_process.save_jpg_copy:
                    stages.append(GenerationStage.POST_PROCESSING)
                    derived_paths = await self._post_process(request, artifact_path, log)

                # 5. Sidecar last: its presence marks a finished generation
                metadata = self._build_metadata(request, raw, derived_paths)
                metadata_path = await self.store.write_metadata(request.id, metadata)
                stages.append(GenerationStage.PERSISTED)

            except Exception as e:
                stages.append(GenerationStage.FAILED)
                if isinstance(e, QuickImageError):
                    log.warning("generation_failed", error_code=e.code, error=e.message)
                else:
                    log.exception("generation_crashed")
                span.record_exception(e)

                if wrote_files:
                    await self._cleanup(request.id, log)

                stages.append(GenerationStage.REPORTED)
                details = to_error_details(e)
                return GenerationResult(
                    id=request.id,
                    model=request.model,
                    prompt=request.prompt,
                    succeeded=False,
                    error=details,
                    error_message=f"{ERROR_PREFIX}{details.message}",
                    revised_prompt=raw.revised_prompt if raw else None,
                    stages=stages,
                )

        stages.append(GenerationStage.REPORTED)
        log.info("generation_succeeded", artifact=artifact_path.name, derived=sorted(derived_paths))
        return GenerationResult(
            id=request.id,
            model=request.model,
            prompt=request.prompt,
            succeeded=True,
            revised_prompt=raw.revised_prompt,
            temporary_url=raw.temporary_url,
            artifact_path=artifact_path,
            metadata_path=metadata_path,
            derived_paths=derived_paths,
            stages=stages,
        )

    async def _post_process(self, request: GenerationRequest, artifact_path: Path, log) -> Dict[str, Path]:
        options = request.post_process
        derived: Dict[str, Path] = {}

        if options.wants_background_removal:
            mode = RemovalMode.KEEP_BOTH_VERSIONS if options.remove_background_keep_original else RemovalMode.REPLACE
            result = await self.background_remover.process(artifact_path, mode=mode)
            if not result.success:
                log.warning("post_process_skipped", processor=result.processor_name, error=result.error_message)
            elif mode is RemovalMode.KEEP_BOTH_VERSIONS and result.output_path:
                derived["background_removed"] = result.output_path

        if options.save_jpg_copy:
            result = await self.jpeg_converter.process(artifact_path)
            if not result.success:
                log.warning("post_process_skipped", processor=result.processor_name, error=result.error_message)
            elif result.output_path and result.output_path != artifact_path:
                derived["jpg"] = result.output_path

        return derived

    def _build_metadata(self, request: GenerationRequest, raw: RawImage, derived_paths: Dict[str, Path]) -> ImageMetadata:
        fields = {key: raw.provider_fields[key] for key in PROVIDER_METADATA_FIELDS if key in raw.provider_fields}
        background_removed = derived_paths.get("background_removed")
        return ImageMetadata(
            id=request.id,
            model=request.model,
            prompt=request.prompt,
            extension=raw.extension,
            revised_prompt=raw.revised_prompt,
            temporary_url=raw.temporary_url,
            background_removed=background_removed.name if background_removed else None,
            **fields,
        )

    async def _cleanup(self, image_id: str, log) -> None:
        try:
            await self.store.discard(image_id)
        except OSError as e:
            log.error("cleanup_failed", error=str(e))

    async def generate_video(self, image_id: str) -> VideoResult:
        """
        Animates a stored image and keeps the clip as "<id>.mp4".
        Same contract as `generate`: failures are returned, never raised.
        """
        log = logger.bind(image_id=image_id)

        with tracer.start_as_current_span("generate_video") as span:
            span.set_attribute("image.id", image_id)
            try:
                if self.video_generator is None:
                    raise UnsupportedModelError("image-to-video")

                metadata = await self.store.read_metadata(image_id)
                async with aiofiles.open(self.store.artifact_path_for(metadata), "rb") as f:
                    image_data = await f.read()

                log.info("video_generation_started")
                video = await self.video_generator.generate_video(image_data)
                video_path = await self.store.write_derived(image_id, VIDEO_SUFFIX, video)

            except Exception as e:
                if isinstance(e, QuickImageError):
                    log.warning("video_generation_failed", error_code=e.code, error=e.message)
                else:
                    log.exception("video_generation_crashed")
                span.record_exception(e)
                details = to_error_details(e)
                return VideoResult(
                    id=image_id,
                    succeeded=False,
                    error=details,
                    error_message=f"{ERROR_PREFIX}{details.message}",
                )

        log.info("video_generation_succeeded", path=video_path.name)
        return VideoResult(id=image_id, succeeded=True, video_path=video_path)
