import asyncio
import io
from pathlib import Path
from typing import Callable, Optional

import structlog
from PIL import Image

from quickimage.core.exceptions import PostProcessError
from quickimage.domain.models import DERIVED_SUFFIX
from quickimage.processors.base import BaseProcessor, ProcessingResult, RemovalMode
from quickimage.processors.jpeg_conversion import flatten_onto_white
from quickimage.storage.files import write_atomic

logger = structlog.get_logger()

SAVE_FORMATS = {".png": "PNG", ".jpg": "JPEG", ".jpeg": "JPEG", ".webp": "WEBP"}

Remover = Callable[[Image.Image], Image.Image]


def rembg_remover(image: Image.Image) -> Image.Image:
    # Imported on first use: loading rembg pulls in onnxruntime and the model weights
    from rembg import remove

    return remove(image)


def derived_path_for(source_path: Path) -> Path:
    """images/<id>.png -> images/<id>-background-removed.png"""
    return source_path.with_name(f"{source_path.stem}{DERIVED_SUFFIX}.png")


class BackgroundRemovalProcessor(BaseProcessor):
    """
    Cuts the subject out of a generated image.
    - REPLACE overwrites the source in place.
    - KEEP_BOTH_VERSIONS writes a PNG sibling and leaves the source untouched.
    Best effort: a failure leaves every existing file as it was.
    """

    def __init__(self, remover: Optional[Remover] = None):
        self.remover = remover or rembg_remover

    async def process(self, source_path: Path, mode: RemovalMode = RemovalMode.KEEP_BOTH_VERSIONS) -> ProcessingResult:
        log = logger.bind(source=source_path.name, mode=mode.value)
        target_path = source_path if mode is RemovalMode.REPLACE else derived_path_for(source_path)

        try:
            encoded = await asyncio.to_thread(self._remove, source_path, target_path)
            await write_atomic(target_path, encoded)

        except Exception as e:
            error = PostProcessError(f"Background removal failed: {e}", original_error=e)
            log.warning("background_removal_failed", error=str(e))
            return ProcessingResult(
                processor_name=self.__class__.__name__,
                success=False,
                error_message=error.message,
            )

        log.info("background_removed", output=target_path.name)
        return ProcessingResult(
            processor_name=self.__class__.__name__,
            success=True,
            output_path=target_path,
            metadata={"mode": mode.value},
        )

    def _remove(self, source_path: Path, target_path: Path) -> bytes:
        with Image.open(source_path) as img:
            img.load()
            cutout = self.remover(img)

        image_format = SAVE_FORMATS.get(target_path.suffix.lower(), "PNG")
        if image_format == "JPEG":
            cutout = flatten_onto_white(cutout)

        buffer = io.BytesIO()
        cutout.save(buffer, image_format)
        return buffer.getvalue()
