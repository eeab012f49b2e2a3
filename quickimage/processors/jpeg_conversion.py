import asyncio
import io
from pathlib import Path

import structlog
from PIL import Image

from quickimage.processors.base import BaseProcessor, ProcessingResult
from quickimage.storage.files import write_atomic

logger = structlog.get_logger()


def flatten_onto_white(image: Image.Image) -> Image.Image:
    """JPEG has no alpha channel: transparent pixels become white, not black."""
    if image.mode not in ("RGBA", "LA", "P"):
        return image.convert("RGB")

    rgba = image.convert("RGBA")
    flattened = Image.new("RGB", rgba.size, (255, 255, 255))
    flattened.paste(rgba, mask=rgba.getchannel("A"))
    return flattened


class JpegConversionProcessor(BaseProcessor):
    """
    Writes a JPEG copy next to the artifact ("<id>.png" -> "<id>.jpg").
    Transparency is flattened onto white.
    """

    def __init__(self, quality: int = 90):
        self.quality = quality

    async def process(self, source_path: Path, **kwargs) -> ProcessingResult:
        output_path = source_path.with_suffix(".jpg")
        if output_path == source_path:
            return ProcessingResult(processor_name=self.__class__.__name__, success=True, output_path=source_path)

        try:
            encoded = await asyncio.to_thread(self._encode, source_path)
            await write_atomic(output_path, encoded)
        except Exception as e:
            logger.warning("jpeg_conversion_failed", source=source_path.name, error=str(e))
            return ProcessingResult(
                processor_name=self.__class__.__name__,
                success=False,
                error_message=f"Failed to convert to JPEG: {str(e)}",
            )

        logger.info("jpeg_copy_written", output=output_path.name)
        return ProcessingResult(
            processor_name=self.__class__.__name__,
            success=True,
            output_path=output_path,
            metadata={"quality": self.quality},
        )

    def _encode(self, source_path: Path) -> bytes:
        with Image.open(source_path) as img:
            flattened = flatten_onto_white(img)

        buffer = io.BytesIO()
        flattened.save(buffer, "JPEG", quality=self.quality)
        return buffer.getvalue()
