import json
from pathlib import Path
from typing import AsyncIterator, List

import aiofiles
import aiofiles.os
import structlog
from pydantic import ValidationError

from quickimage.core.exceptions import ArtifactNotFoundError, InvalidRequestError, StorageError
from quickimage.domain.models import DERIVED_SUFFIX, ImageMetadata, is_valid_image_id
from quickimage.storage.files import remove_if_exists, write_atomic

logger = structlog.get_logger()

METADATA_SUFFIX = ".json"


class ArtifactStore:
    """
    A single directory holding "<id>.<ext>" images and "<id>.json" sidecars.
    Ordering invariant: a sidecar is only ever written after its artifact,
    and a sidecar whose artifact is missing is treated as absent.
    """

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)

    # --- Paths ---

    def _check_id(self, image_id: str) -> None:
        if not is_valid_image_id(image_id):
            raise InvalidRequestError(f"Invalid image id: {image_id!r}")

    def artifact_path(self, image_id: str, extension: str = "png") -> Path:
        self._check_id(image_id)
        return self.base_path / f"{image_id}.{extension.lstrip('.')}"

    def metadata_path(self, image_id: str) -> Path:
        self._check_id(image_id)
        return self.base_path / f"{image_id}{METADATA_SUFFIX}"

    def artifact_path_for(self, metadata: ImageMetadata) -> Path:
        return self.artifact_path(metadata.id, metadata.extension)

    # --- Writes ---

    async def write_artifact(self, image_id: str, data: bytes, extension: str = "png") -> Path:
        path = self.artifact_path(image_id, extension)
        try:
            await write_atomic(path, data)
        except OSError as e:
            logger.error("artifact_write_failed", image_id=image_id, error=str(e))
            raise StorageError(f"Could not write artifact for {image_id}: {e}", original_error=e) from e

        logger.debug("artifact_written", image_id=image_id, path=str(path))
        return path

    async def write_metadata(self, image_id: str, metadata: ImageMetadata) -> Path:
        artifact = self.artifact_path(image_id, metadata.extension)
        if not await aiofiles.os.path.exists(artifact):
            raise StorageError(f"Refusing to write metadata for {image_id}: artifact {artifact.name} is missing")

        path = self.metadata_path(image_id)
        payload = metadata.model_dump_json(exclude={"id"}, exclude_none=True, indent=2)
        try:
            await write_atomic(path, payload.encode("utf-8"))
        except OSError as e:
            logger.error("metadata_write_failed", image_id=image_id, error=str(e))
            raise StorageError(f"Could not write metadata for {image_id}: {e}", original_error=e) from e

        logger.debug("metadata_written", image_id=image_id, path=str(path))
        return path

    async def write_derived(self, image_id: str, suffix: str, data: bytes) -> Path:
        """Derived files ("<id>.mp4", ...) are disposable and never listed."""
        self._check_id(image_id)
        path = self.base_path / f"{image_id}{suffix}"
        try:
            return await write_atomic(path, data)
        except OSError as e:
            raise StorageError(f"Could not write {path.name}: {e}", original_error=e) from e

    async def discard(self, image_id: str) -> List[Path]:
        """Removes the sidecar first, then the artifact and every derived file of the id."""
        self._check_id(image_id)
        removed: List[Path] = []

        sidecar = self.metadata_path(image_id)
        if await remove_if_exists(sidecar):
            removed.append(sidecar)

        for name in await self._list_names():
            stem = name.split(".", 1)[0]
            if stem in (image_id, f"{image_id}{DERIVED_SUFFIX}") and not name.startswith("."):
                path = self.base_path / name
                if await remove_if_exists(path):
                    removed.append(path)

        if removed:
            logger.info("artifacts_discarded", image_id=image_id, files=[p.name for p in removed])
        return removed

    # --- Reads ---

    async def read_metadata(self, image_id: str) -> ImageMetadata:
        path = self.metadata_path(image_id)
        metadata = await self._load(path)
        if metadata is None or not await aiofiles.os.path.exists(self.artifact_path_for(metadata)):
            raise ArtifactNotFoundError(f"Image {image_id} not found")
        return metadata

    async def iter_metadata(self) -> AsyncIterator[ImageMetadata]:
        """
        Scans sidecars in directory order. Orphans (no artifact) and unreadable
        sidecars are skipped, so concurrent writers never surface as errors.
        """
        for name in await self._list_names():
            if not name.endswith(METADATA_SUFFIX) or name.startswith("."):
                continue
            metadata = await self._load(self.base_path / name)
            if metadata is None:
                continue
            if not await aiofiles.os.path.exists(self.artifact_path_for(metadata)):
                logger.debug("orphaned_sidecar_skipped", image_id=metadata.id)
                continue
            yield metadata

    async def list_newest_first(self, limit: int = 50) -> List[ImageMetadata]:
        if limit <= 0:
            return []

        entries = [m async for m in self.iter_metadata()]
        entries.sort(key=lambda m: m.id, reverse=True)
        return entries[:limit]

    async def _list_names(self) -> List[str]:
        try:
            return await aiofiles.os.listdir(self.base_path)
        except FileNotFoundError:
            return []

    async def _load(self, path: Path):
        image_id = path.name[: -len(METADATA_SUFFIX)]
        if not is_valid_image_id(image_id):
            return None

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                raw = json.loads(await f.read())
            raw["id"] = image_id
            return ImageMetadata.model_validate(raw)
        except FileNotFoundError:
            return None
        except (OSError, TypeError, ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning("unreadable_sidecar_skipped", image_id=image_id, error=str(e))
            return None
