from typing import List

import structlog

from quickimage.core.exceptions import InvalidRequestError
from quickimage.domain.models import ImageMetadata
from quickimage.storage.artifact_store import ArtifactStore

logger = structlog.get_logger()


class SearchIndex:
    """
    Prompt search over the sidecars of an ArtifactStore.
    There is no persisted index: every query is a full scan, which is fine
    for the number of images one user generates.
    """

    def __init__(self, store: ArtifactStore):
        self.store = store

    async def search(self, query: str, limit: int = 100, newest_first: bool = False) -> List[ImageMetadata]:
        """
        Case-insensitive substring match against each stored prompt.
        Results come back in scan order unless `newest_first` is set.
        """
        if not (query or "").strip():
            raise InvalidRequestError("Search query must not be empty")
        # Matched as given: surrounding spaces are part of the query
        needle = query.lower()
        if limit <= 0:
            return []

        matches: List[ImageMetadata] = []
        async for metadata in self.store.iter_metadata():
            if needle in metadata.prompt.lower():
                matches.append(metadata)
                # Sorting needs the full set; scan order can stop early
                if not newest_first and len(matches) >= limit:
                    break

        if newest_first:
            matches.sort(key=lambda m: m.id, reverse=True)

        logger.info("search_completed", query=needle, matches=len(matches[:limit]))
        return matches[:limit]
