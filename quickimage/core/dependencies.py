from functools import lru_cache
from typing import Dict

from quickimage.connections.openai_image_provider import OpenAIImageGenerator
from quickimage.connections.stability_image_provider import StabilityImageGenerator
from quickimage.connections.stability_video_provider import StabilityVideoGenerator
from quickimage.core.config import Settings, get_settings
from quickimage.domain.interfaces import ImageGenerator, VideoGenerator
from quickimage.domain.models import ImageModel
from quickimage.services.orchestrator import GenerationOrchestrator
from quickimage.storage.artifact_store import ArtifactStore
from quickimage.storage.search_index import SearchIndex


def build_generators(settings: Settings) -> Dict[ImageModel, ImageGenerator]:
    """
    Maps every ImageModel to exactly one client.
    Fails loudly at startup if a model was added without a client.
    """
    clients = [OpenAIImageGenerator(settings), StabilityImageGenerator(settings)]

    generators: Dict[ImageModel, ImageGenerator] = {}
    for client in clients:
        for model in client.models:
            generators[model] = client

    missing = [m.value for m in ImageModel if m not in generators]
    if missing:
        raise RuntimeError(f"No provider client for models: {', '.join(missing)}")
    return generators


@lru_cache()
def get_store() -> ArtifactStore:
    """
    Dependency Factory: the on-disk store rooted at IMAGE_FOLDER.
    Cached so every request shares one instance.
    """
    return ArtifactStore(get_settings().IMAGE_FOLDER)


@lru_cache()
def get_search_index() -> SearchIndex:
    return SearchIndex(get_store())


@lru_cache()
def get_generators() -> Dict[ImageModel, ImageGenerator]:
    return build_generators(get_settings())


@lru_cache()
def get_video_generator() -> VideoGenerator:
    return StabilityVideoGenerator(get_settings())


@lru_cache()
def get_orchestrator() -> GenerationOrchestrator:
    """
    Dependency Factory: the long-lived orchestrator.
    Its only state is configuration and collaborators.
    """
    return GenerationOrchestrator(
        store=get_store(),
        generators=get_generators(),
        video_generator=get_video_generator(),
    )
