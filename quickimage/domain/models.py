import re
import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")

IMAGE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# "<id>-background-removed.png" sits next to "<id>.png"
DERIVED_SUFFIX = "-background-removed"


def new_image_id() -> str:
    """
    24 hex chars: epoch seconds (8) + random (16).
    Sorting ids lexicographically sorts them by creation time.
    """
    return f"{int(time.time()):08x}{secrets.token_hex(8)}"


def is_valid_image_id(image_id: str) -> bool:
    """
    File-name safe, and never a name another id's derived files would use,
    so every id owns exactly one set of paths.
    """
    if not image_id or IMAGE_ID_PATTERN.match(image_id) is None:
        return False
    return not image_id.endswith(DERIVED_SUFFIX)


# Standard Error Struct
class ErrorDetails(BaseModel):
    code: str
    message: str
    trace_id: Optional[str] = None


class APIResponse(BaseModel, Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[ErrorDetails] = None


# --- Models & Provider Options ---


class ImageModel(str, Enum):
    DALL_E_3 = "dall-e-3"
    STABLE_DIFFUSION_3 = "stabilitydiffusion-3"
    STABLE_IMAGE_CORE = "stable-image-core"


class DallEOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    size: Literal["1024x1024", "1792x1024", "1024x1792"] = "1024x1024"
    style: Literal["vivid", "natural"] = "vivid"
    quality: Literal["standard", "hd"] = "standard"


AspectRatio = Literal["16:9", "1:1", "21:9", "2:3", "3:2", "4:5", "5:4", "9:16", "9:21"]


class StableDiffusionOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    aspect_ratio: AspectRatio = "1:1"
    output_format: Literal["png", "jpeg", "webp"] = "png"


class StableCoreOptions(StableDiffusionOptions):
    style_preset: Optional[
        Literal[
            "3d-model",
            "analog-film",
            "anime",
            "cinematic",
            "comic-book",
            "digital-art",
            "enhance",
            "fantasy-art",
            "isometric",
            "line-art",
            "low-poly",
            "modeling-compound",
            "neon-punk",
            "origami",
            "photographic",
            "pixel-art",
            "tile-texture",
        ]
    ] = None


# --- Generation ---


class PostProcessOptions(BaseModel):
    remove_background: bool = False
    remove_background_keep_original: bool = False
    save_jpg_copy: bool = False

    @property
    def wants_background_removal(self) -> bool:
        return self.remove_background or self.remove_background_keep_original


class GenerationRequest(BaseModel):
    id: str = Field(default_factory=new_image_id)
    model: str
    prompt: str
    provider_options: Dict[str, Any] = Field(default_factory=dict)
    post_process: PostProcessOptions = Field(default_factory=PostProcessOptions)

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be empty")
        return value

    @field_validator("id")
    @classmethod
    def id_is_file_safe(cls, value: str) -> str:
        if not is_valid_image_id(value):
            raise ValueError(
                f"id may only contain letters, digits, '-' and '_' and must not end in {DERIVED_SUFFIX!r}"
            )
        return value


class RawImage(BaseModel):
    """What a provider client hands back to the orchestrator."""

    data: bytes
    extension: str = "png"
    revised_prompt: Optional[str] = None
    temporary_url: Optional[str] = None
    provider_fields: Dict[str, Any] = Field(default_factory=dict)


class GenerationStage(str, Enum):
    RECEIVED = "received"
    PROVIDER_INVOKED = "provider_invoked"
    POST_PROCESSING = "post_processing"
    PERSISTED = "persisted"
    FAILED = "failed"
    REPORTED = "reported"


class GenerationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    model: str
    prompt: str
    succeeded: bool
    error: Optional[ErrorDetails] = None
    error_message: Optional[str] = None
    revised_prompt: Optional[str] = None
    temporary_url: Optional[str] = None
    artifact_path: Optional[Path] = None
    metadata_path: Optional[Path] = None
    derived_paths: Dict[str, Path] = Field(default_factory=dict)
    stages: List[GenerationStage] = Field(default_factory=list)


class VideoResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    succeeded: bool
    error: Optional[ErrorDetails] = None
    error_message: Optional[str] = None
    video_path: Optional[Path] = None


# --- Persistence ---


class ImageMetadata(BaseModel):
    """
    The JSON sidecar stored next to each artifact.
    `id` comes from the file name and is never written into the sidecar.
    """

    model_config = ConfigDict(extra="allow")

    id: str = ""
    model: str
    prompt: str
    extension: str = "png"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    revised_prompt: Optional[str] = None
    temporary_url: Optional[str] = None
    size: Optional[str] = None
    style: Optional[str] = None
    quality: Optional[str] = None
    aspect_ratio: Optional[str] = None
    style_preset: Optional[str] = None
    background_removed: Optional[str] = None


class CredentialStatus(BaseModel):
    exists: bool
    name: str
