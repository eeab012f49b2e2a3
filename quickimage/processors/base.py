import abc
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class RemovalMode(str, Enum):
    REPLACE = "replace"  # overwrite the source
    KEEP_BOTH_VERSIONS = "keep_both_versions"  # write a "-background-removed" sibling


@dataclass
class ProcessingResult:
    processor_name: str
    success: bool
    output_path: Optional[Path] = None
    error_message: Optional[str] = None
    metadata: dict = field(default_factory=dict)


class BaseProcessor(abc.ABC):
    @abc.abstractmethod
    async def process(self, source_path: Path, **kwargs) -> ProcessingResult:
        """
        Transforms the artifact at source_path.
        Returns the path to the NEW file (or the same path if modified in place).
        Must not raise: failures come back as success=False.
        """
        pass
