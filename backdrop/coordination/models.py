"""Data models shared by the batch coordinator and its callers."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import mimetypes
from pathlib import Path
from typing import Mapping, Optional, Tuple

from backdrop.compositing import FlattenedImage

OUTPUT_PREFIX = "processed-"


class PassState(str, Enum):
    """Recompute scheduling state."""

    IDLE = "idle"
    PENDING = "pending"
    RUNNING = "running"


@dataclass(frozen=True)
class GlobalParameters:
    """Parameters applied to every image in a pass."""

    background_color: str = "#ffffff"
    opacity: int = 100


@dataclass(frozen=True)
class UploadedFile:
    """An incoming image payload as handed over by the upload surface."""

    name: str
    mime_type: str
    data: bytes = field(repr=False)
    source_path: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return (self.mime_type or "").lower().startswith("image/")

    @classmethod
    def from_path(cls, path: Path) -> "UploadedFile":
        """Read ``path`` and guess its MIME type from the suffix."""
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            mime_type=mime_type or "application/octet-stream",
            data=path.read_bytes(),
            source_path=str(path),
        )


@dataclass
class TrackedImage:
    """An ingested image and its latest flattened output."""

    id: str
    name: str
    mime_type: str
    source: bytes = field(repr=False)
    source_preview: str
    derived: Optional[FlattenedImage] = None
    derived_preview: Optional[str] = None
    current_opacity: Optional[int] = None
    background: Optional[str] = None
    origin: Optional[str] = None

    @property
    def output_name(self) -> str:
        return f"{OUTPUT_PREFIX}{self.name}"


@dataclass(frozen=True)
class PassJob:
    """Snapshot of the work one recompute pass performs."""

    pass_id: int
    generation: int
    reason: str
    parameters: GlobalParameters
    sources: Mapping[str, bytes] = field(repr=False)


@dataclass(frozen=True)
class PassReport:
    """Outcome of a finished recompute pass."""

    pass_id: int
    reason: str
    parameters: GlobalParameters
    targets: Tuple[str, ...]
    updated: Tuple[str, ...]
    failed: Tuple[str, ...]
    discarded: bool
    error: Optional[str]
    elapsed_s: float
    failure_messages: Mapping[str, str] = field(default_factory=dict)
