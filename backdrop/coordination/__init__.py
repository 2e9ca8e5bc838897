"""Keep a collection of flattened images consistent with global parameters."""
from .config import CoordinatorSettings
from .coordinator import BatchCoordinator
from .models import GlobalParameters, PassReport, PassState, TrackedImage, UploadedFile
from .previews import PreviewRegistry, PreviewStore

__all__ = [
    "BatchCoordinator",
    "CoordinatorSettings",
    "GlobalParameters",
    "PassReport",
    "PassState",
    "PreviewRegistry",
    "PreviewStore",
    "TrackedImage",
    "UploadedFile",
]
