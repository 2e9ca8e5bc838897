"""Flatten batches of images onto a solid background and name colors."""
from .classification import name_of
from .colors import RGB, normalize_hex_color, parse_hex_color
from .compositing import FlattenedImage, composite
from .coordination import BatchCoordinator, CoordinatorSettings, UploadedFile
from .errors import BackdropError, InvalidColorError, RenderContextError, SourceDecodeError

__version__ = "0.1.0"

__all__ = [
    "RGB",
    "BackdropError",
    "BatchCoordinator",
    "CoordinatorSettings",
    "FlattenedImage",
    "InvalidColorError",
    "RenderContextError",
    "SourceDecodeError",
    "UploadedFile",
    "composite",
    "name_of",
    "normalize_hex_color",
    "parse_hex_color",
]
