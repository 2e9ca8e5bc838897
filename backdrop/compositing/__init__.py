"""Flatten images onto a solid background."""
from .blend import clamp_opacity, ensure_rgba, fill_background, flatten_over
from .compositor import FlattenedImage, composite, decode_source, encode_png, validate_source

__all__ = [
    "FlattenedImage",
    "clamp_opacity",
    "composite",
    "decode_source",
    "encode_png",
    "ensure_rgba",
    "fill_background",
    "flatten_over",
    "validate_source",
]
