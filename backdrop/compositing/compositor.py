"""Decode, flatten and encode a single image."""
from __future__ import annotations

from dataclasses import dataclass, field
import io
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from backdrop.colors import ColorLike, to_rgb
from backdrop.errors import RenderContextError, SourceDecodeError
from backdrop.utils.logging import get_logger

from .blend import clamp_opacity, ensure_rgba, fill_background, flatten_over

_LOGGER = get_logger(__name__)

OUTPUT_FORMAT = "PNG"
OUTPUT_MIME_TYPE = "image/png"

SourceLike = Union[bytes, bytearray, memoryview, np.ndarray]

# DecompressionBombError is not an OSError.
_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError)


@dataclass(frozen=True)
class FlattenedImage:
    """Composited output with the background baked in."""

    pixels: np.ndarray = field(repr=False)
    encoded: bytes = field(repr=False)
    mime_type: str = OUTPUT_MIME_TYPE

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


def decode_source(source: SourceLike) -> np.ndarray:
    """Decode an encoded payload (or validate a pixel array) into RGBA uint8.

    Raises
    ------
    SourceDecodeError
        When the payload is empty, truncated or not a recognised image.
    """
    if isinstance(source, np.ndarray):
        try:
            return ensure_rgba(source)
        except ValueError as exc:
            raise SourceDecodeError(str(exc)) from exc

    payload = bytes(source)
    if not payload:
        raise SourceDecodeError("Source payload is empty.")
    try:
        with Image.open(io.BytesIO(payload)) as img:
            img.load()
            rgba = img.convert("RGBA")
    except _DECODE_ERRORS as exc:
        raise SourceDecodeError(f"Could not decode source image: {exc}") from exc
    return np.array(rgba, dtype=np.uint8)


def validate_source(source: SourceLike) -> None:
    """Check that ``source`` looks like a readable image without decoding its pixels.

    Only the header and chunk structure are read (``Image.verify``), so a
    payload accepted here can still fail in :func:`decode_source`.

    Raises
    ------
    SourceDecodeError
        When the payload is empty, oversized or not a recognised image.
    """
    if isinstance(source, np.ndarray):
        decode_source(source)
        return
    payload = bytes(source)
    if not payload:
        raise SourceDecodeError("Source payload is empty.")
    try:
        with Image.open(io.BytesIO(payload)) as img:
            img.verify()
    except _DECODE_ERRORS as exc:
        raise SourceDecodeError(f"Could not read source image: {exc}") from exc


def encode_png(pixels: np.ndarray) -> bytes:
    """Encode ``(H, W, 3)`` uint8 pixels as PNG bytes."""
    buffer = io.BytesIO()
    try:
        Image.fromarray(np.ascontiguousarray(pixels)).save(buffer, format=OUTPUT_FORMAT)
    except (OSError, ValueError) as exc:
        raise RenderContextError(f"Could not encode flattened image: {exc}") from exc
    return buffer.getvalue()


def composite(source: SourceLike, background: ColorLike, opacity_percent: int | float) -> FlattenedImage:
    """Flatten ``source`` onto a solid ``background`` at ``opacity_percent``.

    Parameters
    ----------
    source:
        Encoded image bytes or an already decoded uint8 pixel array.
    background:
        ``#rrggbb`` string or RGB triple.
    opacity_percent:
        Global blend factor, clamped to [0, 100].

    Returns
    -------
    FlattenedImage
        Opaque RGB pixels and their PNG encoding.

    Raises
    ------
    InvalidColorError
        If ``background`` is not a valid color.
    SourceDecodeError
        If ``source`` cannot be decoded.
    RenderContextError
        If the output canvas cannot be allocated or encoded.
    """
    background_rgb = to_rgb(background)
    opacity = clamp_opacity(opacity_percent)
    rgba = decode_source(source)
    height, width = rgba.shape[:2]

    try:
        canvas = fill_background(height, width, background_rgb)
    except MemoryError as exc:
        raise RenderContextError(f"Could not allocate a {width}x{height} canvas.") from exc

    pixels = flatten_over(rgba, canvas, opacity)
    _LOGGER.debug(
        "Flattened %dx%d image | background=%s | opacity=%d",
        width,
        height,
        background_rgb.hex,
        opacity,
    )
    return FlattenedImage(pixels=pixels, encoded=encode_png(pixels))
