"""Pixel-level blending of an RGBA source over a solid background."""
from __future__ import annotations

import numpy as np

from backdrop.colors import RGB


def clamp_opacity(value: float | int | str) -> int:
    """Clamp an opacity percentage to an integer in [0, 100].

    Floats are rounded and numeric strings are accepted; anything else
    raises ``ValueError``.
    """
    if isinstance(value, bool):
        raise ValueError(f"Opacity must be numeric, got {value!r}.")
    try:
        numeric = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Opacity must be numeric, got {value!r}.") from exc
    if np.isnan(numeric):
        raise ValueError("Opacity must not be NaN.")
    return int(round(min(max(numeric, 0.0), 100.0)))


def ensure_rgba(pixels: np.ndarray) -> np.ndarray:
    """Return an ``(H, W, 4)`` uint8 view of ``pixels``, adding opaque alpha if needed."""
    if pixels.dtype != np.uint8:
        raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}.")
    if pixels.ndim == 2:
        pixels = np.repeat(pixels[..., None], 3, axis=2)
    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise ValueError(f"Expected (H, W), (H, W, 3) or (H, W, 4) pixels, got {pixels.shape}.")
    if pixels.shape[2] == 4:
        return pixels
    alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([pixels, alpha], axis=2)


def fill_background(height: int, width: int, background: RGB) -> np.ndarray:
    """Allocate an opaque ``(H, W, 3)`` canvas filled with ``background``."""
    canvas = np.empty((height, width, 3), dtype=np.uint8)
    canvas[...] = np.asarray(background, dtype=np.uint8)
    return canvas


def flatten_over(rgba: np.ndarray, canvas: np.ndarray, opacity_percent: int) -> np.ndarray:
    """Blend ``rgba`` onto ``canvas`` with a global factor on top of its own alpha.

    Each channel becomes ``bg + a * s * (src - bg)`` where ``a`` is
    ``opacity_percent / 100`` and ``s`` is the source pixel alpha in [0, 1].
    This is the source alpha-composited over the background, then mixed
    back against the background at ``a``.

    Parameters
    ----------
    rgba:
        Source pixels, ``(H, W, 4)`` uint8.
    canvas:
        Background-filled ``(H, W, 3)`` uint8 canvas of the same size.
    opacity_percent:
        Global blend factor in [0, 100].

    Returns
    -------
    numpy.ndarray
        Flattened ``(H, W, 3)`` uint8 image.
    """
    if rgba.shape[:2] != canvas.shape[:2]:
        raise ValueError(f"Source {rgba.shape[:2]} and canvas {canvas.shape[:2]} differ in size.")
    if opacity_percent <= 0:
        return canvas.copy()

    weight = (float(opacity_percent) / 100.0) * (rgba[..., 3:4].astype(np.float64) / 255.0)
    bg = canvas.astype(np.float64)
    src = rgba[..., :3].astype(np.float64)
    blended = bg + weight * (src - bg)
    return np.clip(np.rint(blended), 0, 255).astype(np.uint8)
