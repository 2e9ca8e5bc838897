"""Map an RGB color to a human-readable name.

Three stages run in order and stop at the first hit:

1. ``exact_match``: the normalized hex is a palette key.
2. ``nearest_match``: the closest palette entry in RGB space is within
   ``NEAREST_THRESHOLD``.
3. ``heuristic_name``: a coarse hue/saturation/brightness bucket.
"""
from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from backdrop.colors import RGB, ColorLike, is_hex_color, normalize_hex_color, to_rgb
from backdrop.errors import InvalidColorError

from .palette import PALETTE, palette_matrix

NEAREST_THRESHOLD = 30.0

# Half-open hue ranges in degrees; first match wins.
HUE_BUCKETS: Tuple[Tuple[float, float, str], ...] = (
    (0.0, 15.0, "Red"),
    (15.0, 45.0, "Orange"),
    (45.0, 75.0, "Yellow"),
    (75.0, 150.0, "Green"),
    (150.0, 210.0, "Cyan"),
    (210.0, 270.0, "Blue"),
    (270.0, 330.0, "Purple"),
    (330.0, 360.0, "Pink"),
)


def exact_match(hex_color: str) -> Optional[str]:
    """Return the palette name for ``hex_color`` if it is a palette key."""
    try:
        return PALETTE.get(normalize_hex_color(hex_color))
    except InvalidColorError:
        return None


def nearest_match(rgb: RGB, threshold: float = NEAREST_THRESHOLD) -> Optional[str]:
    """Return the closest palette name when its distance is strictly below ``threshold``.

    Distance is Euclidean over the raw 0-255 channels. Ties go to the entry
    listed first in the palette.
    """
    colors, names = palette_matrix()
    deltas = colors - np.asarray(rgb, dtype=np.float64)
    distances = np.sqrt(np.sum(deltas * deltas, axis=1))
    index = int(np.argmin(distances))
    if distances[index] < threshold:
        return names[index]
    return None


def hue_degrees(rgb: RGB) -> float:
    """Standard HSL hue in [0, 360); 0 for achromatic colors."""
    r, g, b = (int(channel) for channel in rgb)
    high = max(r, g, b)
    diff = high - min(r, g, b)
    if diff == 0:
        return 0.0
    if high == r:
        hue = 60.0 * (((g - b) / diff) % 6.0)
    elif high == g:
        hue = 60.0 * ((b - r) / diff + 2.0)
    else:
        hue = 60.0 * ((r - g) / diff + 4.0)
    return hue % 360.0


def heuristic_name(rgb: RGB) -> str:
    """Name a color from its hue, saturation and brightness alone."""
    r, g, b = (int(channel) for channel in rgb)
    high = max(r, g, b)
    diff = high - min(r, g, b)

    if diff < 10:
        mean = (r + g + b) / 3.0
        if mean > 240:
            return "White"
        if mean < 15:
            return "Black"
        return "Gray"

    saturation = diff / high
    brightness = high / 255.0
    if brightness < 0.2:
        return "Very Dark"
    if brightness > 0.9:
        return "Very Light"
    if saturation < 0.2:
        return "Grayish"

    hue = hue_degrees(rgb)
    for low, upper, name in HUE_BUCKETS:
        if low <= hue < upper:
            return name
    return HUE_BUCKETS[0][2]


def name_of(color: ColorLike) -> str:
    """Return a display name for ``color``.

    Never raises: input that is not a valid 6-digit hex color (or RGB
    triple) is returned as a string unchanged so callers always have
    something to show.
    """
    if isinstance(color, str):
        if not is_hex_color(color):
            return color
        name = exact_match(color)
        if name is not None:
            return name
        rgb = to_rgb(color)
    else:
        try:
            rgb = to_rgb(color)
        except InvalidColorError:
            return str(color)
        name = exact_match(rgb.hex)
        if name is not None:
            return name

    return nearest_match(rgb) or heuristic_name(rgb)
