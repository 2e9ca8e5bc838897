"""Curated reference palette for color naming."""
from __future__ import annotations

from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Tuple

import numpy as np

from backdrop.colors import parse_hex_color

_PALETTE_ENTRIES: Tuple[Tuple[str, str], ...] = (
    # neutrals
    ("#ffffff", "White"),
    ("#000000", "Black"),
    ("#808080", "Gray"),
    ("#c0c0c0", "Silver"),
    ("#a9a9a9", "Dark Gray"),
    ("#d3d3d3", "Light Gray"),
    ("#696969", "Dim Gray"),
    ("#f5f5f5", "White Smoke"),
    ("#dcdcdc", "Gainsboro"),
    ("#fffafa", "Snow"),
    ("#fffff0", "Ivory"),
    ("#f5f5dc", "Beige"),
    ("#faf0e6", "Linen"),
    ("#2f4f4f", "Dark Slate Gray"),
    ("#708090", "Slate Gray"),
    ("#36454f", "Charcoal"),
    # reds
    ("#ff0000", "Red"),
    ("#8b0000", "Dark Red"),
    ("#800000", "Maroon"),
    ("#b22222", "Firebrick"),
    ("#dc143c", "Crimson"),
    ("#cd5c5c", "Indian Red"),
    ("#f08080", "Light Coral"),
    ("#fa8072", "Salmon"),
    ("#ff6347", "Tomato"),
    ("#ff4500", "Orange Red"),
    ("#a52a2a", "Brown"),
    # oranges and browns
    ("#ffa500", "Orange"),
    ("#ff8c00", "Dark Orange"),
    ("#ff7f50", "Coral"),
    ("#d2691e", "Chocolate"),
    ("#8b4513", "Saddle Brown"),
    ("#a0522d", "Sienna"),
    ("#cd853f", "Peru"),
    ("#deb887", "Burlywood"),
    ("#d2b48c", "Tan"),
    ("#f5deb3", "Wheat"),
    # yellows
    ("#ffff00", "Yellow"),
    ("#ffd700", "Gold"),
    ("#f0e68c", "Khaki"),
    ("#daa520", "Goldenrod"),
    ("#808000", "Olive"),
    # greens
    ("#008000", "Green"),
    ("#00ff00", "Lime"),
    ("#006400", "Dark Green"),
    ("#228b22", "Forest Green"),
    ("#32cd32", "Lime Green"),
    ("#90ee90", "Light Green"),
    ("#98fb98", "Pale Green"),
    ("#3cb371", "Medium Sea Green"),
    ("#2e8b57", "Sea Green"),
    ("#556b2f", "Dark Olive Green"),
    ("#9acd32", "Yellow Green"),
    ("#98ff98", "Mint"),
    # cyans
    ("#00ffff", "Cyan"),
    ("#008080", "Teal"),
    ("#40e0d0", "Turquoise"),
    ("#e0ffff", "Light Cyan"),
    ("#7fffd4", "Aquamarine"),
    ("#20b2aa", "Light Sea Green"),
    ("#5f9ea0", "Cadet Blue"),
    # blues
    ("#0000ff", "Blue"),
    ("#000080", "Navy"),
    ("#00008b", "Dark Blue"),
    ("#4169e1", "Royal Blue"),
    ("#1e90ff", "Dodger Blue"),
    ("#00bfff", "Deep Sky Blue"),
    ("#87ceeb", "Sky Blue"),
    ("#add8e6", "Light Blue"),
    ("#4682b4", "Steel Blue"),
    ("#6495ed", "Cornflower Blue"),
    ("#191970", "Midnight Blue"),
    ("#483d8b", "Dark Slate Blue"),
    ("#6a5acd", "Slate Blue"),
    # purples
    ("#800080", "Purple"),
    ("#4b0082", "Indigo"),
    ("#8a2be2", "Blue Violet"),
    ("#9400d3", "Dark Violet"),
    ("#9932cc", "Dark Orchid"),
    ("#9370db", "Medium Purple"),
    ("#ee82ee", "Violet"),
    ("#da70d6", "Orchid"),
    ("#dda0dd", "Plum"),
    ("#d8bfd8", "Thistle"),
    ("#e6e6fa", "Lavender"),
    ("#ff00ff", "Magenta"),
    # pinks
    ("#ffc0cb", "Pink"),
    ("#ff69b4", "Hot Pink"),
    ("#ff1493", "Deep Pink"),
    ("#c71585", "Medium Violet Red"),
)

PALETTE: Mapping[str, str] = MappingProxyType(dict(_PALETTE_ENTRIES))


@lru_cache(maxsize=1)
def palette_matrix() -> Tuple[np.ndarray, Tuple[str, ...]]:
    """Return palette colors as a read-only ``(N, 3)`` float array plus names, in palette order."""
    rgbs = np.array([parse_hex_color(hex_value) for hex_value, _ in _PALETTE_ENTRIES], dtype=np.float64)
    rgbs.setflags(write=False)
    names = tuple(name for _, name in _PALETTE_ENTRIES)
    return rgbs, names
