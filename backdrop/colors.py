"""Hex color parsing shared by the compositor, classifier and coordinator."""
from __future__ import annotations

import re
from typing import NamedTuple, Union

from .errors import InvalidColorError

_HEX_PATTERN = re.compile(r"#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})", re.IGNORECASE)


class RGB(NamedTuple):
    """8-bit RGB triple."""

    r: int
    g: int
    b: int

    @property
    def hex(self) -> str:
        return rgb_to_hex(self)


ColorLike = Union[str, RGB, tuple]


def is_hex_color(value: object) -> bool:
    """Return True when ``value`` is a ``#rrggbb``/``rrggbb`` string."""
    return isinstance(value, str) and _HEX_PATTERN.fullmatch(value) is not None


def parse_hex_color(value: str) -> RGB:
    """Parse a case-insensitive 6-digit hex string with optional ``#``.

    Raises
    ------
    InvalidColorError
        For any other shape, including 3-digit shorthand and alpha channels.
    """
    if not isinstance(value, str):
        raise InvalidColorError(value)
    match = _HEX_PATTERN.fullmatch(value)
    if match is None:
        raise InvalidColorError(value)
    return RGB(*(int(group, 16) for group in match.groups()))


def normalize_hex_color(value: str) -> str:
    """Return ``value`` as lowercase ``#rrggbb``."""
    return rgb_to_hex(parse_hex_color(value))


def rgb_to_hex(rgb: tuple) -> str:
    r, g, b = (int(channel) for channel in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def to_rgb(color: ColorLike) -> RGB:
    """Coerce a hex string or 3-sequence of ints into an :class:`RGB`."""
    if isinstance(color, str):
        return parse_hex_color(color)
    try:
        r, g, b = (int(channel) for channel in color)
    except (TypeError, ValueError) as exc:
        raise InvalidColorError(color) from exc
    if not all(0 <= channel <= 255 for channel in (r, g, b)):
        raise InvalidColorError(color)
    return RGB(r, g, b)
