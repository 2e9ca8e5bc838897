"""Exception types raised by the compositing and coordination layers."""
from __future__ import annotations


class BackdropError(Exception):
    """Base class for all errors raised by this package."""


class InvalidColorError(BackdropError, ValueError):
    """A color string is not a 6-digit hex color."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid hex color: {value!r}. Expected '#rrggbb'.")
        self.value = value


class SourceDecodeError(BackdropError):
    """A source payload could not be decoded as an image."""

    def __init__(self, message: str, name: str | None = None) -> None:
        super().__init__(message)
        self.name = name


class RenderContextError(BackdropError):
    """The output surface could not be allocated or encoded."""
