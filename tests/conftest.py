"""Shared fixtures for the flattening tests."""
from __future__ import annotations

import io
from pathlib import Path
import struct
import sys
import threading
import zlib
from typing import Callable, List, Optional, Tuple

import numpy as np
import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backdrop.compositing import composite


def png_bytes(color: Tuple[int, ...], size: Tuple[int, int] = (4, 3)) -> bytes:
    """Encode a solid RGB or RGBA image of ``size`` (width, height) as PNG."""
    width, height = size
    array = np.empty((height, width, len(color)), dtype=np.uint8)
    array[...] = np.asarray(color, dtype=np.uint8)
    buffer = io.BytesIO()
    Image.fromarray(array).save(buffer, format="PNG")
    return buffer.getvalue()


def _png_chunk(kind: bytes, body: bytes) -> bytes:
    return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", zlib.crc32(kind + body) & 0xFFFFFFFF)


def oversized_png(width: int = 30000, height: int = 30000) -> bytes:
    """Well-formed PNG whose header claims more pixels than Pillow will open."""
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00"))
        + _png_chunk(b"IEND", b"")
    )


class ManualTimer:
    """Timer stand-in that only fires when told to."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()


class ManualTimerFactory:
    def __init__(self) -> None:
        self.timers: List[ManualTimer] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled]


class RecordingCompositor:
    """Delegate to the real compositor and remember every call's parameters.

    With ``gate`` set, calls block until the gate opens; ``entered`` is set as
    soon as the first call is waiting.
    """

    def __init__(self, gate: Optional[threading.Event] = None) -> None:
        self.gate = gate
        self.entered = threading.Event()
        self.calls: List[Tuple[str, int]] = []
        self._lock = threading.Lock()

    def __call__(self, source: bytes, background: str, opacity: int):
        with self._lock:
            self.calls.append((background, opacity))
        self.entered.set()
        if self.gate is not None:
            assert self.gate.wait(timeout=5), "compositor gate never opened"
        return composite(source, background, opacity)


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()
