"""Preview handle bookkeeping.

A preview handle stands for a displayable copy of a buffer (an object URL in
a browser). Each handle must be released exactly once.
"""
from __future__ import annotations

import threading
from typing import Dict, Protocol, Tuple
import uuid


class PreviewStore(Protocol):
    def create(self, data: bytes, mime_type: str) -> str:
        ...

    def release(self, handle: str) -> None:
        ...


class PreviewRegistry:
    """In-memory :class:`PreviewStore` that tracks live handles."""

    def __init__(self, scheme: str = "preview") -> None:
        self._scheme = scheme
        self._lock = threading.Lock()
        self._live: Dict[str, Tuple[str, bytes]] = {}
        self.created_count = 0
        self.released_count = 0

    def create(self, data: bytes, mime_type: str) -> str:
        handle = f"{self._scheme}:{uuid.uuid4().hex}"
        with self._lock:
            self._live[handle] = (mime_type, bytes(data))
            self.created_count += 1
        return handle

    def release(self, handle: str) -> None:
        """Drop ``handle``; raises ``KeyError`` if it is unknown or already released."""
        with self._lock:
            if handle not in self._live:
                raise KeyError(f"Unknown or already released preview handle: {handle}")
            del self._live[handle]
            self.released_count += 1

    def resolve(self, handle: str) -> Tuple[str, bytes]:
        """Return ``(mime_type, data)`` for a live handle."""
        with self._lock:
            return self._live[handle]

    def is_live(self, handle: str) -> bool:
        with self._lock:
            return handle in self._live

    def __len__(self) -> int:
        with self._lock:
            return len(self._live)
