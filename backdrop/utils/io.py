"""Filesystem helpers: collecting input images and saving flattened outputs."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Set

from backdrop.utils.logging import get_logger

IMAGE_EXTENSIONS = (".png", ".tif", ".tiff", ".bmp", ".jpg", ".jpeg", ".gif", ".webp")

_LOGGER = get_logger(__name__)


def collect_image_paths(inputs: Iterable[Path], recursive: bool = False) -> List[Path]:
    """Expand files and directories into a sorted, de-duplicated list of image paths.

    Parameters
    ----------
    inputs:
        Image files and/or directories to scan.
    recursive:
        When True, scan directories recursively.

    Returns
    -------
    list of Path
        Image paths. Explicitly listed files are kept whatever their suffix,
        so the MIME check at ingestion decides what is accepted.
    """
    collected: List[Path] = []
    for entry in inputs:
        if not entry.exists():
            raise FileNotFoundError(f"Input not found: {entry}")
        if entry.is_dir():
            iterator = entry.rglob("*") if recursive else entry.iterdir()
            collected.extend(sorted(p for p in iterator if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS))
        else:
            collected.append(entry)

    seen = set()
    unique: List[Path] = []
    for path in collected:
        key = path.resolve()
        if key not in seen:
            seen.add(key)
            unique.append(path)
    return unique


class DirectorySaver:
    """Save callable that writes each exported image into a directory.

    Names repeated within one saver get a numeric suffix
    (``processed-x.png``, ``processed-x-2.png``) so no output of the same
    run is overwritten. ``overwrite`` only governs files left by earlier runs.
    """

    def __init__(self, out_dir: Path, overwrite: bool = True) -> None:
        self.out_dir = out_dir
        self.overwrite = overwrite
        self.written: List[Path] = []
        self._claimed: Set[str] = set()

    def _claim(self, name: str) -> Path:
        path = self.out_dir / Path(name).name
        stem, suffix = path.stem, path.suffix
        counter = 1
        while path.name in self._claimed:
            counter += 1
            path = self.out_dir / f"{stem}-{counter}{suffix}"
        if counter > 1:
            _LOGGER.warning("Output name %s already used in this run; saving as %s.", Path(name).name, path.name)
        self._claimed.add(path.name)
        return path

    def __call__(self, name: str, data: bytes) -> Path:
        self.out_dir.mkdir(parents=True, exist_ok=True)
        path = self._claim(name)
        if path.exists() and not self.overwrite:
            raise FileExistsError(f"Refusing to overwrite {path}")
        path.write_bytes(data)
        self.written.append(path)
        _LOGGER.info("Saved %s (%d bytes).", path, len(data))
        return path
