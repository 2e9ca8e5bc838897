"""Logging utilities for the batch flattening tools."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
import json
import logging
import os
from pathlib import Path
import platform
import sys
import time
from typing import Any, Dict, Iterable, Optional

_LOGGER_CONFIGURED = False
_CONTEXT_FILTER: Optional["ScriptContextFilter"] = None


class StructuredFormatter(logging.Formatter):
    """Format records as ``[time][LEVEL][script][run_id] message``."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        script_name = getattr(record, "script_name", record.name)
        run_id = getattr(record, "run_id", None)
        prefix = f"[{timestamp}][{record.levelname}][{script_name}]"
        if run_id:
            prefix = f"{prefix}[{run_id}]"
        message = record.getMessage()
        if record.exc_info:
            return f"{prefix} {message}\n{self.formatException(record.exc_info)}"
        return f"{prefix} {message}"


class ScriptContextFilter(logging.Filter):
    """Stamp every record with the running script name and run id."""

    def __init__(self, script_name: str, run_id: Optional[str]) -> None:
        super().__init__()
        self.script_name = script_name
        self.run_id = run_id

    def update(self, script_name: str, run_id: Optional[str]) -> None:
        self.script_name = script_name
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.script_name = self.script_name
        record.run_id = self.run_id
        return True


def _ensure_root_logger(level: int, script_name: str, run_id: Optional[str]) -> None:
    global _LOGGER_CONFIGURED, _CONTEXT_FILTER
    root = logging.getLogger()
    root.setLevel(level)

    if not _LOGGER_CONFIGURED:
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter())
        root.addHandler(handler)
        _LOGGER_CONFIGURED = True

    if _CONTEXT_FILTER is None:
        _CONTEXT_FILTER = ScriptContextFilter(script_name, run_id)
    else:
        _CONTEXT_FILTER.update(script_name, run_id)

    # Handler-level so records propagated from child loggers are stamped too.
    for handler in root.handlers:
        handler.setLevel(level)
        if _CONTEXT_FILTER not in handler.filters:
            handler.addFilter(_CONTEXT_FILTER)


def resolve_log_level(level: str | int | None, debug: bool = False, quiet: bool = False) -> int:
    """Resolve a logging level from CLI-style inputs.

    ``quiet`` wins over ``debug``; unknown level names fall back to INFO.
    """
    if quiet:
        return logging.WARNING
    if debug:
        return logging.DEBUG
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(
    script_name: str,
    level: int | str | None = logging.INFO,
    log_file: Optional[Path] = None,
    run_id: Optional[str] = None,
) -> logging.Logger:
    """Configure structured logging for a script and return its logger."""
    resolved = resolve_log_level(level)
    _ensure_root_logger(resolved, script_name, run_id)
    logger = logging.getLogger(script_name)
    logger.setLevel(resolved)
    if log_file is not None:
        add_file_handler(log_file, level=resolved)
    return logger


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Return a logger, installing the structured root handler on first use.

    Parameters
    ----------
    name:
        Logger name, typically ``__name__``.
    level:
        Optional level for this logger. When omitted the logger inherits
        from the root logger.

    Returns
    -------
    logging.Logger
        Logger instance.
    """
    logger = logging.getLogger(name)

    if not _LOGGER_CONFIGURED:
        _ensure_root_logger(level or logging.INFO, name, None)

    if level is not None:
        logger.setLevel(level)
    return logger


def add_file_handler(log_path: Path, level: int = logging.INFO) -> None:
    """Attach a structured file handler to the root logger once per path."""
    root = logging.getLogger()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(log_path):
            return
    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(StructuredFormatter())
    if _CONTEXT_FILTER is not None:
        file_handler.addFilter(_CONTEXT_FILTER)
    root.addHandler(file_handler)


def format_duration(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS.mmm``."""
    seconds = max(seconds, 0.0)
    whole = int(seconds)
    millis = int(round((seconds - whole) * 1000.0))
    if millis == 1000:
        whole, millis = whole + 1, 0
    minutes, sec = divmod(whole, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{sec:02d}.{millis:03d}"


@contextmanager
def log_timer(logger: logging.Logger, label: str, level: int = logging.INFO) -> Iterable[None]:
    """Log the wall-time duration of a code block."""
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.log(level, "%s completed in %s", label, format_duration(time.perf_counter() - start))


def write_manifest(output_dir: Path, manifest: Dict[str, Any], filename: str = "manifest.json") -> Path:
    """Write a JSON manifest into ``output_dir`` and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    manifest_path = output_dir / filename
    manifest_path.write_text(json.dumps(manifest, indent=2, default=str), encoding="utf-8")
    return manifest_path


def collect_environment() -> Dict[str, Any]:
    """Collect basic environment metadata for manifests."""
    return {
        "python": sys.version.replace("\n", " "),
        "platform": platform.platform(),
        "cwd": os.getcwd(),
    }
