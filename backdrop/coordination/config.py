"""Configuration models for the batch coordinator."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from backdrop.colors import normalize_hex_color
from backdrop.compositing.blend import clamp_opacity


@dataclass
class CoordinatorSettings:
    """Initial parameters and scheduling knobs for a :class:`BatchCoordinator`."""

    background_color: str = "#ffffff"
    opacity: int = 100
    debounce_ms: float = 150.0
    max_workers: int = 4
    export_spacing_ms: float = 100.0

    def __post_init__(self) -> None:
        self.background_color = normalize_hex_color(self.background_color)
        self.opacity = clamp_opacity(self.opacity)
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0, got {self.debounce_ms}.")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}.")
        if self.export_spacing_ms < 0:
            raise ValueError(f"export_spacing_ms must be >= 0, got {self.export_spacing_ms}.")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CoordinatorSettings":
        """Build settings from the ``parameters``/``coordinator``/``export`` config sections."""
        params_cfg = config.get("parameters", {}) or {}
        coord_cfg = config.get("coordinator", {}) or {}
        export_cfg = config.get("export", {}) or {}
        defaults = cls()
        return cls(
            background_color=str(params_cfg.get("background_color", defaults.background_color)),
            opacity=params_cfg.get("opacity", defaults.opacity),
            debounce_ms=float(coord_cfg.get("debounce_ms", defaults.debounce_ms)),
            max_workers=int(coord_cfg.get("max_workers", defaults.max_workers)),
            export_spacing_ms=float(export_cfg.get("spacing_ms", defaults.export_spacing_ms)),
        )
