"""YAML configuration loading and ``--set`` override parsing."""
from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml

REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG = REPO_ROOT / "configs" / "default.yaml"

# Used when the packaged configs/ directory is not available (e.g. wheel installs).
BUILTIN_DEFAULTS: Dict[str, Any] = {
    "parameters": {"background_color": "#ffffff", "opacity": 100},
    "coordinator": {"debounce_ms": 150, "max_workers": 4},
    "export": {"spacing_ms": 100},
    "logging": {"log_level": "INFO"},
}


def load_config(path: Path) -> Dict[str, Any]:
    """Load a YAML config file.

    Parameters
    ----------
    path:
        Path to the YAML file.

    Returns
    -------
    dict
        Parsed configuration.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must map to a dict: {path}")
    return data


def deep_update(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``updates`` into ``base`` in place and return it."""
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = deep_update(base[key], value)
        else:
            base[key] = value
    return base


def set_by_path(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    """Assign ``value`` at ``a.b.c`` inside ``target``, creating dicts as needed."""
    parts = dotted_key.split(".")
    cursor = target
    for part in parts[:-1]:
        existing = cursor.get(part)
        if not isinstance(existing, dict):
            existing = {}
            cursor[part] = existing
        cursor = existing
    cursor[parts[-1]] = value


def parse_set_overrides(values: Iterable[str]) -> Dict[str, Any]:
    """Parse ``--set key=value`` CLI overrides into a nested dictionary."""
    overrides: Dict[str, Any] = {}
    for raw in values:
        if "=" not in raw:
            raise ValueError(f"Invalid --set override '{raw}'. Expected key=value.")
        key, value_str = raw.split("=", 1)
        if not key or not value_str:
            raise ValueError(f"Invalid --set override '{raw}'. Expected key=value.")
        if any(not part for part in key.split(".")):
            raise ValueError(f"Invalid --set key '{key}'. Use dot notation like export.spacing_ms.")
        try:
            value = yaml.safe_load(value_str)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML value for --set {key}: {exc}") from exc
        set_by_path(overrides, key, value)
    return overrides


def resolve_config(
    path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the effective config: built-in defaults, then a YAML file, then overrides.

    When ``path`` is None the repository's ``configs/default.yaml`` is used if
    it exists.
    """
    config = copy.deepcopy(BUILTIN_DEFAULTS)
    if path is None and DEFAULT_CONFIG.exists():
        path = DEFAULT_CONFIG
    if path is not None:
        deep_update(config, load_config(path))
    if overrides:
        deep_update(config, overrides)
    return config
