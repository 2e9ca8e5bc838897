"""Color naming by palette lookup with a heuristic fallback."""
from .classifier import (
    HUE_BUCKETS,
    NEAREST_THRESHOLD,
    exact_match,
    heuristic_name,
    hue_degrees,
    name_of,
    nearest_match,
)
from .palette import PALETTE

__all__ = [
    "HUE_BUCKETS",
    "NEAREST_THRESHOLD",
    "PALETTE",
    "exact_match",
    "heuristic_name",
    "hue_degrees",
    "name_of",
    "nearest_match",
]
