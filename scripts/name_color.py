"""CLI wrapper: print display names for hex colors."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from backdrop.classification import exact_match, name_of, nearest_match
from backdrop.colors import is_hex_color, normalize_hex_color, parse_hex_color


def describe(color: str) -> dict:
    """Return the name of ``color`` and which classifier stage produced it."""
    if not is_hex_color(color):
        return {"input": color, "hex": None, "name": name_of(color), "stage": "invalid"}
    hex_value = normalize_hex_color(color)
    if exact_match(hex_value) is not None:
        stage = "exact"
    elif nearest_match(parse_hex_color(hex_value)) is not None:
        stage = "nearest"
    else:
        stage = "heuristic"
    return {"input": color, "hex": hex_value, "name": name_of(hex_value), "stage": stage}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Name colors given as #rrggbb.")
    parser.add_argument("colors", nargs="+", help="Colors such as '#1e90ff' or 'ff0000'.")
    parser.add_argument("--json", action="store_true", help="Print one JSON object per color.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    for color in args.colors:
        row = describe(color)
        if args.json:
            print(json.dumps(row))
        else:
            print(f"{row['input']}\t{row['name']}\t{row['stage']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
