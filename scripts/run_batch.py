"""CLI wrapper: flatten a batch of images onto a solid background."""
from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from backdrop.classification import name_of
from backdrop.coordination import BatchCoordinator, CoordinatorSettings, UploadedFile
from backdrop.utils.config import deep_update, parse_set_overrides, resolve_config
from backdrop.utils.io import DirectorySaver, collect_image_paths
from backdrop.utils.logging import collect_environment, log_timer, resolve_log_level, setup_logging, write_manifest


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Flatten images onto a solid background color.")
    parser.add_argument("inputs", nargs="+", help="Image files or directories.")
    parser.add_argument("--out_dir", type=str, required=True, help="Directory for processed images.")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config.")
    parser.add_argument("--background", type=str, default=None, help="Background color as #rrggbb.")
    parser.add_argument("--opacity", type=float, default=None, help="Image opacity in percent (0-100).")
    parser.add_argument("--recursive", action="store_true", help="Scan input directories recursively.")
    parser.add_argument(
        "--set",
        dest="set_overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a config value, e.g. --set export.spacing_ms=0.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level (defaults to logging.log_level from the config).",
    )
    parser.add_argument("--log-file", type=str, default=None, help="Optional log file path.")
    parser.add_argument("--quiet", action="store_true", help="Reduce logging to WARNING and above.")
    parser.add_argument("--run-id", type=str, default=None, help="Optional run identifier to include in logs.")
    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if args.background is not None:
        overrides.setdefault("parameters", {})["background_color"] = args.background
    if args.opacity is not None:
        overrides.setdefault("parameters", {})["opacity"] = args.opacity
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    # --set wins over the dedicated flags.
    overrides = deep_update(build_overrides(args), parse_set_overrides(args.set_overrides))
    config = resolve_config(Path(args.config) if args.config else None, overrides)

    level_name = args.log_level or config.get("logging", {}).get("log_level", "INFO")
    log_level = resolve_log_level(level_name, debug=args.debug, quiet=args.quiet)
    log_file = Path(args.log_file) if args.log_file else None
    logger = setup_logging("run_batch", level=log_level, log_file=log_file, run_id=args.run_id)

    out_dir = Path(args.out_dir)
    manifest: Dict[str, Any] = {
        "created_at": time.strftime("%Y-%m-%d %H:%M:%S"),
        "args": vars(args),
        "environment": collect_environment(),
        "config": config,
        "background": None,
        "opacity": None,
        "inputs": [],
        "skipped": [],
        "outputs": [],
        "failures": [],
    }

    start_time = time.perf_counter()
    try:
        settings = CoordinatorSettings.from_config(config)
        manifest["background"] = {"hex": settings.background_color, "name": name_of(settings.background_color)}
        manifest["opacity"] = settings.opacity

        paths = collect_image_paths([Path(item) for item in args.inputs], recursive=args.recursive)
        if not paths:
            raise ValueError("No input images found.")
        logger.info(
            "Flattening %d file(s) onto %s (%s) at %d%% opacity.",
            len(paths),
            settings.background_color,
            manifest["background"]["name"],
            settings.opacity,
        )

        uploads = [UploadedFile.from_path(path) for path in paths]
        manifest["inputs"] = [upload.source_path for upload in uploads]
        with BatchCoordinator(settings) as coordinator:
            with log_timer(logger, "Batch flattening"):
                accepted = coordinator.ingest(uploads)
                coordinator.wait_idle()

            accepted_paths = {coordinator.get(image_id).origin for image_id in accepted}
            manifest["skipped"] = [upload.source_path for upload in uploads if upload.source_path not in accepted_paths]
            for report in coordinator.pass_reports:
                for image_id, message in report.failure_messages.items():
                    manifest["failures"].append(
                        {
                            "pass": report.pass_id,
                            "image": image_id,
                            "source": coordinator.get(image_id).origin if image_id in coordinator else None,
                            "error": message,
                        }
                    )

            saver = DirectorySaver(out_dir)
            coordinator.export_all(saver)
            manifest["outputs"] = [path.name for path in saver.written]
            if coordinator.last_error is not None:
                raise coordinator.last_error
    except Exception as exc:
        manifest["failures"].append({"error": str(exc)})
        logger.exception("Batch flattening failed")
        return 1
    finally:
        manifest["timings"] = {"wall_time_s": time.perf_counter() - start_time}
        write_manifest(out_dir, manifest)
        if manifest["failures"]:
            error_report = out_dir / "error_report.json"
            error_report.write_text(json.dumps(manifest["failures"], indent=2), encoding="utf-8")
            logger.warning("Failures recorded in %s", error_report)
        logger.info(
            "Summary: inputs=%d | exported=%d | skipped=%d | out_dir=%s",
            len(manifest["inputs"]),
            len(manifest["outputs"]),
            len(manifest["skipped"]),
            out_dir,
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
