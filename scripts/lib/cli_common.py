"""Argument and output helpers shared by the location command scripts."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from scripts.lib.engine_config import ConfigError, EngineConfig, load_config

# Exit code for fatal startup conditions (unreachable DB, bad config)
EXIT_FATAL = 2


def add_common_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--db-url", help="Database URL (overrides LOCATIONS_DB_URL)")
    ap.add_argument("--config", type=Path, help="Engine settings YAML (default: config/location_engine.yaml)")
    ap.add_argument("--execute", action="store_true", help="Write changes (default: dry-run)")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    ap.add_argument("--batch-size", type=int, default=None, help="Rows per page (default from config, 100)")
    ap.add_argument("--out", type=Path, help="Write the JSON summary report here")


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def load_settings(args: argparse.Namespace) -> Optional[EngineConfig]:
    """Config from --config; prints and returns None when unusable."""
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print(f"[error] {e}", file=sys.stderr)
        return None
    if args.batch_size is not None and args.batch_size < 1:
        print("[error] --batch-size must be >= 1", file=sys.stderr)
        return None
    return cfg


def batch_size(args: argparse.Namespace, cfg: EngineConfig) -> int:
    return args.batch_size if args.batch_size is not None else cfg.batch_size


def mode_label(execute: bool) -> str:
    return "[EXECUTE]" if execute else "[DRY-RUN]"


def write_report(path: Optional[Path], payload: dict[str, Any]) -> None:
    if path is None:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    body = {"ts": datetime.now(timezone.utc).isoformat(), **payload}
    path.write_text(json.dumps(body, indent=2, default=str), encoding="utf-8")
    print(f"Wrote report: {path}")
