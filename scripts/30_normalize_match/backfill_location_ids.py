#!/usr/bin/env python3
"""Backfill location_id (and province/city/suburb ids) on properties and developments.

Only rows with a NULL location_id are visited, so an interrupted run can be
restarted and continues where it stopped. Per-row failures are counted as
errored and the run carries on.

Safe by default: dry-run. Use --execute to write (committed once per batch).

Usage:
    python scripts/30_normalize_match/backfill_location_ids.py --table property --batch-size 200 --execute
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from db.models import DEPENDENT_TABLES
from db.session import DatabaseUnavailableError, get_session
from scripts.lib.cli_common import (
    EXIT_FATAL,
    add_common_args,
    batch_size,
    load_settings,
    mode_label,
    setup_logging,
    write_report,
)
from scripts.lib.location_backfill import BackfillSummary, LocationBackfill
from scripts.lib.location_matcher import LocationMatcher


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Backfill location foreign keys on dependent tables")
    add_common_args(ap)
    ap.add_argument("--table", choices=sorted(DEPENDENT_TABLES) + ["all"], default="all",
                    help="Dependent table to backfill (default: all)")
    args = ap.parse_args(argv)
    setup_logging(args.verbose)
    cfg = load_settings(args)
    if cfg is None:
        return EXIT_FATAL

    label = mode_label(args.execute)
    tables = sorted(DEPENDENT_TABLES) if args.table == "all" else [args.table]
    size = batch_size(args, cfg)

    def _progress(batch_no: int, s: BackfillSummary) -> None:
        print(f"{label} {s.table} batch {batch_no}: processed={s.processed} "
              f"updated={s.updated} skipped={s.skipped} errored={s.errored}")

    summaries: list[BackfillSummary] = []
    try:
        with get_session(args.db_url) as session:
            matcher = LocationMatcher(session, bbox_degrees=cfg.bbox_degrees)
            backfill = LocationBackfill(session, matcher, batch_size=size,
                                        dry_run=not args.execute, on_batch=_progress)
            for table in tables:
                print(f"{label} Backfilling {table} (batch size {size})...")
                summaries.append(backfill.run(table))
    except DatabaseUnavailableError as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_FATAL

    print("")
    print(f"{label} SUMMARY")
    for s in summaries:
        print(f"  {s.table}: processed={s.processed} updated={s.updated} "
              f"skipped={s.skipped} errored={s.errored}")
        if s.by_strategy:
            parts = ", ".join(f"{k}={v}" for k, v in sorted(s.by_strategy.items()))
            print(f"    matched by: {parts}")
    if not args.execute:
        print("[DRY-RUN] No rows were updated. Re-run with --execute to apply.")
    write_report(args.out, {
        "command": "backfill_location_ids",
        "dry_run": not args.execute,
        "batch_size": size,
        "tables": [s.as_dict() for s in summaries],
    })
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
