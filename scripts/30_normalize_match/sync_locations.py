#!/usr/bin/env python3
"""Sync the canonical locations table from the legacy provinces/cities/suburbs tables.

Provinces first, then cities, then suburbs; existing locations are updated in
place when their place_id matches, everything else is inserted. Legacy rows
without a place_id are inserted again on every run.

Safe by default: dry-run (runs inside a transaction that is rolled back).
Use --execute to commit.

Usage:
    python scripts/30_normalize_match/sync_locations.py --db-url sqlite:///./data/locations.db --execute
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from db.session import DatabaseUnavailableError, get_session
from scripts.lib.cli_common import (
    EXIT_FATAL,
    add_common_args,
    load_settings,
    mode_label,
    setup_logging,
    write_report,
)
from scripts.lib.location_sync import LocationSynchronizer


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Sync canonical locations from legacy hierarchy tables")
    add_common_args(ap)
    args = ap.parse_args(argv)
    setup_logging(args.verbose)
    cfg = load_settings(args)
    if cfg is None:
        return EXIT_FATAL

    label = mode_label(args.execute)
    print(f"{label} Syncing locations (provinces -> cities -> suburbs)...")
    try:
        with get_session(args.db_url) as session:
            summary = LocationSynchronizer(session, cfg).sync(dry_run=not args.execute)
    except DatabaseUnavailableError as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_FATAL

    print(f"{label} provinces synced: {summary.provinces_synced}")
    print(f"{label} cities synced:    {summary.cities_synced}")
    print(f"{label} suburbs synced:   {summary.suburbs_synced}")
    print(f"{label} created={summary.created} updated={summary.updated} skipped={summary.skipped}")
    if not args.execute:
        print("[DRY-RUN] No changes were committed. Re-run with --execute to apply.")
    write_report(args.out, {"command": "sync_locations", **summary.as_dict()})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
