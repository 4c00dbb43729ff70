#!/usr/bin/env python3
"""Fill missing slugs on the legacy provinces/cities/suburbs tables.

Slugs are unique within their parent (provinces globally, cities per
province, suburbs per city); clashes get a numeric suffix.

Safe by default: dry-run. Use --execute to commit.
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
from scripts.lib.cli_common import EXIT_FATAL, add_common_args, load_settings, mode_label, setup_logging, write_report
from scripts.lib.location_sync import backfill_legacy_slugs


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Backfill NULL slugs on legacy hierarchy tables")
    add_common_args(ap)
    args = ap.parse_args(argv)
    setup_logging(args.verbose)
    if load_settings(args) is None:
        return EXIT_FATAL

    label = mode_label(args.execute)
    try:
        with get_session(args.db_url) as session:
            counts = backfill_legacy_slugs(session)
            if args.execute:
                session.commit()
            else:
                session.rollback()
    except DatabaseUnavailableError as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_FATAL

    for key, n in counts.items():
        print(f"{label} {key}: {n} slug(s) filled")
    if not args.execute:
        print("[DRY-RUN] No changes were committed. Re-run with --execute to apply.")
    write_report(args.out, {"command": "backfill_legacy_slugs", "dry_run": not args.execute, "counts": counts})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
