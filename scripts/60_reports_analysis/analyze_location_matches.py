#!/usr/bin/env python3
"""Report how the location matcher would resolve dependent rows (read-only).

Runs the same matcher the backfill uses over properties/developments and
tallies strategy and confidence, listing a sample of rows that did not match.
By default only rows without a location_id are analysed; --all includes
rows that are already linked.

Usage:
    python scripts/60_reports_analysis/analyze_location_matches.py --table property --out reports/matches.json
"""
from __future__ import annotations

import argparse
import sys
from collections import Counter
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import DEPENDENT_TABLES
from db.session import DatabaseUnavailableError, get_session
from scripts.lib.cli_common import (
    EXIT_FATAL,
    add_common_args,
    batch_size,
    load_settings,
    setup_logging,
    write_report,
)
from scripts.lib.location_backfill import LocationBackfill, RowResolutionError
from scripts.lib.location_matcher import LocationMatcher


def analyze_table(session: Session, matcher: LocationMatcher, table: str, page: int,
                  include_linked: bool = False, sample_size: int = 20) -> dict:
    model = DEPENDENT_TABLES[table]
    # Same resolution order as the backfill; never writes
    resolver = LocationBackfill(session, matcher, batch_size=page, dry_run=True)
    strategies: Counter = Counter()
    confidences: Counter = Counter()
    unmatched: list[dict] = []
    errored: list[dict] = []
    total = 0
    last_id = 0
    while True:
        q = select(model).where(model.id > last_id).order_by(model.id).limit(page)
        if not include_linked:
            q = q.where(model.location_id.is_(None))
        rows = session.execute(q).scalars().all()
        if not rows:
            break
        for row in rows:
            total += 1
            try:
                result = resolver.resolve_row(row)
            except RowResolutionError as e:
                strategies["errored"] += 1
                if len(errored) < sample_size:
                    errored.append({"id": row.id, "error": str(e)})
                continue
            strategies[result.matched_by] += 1
            confidences[result.confidence] += 1
            if not result.matched and len(unmatched) < sample_size:
                unmatched.append({"id": row.id, "suburb": row.suburb, "city": row.city,
                                  "province": row.province, "place_id": row.place_id})
        last_id = rows[-1].id
        session.expunge_all()
    return {
        "table": table,
        "rows": total,
        "by_strategy": dict(strategies),
        "by_confidence": dict(confidences),
        "unmatched_sample": unmatched,
        "errored_sample": errored,
    }


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Analyse location match quality without writing")
    add_common_args(ap)
    ap.add_argument("--table", choices=sorted(DEPENDENT_TABLES) + ["all"], default="all")
    ap.add_argument("--all", dest="include_linked", action="store_true",
                    help="Include rows that already have a location_id")
    ap.add_argument("--sample", type=int, default=20, help="Unmatched rows to list per table")
    args = ap.parse_args(argv)
    setup_logging(args.verbose)
    cfg = load_settings(args)
    if cfg is None:
        return EXIT_FATAL

    tables = sorted(DEPENDENT_TABLES) if args.table == "all" else [args.table]
    reports: list[dict] = []
    try:
        with get_session(args.db_url) as session:
            matcher = LocationMatcher(session, bbox_degrees=cfg.bbox_degrees)
            for table in tables:
                reports.append(analyze_table(session, matcher, table, batch_size(args, cfg),
                                             include_linked=args.include_linked, sample_size=args.sample))
            session.rollback()
    except DatabaseUnavailableError as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_FATAL

    for rep in reports:
        print(f"{rep['table']}: {rep['rows']} rows analysed")
        for name, n in sorted(rep["by_strategy"].items(), key=lambda kv: -kv[1]):
            print(f"  {name:<12} {n}")
        for item in rep["unmatched_sample"]:
            print(f"  [unmatched] id={item['id']} suburb={item['suburb']!r} city={item['city']!r} "
                  f"province={item['province']!r}")
    write_report(args.out, {"command": "analyze_location_matches", "tables": reports})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
