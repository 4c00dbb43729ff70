#!/usr/bin/env python3
"""Verify the canonical location hierarchy after a migration (read-only).

Prints PASS/FAIL per check with details and a final tally. Exit code is 0
whenever the checks ran; pass --strict to exit 1 when any check fails.

Usage:
    python scripts/60_reports_analysis/verify_location_migration.py --db-url sqlite:///./data/locations.db --out reports/verify.json
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
from scripts.lib.cli_common import EXIT_FATAL, add_common_args, load_settings, setup_logging, write_report
from scripts.lib.location_verify import LocationVerifier


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Verify location hierarchy integrity (read-only)")
    add_common_args(ap)
    ap.add_argument("--strict", action="store_true", help="Exit 1 if any check fails")
    args = ap.parse_args(argv)
    setup_logging(args.verbose)
    cfg = load_settings(args)
    if cfg is None:
        return EXIT_FATAL

    print("Verifying location hierarchy (read-only)...")
    try:
        with get_session(args.db_url) as session:
            results = LocationVerifier(session, cfg).verify()
            # Never persist anything from a verification run
            session.rollback()
    except DatabaseUnavailableError as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_FATAL

    print("")
    for i, r in enumerate(results, start=1):
        print(f"{'PASS' if r.passed else 'FAIL'} {i:>2}. {r.name}")
        for key, value in r.details.items():
            if key == "sample" and not value:
                continue
            print(f"       {key}: {value}")
    passed = sum(1 for r in results if r.passed)
    failed = len(results) - passed
    print("")
    print(f"SUMMARY: {passed} passed, {failed} failed")
    if failed:
        print("Some checks failed; review the details above. Nothing was changed.")
    write_report(args.out, {
        "command": "verify_location_migration",
        "passed": passed,
        "failed": failed,
        "checks": [r.as_dict() for r in results],
    })
    return 1 if (args.strict and failed) else 0


if __name__ == "__main__":
    raise SystemExit(main())
