#!/usr/bin/env python3
"""Create or upgrade the location engine schema.

Defaults are safe:
- Uses Alembic migrations by default (no destructive operations)
- Accepts --db-url to override the target DB (else LOCATIONS_DB_URL, else the repo default)
- Falls back to SQLAlchemy metadata create_all if Alembic cannot run

Examples:
  python scripts/00_bootstrap/bootstrap_db.py --db-url sqlite:///./data/locations.db

Optional:
  --use-metadata      Use SQLAlchemy Base.metadata.create_all instead of Alembic
  --echo              Enable SQL echo for troubleshooting
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from db.models import Base
from db.session import make_engine, resolve_db_url


def _ensure_sqlite_dir(db_url: str) -> None:
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def _run_alembic_upgrade_head(db_url: str) -> int:
    try:
        from alembic.config import Config
        from alembic import command
    except ImportError as e:
        print("[warn] Alembic not available:", e)
        return 2

    ini_path = PROJECT_ROOT / "alembic.ini"
    if not ini_path.is_file():
        print(f"[error] alembic.ini not found at {ini_path}")
        return 2

    cfg = Config(str(ini_path))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    # ConfigParser interpolation would choke on '%' in URLs
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    print("Running Alembic upgrade to head...")
    try:
        command.upgrade(cfg, "head")
    except (SQLAlchemyError, OSError) as e:
        print(f"[warn] Alembic upgrade failed: {e}")
        return 2
    print("Alembic upgrade complete.")
    return 0


def _create_with_metadata(db_url: str, echo: bool = False) -> int:
    print("Creating tables via SQLAlchemy metadata (create_all)...")
    engine = make_engine(db_url, echo=echo)
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        print(f"[error] create_all failed: {e}")
        return 2
    finally:
        engine.dispose()
    print("Metadata create_all complete.")
    return 0


def parse_args(argv: Optional[list[str]]) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Bootstrap/upgrade the location engine database schema")
    ap.add_argument("--db-url", dest="db_url", default=None,
                    help="Target database URL (overrides env var LOCATIONS_DB_URL)")
    ap.add_argument("--use-metadata", action="store_true",
                    help="Use SQLAlchemy Base.metadata.create_all instead of Alembic")
    ap.add_argument("--echo", action="store_true", help="Echo SQL statements (metadata mode)")
    return ap.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    db_url = resolve_db_url(args.db_url)
    print(f"Target DB URL: {db_url}")
    _ensure_sqlite_dir(db_url)

    if args.use_metadata:
        return _create_with_metadata(db_url, echo=args.echo)

    # Prefer Alembic; fall back to metadata if Alembic is not available
    rc = _run_alembic_upgrade_head(db_url)
    if rc != 0:
        print("[warn] Falling back to SQLAlchemy metadata create_all...")
        return _create_with_metadata(db_url, echo=args.echo)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
