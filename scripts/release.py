"""
Release-phase helper: migrate the documents schema, confirm it, seed users.

Steps:
- refuse to run without DATABASE_URL, or on sqlite when ENV is production
- `alembic upgrade head`
- check that the database now sits on SCHEMA_HEAD, so the app never serves
  against a half-applied or unexpected schema
- seed the demo user directory (idempotent; `--skip-seed` to leave it alone)

Usage:
  python scripts/release.py [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Latest revision under migrations/versions. Bump together with new revisions.
SCHEMA_HEAD = "4d1e7a9c2b30"


def _database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release onto sqlite in production. Point DATABASE_URL at Postgres.")
    return db_url


def _alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def verify_schema_head(cfg, db_url: str) -> str:
    """Raise unless the scripts and the database both stand at SCHEMA_HEAD."""
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory

    from scripts._db_utils import create_script_engine

    script_head = ScriptDirectory.from_config(cfg).get_current_head()
    if script_head != SCHEMA_HEAD:
        raise RuntimeError(f"Migration scripts end at {script_head}, release expects {SCHEMA_HEAD}.")

    engine = create_script_engine(db_url)
    try:
        with engine.connect() as conn:
            db_rev = MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()
    if db_rev != SCHEMA_HEAD:
        raise RuntimeError(f"Database is at revision {db_rev or '(none)'}, expected {SCHEMA_HEAD}.")
    return db_rev


def run_release(*, seed: bool = True) -> None:
    db_url = _database_url()
    print("=== doctrack release start ===", flush=True)

    from alembic import command

    cfg = _alembic_config(db_url)
    command.upgrade(cfg, "head")
    rev = verify_schema_head(cfg, db_url)
    print(f"Schema at {rev}.", flush=True)

    if seed:
        from scripts import init_db

        init_db.seed_only(database_url=db_url)
    else:
        print("Skipping user seed.", flush=True)
    print("=== doctrack release done ===", flush=True)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Migrate and seed the doctrack database.")
    parser.add_argument("--skip-seed", action="store_true", help="do not insert demo users")
    args = parser.parse_args(argv)
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()
