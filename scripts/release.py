"""
Release phase: migrate the database to head, then seed permissions and the
admin account (idempotent; existing passwords are never overwritten).

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


def _release_database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL must be set for the release phase.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release a production deploy onto sqlite; point DATABASE_URL at Postgres.")
    return db_url


def alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    # configparser interpolation: escape literal %
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    return cfg


def run_release(*, seed: bool = True) -> None:
    from alembic import command

    db_url = _release_database_url()
    print(f"[release] upgrading schema to head (ENV={os.environ.get('ENV') or 'unset'})", flush=True)
    command.upgrade(alembic_config(db_url), "head")

    if seed:
        from scripts import init_db

        print("[release] seeding RegDesk permissions and admin account", flush=True)
        init_db.seed_only(database_url=db_url)
    print("[release] done", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run RegDesk migrations and seed data.")
    parser.add_argument("--skip-seed", action="store_true", help="only run migrations")
    args = parser.parse_args()
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()
