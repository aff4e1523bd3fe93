"""Create tables and seed the demo accounts."""
from __future__ import annotations

import argparse
import sys

from flare_stage.core.logging import configure_logging
from flare_stage.core.settings import settings
from flare_stage.db.session import SessionLocal, create_tables, drop_tables
from flare_stage.services.seed import seed_demo_users


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Prepare the configured database")
    parser.add_argument(
        "--drop-tables",
        action="store_true",
        help="Drop every table before recreating the schema.",
    )
    parser.add_argument(
        "--no-demo-users",
        action="store_true",
        help="Create the schema only; skip the demo accounts.",
    )
    parser.add_argument(
        "--password",
        default=None,
        help="Password for the demo accounts (defaults to DEMO_PASSWORD)",
    )
    args = parser.parse_args(argv)
    configure_logging()

    try:
        if args.drop_tables:
            drop_tables()
        create_tables()
        if not args.no_demo_users:
            with SessionLocal() as db:
                created = seed_demo_users(db, password=args.password)
            print(f"[seed] created {len(created)} demo user(s) in {settings.effective_database_url}")
    except Exception as exc:
        print(f"[seed] ERROR: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
