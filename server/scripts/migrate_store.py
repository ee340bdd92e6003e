"""
Copy every record from one store into the other, replacing the destination.

Usage:
  python scripts/migrate_store.py --source json --destination remote
  python scripts/migrate_store.py --source remote --destination json --kind users

This is a full overwrite, not a merge. Stop the backend before running it.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from musclerise.config import get_settings
from musclerise.dependencies import open_backends
from musclerise.errors import MigrationError
from musclerise.migration import ALL_KINDS, migrate
from musclerise.store import EntityKind

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Overwrite one record store with the contents of the other"
    )
    parser.add_argument("--source", choices=("json", "remote"), required=True)
    parser.add_argument("--destination", choices=("json", "remote"), required=True)
    parser.add_argument(
        "--kind",
        choices=("users", "admin", "all"),
        default="all",
        help="Which records to migrate",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s:%(message)s")

    if args.source == args.destination:
        logger.error("Source and destination must differ")
        return 2
    if "remote" in (args.source, args.destination) and not settings.remote_configured:
        logger.error(
            "MONGO_URI and DB_NAME must be set to migrate to or from the remote store"
        )
        return 2

    kinds = ALL_KINDS if args.kind == "all" else (EntityKind(args.kind),)
    with open_backends(settings) as (local, remote):
        stores = {"json": local, "remote": remote}
        try:
            report = migrate(stores[args.source], stores[args.destination], kinds)
        except MigrationError as exc:
            logger.error("Migration failed: %s", exc)
            committed = ", ".join(f"{k.value}={n}" for k, n in exc.committed.items())
            logger.error("Committed: %s", committed or "nothing")
            logger.error(
                "Pending: %s", ", ".join(k.value for k in exc.pending) or "nothing"
            )
            return 1

    logger.info(
        "Migration %s -> %s complete: %s (migratedAt %s)",
        args.source,
        args.destination,
        report.summary(),
        report.migrated_at.isoformat(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
