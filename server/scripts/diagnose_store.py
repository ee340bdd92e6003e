"""
Report on the persistence configuration and the health of both stores.

Usage:
  python scripts/diagnose_store.py [--probe-tls]
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
from musclerise.diagnostics import (
    inspect_endpoint,
    migration_stamp,
    probe_tls_profiles,
    resolve_hosts,
)
from musclerise.errors import StoreError
from musclerise.store import EntityKind

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Persistence diagnostics")
    parser.add_argument(
        "--probe-tls",
        action="store_true",
        help="Try each transport profile against the remote store",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s:%(message)s")
    failures = 0

    logger.info("ENABLE_MONGODB: %s", settings.enable_mongodb)
    logger.info("MONGO_URI: %s", "set" if settings.mongo_uri else "not set")
    logger.info("DB_NAME: %s", settings.db_name or "not set")
    logger.info("Persistence mode: %s", settings.persistence_mode.value)

    if settings.mongo_uri:
        try:
            endpoint = inspect_endpoint(settings.mongo_uri)
        except ValueError as exc:
            logger.error("MONGO_URI is malformed: %s", exc)
            return 1
        logger.info("Endpoint: %s", endpoint.redacted)
        if endpoint.has_placeholder:
            logger.warning("MONGO_URI still contains <placeholders>")
            failures += 1
        if endpoint.password_embedded:
            logger.warning("MONGO_URI embeds a password; keep it out of shared config")
        if endpoint.is_srv:
            logger.info("SRV connection string; host discovery is left to the driver")
        else:
            for host, error in resolve_hosts(endpoint.hosts).items():
                if error:
                    logger.error("DNS lookup for %s failed: %s", host, error)
                    failures += 1
                else:
                    logger.info("DNS lookup for %s ok", host)

    if args.probe_tls and settings.remote_configured:
        results = probe_tls_profiles(settings)
        for result in results:
            if result.ok:
                logger.info("Profile %r: connected", result.profile)
            else:
                logger.warning(
                    "Profile %r: %s (%s)",
                    result.profile,
                    result.error_class,
                    result.error,
                )
        succeeded = sum(1 for r in results if r.ok)
        logger.info("%d/%d transport profiles connected", succeeded, len(results))
        if not succeeded:
            failures += 1

    with open_backends(settings) as (local, remote):
        for label, store in (("JSON files", local), ("Remote store", remote)):
            if store is None:
                continue
            try:
                users = store.count(EntityKind.USER)
                stamp = migration_stamp(store)
            except StoreError as exc:
                logger.error("%s: %s: %s", label, type(exc).__name__, exc)
                failures += 1
                continue
            logger.info("%s: %d user(s)", label, users)
            if stamp is None:
                logger.info("%s: no migration recorded", label)
            else:
                logger.info("%s: migrated at %s", label, stamp.isoformat())

    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
