"""
Remove a user from both the remote store and the JSON files.

Usage:
  python scripts/remove_user.py <username>
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
from musclerise.errors import RepairError
from musclerise.repair import Outcome, remove_user

logger = logging.getLogger(__name__)

MESSAGES = {
    Outcome.REMOVED: "removed",
    Outcome.NOT_FOUND: "not found there",
    Outcome.SKIPPED: "not configured, skipped",
    Outcome.FAILED: "failed",
    Outcome.PENDING: "not attempted",
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Remove a user from the remote store and the JSON files"
    )
    parser.add_argument("username", help="Exact username to remove")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s:%(message)s")

    with open_backends(settings) as (local, remote):
        try:
            report = remove_user(args.username, local, remote)
        except RepairError as exc:
            logger.error("User removal failed: %s", exc)
            logger.error("Remote store: %s", MESSAGES[exc.report.remote])
            logger.error("JSON files: %s", MESSAGES[exc.report.local])
            return 1

    logger.info("Remote store: %s", MESSAGES[report.remote])
    logger.info("JSON files: %s", MESSAGES[report.local])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
