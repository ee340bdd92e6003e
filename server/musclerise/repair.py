"""
Targeted user removal applied to both stores.

Removing a user from only one store lets a later migration bring it back,
so removal always addresses the remote store (when configured) and the
JSON files, whatever the active persistence mode is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from musclerise.errors import RepairError, StoreError
from musclerise.store import EntityKind, RecordStore

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    PENDING = "pending"
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RemovalReport:
    username: str
    remote: Outcome = Outcome.PENDING
    local: Outcome = Outcome.PENDING

    def as_dict(self) -> dict:
        return {
            "username": self.username,
            "remote": self.remote.value,
            "local": self.local.value,
        }


def _remove_from(store: RecordStore, username: str) -> Outcome:
    user = store.get_user_by_username(username)
    if user is None:
        return Outcome.NOT_FOUND
    if store.delete_by_key(EntityKind.USER, user.id) == 0:
        return Outcome.NOT_FOUND
    return Outcome.REMOVED


def remove_user(
    username: str,
    local: RecordStore,
    remote: Optional[RecordStore] = None,
) -> RemovalReport:
    """
    Delete ``username`` from the remote store and the JSON files.

    The remote store goes first, so a remote failure aborts before the
    JSON files change and both stores stay in the same state.
    """
    report = RemovalReport(username=username)

    if remote is None:
        report.remote = Outcome.SKIPPED
        logger.info("Remote store not configured, skipping remote removal")
    else:
        try:
            report.remote = _remove_from(remote, username)
        except StoreError as exc:
            report.remote = Outcome.FAILED
            raise RepairError(
                f"removing {username!r} from the remote store failed: {exc}",
                report=report,
            ) from exc
        logger.info("Remote store: %s", report.remote.value)

    try:
        report.local = _remove_from(local, username)
    except StoreError as exc:
        report.local = Outcome.FAILED
        raise RepairError(
            f"removing {username!r} from the JSON files failed: {exc}",
            report=report,
        ) from exc
    logger.info("JSON files: %s", report.local.value)
    return report
