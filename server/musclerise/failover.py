"""
Per-call failover between the remote store and the local JSON files.

In remote mode every call goes to MongoDB first. If the remote store is
unreachable (including timeouts and DNS failures) that single call is
served from the JSON files and a warning is logged; the next call tries
the remote store again. Corrupt data, rejected credentials and username
conflicts are always raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence, TypeVar

from musclerise.config import PersistenceMode
from musclerise.errors import BackendUnavailable
from musclerise.records import User
from musclerise.store import EntityKind, Record, RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailoverRecordStore:
    """Record store that picks a backend for each call."""

    def __init__(
        self,
        local: RecordStore,
        remote: Optional[RecordStore] = None,
        mode: PersistenceMode = PersistenceMode.LOCAL,
    ):
        if mode is PersistenceMode.REMOTE and remote is None:
            raise ValueError("remote persistence mode needs a remote store")
        self.local = local
        self.remote = remote
        self.mode = mode

    def _call(self, operation: str, fn: Callable[[RecordStore], T]) -> T:
        if self.mode is PersistenceMode.LOCAL:
            return fn(self.local)
        try:
            return fn(self.remote)
        except BackendUnavailable as exc:
            logger.warning(
                "Remote store unavailable during %s (%s: %s); serving from JSON files",
                operation,
                type(exc).__name__,
                exc,
            )
            return fn(self.local)

    def get(self, kind: EntityKind, key: str) -> Optional[Record]:
        return self._call("get", lambda store: store.get(kind, key))

    def list(self, kind: EntityKind) -> list[Record]:
        return self._call("list", lambda store: store.list(kind))

    def put(self, kind: EntityKind, record: Record) -> None:
        self._call("put", lambda store: store.put(kind, record))

    def delete_by_key(self, kind: EntityKind, key: str) -> int:
        return self._call("delete_by_key", lambda store: store.delete_by_key(kind, key))

    def count(self, kind: EntityKind) -> int:
        return self._call("count", lambda store: store.count(kind))

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._call(
            "get_user_by_username", lambda store: store.get_user_by_username(username)
        )

    def replace_all(self, kind: EntityKind, records: Sequence[Record]) -> int:
        # Full overwrites never fall back to the other medium.
        primary = self.remote if self.mode is PersistenceMode.REMOTE else self.local
        return primary.replace_all(kind, records)

    def close(self) -> None:
        try:
            if self.remote is not None:
                self.remote.close()
        finally:
            self.local.close()
