"""
Record store interface and an in-memory implementation.

Every backend exposes the same operations over the two entity kinds. A
lookup that finds nothing returns ``None``; failures raise the errors in
``musclerise.errors``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol, Sequence, Union

from musclerise.errors import DuplicateUsername
from musclerise.records import AdminSettings, User, check_unique_users, username_key

ADMIN_SETTINGS_KEY = "admin"

Record = Union[User, AdminSettings]


class EntityKind(str, Enum):
    """Entity kinds; the value doubles as the collection and file stem."""

    USER = "users"
    ADMIN = "admin"


def record_key(kind: EntityKind, record: Record) -> str:
    """Return the natural key of a record of the given kind."""
    check_record(kind, record)
    if kind is EntityKind.USER:
        return record.id
    return ADMIN_SETTINGS_KEY


def check_record(kind: EntityKind, record: Record) -> None:
    expected = User if kind is EntityKind.USER else AdminSettings
    if not isinstance(record, expected):
        raise TypeError(
            f"{kind.value} expects {expected.__name__}, got {type(record).__name__}"
        )


def check_replacement(kind: EntityKind, records: Sequence[Record]) -> None:
    """Validate a full replacement set before any backend deletes anything."""
    for record in records:
        check_record(kind, record)
    if kind is EntityKind.USER:
        check_unique_users(records)
    elif len(records) > 1:
        raise ValueError("at most one admin settings record can be stored")


class RecordStore(Protocol):
    """Operations every backend provides."""

    def get(self, kind: EntityKind, key: str) -> Optional[Record]:
        ...

    def list(self, kind: EntityKind) -> list[Record]:
        ...

    def put(self, kind: EntityKind, record: Record) -> None:
        ...

    def delete_by_key(self, kind: EntityKind, key: str) -> int:
        ...

    def count(self, kind: EntityKind) -> int:
        ...

    def get_user_by_username(self, username: str) -> Optional[User]:
        ...

    def replace_all(self, kind: EntityKind, records: Sequence[Record]) -> int:
        """Overwrite every record of ``kind``. Reserved for migrations."""
        ...

    def close(self) -> None:
        ...


class InMemoryRecordStore:
    """Dict-backed store for development and tests."""

    def __init__(self):
        self.users: dict[str, User] = {}
        self.admin: Optional[AdminSettings] = None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.admin = None

    def get(self, kind: EntityKind, key: str) -> Optional[Record]:
        if kind is EntityKind.USER:
            user = self.users.get(key)
            return user.model_copy(deep=True) if user else None
        if key != ADMIN_SETTINGS_KEY or self.admin is None:
            return None
        return self.admin.model_copy(deep=True)

    def list(self, kind: EntityKind) -> list[Record]:
        if kind is EntityKind.USER:
            return [user.model_copy(deep=True) for user in self.users.values()]
        return [self.admin.model_copy(deep=True)] if self.admin is not None else []

    def put(self, kind: EntityKind, record: Record) -> None:
        check_record(kind, record)
        if kind is EntityKind.USER:
            wanted = username_key(record.username)
            for existing in self.users.values():
                if existing.id == record.id:
                    continue
                if username_key(existing.username) == wanted:
                    raise DuplicateUsername(record.username)
            self.users[record.id] = record.model_copy(deep=True)
            return
        migrated_at = self.admin.migratedAt if self.admin is not None else None
        self.admin = record.model_copy(update={"migratedAt": migrated_at}, deep=True)

    def delete_by_key(self, kind: EntityKind, key: str) -> int:
        if kind is EntityKind.USER:
            return 1 if self.users.pop(key, None) is not None else 0
        if key != ADMIN_SETTINGS_KEY or self.admin is None:
            return 0
        self.admin = None
        return 1

    def count(self, kind: EntityKind) -> int:
        if kind is EntityKind.USER:
            return len(self.users)
        return 1 if self.admin is not None else 0

    def get_user_by_username(self, username: str) -> Optional[User]:
        wanted = username_key(username)
        for user in self.users.values():
            if username_key(user.username) == wanted:
                return user.model_copy(deep=True)
        return None

    def replace_all(self, kind: EntityKind, records: Sequence[Record]) -> int:
        check_replacement(kind, records)
        if kind is EntityKind.USER:
            self.users = {r.id: r.model_copy(deep=True) for r in records}
        else:
            self.admin = records[0].model_copy(deep=True) if records else None
        return len(records)

    def close(self) -> None:
        return None
