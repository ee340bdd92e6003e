"""
JSON-file record store.

Users live in ``users.json`` as one array and the admin settings in
``admin.json`` as one object. Every mutation rewrites the whole file, so
each file is guarded by a process-wide lock held across the full
read-modify-write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional, Sequence

from musclerise.errors import BackendUnavailable, Corrupt, DuplicateUsername
from musclerise.records import (
    AdminSettings,
    User,
    check_unique_users,
    decode_admin,
    decode_user,
    encode,
    username_key,
)
from musclerise.store import (
    ADMIN_SETTINGS_KEY,
    EntityKind,
    Record,
    check_record,
    check_replacement,
)

logger = logging.getLogger(__name__)

_FILE_LOCKS: dict[str, threading.Lock] = {}
_FILE_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _FILE_LOCKS_GUARD:
        lock = _FILE_LOCKS.get(key)
        if lock is None:
            lock = _FILE_LOCKS[key] = threading.Lock()
        return lock


class JsonFileRecordStore:
    """Record store backed by two pretty-printed JSON files."""

    def __init__(self, data_dir: str | os.PathLike):
        self.data_dir = Path(data_dir)
        self.users_path = self.data_dir / "users.json"
        self.admin_path = self.data_dir / "admin.json"

    def _path(self, kind: EntityKind) -> Path:
        return self.users_path if kind is EntityKind.USER else self.admin_path

    def _read_raw(self, path: Path) -> Any:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise BackendUnavailable(f"cannot read {path}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise Corrupt(f"{path} is not UTF-8: {exc}") from exc
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise Corrupt(f"{path} is not valid JSON: {exc}") from exc

    def _write_raw(self, path: Path, payload: Any) -> None:
        """Write JSON atomically: temp file in the same directory, then rename."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        except OSError as exc:
            raise BackendUnavailable(f"cannot write {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise BackendUnavailable(f"cannot write {path}: {exc}") from exc

    def _load_users(self) -> list[User]:
        raw = self._read_raw(self.users_path)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise Corrupt(f"{self.users_path} must hold a JSON array")
        users = [decode_user(item) for item in raw]
        check_unique_users(users)
        return users

    def _load_admin(self) -> Optional[AdminSettings]:
        raw = self._read_raw(self.admin_path)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise Corrupt(f"{self.admin_path} must hold a JSON object")
        return decode_admin(raw)

    def _save_users(self, users: Sequence[User]) -> None:
        self._write_raw(self.users_path, [encode(user) for user in users])

    def get(self, kind: EntityKind, key: str) -> Optional[Record]:
        with _lock_for(self._path(kind)):
            if kind is EntityKind.USER:
                return next((u for u in self._load_users() if u.id == key), None)
            if key != ADMIN_SETTINGS_KEY:
                return None
            return self._load_admin()

    def list(self, kind: EntityKind) -> list[Record]:
        with _lock_for(self._path(kind)):
            if kind is EntityKind.USER:
                return self._load_users()
            admin = self._load_admin()
            return [admin] if admin is not None else []

    def put(self, kind: EntityKind, record: Record) -> None:
        check_record(kind, record)
        with _lock_for(self._path(kind)):
            if kind is EntityKind.ADMIN:
                current = self._load_admin()
                migrated_at = current.migratedAt if current is not None else None
                record = record.model_copy(update={"migratedAt": migrated_at})
                self._write_raw(self.admin_path, encode(record))
                return

            users = self._load_users()
            wanted = username_key(record.username)
            index = None
            for i, user in enumerate(users):
                if user.id == record.id:
                    index = i
                elif username_key(user.username) == wanted:
                    raise DuplicateUsername(record.username)
            if index is None:
                users.append(record)
            else:
                users[index] = record
            self._save_users(users)

    def delete_by_key(self, kind: EntityKind, key: str) -> int:
        with _lock_for(self._path(kind)):
            if kind is EntityKind.ADMIN:
                if key != ADMIN_SETTINGS_KEY or self._load_admin() is None:
                    return 0
                try:
                    self.admin_path.unlink()
                except FileNotFoundError:
                    return 0
                except OSError as exc:
                    raise BackendUnavailable(
                        f"cannot remove {self.admin_path}: {exc}"
                    ) from exc
                return 1

            users = self._load_users()
            remaining = [user for user in users if user.id != key]
            if len(remaining) == len(users):
                return 0
            self._save_users(remaining)
            return 1

    def count(self, kind: EntityKind) -> int:
        return len(self.list(kind))

    def get_user_by_username(self, username: str) -> Optional[User]:
        wanted = username_key(username)
        with _lock_for(self.users_path):
            users = self._load_users()
        return next((u for u in users if username_key(u.username) == wanted), None)

    def replace_all(self, kind: EntityKind, records: Sequence[Record]) -> int:
        check_replacement(kind, records)
        with _lock_for(self._path(kind)):
            if kind is EntityKind.USER:
                self._save_users(records)
            elif records:
                self._write_raw(self.admin_path, encode(records[0]))
            else:
                try:
                    self.admin_path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as exc:
                    raise BackendUnavailable(
                        f"cannot remove {self.admin_path}: {exc}"
                    ) from exc
        logger.info(
            "Replaced %s in %s with %d record(s)",
            kind.value,
            self.data_dir,
            len(records),
        )
        return len(records)

    def close(self) -> None:
        return None
