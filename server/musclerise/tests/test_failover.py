import tempfile
import unittest
from unittest.mock import patch

from musclerise.config import PersistenceMode
from musclerise.errors import (
    AuthenticationFailed,
    Corrupt,
    DuplicateUsername,
    NameResolutionFailed,
    Timeout,
)
from musclerise.failover import FailoverRecordStore
from musclerise.json_store import JsonFileRecordStore
from musclerise.records import User
from musclerise.store import EntityKind, InMemoryRecordStore


def make_user(user_id, username, **fields):
    return User(id=user_id, username=username, weightKg=60, heightCm=165, **fields)


class FailoverRecordStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.local = JsonFileRecordStore(self._tmp.name)
        self.remote = InMemoryRecordStore()
        self.store = FailoverRecordStore(
            self.local, self.remote, PersistenceMode.REMOTE
        )

    def test_remote_mode_uses_remote(self):
        self.store.put(EntityKind.USER, make_user("1", "alice"))
        self.assertEqual(self.remote.count(EntityKind.USER), 1)
        self.assertEqual(self.local.count(EntityKind.USER), 0)

    def test_unreachable_remote_falls_back_for_one_call(self):
        self.remote.put(EntityKind.USER, make_user("1", "alice", coins=10))

        with patch.object(self.remote, "put", side_effect=Timeout("timed out")):
            with self.assertLogs("musclerise.failover", level="WARNING") as logs:
                self.store.put(EntityKind.USER, make_user("2", "bob"))
        self.assertIn("serving from JSON files", logs.output[0])
        self.assertEqual([u.id for u in self.local.list(EntityKind.USER)], ["2"])

        # The next call goes to the remote store again.
        self.assertEqual(self.store.get(EntityKind.USER, "1").coins, 10)
        self.assertIsNone(self.store.get(EntityKind.USER, "2"))

    def test_name_resolution_failure_falls_back(self):
        self.local.put(EntityKind.USER, make_user("9", "local-only"))
        with patch.object(
            self.remote, "list", side_effect=NameResolutionFailed("no such host")
        ):
            users = self.store.list(EntityKind.USER)
        self.assertEqual([u.id for u in users], ["9"])

    def test_fatal_errors_propagate(self):
        for error in (
            AuthenticationFailed("bad auth"),
            Corrupt("garbage"),
            DuplicateUsername("alice"),
        ):
            with self.subTest(error=type(error).__name__):
                with patch.object(self.remote, "put", side_effect=error):
                    with self.assertRaises(type(error)):
                        self.store.put(EntityKind.USER, make_user("1", "alice"))
                self.assertEqual(self.local.count(EntityKind.USER), 0)

    def test_local_error_after_fallback_propagates(self):
        with patch.object(self.remote, "count", side_effect=Timeout("timed out")):
            with patch.object(self.local, "count", side_effect=Corrupt("bad file")):
                with self.assertRaises(Corrupt):
                    self.store.count(EntityKind.USER)

    def test_local_mode_never_touches_remote(self):
        store = FailoverRecordStore(self.local, self.remote, PersistenceMode.LOCAL)
        with patch.object(self.remote, "put") as remote_put:
            store.put(EntityKind.USER, make_user("1", "alice"))
            store.get(EntityKind.USER, "1")
        remote_put.assert_not_called()
        self.assertEqual(self.local.count(EntityKind.USER), 1)
        self.assertEqual(self.remote.count(EntityKind.USER), 0)

    def test_remote_mode_needs_remote_store(self):
        with self.assertRaises(ValueError):
            FailoverRecordStore(self.local, None, PersistenceMode.REMOTE)

    def test_replace_all_does_not_fall_back(self):
        with patch.object(self.remote, "replace_all", side_effect=Timeout("timed out")):
            with self.assertRaises(Timeout):
                self.store.replace_all(EntityKind.USER, [make_user("1", "alice")])
        self.assertEqual(self.local.count(EntityKind.USER), 0)

    def test_close_closes_both(self):
        with patch.object(self.remote, "close") as remote_close, patch.object(
            self.local, "close"
        ) as local_close:
            self.store.close()
        remote_close.assert_called_once()
        local_close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
