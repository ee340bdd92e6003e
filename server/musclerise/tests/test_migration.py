import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

from musclerise.errors import BackendUnavailable, MigrationError
from musclerise.json_store import JsonFileRecordStore
from musclerise.migration import migrate
from musclerise.records import AdminSettings, User
from musclerise.store import ADMIN_SETTINGS_KEY, EntityKind, InMemoryRecordStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
LAST_UPDATED = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


def make_user(user_id, username, **fields):
    return User(id=user_id, username=username, weightKg=60, heightCm=165, **fields)


class MigrationTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.json = JsonFileRecordStore(self._tmp.name)
        self.remote = InMemoryRecordStore()

        for i, name in enumerate(("alice", "bob", "carol"), start=1):
            self.json.put(EntityKind.USER, make_user(str(i), name, coins=i * 10))
        self.json.put(
            EntityKind.ADMIN,
            AdminSettings(lastUpdated=LAST_UPDATED, globalMuscleBoostEnabled=True),
        )
        self.remote.put(EntityKind.USER, make_user("99", "stale"))

    def test_json_to_remote_overwrites(self):
        report = migrate(self.json, self.remote, now=NOW)

        self.assertEqual(report.counts, {EntityKind.USER: 3, EntityKind.ADMIN: 1})
        self.assertEqual(
            [u.username for u in self.remote.list(EntityKind.USER)],
            ["alice", "bob", "carol"],
        )
        self.assertIsNone(self.remote.get(EntityKind.USER, "99"))

        admin = self.remote.get(EntityKind.ADMIN, ADMIN_SETTINGS_KEY)
        self.assertEqual(admin.migratedAt, NOW)
        self.assertEqual(admin.lastUpdated, LAST_UPDATED)
        self.assertTrue(admin.globalMuscleBoostEnabled)

        # The source is left as it was.
        source_admin = self.json.get(EntityKind.ADMIN, ADMIN_SETTINGS_KEY)
        self.assertIsNone(source_admin.migratedAt)

    def test_remote_to_json(self):
        report = migrate(self.remote, self.json, now=NOW)
        self.assertEqual(report.counts, {EntityKind.USER: 1, EntityKind.ADMIN: 0})
        self.assertEqual([u.id for u in self.json.list(EntityKind.USER)], ["99"])
        self.assertIsNone(self.json.get(EntityKind.ADMIN, ADMIN_SETTINGS_KEY))

    def test_single_kind(self):
        migrate(self.json, self.remote, [EntityKind.ADMIN], now=NOW)
        self.assertEqual([u.id for u in self.remote.list(EntityKind.USER)], ["99"])
        self.assertEqual(
            self.remote.get(EntityKind.ADMIN, ADMIN_SETTINGS_KEY).migratedAt, NOW
        )

    def test_failure_reports_committed_and_pending(self):
        original = self.remote.replace_all

        def replace_all(kind, records):
            if kind is EntityKind.ADMIN:
                raise BackendUnavailable("connection reset")
            return original(kind, records)

        with patch.object(self.remote, "replace_all", side_effect=replace_all):
            with self.assertRaises(MigrationError) as ctx:
                migrate(self.json, self.remote, now=NOW)

        self.assertEqual(ctx.exception.committed, {EntityKind.USER: 3})
        self.assertEqual(ctx.exception.pending, [EntityKind.ADMIN])
        self.assertEqual(self.remote.count(EntityKind.USER), 3)
        self.assertIsNone(self.remote.get(EntityKind.ADMIN, ADMIN_SETTINGS_KEY))

    def test_unreadable_source_leaves_destination_untouched(self):
        unavailable = BackendUnavailable("disk gone")
        with patch.object(self.json, "list", side_effect=unavailable):
            with self.assertRaises(MigrationError) as ctx:
                migrate(self.json, self.remote, now=NOW)
        self.assertEqual(ctx.exception.committed, {})
        self.assertEqual(ctx.exception.pending, [EntityKind.USER, EntityKind.ADMIN])
        self.assertEqual([u.id for u in self.remote.list(EntityKind.USER)], ["99"])

    def test_duplicate_usernames_in_source_abort_before_writing(self):
        source = InMemoryRecordStore()
        source.users = {
            "1": make_user("1", "alice"),
            "2": make_user("2", "alice"),
        }
        with self.assertRaises(MigrationError):
            migrate(source, self.remote, now=NOW)
        self.assertEqual([u.id for u in self.remote.list(EntityKind.USER)], ["99"])

    def test_registered_accounts_migrate(self):
        source = JsonFileRecordStore(Path(self._tmp.name) / "registered")
        source.data_dir.mkdir()
        source.users_path.write_text(
            json.dumps(
                [
                    {
                        "id": "5f0c6a1e",
                        "username": "Alice",
                        "passwordHash": "$2b$12$abcdefghijklmnopqrstuv",
                        "weightKg": 61.5,
                        "heightCm": 168,
                        "avatarUrl": None,
                        "musclesLevel": 1,
                        "coins": 0,
                        "customExercises": [{"name": "Plank"}],
                        "planId": "beginner-strength",
                        "passwordChangedAt": "2024-05-01T09:15:00.123Z",
                        "lastLoginAt": "2024-05-01T09:15:00.123Z",
                    }
                ]
            ),
            encoding="utf-8",
        )

        report = migrate(source, self.remote, [EntityKind.USER], now=NOW)

        self.assertEqual(report.counts, {EntityKind.USER: 1})
        migrated = self.remote.get_user_by_username("alice")
        self.assertEqual(migrated.planId, "beginner-strength")
        self.assertEqual(migrated.customExercises, [{"name": "Plank"}])

    def test_usernames_differing_in_case_abort_before_writing(self):
        source = InMemoryRecordStore()
        source.users = {
            "1": make_user("1", "alice"),
            "2": make_user("2", "ALICE"),
        }
        with self.assertRaises(MigrationError):
            migrate(source, self.remote, now=NOW)
        self.assertEqual([u.id for u in self.remote.list(EntityKind.USER)], ["99"])

    def test_same_store_is_rejected(self):
        with self.assertRaises(ValueError):
            migrate(self.json, self.json)


if __name__ == "__main__":
    unittest.main()
