import os
import unittest
from unittest.mock import patch

from musclerise.config import PersistenceMode, Settings


class SettingsTests(unittest.TestCase):
    def test_defaults_are_local(self):
        settings = Settings(_env_file=None)
        self.assertEqual(settings.persistence_mode, PersistenceMode.LOCAL)
        self.assertFalse(settings.mongo_tls_allow_invalid_certificates)
        self.assertEqual(settings.mongo_connect_timeout_ms, 15000)
        self.assertEqual(settings.data_dir, "data")

    def test_remote_needs_flag_endpoint_and_database(self):
        full = {
            "enable_mongodb": True,
            "mongo_uri": "mongodb://db.test",
            "db_name": "musclerise",
        }
        self.assertEqual(
            Settings(_env_file=None, **full).persistence_mode, PersistenceMode.REMOTE
        )
        for missing in ("mongo_uri", "db_name"):
            with self.subTest(missing=missing):
                fields = {**full, missing: None}
                self.assertEqual(
                    Settings(_env_file=None, **fields).persistence_mode,
                    PersistenceMode.LOCAL,
                )
        disabled = {**full, "enable_mongodb": False}
        settings = Settings(_env_file=None, **disabled)
        self.assertEqual(settings.persistence_mode, PersistenceMode.LOCAL)
        self.assertTrue(settings.remote_configured)

    def test_reads_environment(self):
        env = {
            "ENABLE_MONGODB": "true",
            "MONGO_URI": "mongodb+srv://user:pw@cluster.example.net",
            "DB_NAME": "musclerise",
            "MONGO_TLS": "false",
            "MONGO_OPERATION_TIMEOUT_MS": "2500",
            "DATA_DIR": "/srv/data",
        }
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.persistence_mode, PersistenceMode.REMOTE)
        self.assertIs(settings.mongo_tls, False)
        self.assertEqual(settings.mongo_operation_timeout_ms, 2500)
        self.assertEqual(settings.data_dir, "/srv/data")


if __name__ == "__main__":
    unittest.main()
