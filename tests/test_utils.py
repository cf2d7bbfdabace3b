import os
import sys
import tempfile
import unittest
from decimal import Decimal
from unittest import mock

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from core.errors import ConflictError, NotFoundError, TransportError  # noqa: E402
from utils.config import load_config  # noqa: E402
from utils.pure import format_money, generate_markdown_table, notification_for  # noqa: E402


class PureTestCase(unittest.TestCase):
    def test_markdown_table(self):
        md = generate_markdown_table(["Name", "Qty"], [["Chippy", 2]], ["l", "r"])
        self.assertEqual(md, "| Name | Qty |\n| :--- | ---: |\n| Chippy | 2 |")
        self.assertEqual(generate_markdown_table(None, []), "")
        with self.assertRaises(ValueError):
            generate_markdown_table(["a", "b"], [["1", "2"]], ["l"])

    def test_format_money(self):
        self.assertEqual(format_money(Decimal("1234.5")), "₱1,234.50")
        self.assertEqual(format_money(10), "₱10.00")

    def test_sync_class_errors_stay_longer(self):
        for error in [
            TransportError("Failed to sync (add_purchase): offline", "unavailable"),
            TransportError("whatever", "timeout"),
            RuntimeError("Missing or insufficient permissions: permission denied"),
        ]:
            message, severity, timeout = notification_for(error)
            self.assertEqual(severity, "error")
            self.assertEqual(timeout, 15.0)
            self.assertEqual(message, str(error))

    def test_other_errors_are_short(self):
        self.assertEqual(notification_for(NotFoundError("gone"))[1:], ("error", 5.0))
        self.assertEqual(
            notification_for(ConflictError("exists")), ("exists", "warning", 5.0)
        )
        self.assertEqual(notification_for(TransportError("teapot", "http-418"))[2], 5.0)


class ConfigTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config()
        self.assertEqual(config.cache.path, "data/cache.sqlite")
        self.assertEqual(config.store.timeout, 5.0)
        self.assertEqual(config.relay.url, "")
        self.assertEqual(config.relay.liveness_ttl, 60.0)
        self.assertEqual(config.sync.session_retry_cap, 10)
        self.assertTrue(config.sync.seed_empty_store)

    def test_toml_then_env_overrides(self):
        path = os.path.join(self.temp_dir.name, "pos.toml")
        with open(path, "w") as f:
            f.write(
                '[relay]\nurl = "http://relay.local"\ntimeout = 3\n'
                "[sync]\nsession_retry_cap = 4\nseed_empty_store = false\n"
            )
        env = {"POS_CONFIG": path, "POS_RELAY_TIMEOUT": "6.5", "POS_CACHE_PATH": "/tmp/c.sqlite"}
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config()
        self.assertEqual(config.relay.url, "http://relay.local")
        self.assertEqual(config.relay.timeout, 6.5)
        self.assertEqual(config.cache.path, "/tmp/c.sqlite")
        self.assertEqual(config.sync.session_retry_cap, 4)
        self.assertFalse(config.sync.seed_empty_store)

    def test_bad_env_number(self):
        with mock.patch.dict(os.environ, {"POS_STORE_TIMEOUT": "soon"}, clear=True):
            with self.assertRaises(ValueError):
                load_config()


if __name__ == "__main__":
    unittest.main()
