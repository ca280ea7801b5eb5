import unittest
import os
import yaml
from unittest.mock import patch, mock_open
from core.config_loader import load_config, AppConfig, DraftReminderConfig


class TestConfigLoader(unittest.TestCase):

    def setUp(self):
        self.sample_config = {
            "notifications": {
                "delivery": {"default_ttl_seconds": 5},
                "preference_defaults": {"recommendations": True},
                "recommendations": {"feed_page_size": 10},
                "draft_reminder": {"cooldown_hours": 6},
            },
            "storage": {"backend": "sqlite", "url": "sqlite:///drafts.db"},
            "logging": {"level": "DEBUG"},
        }
        self.config_yaml = yaml.dump(self.sample_config)

    def test_load_config_default(self):
        with patch("builtins.open", mock_open(read_data=self.config_yaml)):
            with patch("os.path.exists", return_value=True):
                config = load_config("dummy_path.yaml")
                self.assertIsInstance(config, AppConfig)
                self.assertEqual(config.notifications.delivery.default_ttl_seconds, 5.0)
                self.assertTrue(config.notifications.preference_defaults.recommendations)
                self.assertEqual(config.notifications.recommendations.feed_page_size, 10)
                self.assertEqual(config.notifications.draft_reminder.cooldown_hours, 6.0)
                self.assertEqual(config.storage.backend, "sqlite")
                self.assertEqual(config.logging.level, "DEBUG")

    def test_missing_file_uses_defaults(self):
        with patch("os.path.exists", return_value=False):
            config = load_config("missing.yaml")
        self.assertEqual(config.notifications.delivery.default_ttl_seconds, 3.5)
        self.assertEqual(config.notifications.delivery.show_animation_seconds, 0.18)
        self.assertEqual(config.notifications.delivery.hide_animation_seconds, 0.12)
        self.assertTrue(config.notifications.preference_defaults.messages)
        self.assertFalse(config.notifications.preference_defaults.recommendations)
        self.assertEqual(config.storage.backend, "memory")

    def test_empty_file(self):
        with patch("builtins.open", mock_open(read_data="")):
            with patch("os.path.exists", return_value=True):
                config = load_config("empty.yaml")
                self.assertEqual(config.notifications.recommendations.recency_grace_ms, 1000)

    def test_env_var_override_store_url(self):
        with patch("builtins.open", mock_open(read_data=self.config_yaml)):
            with patch("os.path.exists", return_value=True):
                with patch.dict(os.environ, {"DRAFT_STORE_URL": "sqlite:////tmp/env.db"}):
                    config = load_config("dummy_path.yaml")
                    self.assertEqual(config.storage.url, "sqlite:////tmp/env.db")

    def test_env_var_redis_url_only_for_redis_backend(self):
        redis_yaml = yaml.dump({"storage": {"backend": "redis"}})
        with patch("builtins.open", mock_open(read_data=redis_yaml)):
            with patch("os.path.exists", return_value=True):
                with patch.dict(os.environ, {"REDIS_URL": "redis://cache:6379/2"}):
                    config = load_config("dummy_path.yaml")
                    self.assertEqual(config.storage.url, "redis://cache:6379/2")

        with patch("builtins.open", mock_open(read_data=self.config_yaml)):
            with patch("os.path.exists", return_value=True):
                with patch.dict(os.environ, {"REDIS_URL": "redis://cache:6379/2"}):
                    config = load_config("dummy_path.yaml")
                    self.assertEqual(config.storage.url, "sqlite:///drafts.db")

    def test_env_var_override_toast_ttl_and_log_level(self):
        with patch("builtins.open", mock_open(read_data=self.config_yaml)):
            with patch("os.path.exists", return_value=True):
                with patch.dict(os.environ, {"NOTIFICATION_TOAST_TTL": "2.5", "LOG_LEVEL": "WARNING"}):
                    config = load_config("dummy_path.yaml")
                    self.assertEqual(config.notifications.delivery.default_ttl_seconds, 2.5)
                    self.assertEqual(config.logging.level, "WARNING")

    def test_draft_reminder_defaults(self):
        config = DraftReminderConfig()
        self.assertEqual(config.remind_after_hours, 24.0)
        self.assertEqual(config.cooldown_hours, 12.0)
        self.assertEqual(config.composer_route, "/post-item")
        self.assertEqual(config.storage_key_prefix, "draft_listing:")

    def test_invalid_backend_rejected(self):
        bad_yaml = yaml.dump({"storage": {"backend": "postgres-cluster"}})
        with patch("builtins.open", mock_open(read_data=bad_yaml)):
            with patch("os.path.exists", return_value=True):
                with self.assertRaises(ValueError):
                    load_config("bad.yaml")


if __name__ == '__main__':
    unittest.main()
