import logging
import unittest
from unittest.mock import patch

from core.app_context import LOG_FORMAT, AppContext, configure_logging
from core.config_loader import AppConfig, LoggingConfig
from core.interfaces import User
from storage.memory import (
    InMemoryDocumentStore,
    InMemoryIdentitySource,
    InMemoryKeyValueStore,
    ManualScheduler,
)
from tests.mocks.engine_mocks import FakeClock


class TestAppContext(unittest.TestCase):

    def setUp(self):
        self.config = AppConfig(**{
            "notifications": {
                "delivery": {"default_ttl_seconds": 2.0},
                "draft_reminder": {"storage_key_prefix": "drafts/"},
            },
        })
        self.store = InMemoryDocumentStore()
        self.identity = InMemoryIdentitySource()
        self.scheduler = ManualScheduler()

    def test_build_wires_components(self):
        ctx = AppContext.build(self.config, self.store, self.identity, self.scheduler, clock=FakeClock())

        self.assertIsInstance(ctx.kv_store, InMemoryKeyValueStore)
        self.assertIs(ctx.draft_storage.kv_store, ctx.kv_store)
        self.assertEqual(ctx.draft_storage.key_prefix, "drafts/")
        self.assertEqual(ctx.channel.default_ttl, 2.0)
        self.assertIs(ctx.notification_service.channel, ctx.channel)
        self.assertIs(ctx.notification_service.config, self.config.notifications)
        self.assertFalse(ctx.notification_service.started)

    def test_kv_store_override(self):
        kv = InMemoryKeyValueStore()

        ctx = AppContext.build(self.config, self.store, self.identity, self.scheduler, kv_store=kv)

        self.assertIs(ctx.kv_store, kv)

    def test_service_runs_once_started(self):
        ctx = AppContext.build(self.config, self.store, self.identity, self.scheduler, clock=FakeClock())
        ctx.notification_service.start()

        self.identity.sign_in(User(id="u1"))

        self.assertEqual(ctx.notification_service.user_id, "u1")
        ctx.notification_service.stop()
        self.assertEqual(self.store.watch_count, 0)

    @patch('core.app_context.logging.basicConfig')
    def test_configure_logging(self, mock_basic_config):
        configure_logging(LoggingConfig(level="debug"))

        mock_basic_config.assert_called_once_with(level=logging.DEBUG, format=LOG_FORMAT)

    @patch('core.app_context.logging.basicConfig')
    def test_unknown_log_level_falls_back_to_info(self, mock_basic_config):
        configure_logging(LoggingConfig(level="chatty"))

        mock_basic_config.assert_called_once_with(level=logging.INFO, format=LOG_FORMAT)


if __name__ == '__main__':
    unittest.main()
