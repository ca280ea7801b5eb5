import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from core.config_loader import AppConfig, DeliveryConfig, LoggingConfig
from core.drafts import DraftStorage
from core.interfaces import AppLifecycle, DocumentStore, IdentitySource, KeyValueStore, Scheduler
from core.utils import utc_now
from notification.channels import DeliveryChannel
from notification.service import NotificationService
from storage.kv_store import build_kv_store

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(logging_config: LoggingConfig) -> None:
    level = getattr(logging, logging_config.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    External collaborators (document store, identity, lifecycle, timers)
    are passed in; everything owned by the engine is built here so there
    is a single source of truth for service instantiation.
    """
    config: AppConfig
    kv_store: KeyValueStore
    draft_storage: DraftStorage
    channel: DeliveryChannel
    notification_service: NotificationService

    @classmethod
    def build(
        cls,
        config: AppConfig,
        store: DocumentStore,
        identity: IdentitySource,
        scheduler: Scheduler,
        lifecycle: Optional[AppLifecycle] = None,
        navigate: Optional[Callable[[str], None]] = None,
        clock: Callable[[], datetime] = utc_now,
        kv_store: Optional[KeyValueStore] = None
    ) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            store: Remote document store
            identity: Authentication provider
            scheduler: Timer source for the delivery channel
            lifecycle: Foreground/background signal
            navigate: Router callback for action-bearing messages
            clock: Time source
            kv_store: Overrides the configured key-value backend

        Returns:
            Fully wired AppContext (the notification service is not started)
        """
        configure_logging(config.logging)

        kv_store = kv_store or build_kv_store(config.storage)
        draft_storage = DraftStorage(
            kv_store,
            clock=clock,
            key_prefix=config.notifications.draft_reminder.storage_key_prefix,
        )
        channel = cls._build_channel(config.notifications.delivery, scheduler)

        notification_service = NotificationService(
            store=store,
            identity=identity,
            channel=channel,
            draft_storage=draft_storage,
            config=config.notifications,
            lifecycle=lifecycle,
            navigate=navigate,
            clock=clock,
        )

        return cls(
            config=config,
            kv_store=kv_store,
            draft_storage=draft_storage,
            channel=channel,
            notification_service=notification_service,
        )

    @staticmethod
    def _build_channel(delivery_config: DeliveryConfig, scheduler: Scheduler) -> DeliveryChannel:
        """Build the delivery channel from its timing configuration."""
        return DeliveryChannel(
            scheduler,
            default_ttl=delivery_config.default_ttl_seconds,
            show_animation=delivery_config.show_animation_seconds,
            hide_animation=delivery_config.hide_animation_seconds,
        )
