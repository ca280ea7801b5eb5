#!/usr/bin/env python3
"""
Notification Service - per-user wiring of the notification engine.

Coordinates:
1. The PreferenceGate for the signed-in user
2. One producer per notification category (marketplace activity, messages,
   recommendations, draft reminders)
3. The shared single-slot delivery channel

On every identity change the previous user's gate and producers are torn
down and, if someone is signed in, fresh ones are built. Producers never
outlive the user they were built for.

Usage:
    from notification.service import NotificationService

    service = NotificationService(
        store=store,
        identity=identity,
        channel=channel,
        draft_storage=draft_storage,
        lifecycle=lifecycle,
        navigate=router.push,
    )
    service.start()
    service.set_route("/marketplace")
    ...
    service.stop()
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from core.config_loader import NotificationConfig
from core.drafts import DraftStorage
from core.interfaces import AppLifecycle, DocumentStore, IdentitySource, Unsubscribe, User
from core.preferences import PreferenceGate
from core.utils import utc_now
from notification.channels import NotificationChannel
from notification.producers import (
    DraftReminderProducer,
    MarketplaceActivityProducer,
    MessageNotificationProducer,
    NotificationProducer,
    RecommendationProducer,
)
from notification.tracker import NotificationTrackerService

logger = logging.getLogger(__name__)

Navigator = Callable[[str], None]


class NotificationService:
    """
    Owns the gate and producers of the signed-in user.

    All callbacks run on one logical event loop; nothing here is thread-safe.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentitySource,
        channel: NotificationChannel,
        draft_storage: DraftStorage,
        config: Optional[NotificationConfig] = None,
        lifecycle: Optional[AppLifecycle] = None,
        navigate: Optional[Navigator] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize notification service.

        Args:
            store: Remote document store
            identity: Authentication provider
            channel: Delivery channel shared by every producer
            draft_storage: Local draft persistence
            config: Notification settings (defaults when omitted)
            lifecycle: Foreground/background signal
            navigate: Router callback used by action-bearing messages
            clock: Time source for enablement stamps and reminder checks
        """
        self.store = store
        self.identity = identity
        self.channel = channel
        self.draft_storage = draft_storage
        self.config = config or NotificationConfig()
        self.lifecycle = lifecycle
        self.navigate = navigate
        self.clock = clock

        self.tracker = NotificationTrackerService()
        self.gate: Optional[PreferenceGate] = None
        self.producers: List[NotificationProducer] = []
        self.draft_reminder: Optional[DraftReminderProducer] = None

        self._user_id: Optional[str] = None
        self._route: Optional[str] = None
        self._identity_unsubscribe: Optional[Unsubscribe] = None
        self._lifecycle_unsubscribe: Optional[Unsubscribe] = None

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def started(self) -> bool:
        return self._identity_unsubscribe is not None

    def start(self) -> None:
        """Follow identity and app lifecycle. The current user is wired immediately."""
        if self.started:
            return
        if self.lifecycle is not None:
            self._lifecycle_unsubscribe = self.lifecycle.subscribe(self.on_app_state)
        self._identity_unsubscribe = self.identity.subscribe(self._on_user)
        logger.info("Notification service started")

    def stop(self) -> None:
        """Release every watcher and stop following identity."""
        if self._identity_unsubscribe:
            self._identity_unsubscribe()
            self._identity_unsubscribe = None
        if self._lifecycle_unsubscribe:
            self._lifecycle_unsubscribe()
            self._lifecycle_unsubscribe = None
        self._teardown()
        logger.info("Notification service stopped")

    def on_app_state(self, state: str) -> None:
        if self.draft_reminder is not None:
            self.draft_reminder.on_app_state(state)

    def set_route(self, route: Optional[str]) -> None:
        self._route = route
        if self.draft_reminder is not None:
            self.draft_reminder.set_route(route)

    def _on_user(self, user: Optional[User]) -> None:
        user_id = user.id if user else None
        if user_id == self._user_id:
            return

        self._teardown()
        if user_id is None:
            logger.info("Signed out, notifications disabled")
            return

        self._user_id = user_id
        self._build(user_id)

    def _build(self, user_id: str) -> None:
        self.gate = PreferenceGate(
            self.store,
            user_id,
            defaults=self.config.preference_defaults,
            clock=self.clock,
        )
        self.producers = self._build_producers(user_id)

        # Producers must follow the gate before its first emission
        for producer in self.producers:
            producer.attach(self.gate)
        self.gate.start()
        logger.info(f"Notifications wired for {user_id} ({len(self.producers)} producers)")

    def _build_producers(self, user_id: str) -> List[NotificationProducer]:
        config = self.config
        producers: List[NotificationProducer] = []

        if config.marketplace.enabled:
            producers.append(MarketplaceActivityProducer(
                user_id,
                self.store,
                self.channel,
                watched_fields=config.marketplace.watched_fields,
                terminal_statuses=config.marketplace.terminal_statuses,
            ))

        if config.messages.enabled:
            producers.append(MessageNotificationProducer(user_id, self.store, self.channel))

        if config.recommendations.enabled:
            producers.append(RecommendationProducer(
                user_id,
                self.store,
                self.channel,
                tracker=self.tracker,
                navigate=self.navigate,
                page_size=config.recommendations.feed_page_size,
                recency_grace_ms=config.recommendations.recency_grace_ms,
            ))

        self.draft_reminder = None
        if config.draft_reminder.enabled:
            self.draft_reminder = DraftReminderProducer(
                user_id,
                self.draft_storage,
                self.channel,
                navigate=self.navigate,
                clock=self.clock,
                remind_after=timedelta(hours=config.draft_reminder.remind_after_hours),
                cooldown=timedelta(hours=config.draft_reminder.cooldown_hours),
                composer_route=config.draft_reminder.composer_route,
            )
            self.draft_reminder.route = self._route
            producers.append(self.draft_reminder)

        return producers

    def _teardown(self) -> None:
        if self.gate is not None:
            # Emits the all-disabled state, which stops every producer
            self.gate.stop()
        for producer in self.producers:
            producer.detach()
        if self.producers:
            logger.info(f"Notifications torn down for {self._user_id}")

        self.gate = None
        self.producers = []
        self.draft_reminder = None
        self._user_id = None
