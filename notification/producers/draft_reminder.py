#!/usr/bin/env python3
"""
Draft reminder producer - "You have an unfinished listing".

Checks the locally saved draft when the app mounts, when it comes back to
the foreground, when the route changes and when reminders are enabled.
A reminder is shown once the draft is old enough and the last reminder is
outside the cooldown; showing it stamps ``last_reminder_at``. Nothing is
checked while the user is on the composer screen.

Usage:
    producer = DraftReminderProducer(user_id, storage, channel, navigate=router.push)
    producer.attach(gate)
    producer.on_app_state("active")
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from core.drafts import REMINDER_AFTER, REMINDER_COOLDOWN, DraftStorage, decide_reminder
from core.interfaces import APP_STATE_ACTIVE
from core.models import NotificationCategory
from core.subscriptions import LivenessToken
from notification.channels import NotificationChannel
from notification.message_builder import NotificationMessageBuilder
from notification.producers.base import NotificationProducer

logger = logging.getLogger(__name__)

COMPOSER_ROUTE = "/post-item"

Navigator = Callable[[str], None]


class DraftReminderProducer(NotificationProducer):
    category = NotificationCategory.REMINDERS

    def __init__(
        self,
        user_id: str,
        storage: DraftStorage,
        channel: NotificationChannel,
        navigate: Optional[Navigator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        remind_after: timedelta = REMINDER_AFTER,
        cooldown: timedelta = REMINDER_COOLDOWN,
        composer_route: str = COMPOSER_ROUTE
    ):
        super().__init__(user_id, channel)
        self.storage = storage
        self.navigate = navigate
        self.clock = clock or storage.clock
        self.remind_after = remind_after
        self.cooldown = cooldown
        self.composer_route = composer_route

        self.route: Optional[str] = None
        self._checking = False
        self._message_id: Optional[str] = None
        self._token: Optional[LivenessToken] = None

    @property
    def visible(self) -> bool:
        return self._message_id is not None and self.channel.is_showing(self._message_id)

    @property
    def on_composer(self) -> bool:
        return bool(self.route and self.route.startswith(self.composer_route))

    def start(self, token: LivenessToken) -> None:
        self._token = token
        self.check_now()

    def stop(self) -> None:
        self._token = None
        self.hide()

    # ============ Triggers ============

    def on_app_state(self, state: str) -> None:
        if state == APP_STATE_ACTIVE:
            self.check_now()

    def set_route(self, route: Optional[str]) -> None:
        if route == self.route:
            return
        self.route = route
        self.check_now()

    def check_now(self) -> bool:
        """
        Show the reminder if it is due.

        Returns:
            True if a reminder was shown by this call
        """
        token = self._token
        if token is None or not token.alive:
            return False
        if self._checking or self.visible or self.on_composer:
            return False

        self._checking = True
        try:
            draft = self.storage.load(self.user_id)
            if not decide_reminder(draft, self.clock(), self.remind_after, self.cooldown):
                self.hide()
                return False

            self._show(token)
            self.storage.mark_reminder_shown(self.user_id)
            logger.info(f"Reminded {self.user_id} about their unfinished listing")
            return True
        except Exception as e:
            logger.error(f"Failed to check draft reminder for {self.user_id}: {e}", exc_info=True)
            return False
        finally:
            self._checking = False

    # ============ Message handlers ============

    def _show(self, token: LivenessToken) -> None:
        content = NotificationMessageBuilder.draft_reminder()
        message = NotificationMessageBuilder.to_message(
            content,
            ttl=None,
            on_action=token.guard(self.handle_resume),
            on_dismiss=token.guard(self.handle_dismiss),
        )
        shown = self.deliver(message, token)
        self._message_id = shown.id if shown else None

    def hide(self) -> None:
        if self._message_id is not None:
            self.channel.dismiss(self._message_id, notify=False)
            self._message_id = None

    def handle_dismiss(self) -> None:
        """Dismissed without resuming: push the next reminder out by the cooldown."""
        self._message_id = None
        if self.storage.mark_reminder_shown(self.user_id) is None:
            logger.debug(f"No draft left for {self.user_id}, nothing to stamp")

    def handle_resume(self) -> None:
        """Open the composer; the stored draft is left untouched."""
        self._message_id = None
        if self.navigate is None:
            logger.warning("No navigator configured, cannot open the composer")
            return
        self.navigate(self.composer_route)
