#!/usr/bin/env python3
"""
Base class for notification producers.

A producer owns one notification category. It attaches to the
PreferenceGate and starts its watchers when the category becomes enabled,
stops them when it becomes disabled, and otherwise just keeps the latest
PreferenceState around. Every start captures a fresh generation token;
stop invalidates it so callbacks from the previous generation are dropped.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from core.interfaces import Unsubscribe
from core.models import NotificationCategory, PreferenceState
from core.preferences import PreferenceGate
from core.subscriptions import LivenessToken
from notification.channels import ActiveMessage, NotificationChannel

logger = logging.getLogger(__name__)


class NotificationProducer(ABC):
    """Gate-driven lifecycle shared by all producers."""

    category: NotificationCategory

    def __init__(self, user_id: str, channel: NotificationChannel):
        self.user_id = user_id
        self.channel = channel

        self._state: Optional[PreferenceState] = None
        self._generation: Optional[LivenessToken] = None
        self._detach: Optional[Unsubscribe] = None

    @property
    def name(self) -> str:
        return f"{self.category.value}:{self.user_id}"

    @property
    def running(self) -> bool:
        return self._generation is not None and self._generation.alive

    @property
    def preferences(self) -> Optional[PreferenceState]:
        return self._state

    def attach(self, gate: PreferenceGate) -> None:
        """Follow the gate; the latest state is applied immediately if the gate has one."""
        if self._detach is not None:
            return
        self._detach = gate.subscribe(self.on_preferences)

    def detach(self) -> None:
        """Stop following the gate and release every watcher."""
        if self._detach is not None:
            self._detach()
            self._detach = None
        self._shutdown()

    def on_preferences(self, state: PreferenceState) -> None:
        self._state = state
        enabled = state.is_enabled(self.category)

        if enabled and not self.running:
            token = LivenessToken(self.name)
            self._generation = token
            logger.info(f"Starting {self.name} notifications")
            try:
                self.start(token)
            except Exception as e:
                logger.error(f"Failed to start {self.name} notifications: {e}", exc_info=True)
                self._shutdown()
        elif not enabled and self.running:
            logger.info(f"Stopping {self.name} notifications")
            self._shutdown()
        elif enabled:
            self.on_state_changed(state)

    def _shutdown(self) -> None:
        if self._generation is None:
            return
        self._generation.invalidate()
        self._generation = None
        try:
            self.stop()
        except Exception as e:
            logger.error(f"Failed to stop {self.name} notifications: {e}", exc_info=True)

    def deliver(self, message: ActiveMessage, token: LivenessToken) -> Optional[ActiveMessage]:
        """Show ``message`` unless the generation that produced it is gone."""
        if not token.alive:
            logger.debug(f"Dropping stale {self.name} notification: {message.title}")
            return None
        return self.channel.show(message)

    @abstractmethod
    def start(self, token: LivenessToken) -> None:
        """Open watchers for a new generation. Callbacks must be guarded by ``token``."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Release watchers and forget per-generation state."""
        pass

    def on_state_changed(self, state: PreferenceState) -> None:
        """Settings changed while the category stayed enabled."""
        pass
