#!/usr/bin/env python3
"""
Preference Gate - per-category enablement from the user's settings document.

Watches ``users/{uid}`` and publishes a PreferenceState to every listener on
each snapshot (including the first one, with defaults if the document does
not exist). When a category flips from disabled to enabled the gate stamps
``enabled_since[category] = now``; producers treat anything older than that
stamp as history.

Usage:
    from core.preferences import PreferenceGate

    gate = PreferenceGate(store, user_id="u1")
    unsubscribe = gate.subscribe(lambda state: print(state.messages))
    gate.start()
    ...
    gate.stop()  # emits an all-disabled state and releases the watcher
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from core.config_loader import PreferenceDefaultsConfig
from core.interfaces import DocumentSnapshot, DocumentStore, Unsubscribe
from core.models import NotificationCategory, PreferenceState, RecommendationFilter
from core.subscriptions import LivenessToken
from core.utils import utc_now

logger = logging.getLogger(__name__)

PreferenceListener = Callable[[PreferenceState], None]


class PreferenceGate:
    """Derives PreferenceState from the settings document and fans it out."""

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        defaults: Optional[PreferenceDefaultsConfig] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.user_id = user_id
        self.defaults = defaults or PreferenceDefaultsConfig()
        self.clock = clock

        self._listeners: List[PreferenceListener] = []
        self._state: Optional[PreferenceState] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._token: Optional[LivenessToken] = None

    @property
    def state(self) -> Optional[PreferenceState]:
        """Latest emitted state, or None before the first snapshot."""
        return self._state

    @property
    def settings_path(self) -> str:
        return f"users/{self.user_id}"

    def _default_flags(self) -> Dict[NotificationCategory, bool]:
        return {
            NotificationCategory.MESSAGES: self.defaults.messages,
            NotificationCategory.MARKETPLACE_ACTIVITY: self.defaults.marketplace_activity,
            NotificationCategory.REMINDERS: self.defaults.reminders,
            NotificationCategory.RECOMMENDATIONS: self.defaults.recommendations,
        }

    def subscribe(self, listener: PreferenceListener) -> Unsubscribe:
        """Register a listener; it receives the latest state immediately if one exists."""
        self._listeners.append(listener)
        if self._state is not None:
            self._notify_one(listener, self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def start(self) -> None:
        if self._unsubscribe is not None:
            return

        token = LivenessToken(f"preferences:{self.user_id}")
        self._token = token
        try:
            unsubscribe = self.store.watch_document(
                self.settings_path,
                token.guard(self._handle_snapshot),
                token.guard(self._handle_error),
            )
        except Exception as e:
            logger.error(f"Could not watch settings for {self.user_id}: {e}")
            self._handle_error(e)
            return

        if token.alive:
            self._unsubscribe = unsubscribe
        else:
            unsubscribe()

    def stop(self) -> None:
        """Release the watcher and publish an all-disabled state synchronously."""
        if self._token:
            self._token.invalidate()
            self._token = None
        if self._unsubscribe:
            try:
                self._unsubscribe()
            except Exception as e:
                logger.warning(f"Failed to release settings watcher: {e}")
            self._unsubscribe = None

        self._publish(PreferenceState.disabled())

    def _handle_snapshot(self, snapshot: DocumentSnapshot) -> None:
        data = snapshot.data or {}
        raw_flags = data.get('notificationPreferences')
        if not isinstance(raw_flags, dict):
            raw_flags = {}

        flags = self._default_flags()
        for category in NotificationCategory:
            value = raw_flags.get(category.value)
            if isinstance(value, bool):
                flags[category] = value

        rec_filter = RecommendationFilter.from_settings(data.get('recommendationPreferences'))
        self._apply(flags, rec_filter)

    def _handle_error(self, error: Exception) -> None:
        # Never block on a settings failure: fall back to safe defaults
        logger.error(f"Failed to read notification preferences for {self.user_id}: {error}")
        self._apply(self._default_flags(), RecommendationFilter())

    def _apply(
        self,
        flags: Dict[NotificationCategory, bool],
        rec_filter: RecommendationFilter
    ) -> None:
        previous = self._state or PreferenceState.disabled()
        now = self.clock()

        enabled_since = dict(previous.enabled_since)
        for category, enabled in flags.items():
            if enabled and not previous.is_enabled(category):
                enabled_since[category] = now
                logger.info(f"Notifications '{category.value}' enabled for {self.user_id}")
            elif not enabled and previous.is_enabled(category):
                logger.info(f"Notifications '{category.value}' disabled for {self.user_id}")

        self._publish(PreferenceState(
            messages=flags[NotificationCategory.MESSAGES],
            marketplace_activity=flags[NotificationCategory.MARKETPLACE_ACTIVITY],
            reminders=flags[NotificationCategory.REMINDERS],
            recommendations=flags[NotificationCategory.RECOMMENDATIONS],
            enabled_since=enabled_since,
            recommendation_filter=rec_filter,
        ))

    def _publish(self, state: PreferenceState) -> None:
        self._state = state
        for listener in list(self._listeners):
            self._notify_one(listener, state)

    def _notify_one(self, listener: PreferenceListener, state: PreferenceState) -> None:
        try:
            listener(state)
        except Exception as e:
            logger.error(f"Preference listener failed: {e}", exc_info=True)
