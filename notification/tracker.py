#!/usr/bin/env python3
"""
Notification Tracker - per-session deduplication.

Remembers which entity ids have already been surfaced, namespaced by
notification category. A category's set only grows until the category is
reset, which happens when it is re-enabled after being disabled.

Usage:
    from notification.tracker import NotificationTrackerService

    tracker = NotificationTrackerService()

    if tracker.should_send("recommendations", "listing123"):
        channel.show(...)
        tracker.record("recommendations", "listing123")
"""

import logging
from typing import Dict, Set

logger = logging.getLogger(__name__)


class NotificationTrackerService:
    """
    In-memory shown-id sets keyed by category.

    Not persisted: the engine is not required to survive restarts.
    """

    def __init__(self):
        self._shown: Dict[str, Set[str]] = {}

    def should_send(self, category: str, entity_id: str) -> bool:
        """Return False if this entity was already surfaced in the current cycle."""
        return entity_id not in self._shown.get(category, ())

    def record(self, category: str, entity_id: str) -> None:
        self._shown.setdefault(category, set()).add(entity_id)

    def reset(self, category: str) -> None:
        """Forget everything shown for a category (new enable cycle)."""
        cleared = len(self._shown.pop(category, ()))
        if cleared:
            logger.info(f"Reset {cleared} tracked '{category}' notifications")

    def shown_ids(self, category: str) -> Set[str]:
        return set(self._shown.get(category, ()))

    def count(self, category: str) -> int:
        return len(self._shown.get(category, ()))
