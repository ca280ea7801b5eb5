#!/usr/bin/env python3
"""
Diff Engine - classify snapshot transitions per watched entity.

Each entity goes UNSEEN -> HYDRATED on its first snapshot, which only
establishes a baseline. Later snapshots are compared with the stored one:

- status moves into a terminal value  -> TerminalEvent
- status or a watched field changed   -> ChangeEvent
- otherwise                           -> no event

The stored snapshot is always replaced by the latest one.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from core.models import ChangeEvent, DiffEvent, TerminalEvent

logger = logging.getLogger(__name__)

DEFAULT_WATCHED_FIELDS = ('title', 'price', 'condition', 'location', 'description')
DEFAULT_TERMINAL_STATUSES = ('sold',)


@dataclass
class WatchedEntity:
    id: str
    kind: str  # listing | thread | draft
    last_snapshot: Optional[Dict[str, Any]] = None
    hydrated: bool = False


class DiffEngine:
    """Remembers the last snapshot per entity and emits at most one event per snapshot."""

    def __init__(
        self,
        kind: str = "listing",
        watched_fields: Iterable[str] = DEFAULT_WATCHED_FIELDS,
        terminal_statuses: Iterable[str] = DEFAULT_TERMINAL_STATUSES,
        status_field: str = "status"
    ):
        self.kind = kind
        self.watched_fields = tuple(watched_fields)
        self.terminal_statuses = frozenset(terminal_statuses)
        self.status_field = status_field
        self._entities: Dict[str, WatchedEntity] = {}

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def entity(self, entity_id: str) -> Optional[WatchedEntity]:
        return self._entities.get(entity_id)

    def observe(self, entity_id: str, snapshot: Optional[Dict[str, Any]]) -> Optional[DiffEvent]:
        """
        Record a new snapshot for an entity and classify the transition.

        Args:
            entity_id: Id of the watched document
            snapshot: Field map, or None if the document no longer exists

        Returns:
            TerminalEvent, ChangeEvent, or None
        """
        entity = self._entities.get(entity_id)
        if entity is None:
            entity = WatchedEntity(id=entity_id, kind=self.kind)
            self._entities[entity_id] = entity

        current = dict(snapshot) if snapshot is not None else None

        if not entity.hydrated:
            entity.last_snapshot = current
            entity.hydrated = True
            logger.debug(f"Hydrated {self.kind} {entity_id}")
            return None

        previous = entity.last_snapshot
        entity.last_snapshot = current

        if current is None:
            # Deleted document: becomes the new baseline, nothing to announce
            logger.debug(f"{self.kind} {entity_id} no longer exists")
            return None

        return self._classify(entity_id, previous, current)

    def _classify(
        self,
        entity_id: str,
        previous: Optional[Dict[str, Any]],
        current: Dict[str, Any]
    ) -> Optional[DiffEvent]:
        prev = previous or {}
        prev_status = prev.get(self.status_field)
        new_status = current.get(self.status_field)
        status_changed = prev_status != new_status

        if status_changed and new_status in self.terminal_statuses:
            return TerminalEvent(
                entity_id=entity_id,
                kind=self.kind,
                previous=previous,
                current=current,
                status=new_status,
            )

        changed: List[str] = [f for f in self.watched_fields if prev.get(f) != current.get(f)]
        if status_changed:
            changed.insert(0, self.status_field)

        if changed:
            return ChangeEvent(
                entity_id=entity_id,
                kind=self.kind,
                previous=previous,
                current=current,
                changed_fields=changed,
            )
        return None

    def forget(self, entity_id: str) -> None:
        self._entities.pop(entity_id, None)

    def clear(self) -> None:
        self._entities.clear()
