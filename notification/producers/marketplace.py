#!/usr/bin/env python3
"""
Marketplace activity producer - "Item sold" / "Saved item updated".

Watches the user's favorites collection, keeps one listing watcher per
favorited id through the SubscriptionMultiplexer and feeds every listing
snapshot into the DiffEngine. Listings the user may no longer read fall
back to the favorite copy stored under the user's own document.
"""

import logging
from typing import Any, Callable, Iterable, Optional

from core.diff_engine import DEFAULT_TERMINAL_STATUSES, DEFAULT_WATCHED_FIELDS, DiffEngine
from core.exceptions import PermissionDeniedException
from core.interfaces import DocumentSnapshot, DocumentStore, ErrorCallback, QuerySnapshot, Unsubscribe
from core.models import ChangeEvent, DiffEvent, NotificationCategory, TerminalEvent
from core.subscriptions import LivenessToken, SubscriptionMultiplexer
from notification.channels import NotificationChannel
from notification.message_builder import NotificationMessageBuilder
from notification.producers.base import NotificationProducer

logger = logging.getLogger(__name__)


class MarketplaceActivityProducer(NotificationProducer):
    category = NotificationCategory.MARKETPLACE_ACTIVITY

    def __init__(
        self,
        user_id: str,
        store: DocumentStore,
        channel: NotificationChannel,
        watched_fields: Iterable[str] = DEFAULT_WATCHED_FIELDS,
        terminal_statuses: Iterable[str] = DEFAULT_TERMINAL_STATUSES
    ):
        super().__init__(user_id, channel)
        self.store = store
        self.diff_engine = DiffEngine(
            kind="listing",
            watched_fields=watched_fields,
            terminal_statuses=terminal_statuses,
        )
        self.multiplexer = SubscriptionMultiplexer(
            subscribe=self._watch_listing,
            on_snapshot=self._on_listing_snapshot,
            on_removed=self.diff_engine.forget,
            name=f"favorites:{user_id}",
        )
        self._token: Optional[LivenessToken] = None
        self._favorites_unsubscribe: Optional[Unsubscribe] = None

    @property
    def favorites_path(self) -> str:
        return f"users/{self.user_id}/favorites"

    def start(self, token: LivenessToken) -> None:
        self._token = token
        unsubscribe = self.store.watch_query(
            self.favorites_path,
            token.guard(self._on_favorites),
            token.guard(self._on_favorites_error),
        )
        if token.alive:
            self._favorites_unsubscribe = unsubscribe
        else:
            unsubscribe()

    def stop(self) -> None:
        if self._favorites_unsubscribe:
            self._favorites_unsubscribe()
            self._favorites_unsubscribe = None
        self.multiplexer.stop_all()
        self.diff_engine.clear()
        self._token = None

    def _on_favorites(self, snapshot: QuerySnapshot) -> None:
        self.multiplexer.sync(doc.id for doc in snapshot.docs)

    def _on_favorites_error(self, error: Exception) -> None:
        logger.error(f"Failed to listen to favorites for {self.user_id}: {error}")

    def _watch_listing(
        self,
        listing_id: str,
        on_snapshot: Callable[[Any], None],
        on_error: ErrorCallback
    ) -> Unsubscribe:
        """
        Watch ``listings/{id}``; on a permission failure switch to the
        favorite copy and re-hydrate from it.
        """
        handles = {'primary': None, 'fallback': None, 'closed': False}

        def handle_error(error: Exception) -> None:
            if handles['closed']:
                return
            if isinstance(error, PermissionDeniedException) and handles['fallback'] is None:
                logger.warning(f"Listing {listing_id} not readable, using favorite copy: {error}")
                self.diff_engine.forget(listing_id)
                handles['fallback'] = self.store.watch_document(
                    f"{self.favorites_path}/{listing_id}", on_snapshot, on_error
                )
                return
            on_error(error)

        handles['primary'] = self.store.watch_document(f"listings/{listing_id}", on_snapshot, handle_error)

        def unsubscribe() -> None:
            handles['closed'] = True
            for key in ('primary', 'fallback'):
                if handles[key]:
                    handles[key]()
                    handles[key] = None
        return unsubscribe

    def _on_listing_snapshot(self, listing_id: str, snapshot: DocumentSnapshot) -> None:
        event = self.diff_engine.observe(listing_id, snapshot.data)
        if event is not None:
            self._notify(event)

    def _notify(self, event: DiffEvent) -> None:
        if self._token is None:
            return

        if isinstance(event, TerminalEvent):
            content = NotificationMessageBuilder.item_sold(event.entity_id, event.current, event.previous)
        elif isinstance(event, ChangeEvent):
            content = NotificationMessageBuilder.saved_item_updated(event.entity_id, event.current, event.previous)
            logger.debug(f"Listing {event.entity_id} changed: {', '.join(event.changed_fields)}")
        else:
            return

        self.deliver(NotificationMessageBuilder.to_message(content), self._token)
