#!/usr/bin/env python3
"""
Messages producer - "New message from {partner}".

Watches every chat thread the user participates in. The first snapshot of
a generation only records unread counts (ThreadUnreadMap); afterwards a
toast fires when a thread's unread count for the user goes up, its last
message is not withdrawn and the message is not older than the moment the
category was enabled.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional

from core.interfaces import DocumentStore, QuerySnapshot, Unsubscribe
from core.models import ChatThread, MessageEvent, NotificationCategory
from core.subscriptions import LivenessToken
from notification.channels import NotificationChannel
from notification.message_builder import NotificationMessageBuilder
from notification.producers.base import NotificationProducer

logger = logging.getLogger(__name__)

CHATS_COLLECTION = "chats"


class ThreadUnreadMap:
    """Last seen unread count per thread id."""

    def __init__(self):
        self._counts: Dict[str, int] = {}
        self.hydrated = False

    def __len__(self) -> int:
        return len(self._counts)

    def __iter__(self) -> Iterator[str]:
        return iter(self._counts)

    def get(self, thread_id: str) -> int:
        return self._counts.get(thread_id, 0)

    def hydrate(self, threads: List[ChatThread]) -> None:
        self._counts = {thread.id: thread.unread for thread in threads}
        self.hydrated = True

    def update(self, thread: ChatThread) -> int:
        """Store the new count and return the previous one."""
        previous = self._counts.get(thread.id, 0)
        self._counts[thread.id] = thread.unread
        return previous

    def retain(self, thread_ids: Iterable[str]) -> None:
        """Drop every thread not in ``thread_ids``."""
        keep = set(thread_ids)
        self._counts = {tid: count for tid, count in self._counts.items() if tid in keep}

    def clear(self) -> None:
        self._counts = {}
        self.hydrated = False


def should_notify(event: MessageEvent, enabled_since: Optional[datetime]) -> bool:
    thread = event.thread
    if thread.unread <= event.previous_unread:
        return False
    if thread.is_withdrawn:
        return False
    if enabled_since and thread.last_message_at and thread.last_message_at < enabled_since:
        return False
    return True


class MessageNotificationProducer(NotificationProducer):
    category = NotificationCategory.MESSAGES

    def __init__(self, user_id: str, store: DocumentStore, channel: NotificationChannel):
        super().__init__(user_id, channel)
        self.store = store
        self.unread = ThreadUnreadMap()
        self._unsubscribe: Optional[Unsubscribe] = None

    def start(self, token: LivenessToken) -> None:
        self.unread.clear()
        unsubscribe = self.store.watch_query(
            CHATS_COLLECTION,
            token.guard(lambda snapshot: self._on_threads(snapshot, token)),
            token.guard(self._on_error),
            where=('participants', 'array-contains', self.user_id),
        )
        if token.alive:
            self._unsubscribe = unsubscribe
        else:
            unsubscribe()

    def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self.unread.clear()

    def _on_threads(self, snapshot: QuerySnapshot, token: LivenessToken) -> None:
        threads: List[ChatThread] = []
        for doc in snapshot.docs:
            try:
                threads.append(ChatThread.from_document(doc, self.user_id))
            except Exception as e:
                logger.error(f"Skipping malformed chat thread {doc.id}: {e}", exc_info=True)

        if not self.unread.hydrated:
            self.unread.hydrate(threads)
            logger.debug(f"Hydrated unread counts for {len(threads)} threads")
            return

        enabled_since = self._state.enabled_since_for(self.category) if self._state else None
        for thread in threads:
            event = MessageEvent(thread=thread, previous_unread=self.unread.update(thread))
            if not should_notify(event, enabled_since):
                continue
            try:
                content = NotificationMessageBuilder.new_message(thread)
                self.deliver(NotificationMessageBuilder.to_message(content), token)
            except Exception as e:
                logger.error(f"Failed to notify about thread {thread.id}: {e}", exc_info=True)

        # Threads that left the query are no longer tracked
        self.unread.retain(thread.id for thread in threads)

    def _on_error(self, error: Exception) -> None:
        logger.error(f"Failed to listen to chat threads for {self.user_id}: {error}")
