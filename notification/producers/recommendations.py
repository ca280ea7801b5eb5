#!/usr/bin/env python3
"""
Recommendations producer - "We found {title} for ${price}."

Opt-in. While enabled, watches the most recent listings (ordered by
``postedAt``) and hands each batch to the RecommendationMatcher together
with the current filter. Matches are shown as an action-bearing message
whose action opens the listing.
"""

import logging
from typing import Callable, Optional

from core.interfaces import DocumentStore, QuerySnapshot, Unsubscribe
from core.models import ListingSnapshot, NotificationCategory, PreferenceState, RecommendationFilter
from core.recommendations import RecommendationMatcher
from core.subscriptions import LivenessToken
from notification.channels import NotificationChannel
from notification.message_builder import NotificationMessageBuilder
from notification.producers.base import NotificationProducer
from notification.tracker import NotificationTrackerService

logger = logging.getLogger(__name__)

LISTINGS_COLLECTION = "listings"
FEED_PAGE_SIZE = 25

Navigator = Callable[[str], None]


def listing_route(listing_id: str) -> str:
    return f"/item-detail?itemId={listing_id}"


class RecommendationProducer(NotificationProducer):
    category = NotificationCategory.RECOMMENDATIONS

    def __init__(
        self,
        user_id: str,
        store: DocumentStore,
        channel: NotificationChannel,
        tracker: Optional[NotificationTrackerService] = None,
        navigate: Optional[Navigator] = None,
        page_size: int = FEED_PAGE_SIZE,
        recency_grace_ms: int = 1000,
        message_ttl: Optional[float] = None
    ):
        super().__init__(user_id, channel)
        self.store = store
        self.navigate = navigate
        self.page_size = page_size
        self.message_ttl = message_ttl
        self.matcher = RecommendationMatcher(
            user_id,
            tracker or NotificationTrackerService(),
            recency_grace_ms=recency_grace_ms,
        )
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def filter(self) -> RecommendationFilter:
        return self._state.recommendation_filter if self._state else RecommendationFilter()

    def start(self, token: LivenessToken) -> None:
        self.matcher.reset()
        unsubscribe = self.store.watch_query(
            LISTINGS_COLLECTION,
            token.guard(lambda snapshot: self._on_feed(snapshot, token)),
            token.guard(self._on_error),
            order_by='postedAt',
            descending=True,
            limit=self.page_size,
        )
        if token.alive:
            self._unsubscribe = unsubscribe
        else:
            unsubscribe()

    def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def on_state_changed(self, state: PreferenceState) -> None:
        # The feed keeps running; the new filter applies from the next batch on
        logger.debug(f"Recommendation filter for {self.user_id}: {state.recommendation_filter}")

    def _on_feed(self, snapshot: QuerySnapshot, token: LivenessToken) -> None:
        enabled_since = self._state.enabled_since_for(self.category) if self._state else None
        for event in self.matcher.process_batch(snapshot, self.filter, enabled_since):
            try:
                self._recommend(event.listing, token)
            except Exception as e:
                logger.error(f"Failed to recommend listing {event.listing.id}: {e}", exc_info=True)

    def _recommend(self, listing: ListingSnapshot, token: LivenessToken) -> None:
        content = NotificationMessageBuilder.recommendation(listing)
        message = NotificationMessageBuilder.to_message(
            content,
            ttl=self.message_ttl,
            on_action=lambda: self._open_listing(listing.id),
        )
        self.deliver(message, token)

    def _open_listing(self, listing_id: str) -> None:
        if self.navigate is None:
            logger.warning(f"No navigator configured, cannot open listing {listing_id}")
            return
        self.navigate(listing_route(listing_id))

    def _on_error(self, error: Exception) -> None:
        logger.error(f"Failed to listen to recommendation feed: {error}")
