#!/usr/bin/env python3
"""
Recommendation Matcher - match fresh listings against the user's filter.

Consumes change batches from the recency-ordered listing feed. The first
batch of every enable cycle only reflects what already existed and is
discarded; after that each added/modified listing is checked against the
exclusion rules, the user's RecommendationFilter and the shown-id set, and
a RecommendationEvent is emitted the first time a listing matches.
"""
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional, Tuple

from core.interfaces import CHANGE_ADDED, CHANGE_MODIFIED, QuerySnapshot
from core.models import (
    ListingSnapshot,
    ListingStatus,
    NotificationCategory,
    RecommendationEvent,
    RecommendationFilter,
)

if TYPE_CHECKING:
    from notification.tracker import NotificationTrackerService

logger = logging.getLogger(__name__)


class RecommendationMatcher:
    """Decide which feed changes become recommendations."""

    def __init__(
        self,
        user_id: str,
        tracker: "NotificationTrackerService",
        recency_grace_ms: int = 1000,
        category: NotificationCategory = NotificationCategory.RECOMMENDATIONS
    ):
        """
        Args:
            user_id: Current user; their own listings are never recommended
            tracker: Holds the per-cycle set of already shown listing ids
            recency_grace_ms: Tolerance when comparing postedAt with the enablement time
            category: Tracker namespace for shown ids
        """
        self.user_id = user_id
        self.tracker = tracker
        self.recency_grace = timedelta(milliseconds=recency_grace_ms)
        self.category = category.value
        self._hydrated = False

    @property
    def hydrated(self) -> bool:
        return self._hydrated

    def reset(self) -> None:
        """Start a new enable cycle: hydrate again and forget shown ids."""
        self._hydrated = False
        self.tracker.reset(self.category)

    def process_batch(
        self,
        snapshot: QuerySnapshot,
        rec_filter: RecommendationFilter,
        enabled_since: Optional[datetime]
    ) -> List[RecommendationEvent]:
        """
        Evaluate one feed snapshot.

        Returns:
            Recommendation events in feed order (possibly empty)
        """
        if not self._hydrated:
            self._hydrated = True
            logger.debug(f"Recommendation feed hydrated with {len(snapshot.docs)} listings")
            return []

        events: List[RecommendationEvent] = []
        for change in snapshot.changes:
            if change.type not in (CHANGE_ADDED, CHANGE_MODIFIED):
                continue

            try:
                listing = ListingSnapshot.from_document(change.doc)
                accepted, reason = self.evaluate(change.type, listing, rec_filter, enabled_since)
            except Exception as e:
                logger.error(f"Skipping malformed listing {change.doc.id}: {e}", exc_info=True)
                continue
            if not accepted:
                logger.debug(f"Listing {listing.id} not recommended: {reason}")
                continue

            self.tracker.record(self.category, listing.id)
            events.append(RecommendationEvent(listing=listing, change_type=change.type))
            logger.info(f"Recommending listing {listing.id} ({change.type})")

        return events

    def evaluate(
        self,
        change_type: str,
        listing: ListingSnapshot,
        rec_filter: RecommendationFilter,
        enabled_since: Optional[datetime]
    ) -> Tuple[bool, str]:
        """
        Apply exclusion rules, recency, the filter and dedup to one listing.

        Returns: (accepted, reason)
        """
        if listing.seller_id and listing.seller_id == self.user_id:
            return False, "own listing"

        if listing.status == ListingStatus.SOLD:
            return False, "sold"

        # Edits surface immediately; new listings must postdate the enablement
        if change_type == CHANGE_ADDED and not self.is_recent_enough(listing, enabled_since):
            return False, "posted before recommendations were enabled"

        matched, reason = self.matches_filter(listing, rec_filter)
        if not matched:
            return False, reason

        if not self.tracker.should_send(self.category, listing.id):
            return False, "already shown"

        return True, "matched"

    def is_recent_enough(self, listing: ListingSnapshot, enabled_since: Optional[datetime]) -> bool:
        if enabled_since is None:
            return True
        if listing.posted_at is None:
            # Server timestamp not resolved yet: the listing is being written right now
            return True
        return listing.posted_at + self.recency_grace >= enabled_since

    @staticmethod
    def matches_filter(listing: ListingSnapshot, rec_filter: RecommendationFilter) -> Tuple[bool, str]:
        """
        Price bounds are inclusive; an absent bound, an empty category set or an
        unset condition matches everything.
        """
        if rec_filter.min_price is not None and listing.price < rec_filter.min_price:
            return False, f"price {listing.price} below {rec_filter.min_price}"

        if rec_filter.max_price is not None and listing.price > rec_filter.max_price:
            return False, f"price {listing.price} above {rec_filter.max_price}"

        if rec_filter.categories and listing.category not in rec_filter.categories:
            return False, f"category {listing.category} not wanted"

        if rec_filter.condition and listing.condition != rec_filter.condition:
            return False, f"condition {listing.condition} != {rec_filter.condition}"

        return True, "filter matched"
