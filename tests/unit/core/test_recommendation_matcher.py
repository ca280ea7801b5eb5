"""
Tests for RecommendationMatcher: hydration, exclusion rules, recency,
filter matching and per-cycle dedup.
"""
import pytest
from datetime import timedelta
from unittest.mock import patch

from core.interfaces import (
    CHANGE_ADDED,
    CHANGE_MODIFIED,
    CHANGE_REMOVED,
    DocumentChange,
    DocumentSnapshot,
    QuerySnapshot,
)
from core.models import ListingSnapshot, ListingStatus, RecommendationFilter
from core.recommendations import RecommendationMatcher
from notification.tracker import NotificationTrackerService
from tests.mocks.engine_mocks import T0


def listing_doc(listing_id, **fields):
    data = {
        'title': 'Calculus textbook',
        'price': 40.0,
        'status': 'available',
        'category': 'books',
        'condition': 'Good',
        'sellerId': 'seller-1',
        'postedAt': T0 + timedelta(minutes=5),
    }
    data.update(fields)
    return DocumentSnapshot(id=listing_id, path=f"listings/{listing_id}", data=data)


def batch(*changes):
    docs = [doc for _, doc in changes]
    return QuerySnapshot(docs=docs, changes=[DocumentChange(type=t, doc=d) for t, d in changes])


class TestRecommendationMatcher:

    @pytest.fixture
    def tracker(self):
        return NotificationTrackerService()

    @pytest.fixture
    def matcher(self, tracker):
        return RecommendationMatcher("u1", tracker)

    @pytest.fixture
    def hydrated(self, matcher):
        matcher.process_batch(batch((CHANGE_ADDED, listing_doc("OLD"))), RecommendationFilter(), T0)
        return matcher

    def test_first_batch_is_discarded(self, matcher):
        events = matcher.process_batch(batch((CHANGE_ADDED, listing_doc("L1"))), RecommendationFilter(), T0)

        assert events == []
        assert matcher.hydrated is True

    def test_new_matching_listing_is_recommended(self, hydrated, tracker):
        events = hydrated.process_batch(batch((CHANGE_ADDED, listing_doc("L1"))), RecommendationFilter(), T0)

        assert len(events) == 1
        assert events[0].listing.id == "L1"
        assert events[0].change_type == CHANGE_ADDED
        assert tracker.shown_ids("recommendations") == {"L1"}

    def test_filter_scenario_price_and_category(self, hydrated):
        rec_filter = RecommendationFilter(min_price=20, max_price=50, categories=frozenset({'books'}))
        changes = batch(
            (CHANGE_ADDED, listing_doc("A", price=30, category='books')),
            (CHANGE_ADDED, listing_doc("B", price=60, category='books')),
            (CHANGE_ADDED, listing_doc("C", price=30, category='electronics')),
        )

        events = hydrated.process_batch(changes, rec_filter, T0)

        assert [e.listing.id for e in events] == ["A"]

    def test_price_bounds_are_inclusive(self):
        rec_filter = RecommendationFilter(min_price=20, max_price=50)
        for price, expected in [(20, True), (50, True), (19.99, False), (50.01, False)]:
            listing = ListingSnapshot(id="x", title="t", price=price, status=ListingStatus.AVAILABLE)
            matched, _ = RecommendationMatcher.matches_filter(listing, rec_filter)
            assert matched is expected, price

    def test_condition_filter(self, hydrated):
        rec_filter = RecommendationFilter(condition='New')
        changes = batch(
            (CHANGE_ADDED, listing_doc("A", condition='New')),
            (CHANGE_ADDED, listing_doc("B", condition='Fair')),
        )

        assert [e.listing.id for e in hydrated.process_batch(changes, rec_filter, T0)] == ["A"]

    def test_own_and_sold_listings_rejected(self, hydrated):
        changes = batch(
            (CHANGE_ADDED, listing_doc("MINE", sellerId='u1')),
            (CHANGE_ADDED, listing_doc("SOLD", status='sold')),
        )

        assert hydrated.process_batch(changes, RecommendationFilter(), T0) == []

    def test_added_listing_older_than_enablement_rejected(self, hydrated):
        old = listing_doc("L1", postedAt=T0 - timedelta(minutes=10))

        assert hydrated.process_batch(batch((CHANGE_ADDED, old)), RecommendationFilter(), T0) == []

    def test_recency_grace_of_one_second(self, hydrated):
        just_before = listing_doc("L1", postedAt=T0 - timedelta(milliseconds=900))

        events = hydrated.process_batch(batch((CHANGE_ADDED, just_before)), RecommendationFilter(), T0)

        assert len(events) == 1

    def test_modified_old_listing_is_eligible(self, hydrated):
        old = listing_doc("L1", postedAt=T0 - timedelta(days=3))

        events = hydrated.process_batch(batch((CHANGE_MODIFIED, old)), RecommendationFilter(), T0)

        assert [e.change_type for e in events] == [CHANGE_MODIFIED]

    def test_missing_posted_at_counts_as_recent(self, hydrated):
        pending_write = listing_doc("L1", postedAt=None)

        assert len(hydrated.process_batch(batch((CHANGE_ADDED, pending_write)), RecommendationFilter(), T0)) == 1

    def test_removed_changes_ignored(self, hydrated):
        assert hydrated.process_batch(batch((CHANGE_REMOVED, listing_doc("L1"))), RecommendationFilter(), T0) == []

    def test_listing_shown_once_per_cycle(self, hydrated):
        hydrated.process_batch(batch((CHANGE_ADDED, listing_doc("L1"))), RecommendationFilter(), T0)

        events = hydrated.process_batch(batch((CHANGE_MODIFIED, listing_doc("L1", price=35))), RecommendationFilter(), T0)

        assert events == []

    def test_reset_starts_new_cycle(self, hydrated, tracker):
        hydrated.process_batch(batch((CHANGE_ADDED, listing_doc("L1"))), RecommendationFilter(), T0)

        hydrated.reset()

        assert hydrated.hydrated is False
        assert tracker.count("recommendations") == 0
        # Hydration again, then L1 is eligible once more
        hydrated.process_batch(batch((CHANGE_ADDED, listing_doc("L1"))), RecommendationFilter(), T0)
        events = hydrated.process_batch(batch((CHANGE_MODIFIED, listing_doc("L1"))), RecommendationFilter(), T0)
        assert len(events) == 1

    def test_evaluate_reports_reason(self, matcher):
        listing = ListingSnapshot(id="L1", title="t", price=5, status=ListingStatus.SOLD)

        accepted, reason = matcher.evaluate(CHANGE_ADDED, listing, RecommendationFilter(), T0)

        assert accepted is False
        assert reason == "sold"

    def test_malformed_listing_does_not_abort_batch(self, hydrated):
        original = ListingSnapshot.from_document

        def from_document(doc):
            if doc.id == "BAD":
                raise TypeError("unexpected field type")
            return original(doc)

        with patch.object(ListingSnapshot, 'from_document', side_effect=from_document):
            events = hydrated.process_batch(
                batch((CHANGE_ADDED, listing_doc("BAD")), (CHANGE_ADDED, listing_doc("L2"))),
                RecommendationFilter(),
                T0,
            )

        assert [e.listing.id for e in events] == ["L2"]
