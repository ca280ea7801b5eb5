"""
Tests for SubscriptionMultiplexer and LivenessToken.
"""
import pytest
from unittest.mock import Mock

from core.subscriptions import LivenessToken, SubscriptionMultiplexer


class FakeWatchSource:
    """Records subscriptions and lets the test push snapshots/errors by key."""

    def __init__(self):
        self.active = {}
        self.subscribe_calls = []
        self.unsubscribe_calls = []

    def subscribe(self, key, on_snapshot, on_error):
        self.subscribe_calls.append(key)
        self.active[key] = (on_snapshot, on_error)

        def unsubscribe():
            self.unsubscribe_calls.append(key)
            self.active.pop(key, None)
        return unsubscribe


class TestLivenessToken:

    def test_guard_runs_while_alive(self):
        token = LivenessToken("t")
        callback = Mock(return_value=7)

        assert token.guard(callback)("a", b=1) == 7
        callback.assert_called_once_with("a", b=1)

    def test_guard_is_noop_after_invalidate(self):
        token = LivenessToken("t")
        callback = Mock()
        guarded = token.guard(callback)

        token.invalidate()
        guarded("late")

        assert token.alive is False
        callback.assert_not_called()


class TestSubscriptionMultiplexer:

    @pytest.fixture
    def source(self):
        return FakeWatchSource()

    @pytest.fixture
    def on_snapshot(self):
        return Mock()

    @pytest.fixture
    def mux(self, source, on_snapshot):
        return SubscriptionMultiplexer(source.subscribe, on_snapshot, name="test")

    def test_sync_starts_watchers_for_new_keys(self, mux, source):
        added, removed = mux.sync({"L1", "L2"})

        assert added == {"L1", "L2"}
        assert removed == set()
        assert sorted(source.subscribe_calls) == ["L1", "L2"]
        assert mux.keys == {"L1", "L2"}
        assert len(mux) == 2

    def test_sync_is_idempotent(self, mux, source):
        mux.sync({"L1", "L2"})
        added, removed = mux.sync(["L2", "L1"])

        assert added == set() and removed == set()
        assert len(source.subscribe_calls) == 2
        assert source.unsubscribe_calls == []

    def test_sync_stops_removed_and_keeps_unchanged(self, mux, source):
        on_removed = Mock()
        mux._on_removed = on_removed
        mux.sync({"L1", "L2"})

        added, removed = mux.sync({"L2", "L3"})

        assert added == {"L3"}
        assert removed == {"L1"}
        assert source.unsubscribe_calls == ["L1"]
        assert source.subscribe_calls.count("L2") == 1
        on_removed.assert_called_once_with("L1")
        assert "L1" not in mux and "L3" in mux

    def test_snapshot_delivered_with_key(self, mux, source, on_snapshot):
        mux.sync({"L1"})
        deliver, _ = source.active["L1"]

        deliver({"status": "available"})

        on_snapshot.assert_called_once_with("L1", {"status": "available"})

    def test_late_callback_after_removal_is_dropped(self, mux, source, on_snapshot):
        mux.sync({"L1"})
        deliver, _ = source.active["L1"]

        mux.sync(set())
        deliver({"status": "sold"})

        on_snapshot.assert_not_called()

    def test_stop_all_clears_every_watcher(self, mux, source):
        mux.sync({"L1", "L2", "L3"})

        mux.stop_all()

        assert len(mux) == 0
        assert sorted(source.unsubscribe_calls) == ["L1", "L2", "L3"]

        # Re-enabling starts from empty
        added, _ = mux.sync({"L1"})
        assert added == {"L1"}

    def test_error_goes_to_error_hook_only_for_that_key(self, source, on_snapshot):
        on_error = Mock()
        mux = SubscriptionMultiplexer(source.subscribe, on_snapshot, on_error=on_error)
        mux.sync({"L1", "L2"})
        _, fail_l1 = source.active["L1"]
        deliver_l2, _ = source.active["L2"]

        error = RuntimeError("boom")
        fail_l1(error)
        deliver_l2({"title": "ok"})

        on_error.assert_called_once_with("L1", error)
        on_snapshot.assert_called_once_with("L2", {"title": "ok"})

    def test_snapshot_handler_exception_is_contained(self, source):
        mux = SubscriptionMultiplexer(source.subscribe, Mock(side_effect=ValueError("bad")))
        mux.sync({"L1"})
        deliver, _ = source.active["L1"]

        deliver({})  # must not raise

        assert "L1" in mux

    def test_subscribe_failure_leaves_key_unwatched(self, on_snapshot):
        subscribe = Mock(side_effect=RuntimeError("denied"))
        mux = SubscriptionMultiplexer(subscribe, on_snapshot)

        mux.sync({"L1"})

        assert "L1" not in mux

    def test_synchronous_first_delivery(self, on_snapshot):
        def subscribe(key, deliver, on_error):
            deliver({"id": key})
            return Mock()

        mux = SubscriptionMultiplexer(subscribe, on_snapshot)
        mux.sync({"L1"})

        on_snapshot.assert_called_once_with("L1", {"id": "L1"})

    def test_stopped_during_first_delivery_is_unsubscribed(self):
        unsubscribe = Mock()
        holder = {}

        def subscribe(key, deliver, on_error):
            deliver({})
            return unsubscribe

        def on_snapshot(key, snapshot):
            holder['mux'].sync(set())

        mux = SubscriptionMultiplexer(subscribe, on_snapshot)
        holder['mux'] = mux
        mux.sync({"L1"})

        assert "L1" not in mux
        unsubscribe.assert_called_once()
