#!/usr/bin/env python3
"""
Subscription Multiplexer - one live watcher per key.

Keeps a map of key -> running watcher and reconciles it against a desired
key set on every ``sync`` call: watchers are started for keys that appeared
and stopped for keys that disappeared. Nothing is rebuilt for keys that
stay.

Usage:
    from core.subscriptions import SubscriptionMultiplexer

    mux = SubscriptionMultiplexer(
        subscribe=lambda key, on_snapshot, on_error: store.watch_document(
            f"listings/{key}", on_snapshot, on_error
        ),
        on_snapshot=lambda key, snap: diff_engine.observe(key, snap.data),
        on_removed=diff_engine.forget,
    )
    mux.sync({"L1", "L2"})
    mux.stop_all()
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Set, Tuple

from core.interfaces import ErrorCallback, Unsubscribe

logger = logging.getLogger(__name__)

# subscribe(key, on_snapshot, on_error) -> unsubscribe
SubscribeFn = Callable[[str, Callable[[Any], None], ErrorCallback], Unsubscribe]


class LivenessToken:
    """
    Captured by a callback at subscribe time and checked before it mutates
    shared state. Once invalidated it never becomes alive again.
    """

    __slots__ = ('label', '_alive')

    def __init__(self, label: str = ""):
        self.label = label
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def invalidate(self) -> None:
        self._alive = False

    def guard(self, callback: Callable[..., None]) -> Callable[..., None]:
        """Wrap ``callback`` so it becomes a no-op once this token is invalidated."""
        def guarded(*args, **kwargs):
            if not self._alive:
                logger.debug(f"Dropping late callback for {self.label or 'stale watcher'}")
                return None
            return callback(*args, **kwargs)
        return guarded


@dataclass
class _Watcher:
    key: str
    token: LivenessToken
    unsubscribe: Optional[Unsubscribe] = None


class SubscriptionMultiplexer:
    """Maintains exactly one live watcher per key in a dynamic key set."""

    def __init__(
        self,
        subscribe: SubscribeFn,
        on_snapshot: Callable[[str, Any], None],
        on_error: Optional[Callable[[str, Exception], None]] = None,
        on_removed: Optional[Callable[[str], None]] = None,
        name: str = "multiplexer"
    ):
        """
        Args:
            subscribe: Starts a watcher for one key and returns its unsubscribe
            on_snapshot: Receives (key, snapshot) for every live delivery
            on_error: Receives (key, error) when a watcher fails
            on_removed: Called with the key after its watcher is stopped
            name: Label used in log lines
        """
        self._subscribe = subscribe
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._on_removed = on_removed
        self.name = name
        self._watchers: Dict[str, _Watcher] = {}

    @property
    def keys(self) -> Set[str]:
        return set(self._watchers)

    def __len__(self) -> int:
        return len(self._watchers)

    def __contains__(self, key: object) -> bool:
        return key in self._watchers

    def sync(self, keys: Iterable[str]) -> Tuple[Set[str], Set[str]]:
        """
        Reconcile running watchers with the desired key set.

        Returns:
            (added, removed) key sets; both empty when nothing changed
        """
        desired = set(keys)
        current = set(self._watchers)

        added = desired - current
        removed = current - desired

        for key in removed:
            self._stop(key)

        for key in added:
            self._start(key)

        if added or removed:
            logger.debug(f"{self.name}: +{len(added)} -{len(removed)} watchers ({len(self._watchers)} live)")

        return added, removed

    def stop_all(self) -> None:
        """Stop every watcher and forget every key."""
        for key in list(self._watchers):
            self._stop(key)

    def _start(self, key: str) -> None:
        token = LivenessToken(f"{self.name}:{key}")
        watcher = _Watcher(key=key, token=token)
        # Registered before subscribing: stores may deliver the first snapshot synchronously.
        self._watchers[key] = watcher

        def handle_snapshot(snapshot: Any) -> None:
            try:
                self._on_snapshot(key, snapshot)
            except Exception as e:
                logger.error(f"{self.name}: snapshot handler failed for {key}: {e}", exc_info=True)

        def handle_error(error: Exception) -> None:
            logger.error(f"{self.name}: watcher for {key} failed: {error}")
            if self._on_error:
                try:
                    self._on_error(key, error)
                except Exception as e:
                    logger.error(f"{self.name}: error handler failed for {key}: {e}", exc_info=True)

        try:
            unsubscribe = self._subscribe(key, token.guard(handle_snapshot), token.guard(handle_error))
        except Exception as e:
            logger.error(f"{self.name}: could not start watcher for {key}: {e}")
            token.invalidate()
            self._watchers.pop(key, None)
            return

        if not token.alive:
            # Stopped from inside the first synchronous delivery
            unsubscribe()
            return
        watcher.unsubscribe = unsubscribe

    def _stop(self, key: str) -> None:
        watcher = self._watchers.pop(key, None)
        if watcher is None:
            return
        watcher.token.invalidate()
        if watcher.unsubscribe:
            try:
                watcher.unsubscribe()
            except Exception as e:
                logger.warning(f"{self.name}: unsubscribe failed for {key}: {e}")
        if self._on_removed:
            self._on_removed(key)
