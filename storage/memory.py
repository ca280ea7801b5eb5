#!/usr/bin/env python3
"""
In-memory collaborators for offline runs and tests.

InMemoryDocumentStore mimics a push-based document store: watches deliver
the current state immediately and then every change, query watches report
added/modified/removed changes relative to their previous result window.
Delivery is synchronous on the caller's thread.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from core.exceptions import PermissionDeniedException
from core.interfaces import (
    CHANGE_ADDED,
    CHANGE_MODIFIED,
    CHANGE_REMOVED,
    AppLifecycle,
    DocumentChange,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    IdentitySource,
    KeyValueStore,
    QuerySnapshot,
    Scheduler,
    TimerHandle,
    Unsubscribe,
    User,
)

logger = logging.getLogger(__name__)


def _split(path: str) -> Tuple[str, str]:
    """'users/u1/favorites/L1' -> ('users/u1/favorites', 'L1')"""
    parent, _, doc_id = path.strip('/').rpartition('/')
    return parent, doc_id


def _deep_merge(target: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


@dataclass(eq=False)
class _DocWatch:
    path: str
    on_snapshot: Callable[[DocumentSnapshot], None]
    on_error: Optional[ErrorCallback]


@dataclass(eq=False)
class _QueryWatch:
    collection: str
    on_snapshot: Callable[[QuerySnapshot], None]
    on_error: Optional[ErrorCallback]
    where: Optional[Tuple[str, str, Any]] = None
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None
    last_result: Dict[str, Dict[str, Any]] = field(default_factory=dict)


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed DocumentStore with live watches."""

    def __init__(self):
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._doc_watches: List[_DocWatch] = []
        self._query_watches: List[_QueryWatch] = []
        self._denied: Set[str] = set()

    @property
    def watch_count(self) -> int:
        """Number of live document and query watches."""
        return len(self._doc_watches) + len(self._query_watches)

    # ============ Access rules ============

    def deny(self, path: str) -> None:
        """Reject reads of ``path`` with PermissionDeniedException."""
        self._denied.add(path.strip('/'))

    def allow(self, path: str) -> None:
        self._denied.discard(path.strip('/'))

    def fail_watchers(self, path: str, error: Exception) -> None:
        """Deliver ``error`` to every watch on ``path`` (document or collection)."""
        path = path.strip('/')
        for watch in list(self._doc_watches):
            if watch.path == path and watch.on_error and watch in self._doc_watches:
                watch.on_error(error)
        for watch in list(self._query_watches):
            if watch.collection == path and watch.on_error and watch in self._query_watches:
                watch.on_error(error)

    # ============ Reads ============

    def _snapshot(self, path: str) -> DocumentSnapshot:
        _, doc_id = _split(path)
        data = self._docs.get(path)
        return DocumentSnapshot(id=doc_id, path=path, data=copy.deepcopy(data) if data is not None else None)

    def get(self, path: str) -> DocumentSnapshot:
        path = path.strip('/')
        if path in self._denied:
            raise PermissionDeniedException(f"Missing or insufficient permissions for {path}")
        return self._snapshot(path)

    def watch_document(
        self,
        path: str,
        on_snapshot: Callable[[DocumentSnapshot], None],
        on_error: Optional[ErrorCallback] = None
    ) -> Unsubscribe:
        path = path.strip('/')
        if path in self._denied:
            if on_error:
                on_error(PermissionDeniedException(f"Missing or insufficient permissions for {path}"))
            return lambda: None

        watch = _DocWatch(path=path, on_snapshot=on_snapshot, on_error=on_error)
        self._doc_watches.append(watch)
        on_snapshot(self._snapshot(path))

        def unsubscribe() -> None:
            if watch in self._doc_watches:
                self._doc_watches.remove(watch)
        return unsubscribe

    def watch_query(
        self,
        path: str,
        on_snapshot: Callable[[QuerySnapshot], None],
        on_error: Optional[ErrorCallback] = None,
        where: Optional[Tuple[str, str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> Unsubscribe:
        collection = path.strip('/')
        if collection in self._denied:
            if on_error:
                on_error(PermissionDeniedException(f"Missing or insufficient permissions for {collection}"))
            return lambda: None

        watch = _QueryWatch(
            collection=collection,
            on_snapshot=on_snapshot,
            on_error=on_error,
            where=where,
            order_by=order_by,
            descending=descending,
            limit=limit,
        )
        self._query_watches.append(watch)
        self._deliver_query(watch, initial=True)

        def unsubscribe() -> None:
            if watch in self._query_watches:
                self._query_watches.remove(watch)
        return unsubscribe

    # ============ Writes ============

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        path = path.strip('/')
        if merge and path in self._docs:
            _deep_merge(self._docs[path], data)
        else:
            self._docs[path] = copy.deepcopy(data)
        self._broadcast(path)

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        path = path.strip('/')
        if path not in self._docs:
            raise KeyError(f"No document to update at {path}")
        doc = self._docs[path]
        for dotted, value in fields.items():
            target = doc
            *parents, leaf = dotted.split('.')
            for part in parents:
                if not isinstance(target.get(part), dict):
                    target[part] = {}
                target = target[part]
            target[leaf] = copy.deepcopy(value)
        self._broadcast(path)

    def delete(self, path: str) -> None:
        path = path.strip('/')
        if self._docs.pop(path, None) is not None:
            self._broadcast(path)

    # ============ Delivery ============

    def _broadcast(self, path: str) -> None:
        for watch in list(self._doc_watches):
            if watch.path == path and watch in self._doc_watches:
                watch.on_snapshot(self._snapshot(path))

        collection, _ = _split(path)
        for watch in list(self._query_watches):
            if watch.collection == collection and watch in self._query_watches:
                self._deliver_query(watch)

    def _matches(self, watch: _QueryWatch, data: Dict[str, Any]) -> bool:
        if watch.where is None:
            return True
        field_name, op, value = watch.where
        actual = data.get(field_name)
        if op == '==':
            return actual == value
        if op == 'array-contains':
            return isinstance(actual, list) and value in actual
        raise ValueError(f"Unsupported query operator: {op}")

    def _run_query(self, watch: _QueryWatch) -> List[Tuple[str, Dict[str, Any]]]:
        rows = []
        for path, data in self._docs.items():
            parent, doc_id = _split(path)
            if parent != watch.collection or not self._matches(watch, data):
                continue
            if watch.order_by and data.get(watch.order_by) is None:
                continue  # documents without the ordering field are excluded
            rows.append((doc_id, data))

        if watch.order_by:
            rows.sort(key=lambda row: row[1][watch.order_by], reverse=watch.descending)
        if watch.limit is not None:
            rows = rows[:watch.limit]
        return rows

    def _deliver_query(self, watch: _QueryWatch, initial: bool = False) -> None:
        rows = self._run_query(watch)
        result = {doc_id: copy.deepcopy(data) for doc_id, data in rows}

        def snap(doc_id: str, data: Optional[Dict[str, Any]]) -> DocumentSnapshot:
            return DocumentSnapshot(
                id=doc_id,
                path=f"{watch.collection}/{doc_id}",
                data=copy.deepcopy(data) if data is not None else None,
            )

        changes: List[DocumentChange] = []
        for doc_id, data in rows:
            previous = watch.last_result.get(doc_id)
            if doc_id not in watch.last_result:
                changes.append(DocumentChange(type=CHANGE_ADDED, doc=snap(doc_id, data)))
            elif previous != data:
                changes.append(DocumentChange(type=CHANGE_MODIFIED, doc=snap(doc_id, data)))
        for doc_id, data in watch.last_result.items():
            if doc_id not in result:
                changes.append(DocumentChange(type=CHANGE_REMOVED, doc=snap(doc_id, data)))

        watch.last_result = result
        if not changes and not initial:
            return

        watch.on_snapshot(QuerySnapshot(
            docs=[snap(doc_id, data) for doc_id, data in rows],
            changes=changes,
        ))


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self):
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)


class InMemoryIdentitySource(IdentitySource):
    """Identity holder with explicit sign-in/sign-out."""

    def __init__(self, user: Optional[User] = None):
        self._user = user
        self._callbacks: List[Callable[[Optional[User]], None]] = []

    def current_user(self) -> Optional[User]:
        return self._user

    def subscribe(self, callback: Callable[[Optional[User]], None]) -> Unsubscribe:
        self._callbacks.append(callback)
        callback(self._user)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
        return unsubscribe

    def sign_in(self, user: User) -> None:
        self._set(user)

    def sign_out(self) -> None:
        self._set(None)

    def _set(self, user: Optional[User]) -> None:
        self._user = user
        for callback in list(self._callbacks):
            callback(user)


class InMemoryAppLifecycle(AppLifecycle):
    def __init__(self):
        self._callbacks: List[Callable[[str], None]] = []

    def subscribe(self, callback: Callable[[str], None]) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
        return unsubscribe

    def emit(self, state: str) -> None:
        logger.debug(f"App state -> {state}")
        for callback in list(self._callbacks):
            callback(state)


@dataclass(eq=False)
class ManualTimer(TimerHandle):
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """
    Scheduler driven by an explicit clock.

    Nothing fires until ``advance`` moves time past a timer's due point;
    timers fire in due order, including timers scheduled while advancing.
    """

    def __init__(self):
        self.now = 0.0
        self._timers: List[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(due=self.now + delay, callback=callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            ready = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not ready:
                break
            timer = min(ready, key=lambda t: t.due)
            self._timers.remove(timer)
            self.now = timer.due
            timer.callback()
        self._timers = [t for t in self._timers if not t.cancelled]
        self.now = target
