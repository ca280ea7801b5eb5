"""
Collaborator Interfaces - Abstract bases for the engine's external services.

The document store, identity provider, local key-value store, app lifecycle
signal and timer scheduler are all external. Producers only talk to these
abstractions so they can be wired against any backend (or a fake in tests).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

# Callable returned by every watch/subscribe; cancels the subscription.
Unsubscribe = Callable[[], None]
ErrorCallback = Callable[[Exception], None]

CHANGE_ADDED = "added"
CHANGE_MODIFIED = "modified"
CHANGE_REMOVED = "removed"

APP_STATE_ACTIVE = "active"
APP_STATE_BACKGROUND = "background"


@dataclass(frozen=True)
class DocumentSnapshot:
    """A point-in-time read of one document. ``data`` is None if it does not exist."""
    id: str
    path: str
    data: Optional[Dict[str, Any]] = None

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, field_name: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(field_name, default)


@dataclass(frozen=True)
class DocumentChange:
    type: str  # added | modified | removed
    doc: DocumentSnapshot


@dataclass(frozen=True)
class QuerySnapshot:
    docs: List[DocumentSnapshot] = field(default_factory=list)
    changes: List[DocumentChange] = field(default_factory=list)


@dataclass(frozen=True)
class User:
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None


class DocumentStore(ABC):
    """Push-based remote document store."""

    @abstractmethod
    def watch_document(
        self,
        path: str,
        on_snapshot: Callable[[DocumentSnapshot], None],
        on_error: Optional[ErrorCallback] = None
    ) -> Unsubscribe:
        """
        Watch a single document.

        The current state is delivered as the first snapshot, then every
        subsequent change until the returned callable is invoked.
        """
        pass

    @abstractmethod
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
        """
        Watch a collection query.

        Args:
            path: Collection path, e.g. "users/u1/favorites"
            where: Optional (field, op, value) filter; op is "==" or "array-contains"
            order_by: Field to order results by
            descending: Order direction
            limit: Maximum number of documents in the result window
        """
        pass

    @abstractmethod
    def get(self, path: str) -> DocumentSnapshot:
        pass

    @abstractmethod
    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        pass

    @abstractmethod
    def update(self, path: str, fields: Dict[str, Any]) -> None:
        """Update dotted field paths (e.g. ``unread.u1``) on an existing document."""
        pass


class IdentitySource(ABC):
    """Authentication provider."""

    @abstractmethod
    def current_user(self) -> Optional[User]:
        pass

    @abstractmethod
    def subscribe(self, callback: Callable[[Optional[User]], None]) -> Unsubscribe:
        """Invoke ``callback`` immediately with the current user and on every change."""
        pass


class KeyValueStore(ABC):
    """Local persistent string store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class AppLifecycle(ABC):
    """Foreground/background transition signal."""

    @abstractmethod
    def subscribe(self, callback: Callable[[str], None]) -> Unsubscribe:
        pass


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        pass


class Scheduler(ABC):
    """
    Timer source for the delivery channel.

    ``asyncio.AbstractEventLoop`` already satisfies this shape through
    ``call_later``, so a running loop can be passed directly.
    """

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        pass
