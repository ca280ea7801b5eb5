"""Domain models shared by the gate, the matchers and the producers.

Snapshot payloads arrive as opaque field maps; the ``from_document``
constructors here are the only place that interprets them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from core.interfaces import DocumentSnapshot
from core.utils import clean_text, coerce_datetime


class NotificationCategory(str, Enum):
    """Notification categories; values match the settings document keys."""
    MESSAGES = "messages"
    MARKETPLACE_ACTIVITY = "marketplaceActivity"
    REMINDERS = "reminders"
    RECOMMENDATIONS = "recommendations"


class ListingStatus(str, Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    SOLD = "sold"

    @classmethod
    def parse(cls, value: Any) -> "ListingStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.AVAILABLE


LISTING_CATEGORIES = frozenset({
    'books', 'electronics', 'furniture', 'clothing', 'sports', 'kitchen', 'other',
})

LISTING_CONDITIONS = frozenset({'New', 'Like New', 'Excellent', 'Good', 'Fair'})


class RecommendationFilter(BaseModel):
    """The user's stated recommendation preferences. Immutable."""
    model_config = ConfigDict(frozen=True)

    min_price: Optional[float] = None
    max_price: Optional[float] = None
    categories: FrozenSet[str] = frozenset()
    condition: Optional[str] = None

    @classmethod
    def from_settings(cls, raw: Any) -> "RecommendationFilter":
        """
        Parse ``recommendationPreferences`` from the settings document.

        Invalid fields are dropped rather than failing the whole filter:
        non-numeric prices become unbounded, unknown categories are ignored
        and an unknown or "Any" condition means no condition filter.
        """
        if not isinstance(raw, Mapping):
            return cls()

        def _price(value: Any) -> Optional[float]:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
            if value != value:  # NaN
                return None
            return float(value)

        categories = raw.get('categories')
        parsed_categories: Iterable[str] = ()
        if isinstance(categories, (list, tuple, set, frozenset)):
            parsed_categories = (c for c in categories if isinstance(c, str) and c in LISTING_CATEGORIES)

        condition = raw.get('condition')
        return cls(
            min_price=_price(raw.get('minPrice')),
            max_price=_price(raw.get('maxPrice')),
            categories=frozenset(parsed_categories),
            condition=condition if condition in LISTING_CONDITIONS else None,
        )


@dataclass(frozen=True)
class PreferenceState:
    """
    Per-category enablement derived from the user's settings document.

    ``enabled_since`` holds, for each category, the moment it most recently
    transitioned from disabled to enabled.
    """
    messages: bool = False
    marketplace_activity: bool = False
    reminders: bool = False
    recommendations: bool = False
    enabled_since: Dict[NotificationCategory, datetime] = field(default_factory=dict)
    recommendation_filter: RecommendationFilter = field(default_factory=RecommendationFilter)

    _FLAG_ATTRS = {
        NotificationCategory.MESSAGES: 'messages',
        NotificationCategory.MARKETPLACE_ACTIVITY: 'marketplace_activity',
        NotificationCategory.REMINDERS: 'reminders',
        NotificationCategory.RECOMMENDATIONS: 'recommendations',
    }

    @classmethod
    def disabled(cls) -> "PreferenceState":
        return cls()

    def is_enabled(self, category: NotificationCategory) -> bool:
        return bool(getattr(self, self._FLAG_ATTRS[category]))

    def enabled_since_for(self, category: NotificationCategory) -> Optional[datetime]:
        return self.enabled_since.get(category)

    def flags(self) -> Dict[NotificationCategory, bool]:
        return {category: self.is_enabled(category) for category in NotificationCategory}


@dataclass(frozen=True)
class ListingSnapshot:
    """A listing document mapped into typed fields."""
    id: str
    title: str
    price: float
    status: ListingStatus
    category: Optional[str] = None
    condition: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    seller_id: Optional[str] = None
    seller_name: Optional[str] = None
    cover_image_url: Optional[str] = None
    posted_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: DocumentSnapshot) -> "ListingSnapshot":
        data = doc.data or {}
        price = data.get('price')
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            price = 0.0

        image_urls = data.get('imageUrls')
        images = [u for u in image_urls if isinstance(u, str)] if isinstance(image_urls, list) else []
        cover = data.get('coverImageUrl')
        if not isinstance(cover, str):
            cover = images[0] if images else None

        return cls(
            id=doc.id,
            title=data.get('title') if isinstance(data.get('title'), str) else 'Listing',
            price=float(price),
            status=ListingStatus.parse(data.get('status')),
            category=data.get('category') if isinstance(data.get('category'), str) else None,
            condition=data.get('condition') if isinstance(data.get('condition'), str) else None,
            location=data.get('location') if isinstance(data.get('location'), str) else None,
            description=data.get('description') if isinstance(data.get('description'), str) else None,
            seller_id=data.get('sellerId') if isinstance(data.get('sellerId'), str) else None,
            seller_name=clean_text(data.get('sellerName')),
            cover_image_url=cover,
            posted_at=coerce_datetime(data.get('postedAt')),
        )


@dataclass(frozen=True)
class ChatThread:
    """A chat thread as seen by one participant."""
    id: str
    partner_name: Optional[str]
    unread: int
    last_message: Optional[str]
    last_message_at: Optional[datetime]

    @classmethod
    def from_document(cls, doc: DocumentSnapshot, user_id: str) -> "ChatThread":
        data = doc.data or {}
        participants = data.get('participants') or []
        other_id = next((p for p in participants if p != user_id), None)
        if other_id is not None and other_id == data.get('sellerId'):
            partner_name = clean_text(data.get('sellerName'))
        else:
            partner_name = clean_text(data.get('buyerName'))

        unread_map = data.get('unread')
        unread = unread_map.get(user_id, 0) if isinstance(unread_map, Mapping) else 0
        if isinstance(unread, bool) or not isinstance(unread, (int, float)):
            unread = 0

        last_message = data.get('lastMessage')
        return cls(
            id=data.get('threadId') or doc.id,
            partner_name=partner_name,
            unread=int(unread),
            last_message=last_message if isinstance(last_message, str) else None,
            last_message_at=coerce_datetime(data.get('timestamp')),
        )

    @property
    def is_withdrawn(self) -> bool:
        """A withdrawn message leaves an empty ``lastMessage`` behind."""
        return not self.last_message or not self.last_message.strip()


# ============ Events ============

@dataclass(frozen=True)
class DiffEvent:
    """A meaningful transition detected on a watched entity."""
    entity_id: str
    kind: str
    previous: Optional[Dict[str, Any]]
    current: Optional[Dict[str, Any]]


@dataclass(frozen=True)
class ChangeEvent(DiffEvent):
    changed_fields: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TerminalEvent(DiffEvent):
    status: str = ListingStatus.SOLD.value


@dataclass(frozen=True)
class RecommendationEvent:
    listing: ListingSnapshot
    change_type: str


@dataclass(frozen=True)
class MessageEvent:
    thread: ChatThread
    previous_unread: int
