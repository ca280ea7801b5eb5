#!/usr/bin/env python3
"""
Draft Storage - the locally persisted "unfinished listing".

Drafts are stored as JSON strings in the local key-value store, one per
user under ``draft_listing:{user_id}``. Timestamps are epoch milliseconds
so drafts written by other clients stay readable.

Loading is defensive: every field is parsed on its own and an invalid field
falls back to an empty default instead of discarding the whole draft.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from core.exceptions import DraftStorageException
from core.interfaces import KeyValueStore
from core.utils import from_millis, to_millis, utc_now

logger = logging.getLogger(__name__)

REMINDER_AFTER = timedelta(hours=24)
REMINDER_COOLDOWN = timedelta(hours=12)

KEY_PREFIX = "draft_listing:"


@dataclass(frozen=True)
class DraftImage:
    local_uri: str
    remote_url: Optional[str] = None


@dataclass(frozen=True)
class DraftLocation:
    description: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None


@dataclass(frozen=True)
class DraftRecord:
    """An unfinished listing. Price is kept as typed text, like the form field."""
    saved_at: datetime
    title: str = ""
    categories: List[str] = field(default_factory=list)
    condition: str = ""
    price: str = ""
    description: str = ""
    images: List[DraftImage] = field(default_factory=list)
    location: Optional[DraftLocation] = None
    last_reminder_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'categories': list(self.categories),
            'condition': self.condition,
            'price': self.price,
            'description': self.description,
            'images': [{'localUri': img.local_uri, 'remoteUrl': img.remote_url} for img in self.images],
            'location': (
                {'description': self.location.description, 'lat': self.location.lat, 'lng': self.location.lng}
                if self.location else None
            ),
            'savedAt': to_millis(self.saved_at),
            'lastReminderAt': to_millis(self.last_reminder_at) if self.last_reminder_at else 0,
        }


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _parse_images(raw: Any) -> List[DraftImage]:
    if not isinstance(raw, list):
        return []
    images = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get('localUri'), str):
            continue
        remote = item.get('remoteUrl')
        images.append(DraftImage(local_uri=item['localUri'], remote_url=remote if isinstance(remote, str) else None))
    return images


def _parse_location(raw: Any) -> Optional[DraftLocation]:
    if not isinstance(raw, dict):
        return None
    return DraftLocation(
        description=_str(raw.get('description')),
        lat=_number(raw.get('lat')),
        lng=_number(raw.get('lng')),
    )


def _timestamp(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return from_millis(value)
    except (OverflowError, ValueError):
        logger.debug(f"Draft timestamp out of range: {value!r}")
        return None


def parse_draft(raw: Any, now: datetime) -> Optional[DraftRecord]:
    """
    Build a DraftRecord from decoded JSON, field by field.

    Returns None only when the payload is not an object at all.
    """
    if not isinstance(raw, dict):
        return None

    categories = raw.get('categories')
    saved_at = _number(raw.get('savedAt'))
    last_reminder = _number(raw.get('lastReminderAt'))

    return DraftRecord(
        title=_str(raw.get('title')),
        categories=[c for c in categories if isinstance(c, str)] if isinstance(categories, list) else [],
        condition=_str(raw.get('condition')),
        price=_str(raw.get('price')),
        description=_str(raw.get('description')),
        images=_parse_images(raw.get('images')),
        location=_parse_location(raw.get('location')),
        saved_at=_timestamp(saved_at) or now,
        # 0 is written for "never reminded"
        last_reminder_at=_timestamp(last_reminder) if last_reminder else None,
    )


def decide_reminder(
    draft: Optional[DraftRecord],
    now: datetime,
    remind_after: timedelta = REMINDER_AFTER,
    cooldown: timedelta = REMINDER_COOLDOWN
) -> bool:
    """
    Whether a "finish your draft" reminder is due.

    Not due if there is no draft, the draft is younger than ``remind_after``,
    or the last reminder was less than ``cooldown`` ago.
    """
    if draft is None:
        return False
    if now - draft.saved_at < remind_after:
        return False
    if draft.last_reminder_at and now - draft.last_reminder_at < cooldown:
        return False
    return True


class DraftStorage:
    """Save, load and clear drafts in the local key-value store."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        clock: Callable[[], datetime] = utc_now,
        key_prefix: str = KEY_PREFIX
    ):
        self.kv_store = kv_store
        self.clock = clock
        self.key_prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    def save(self, user_id: str, draft: DraftRecord) -> DraftRecord:
        """Overwrite the user's draft, stamping ``saved_at`` with the current time."""
        stored = replace(draft, saved_at=self.clock())
        try:
            self.kv_store.set(self._key(user_id), json.dumps(stored.to_dict()))
        except Exception as e:
            raise DraftStorageException(f"Could not save draft for {user_id}: {e}") from e
        logger.info(f"Saved draft for {user_id}")
        return stored

    def load(self, user_id: str) -> Optional[DraftRecord]:
        try:
            raw = self.kv_store.get(self._key(user_id))
        except Exception as e:
            logger.warning(f"Failed to load draft listing for {user_id}: {e}")
            return None
        if not raw:
            return None

        try:
            decoded = json.loads(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable draft for {user_id}: {e}")
            return None

        return parse_draft(decoded, self.clock())

    def clear(self, user_id: str) -> None:
        """Remove the draft (after publishing or an explicit discard)."""
        try:
            self.kv_store.remove(self._key(user_id))
        except Exception as e:
            raise DraftStorageException(f"Could not clear draft for {user_id}: {e}") from e

    def mark_reminder_shown(self, user_id: str) -> Optional[DraftRecord]:
        """Stamp ``last_reminder_at = now`` on the existing draft, if any."""
        existing = self.load(user_id)
        if existing is None:
            return None
        updated = replace(existing, last_reminder_at=self.clock())
        try:
            self.kv_store.set(self._key(user_id), json.dumps(updated.to_dict()))
        except Exception as e:
            logger.error(f"Failed to record draft reminder for {user_id}: {e}")
            return existing
        return updated
