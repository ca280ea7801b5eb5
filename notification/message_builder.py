from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from core.models import ChatThread, ListingSnapshot, NotificationCategory
from core.utils import clean_text
from notification.channels import USE_DEFAULT_TTL, ActiveMessage

DEFAULT_SELLER_NAME = "the seller"
DEFAULT_LISTING_TITLE = "Listing"

DRAFT_REMINDER_TEXT = "You have an unfinished listing"
DRAFT_REMINDER_ACTION = "Continue"
RECOMMENDATION_ACTION = "View"


class NotificationContent(BaseModel):
    """Rendered text of one notification, independent of how it is shown."""
    category: NotificationCategory
    title: str
    body: str = ""
    action_label: Optional[str] = None
    entity_id: Optional[str] = None


class NotificationMessageBuilder:
    @staticmethod
    def listing_title(data: Optional[Dict[str, Any]]) -> str:
        return clean_text((data or {}).get('title')) or DEFAULT_LISTING_TITLE

    @staticmethod
    def seller_name(data: Optional[Dict[str, Any]], previous: Optional[Dict[str, Any]] = None) -> str:
        """Current seller name, else the one from the previous snapshot."""
        return (
            clean_text((data or {}).get('sellerName'))
            or clean_text((previous or {}).get('sellerName'))
            or DEFAULT_SELLER_NAME
        )

    @staticmethod
    def format_price(price: float) -> str:
        return f"${price:.2f}"

    @staticmethod
    def item_sold(
        listing_id: str,
        data: Optional[Dict[str, Any]],
        previous: Optional[Dict[str, Any]] = None
    ) -> NotificationContent:
        title = NotificationMessageBuilder.listing_title(data)
        seller = NotificationMessageBuilder.seller_name(data, previous)
        return NotificationContent(
            category=NotificationCategory.MARKETPLACE_ACTIVITY,
            title="Item sold",
            body=f'A favorite of yours, "{title}" from {seller} just sold.',
            entity_id=listing_id,
        )

    @staticmethod
    def saved_item_updated(
        listing_id: str,
        data: Optional[Dict[str, Any]],
        previous: Optional[Dict[str, Any]] = None
    ) -> NotificationContent:
        title = NotificationMessageBuilder.listing_title(data)
        seller = NotificationMessageBuilder.seller_name(data, previous)
        return NotificationContent(
            category=NotificationCategory.MARKETPLACE_ACTIVITY,
            title="Saved item updated",
            body=f'"{title}" from {seller} has new details.',
            entity_id=listing_id,
        )

    @staticmethod
    def new_message(thread: ChatThread) -> NotificationContent:
        title = f"New message from {thread.partner_name}" if thread.partner_name else "New message"
        return NotificationContent(
            category=NotificationCategory.MESSAGES,
            title=title,
            body=thread.last_message or "",
            entity_id=thread.id,
        )

    @staticmethod
    def recommendation(listing: ListingSnapshot) -> NotificationContent:
        price = NotificationMessageBuilder.format_price(listing.price)
        return NotificationContent(
            category=NotificationCategory.RECOMMENDATIONS,
            title=f"We found {listing.title} for {price}.",
            action_label=RECOMMENDATION_ACTION,
            entity_id=listing.id,
        )

    @staticmethod
    def draft_reminder() -> NotificationContent:
        return NotificationContent(
            category=NotificationCategory.REMINDERS,
            title=DRAFT_REMINDER_TEXT,
            action_label=DRAFT_REMINDER_ACTION,
        )

    @staticmethod
    def to_message(
        content: NotificationContent,
        ttl: Optional[float] = USE_DEFAULT_TTL,
        on_action: Optional[Callable[[], None]] = None,
        on_dismiss: Optional[Callable[[], None]] = None
    ) -> ActiveMessage:
        """Wrap rendered content for the delivery channel."""
        return ActiveMessage(
            title=content.title,
            body=content.body,
            ttl=ttl,
            category=content.category.value,
            action_label=content.action_label,
            on_action=on_action,
            on_dismiss=on_dismiss,
        )
