"""Notification producers, one per notification category."""

from notification.producers.base import NotificationProducer
from notification.producers.draft_reminder import DraftReminderProducer
from notification.producers.marketplace import MarketplaceActivityProducer
from notification.producers.messages import MessageNotificationProducer
from notification.producers.recommendations import RecommendationProducer

__all__ = [
    'NotificationProducer',
    'DraftReminderProducer',
    'MarketplaceActivityProducer',
    'MessageNotificationProducer',
    'RecommendationProducer',
]
