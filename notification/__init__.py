"""
Notification Module

Live activity notifications for the marketplace client: per-category
producers gated by the user's preferences, delivered through a single-slot
channel.

Usage:
    from notification import NotificationService, DeliveryChannel

    channel = DeliveryChannel(loop)
    service = NotificationService(store, identity, channel, draft_storage)
    service.start()
"""

from notification.channels import (
    NotificationChannel,
    DeliveryChannel,
    ActiveMessage,
    MessagePhase,
)

from notification.tracker import NotificationTrackerService

from notification.message_builder import (
    NotificationMessageBuilder,
    NotificationContent,
)

from notification.service import NotificationService

__all__ = [
    # Channels
    'NotificationChannel',
    'DeliveryChannel',
    'ActiveMessage',
    'MessagePhase',
    # Tracker
    'NotificationTrackerService',
    # Messages
    'NotificationMessageBuilder',
    'NotificationContent',
    # Service
    'NotificationService',
]
