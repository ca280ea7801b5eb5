#!/usr/bin/env python3
"""
Notification Channels - single-slot delivery of transient messages.

A channel holds at most one active message. ``show`` replaces whatever is
on screen (the previous message's timers are cancelled, nothing is queued)
and starts the auto-hide countdown; ``dismiss`` cancels it immediately.
The UI subscribes to the channel and renders ``current``.

Usage:
    from notification.channels import DeliveryChannel, ActiveMessage

    channel = DeliveryChannel(loop)          # any object with call_later()
    channel.subscribe(render)
    channel.show(ActiveMessage(title="Item sold", body="..."))
"""

import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional

from core.interfaces import Scheduler, TimerHandle, Unsubscribe

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3.5
SHOW_ANIMATION_SECONDS = 0.18
HIDE_ANIMATION_SECONDS = 0.12

# Sentinel for "use the channel default" so that None can mean "until dismissed"
USE_DEFAULT_TTL = -1.0


def _is_dry_run_mode() -> bool:
    """Check if the channel should only log messages instead of displaying them."""
    return os.environ.get('NOTIFICATION_DRY_RUN', '').lower() in ('true', '1', 'yes')


class MessagePhase(Enum):
    ENTERING = "entering"
    VISIBLE = "visible"
    LEAVING = "leaving"


@dataclass(frozen=True)
class ActiveMessage:
    """
    A transient user-facing notification.

    ``ttl`` is in seconds; USE_DEFAULT_TTL picks the channel default and
    None keeps the message until it is dismissed or superseded.
    """
    title: str
    body: str = ""
    ttl: Optional[float] = USE_DEFAULT_TTL
    category: Optional[str] = None
    action_label: Optional[str] = None
    on_action: Optional[Callable[[], None]] = field(default=None, compare=False)
    on_dismiss: Optional[Callable[[], None]] = field(default=None, compare=False)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


MessageListener = Callable[[Optional[ActiveMessage], Optional[MessagePhase]], None]


class NotificationChannel(ABC):
    """
    Abstract base class for delivery channels.

    Any channel can be handed to a producer interchangeably.
    """

    @property
    @abstractmethod
    def current(self) -> Optional[ActiveMessage]:
        """The message on screen, if any."""
        pass

    @abstractmethod
    def show(self, message: ActiveMessage) -> ActiveMessage:
        pass

    @abstractmethod
    def dismiss(self, message_id: Optional[str] = None, notify: bool = True) -> bool:
        pass

    def is_showing(self, message_id: str) -> bool:
        message = self.current
        return message is not None and message.id == message_id


class DeliveryChannel(NotificationChannel):
    """Single-slot channel with show/hide animation timing and auto-dismiss."""

    def __init__(
        self,
        scheduler: Scheduler,
        default_ttl: Optional[float] = DEFAULT_TTL_SECONDS,
        show_animation: float = SHOW_ANIMATION_SECONDS,
        hide_animation: float = HIDE_ANIMATION_SECONDS
    ):
        """
        Args:
            scheduler: Timer source exposing call_later(delay, callback)
            default_ttl: Seconds before auto-hide; None disables auto-hide
            show_animation: Seconds of the enter animation
            hide_animation: Seconds of the exit animation
        """
        self.scheduler = scheduler
        self.default_ttl = default_ttl
        self.show_animation = show_animation
        self.hide_animation = hide_animation

        self._message: Optional[ActiveMessage] = None
        self._phase: Optional[MessagePhase] = None
        self._timers: List[TimerHandle] = []
        self._listeners: List[MessageListener] = []

    @property
    def current(self) -> Optional[ActiveMessage]:
        return self._message

    @property
    def phase(self) -> Optional[MessagePhase]:
        return self._phase

    def subscribe(self, listener: MessageListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def show(self, message: ActiveMessage) -> ActiveMessage:
        """Replace the active message and restart the timers."""
        ttl = self.default_ttl if message.ttl == USE_DEFAULT_TTL else message.ttl
        message = replace(message, ttl=ttl)

        if _is_dry_run_mode():
            logger.info(f"[DRY RUN] Would show: {message.title} - {message.body}")
            return message

        self._cancel_timers()
        if self._message is not None:
            logger.debug(f"Superseding message {self._message.id}")

        self._message = message
        self._set_phase(MessagePhase.ENTERING)
        self._schedule(self.show_animation, self._entered(message.id))
        if ttl is not None:
            self._schedule(ttl, self._expire(message.id))

        logger.info(f"Showing notification: {message.title}")
        return message

    def dismiss(self, message_id: Optional[str] = None, notify: bool = True) -> bool:
        """
        Hide the active message immediately.

        A dismiss aimed at a message that is no longer active is ignored.
        With ``notify=False`` the message's dismiss handler is not run.

        Returns:
            True if a message was dismissed
        """
        if self._message is None:
            return False
        if message_id is not None and self._message.id != message_id:
            return False

        message = self._message
        self._clear()
        if notify and message.on_dismiss:
            try:
                message.on_dismiss()
            except Exception as e:
                logger.error(f"Dismiss handler failed for {message.id}: {e}", exc_info=True)
        return True

    def trigger_action(self) -> bool:
        """Run the active message's action and hide it."""
        message = self._message
        if message is None or message.on_action is None:
            return False
        self._clear()
        try:
            message.on_action()
        except Exception as e:
            logger.error(f"Action handler failed for {message.id}: {e}", exc_info=True)
        return True

    # ============ Timers ============

    def _entered(self, message_id: str) -> Callable[[], None]:
        def callback() -> None:
            if self.is_showing(message_id) and self._phase == MessagePhase.ENTERING:
                self._set_phase(MessagePhase.VISIBLE)
        return callback

    def _expire(self, message_id: str) -> Callable[[], None]:
        def callback() -> None:
            if not self.is_showing(message_id):
                return
            self._set_phase(MessagePhase.LEAVING)
            self._schedule(self.hide_animation, self._finish_hide(message_id))
        return callback

    def _finish_hide(self, message_id: str) -> Callable[[], None]:
        def callback() -> None:
            # A newer message shown during the exit animation stays
            if self.is_showing(message_id) and self._phase == MessagePhase.LEAVING:
                self._clear()
        return callback

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        self._timers.append(self.scheduler.call_later(delay, callback))

    def _cancel_timers(self) -> None:
        for handle in self._timers:
            handle.cancel()
        self._timers = []

    def _clear(self) -> None:
        self._cancel_timers()
        self._message = None
        self._set_phase(None)

    def _set_phase(self, phase: Optional[MessagePhase]) -> None:
        self._phase = phase
        for listener in list(self._listeners):
            try:
                listener(self._message, phase)
            except Exception as e:
                logger.error(f"Channel listener failed: {e}", exc_info=True)
