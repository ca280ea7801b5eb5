"""
Offline driver for the notification engine.

Runs the engine on an asyncio event loop against the in-memory document
store, replays a short scripted session (a favorite gets edited and then
sold, a chat message arrives) and logs every message the delivery channel
shows.

Usage:
    python main.py --user demo-user --draft-age-hours 30
"""
import argparse
import asyncio
import logging
import signal
from datetime import timedelta
from typing import Optional

from core.app_context import AppContext
from core.config_loader import load_config
from core.drafts import DraftRecord, DraftStorage
from core.interfaces import APP_STATE_ACTIVE, User
from core.utils import utc_now
from notification.channels import ActiveMessage, MessagePhase
from storage.memory import InMemoryAppLifecycle, InMemoryDocumentStore, InMemoryIdentitySource

logger = logging.getLogger(__name__)


def log_message(message: Optional[ActiveMessage], phase: Optional[MessagePhase]) -> None:
    if message is not None and phase == MessagePhase.ENTERING:
        logger.info(f"[{message.category}] {message.title} {message.body}".strip())


def seed_store(store: InMemoryDocumentStore, user_id: str) -> None:
    store.set(f"users/{user_id}", {
        'notificationPreferences': {'messages': True, 'marketplaceActivity': True, 'reminders': True},
    })
    store.set("listings/L1", {
        'title': 'Desk lamp', 'price': 15, 'status': 'available',
        'sellerId': 'seller-1', 'sellerName': 'Sam', 'postedAt': utc_now(),
    })
    store.set(f"users/{user_id}/favorites/L1", {'title': 'Desk lamp', 'price': 15, 'sellerName': 'Sam'})
    store.set("chats/T1", {
        'participants': [user_id, 'seller-1'], 'sellerId': 'seller-1', 'sellerName': 'Sam',
        'buyerName': 'Demo', 'unread': {user_id: 0}, 'lastMessage': '', 'timestamp': utc_now(),
    })


async def replay(store: InMemoryDocumentStore, user_id: str, step_seconds: float) -> None:
    await asyncio.sleep(step_seconds)
    store.update("listings/L1", {'price': 12})
    await asyncio.sleep(step_seconds)
    store.update("chats/T1", {f"unread.{user_id}": 1, 'lastMessage': 'Still available?', 'timestamp': utc_now()})
    await asyncio.sleep(step_seconds)
    store.update("listings/L1", {'status': 'sold'})
    await asyncio.sleep(step_seconds)


async def run(user_id: str, draft_age_hours: float, step_seconds: float) -> None:
    loop = asyncio.get_running_loop()
    config = load_config()

    store = InMemoryDocumentStore()
    identity = InMemoryIdentitySource()
    lifecycle = InMemoryAppLifecycle()
    context = AppContext.build(
        config,
        store=store,
        identity=identity,
        scheduler=loop,
        lifecycle=lifecycle,
        navigate=lambda route: logger.info(f"Navigate to {route}"),
    )
    context.channel.subscribe(log_message)

    seed_store(store, user_id)
    if draft_age_hours > 0:
        # Saved through a backdated clock so the reminder is already due
        backdated = DraftStorage(
            context.kv_store,
            clock=lambda: utc_now() - timedelta(hours=draft_age_hours),
            key_prefix=config.notifications.draft_reminder.storage_key_prefix,
        )
        backdated.save(user_id, DraftRecord(saved_at=utc_now(), title="Mini fridge"))

    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # not supported on this platform

    service = context.notification_service
    service.start()
    identity.sign_in(User(id=user_id, display_name="Demo"))
    lifecycle.emit(APP_STATE_ACTIVE)

    replay_task = asyncio.ensure_future(replay(store, user_id, step_seconds))
    done, _ = await asyncio.wait(
        [replay_task, asyncio.ensure_future(stop_event.wait())],
        return_when=asyncio.FIRST_COMPLETED,
    )
    if replay_task not in done:
        logger.info("Shutdown signal received")
        replay_task.cancel()

    service.stop()


def main():
    parser = argparse.ArgumentParser(description="Notification engine offline driver")
    parser.add_argument('--user', type=str, default='demo-user', help='User id to sign in')
    parser.add_argument('--draft-age-hours', type=float, default=30.0,
                        help='Age of the seeded draft (0 disables the draft)')
    parser.add_argument('--step-seconds', type=float, default=4.0,
                        help='Pause between scripted store updates')
    args = parser.parse_args()

    asyncio.run(run(args.user, args.draft_age_hours, args.step_seconds))


if __name__ == "__main__":
    main()
