"""Disappearing-message engine.

Messages sent while a chat has a disappearing timer carry an absolute
expires_at stamp computed at send time. The sweep removes every message whose
stamp has passed and repairs the preview of every chat that lost messages.

The engine is passive: callers run the sweep on chat open and from a
periodic device-level timer (see workers.ExpirySweeper).
"""

import logging
from typing import Callable, Dict, List, Optional, Union

from database import Database
from database.keys import MESSAGES_KEY
from chats import ChatManager, STORE_ERRORS, parse_messages
from chats.models import (
    DisappearingTimer,
    Message,
    MessageType,
    TIMER_DURATIONS_MS,
    expires_at_for,
    now_ms
)

logger = logging.getLogger(__name__)

SYSTEM_SENDER_ID = "system"

TIMER_LABELS = {
    DisappearingTimer.OFF: "Off",
    DisappearingTimer.HOURS_24: "24 hours",
    DisappearingTimer.DAYS_7: "7 days",
    DisappearingTimer.DAYS_30: "30 days",
}


def get_timer_label(timer: Optional[Union[DisappearingTimer, str]]) -> str:
    """Human-readable label for a timer setting; None means off."""
    if timer is None:
        return TIMER_LABELS[DisappearingTimer.OFF]
    return TIMER_LABELS[DisappearingTimer(timer)]


def describe_timer_change(timer: DisappearingTimer) -> str:
    if timer == DisappearingTimer.OFF:
        return "You turned off disappearing messages."
    return (
        "You turned on disappearing messages. "
        f"New messages will disappear after {get_timer_label(timer).lower()}."
    )


class DisappearingMessages:
    """Per-chat disappearing timers and the expired-message sweep."""

    def __init__(self, db: Database, chats: ChatManager, clock: Optional[Callable[[], int]] = None):
        """Initialize the engine.

        Args:
            db: Shared local store
            chats: Chat manager owning the chat list and previews
            clock: Optional millisecond clock, defaults to wall-clock time
        """
        self.db = db
        self.chats = chats
        self.clock = clock or now_ms

    async def get_chat_disappearing_timer(self, chat_id: str) -> DisappearingTimer:
        return await self.chats.get_chat_timer(chat_id)

    async def set_chat_disappearing_timer(
        self,
        chat_id: str,
        timer: Union[DisappearingTimer, str, None]
    ) -> Optional[Message]:
        """Change the timer of chat_id and announce the change in the chat.

        Already-sent messages keep their expires_at. The announcement is a
        system message and is never timed itself.

        Returns:
            The system message, or None if the timer did not change
        """
        timer = DisappearingTimer.OFF if timer is None else DisappearingTimer(timer)
        previous = None

        def apply(chats):
            nonlocal previous
            for chat in chats:
                if chat.id == chat_id:
                    previous = chat.disappearing_messages_timer
                    chat.disappearing_messages_timer = timer
            return chats

        try:
            await self.chats.update_chats(apply)
        except STORE_ERRORS as e:
            logger.error(f"Failed to set disappearing timer for {chat_id}: {e}")
            return None

        if previous is None:
            logger.warning(f"Cannot set disappearing timer: chat {chat_id} not found")
            return None
        if previous == timer:
            return None

        logger.info(f"Disappearing timer for {chat_id} changed from {previous.value} to {timer.value}")
        now = self.clock()
        message = Message(
            id=f"m{now}",
            chat_id=chat_id,
            sender_id=SYSTEM_SENDER_ID,
            content=describe_timer_change(timer),
            timestamp=now,
            type=MessageType.SYSTEM
        )
        return await self.chats.append_message(message)

    async def cleanup_expired_messages(self) -> int:
        """Delete every expired message and repair the affected chat previews.

        Holds the messages lock while repairing previews so a message appended
        concurrently cannot be hidden behind an older preview. Running it twice
        with no new expirations writes nothing the second time.

        Returns:
            Number of messages deleted
        """
        now = self.clock()
        deleted = 0
        survivors: Dict[str, List[Message]] = {}

        try:
            async with self.db.lock(MESSAGES_KEY):
                all_messages = await self.db.get_json(MESSAGES_KEY, {})

                for chat_id, items in all_messages.items():
                    messages = parse_messages(items)
                    kept = [m for m in messages if not m.is_expired(now)]
                    if len(kept) == len(messages):
                        continue
                    deleted += len(messages) - len(kept)
                    survivors[chat_id] = kept
                    all_messages[chat_id] = [
                        item for item, m in zip(items, messages) if not m.is_expired(now)
                    ]

                if not deleted:
                    return 0

                await self.db.set_json(MESSAGES_KEY, all_messages)
                await self.chats.update_chats(lambda chats: self._repair_previews(chats, survivors))

        except STORE_ERRORS as e:
            logger.error(f"Failed to clean up expired messages: {e}")
            return 0

        logger.info(f"Deleted {deleted} expired messages from {len(survivors)} chats")
        return deleted

    @staticmethod
    def _repair_previews(chats, survivors: Dict[str, List[Message]]):
        for chat in chats:
            if chat.id not in survivors:
                continue
            # A list that vanished concurrently counts as empty
            remaining = sorted(survivors.get(chat.id) or [], key=lambda m: m.timestamp)
            if remaining:
                chat.last_message = remaining[-1].content
                chat.last_message_time = remaining[-1].timestamp
            else:
                chat.last_message = ""
                chat.last_message_time = 0
        return chats


# Export public interface
__all__ = [
    'DisappearingMessages',
    'DisappearingTimer',
    'TIMER_DURATIONS_MS',
    'TIMER_LABELS',
    'expires_at_for',
    'get_timer_label',
    'describe_timer_change'
]
