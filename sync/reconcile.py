"""Cache reconciliation between server-fetched records and the local store."""
import logging
from typing import Iterable, List, Union

from database import Database
from database.keys import MESSAGES_KEY
from chats import ChatManager, STORE_ERRORS, parse_messages
from chats.models import Chat, Message, dump

logger = logging.getLogger(__name__)


class CacheReconciler:
    """Folds batches of server-confirmed records into the local store."""

    def __init__(self, db: Database, chats: ChatManager):
        self.db = db
        self.chats = chats

    async def cache_messages(
        self,
        chat_id: str,
        incoming: Iterable[Union[Message, dict]]
    ) -> List[Message]:
        """Merge incoming messages into the stored list of chat_id.

        Messages are merged by id with the incoming copy winning, so local
        messages the server has not echoed back yet are kept. The result is
        stored sorted ascending by timestamp.

        Returns:
            The merged list, or [] if the merge could not be stored
        """
        merged: List[Message] = []

        def merge(all_messages):
            nonlocal merged
            by_id = {m.id: m for m in parse_messages(all_messages.get(chat_id, []))}
            for message in incoming:
                if not isinstance(message, Message):
                    message = Message.model_validate(message)
                by_id[message.id] = message
            merged = sorted(by_id.values(), key=lambda m: m.timestamp)
            all_messages[chat_id] = [dump(m) for m in merged]
            return all_messages

        try:
            await self.db.update(MESSAGES_KEY, merge, {})
            logger.debug(f"Cached {len(merged)} messages for {chat_id}")
            if merged:
                await self._refresh_preview(chat_id, merged[-1])
        except STORE_ERRORS as e:
            logger.error(f"Failed to cache messages for {chat_id}: {e}")
            return []
        return merged

    async def _refresh_preview(self, chat_id: str, newest: Message) -> None:
        def apply(chats):
            for chat in chats:
                if chat.id == chat_id and newest.timestamp > chat.last_message_time:
                    chat.last_message = newest.content
                    chat.last_message_time = newest.timestamp
            return chats

        await self.chats.update_chats(apply)

    async def cache_chat(self, chat: Chat) -> Chat:
        return await self.chats.save_chat(chat)

    async def get_cached_messages(self, chat_id: str) -> List[Message]:
        return await self.chats.get_messages(chat_id)

    async def get_cached_chats(self) -> List[Chat]:
        return await self.chats.get_chats()
