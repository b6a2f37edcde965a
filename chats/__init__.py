"""Chats module for the local chat store.

This module provides functionality for:
- Storing chats, per-chat message lists and contacts
- Sending text, attachment and audio messages
- Maintaining the denormalized chat preview (last_message/last_message_time)
- Per-chat background overrides

Every operation is best-effort: storage failures are logged and a safe default
is returned instead of raising.
"""

import logging
from typing import Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from database import Database, DatabaseError
from database.keys import (
    CHATS_KEY,
    MESSAGES_KEY,
    CONTACTS_KEY,
    CHAT_BACKGROUNDS_KEY,
    DOMAIN_KEYS
)
from .models import (
    AttachmentOptions,
    AudioAttachment,
    Chat,
    ChatBackground,
    Contact,
    DisappearingTimer,
    Message,
    MessageType,
    PRESET_BACKGROUNDS,
    TRANSPARENT,
    dump,
    expires_at_for,
    now_ms
)

logger = logging.getLogger(__name__)

# Errors swallowed by every best-effort operation
STORE_ERRORS = (DatabaseError, ValidationError)

ATTACHMENT_TYPES = {
    MessageType.IMAGE,
    MessageType.LOCATION,
    MessageType.CONTACT,
    MessageType.DOCUMENT
}


def format_duration(duration: float) -> str:
    """Format seconds as m:ss, rounding half up."""
    seconds = int(max(duration, 0) + 0.5)
    return f"{seconds // 60}:{seconds % 60:02d}"


def describe_attachment(kind: MessageType, attachment: AttachmentOptions):
    """Return (content, preview) for an attachment message."""
    if kind == MessageType.IMAGE:
        return "Photo", "Sent a photo"
    if kind == MessageType.LOCATION:
        address = attachment.location.address if attachment.location else None
        return address or "Shared location", "Shared a location"
    if kind == MessageType.CONTACT:
        name = attachment.contact.name if attachment.contact else None
        content = name or "Shared contact"
        return content, f"Shared contact: {name}" if name else content
    if kind == MessageType.DOCUMENT:
        name = attachment.document.name if attachment.document else None
        content = name or "Document"
        return content, f"Sent a document: {name}" if name else content
    raise ValueError(f"Not an attachment message type: {kind}")


def parse_chats(raw: list) -> List[Chat]:
    return [Chat.model_validate(item) for item in raw]


def parse_messages(raw: list) -> List[Message]:
    return [Message.model_validate(item) for item in raw]


class ChatManager:
    """Manager class for chats, messages, contacts and chat backgrounds."""

    def __init__(self, db: Database, clock: Optional[Callable[[], int]] = None):
        """Initialize the chat manager.

        Args:
            db: Shared local store
            clock: Optional millisecond clock, defaults to wall-clock time
        """
        self.db = db
        self.clock = clock or now_ms

    # Chats

    async def get_chats(self) -> List[Chat]:
        try:
            return parse_chats(await self.db.get_json(CHATS_KEY, []))
        except STORE_ERRORS as e:
            logger.error(f"Failed to get chats: {e}")
            return []

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        for chat in await self.get_chats():
            if chat.id == chat_id:
                return chat
        return None

    async def update_chats(self, fn: Callable[[List[Chat]], List[Chat]]) -> List[Chat]:
        """Apply fn to the chat list under the chats lock and persist the result.

        Raises:
            DatabaseError: If the chat list cannot be read or written
            ValidationError: If a stored chat is malformed
        """
        def apply(raw):
            return [dump(chat) for chat in fn(parse_chats(raw))]

        return parse_chats(await self.db.update(CHATS_KEY, apply, []))

    async def save_chat(self, chat: Chat) -> Chat:
        """Insert chat, or replace the stored chat with the same id."""
        def upsert(chats):
            for index, existing in enumerate(chats):
                if existing.id == chat.id:
                    chats[index] = chat
                    break
            else:
                chats.append(chat)
            return chats

        try:
            await self.update_chats(upsert)
        except STORE_ERRORS as e:
            logger.error(f"Failed to save chat {chat.id}: {e}")
        return chat

    async def create_chat(self, contact: Contact) -> Chat:
        """Return the 1:1 chat with contact, creating it if none exists."""
        now = self.clock()
        new_chat = Chat(
            id=f"chat{now}",
            participants=[contact],
            last_message="",
            last_message_time=now,
            unread_count=0,
            is_group=False
        )
        result = new_chat

        def find_or_insert(chats):
            nonlocal result
            for chat in chats:
                if not chat.is_group and any(p.id == contact.id for p in chat.participants):
                    result = chat
                    return chats
            chats.insert(0, new_chat)
            return chats

        try:
            await self.update_chats(find_or_insert)
            if result is new_chat:
                logger.info(f"Created chat {new_chat.id} with contact {contact.id}")
        except STORE_ERRORS as e:
            logger.error(f"Failed to create chat: {e}")
        return result

    async def update_preview(self, chat_id: str, text: str, timestamp: int) -> None:
        """Set the denormalized preview of chat_id.

        Raises:
            DatabaseError: If the chat list cannot be read or written
        """
        def set_preview(chats):
            for chat in chats:
                if chat.id == chat_id:
                    chat.last_message = text
                    chat.last_message_time = timestamp
            return chats

        await self.update_chats(set_preview)

    # Messages

    async def get_all_messages(self) -> Dict[str, List[Message]]:
        try:
            raw = await self.db.get_json(MESSAGES_KEY, {})
            return {chat_id: parse_messages(items) for chat_id, items in raw.items()}
        except STORE_ERRORS as e:
            logger.error(f"Failed to get messages: {e}")
            return {}

    async def get_messages(self, chat_id: str, newest_first: bool = False) -> List[Message]:
        """Messages of chat_id in stored (ascending) order, or newest first."""
        try:
            raw = await self.db.get_json(MESSAGES_KEY, {})
            messages = parse_messages(raw.get(chat_id, []))
        except STORE_ERRORS as e:
            logger.error(f"Failed to get messages for {chat_id}: {e}")
            return []
        if newest_first:
            messages.sort(key=lambda m: m.timestamp, reverse=True)
        return messages

    async def append_message(self, message: Message, preview: Optional[str] = None) -> Message:
        """Append message to its chat and refresh the chat preview.

        The message list and the chat list are written separately; if the
        second write fails the preview stays stale until the next sweep.
        """
        def add(all_messages):
            all_messages.setdefault(message.chat_id, []).append(dump(message))
            return all_messages

        try:
            await self.db.update(MESSAGES_KEY, add, {})
            await self.update_preview(
                message.chat_id,
                message.content if preview is None else preview,
                message.timestamp
            )
        except STORE_ERRORS as e:
            logger.error(f"Failed to save message {message.id} to {message.chat_id}: {e}")
        return message

    async def get_chat_timer(self, chat_id: str) -> DisappearingTimer:
        chat = await self.get_chat(chat_id)
        return chat.disappearing_messages_timer if chat else DisappearingTimer.OFF

    async def new_message(self, chat_id: str, content: str, sender_id: str,
                          type: MessageType = MessageType.TEXT, **payload) -> Message:
        """Build a message stamped with the chat's current disappearing timer."""
        now = self.clock()
        timer = await self.get_chat_timer(chat_id)
        return Message(
            id=f"m{now}",
            chat_id=chat_id,
            sender_id=sender_id,
            content=content,
            timestamp=now,
            type=type,
            expires_at=expires_at_for(timer, now),
            **payload
        )

    async def send_message(self, chat_id: str, content: str, sender_id: str = "me") -> Message:
        message = await self.new_message(chat_id, content, sender_id)
        return await self.append_message(message)

    async def send_attachment_message(
        self,
        chat_id: str,
        type: Union[MessageType, str],
        attachment: AttachmentOptions,
        sender_id: str = "me"
    ) -> Message:
        """Send an image, location, contact or document message."""
        kind = MessageType(type)
        if kind not in ATTACHMENT_TYPES:
            raise ValueError(f"Not an attachment message type: {kind.value}")

        content, preview = describe_attachment(kind, attachment)
        message = await self.new_message(
            chat_id,
            content,
            sender_id,
            type=kind,
            image_attachment=attachment.image,
            location_attachment=attachment.location,
            contact_attachment=attachment.contact,
            document_attachment=attachment.document
        )
        return await self.append_message(message, preview)

    async def send_audio_message(
        self,
        chat_id: str,
        audio_uri: str,
        duration: float,
        sender_id: str = "me"
    ) -> Message:
        content = f"Voice message ({format_duration(duration)})"
        message = await self.new_message(
            chat_id,
            content,
            sender_id,
            type=MessageType.AUDIO,
            audio_attachment=AudioAttachment(uri=audio_uri, duration=duration)
        )
        return await self.append_message(message)

    # Contacts

    async def get_contacts(self) -> List[Contact]:
        try:
            return [Contact.model_validate(c) for c in await self.db.get_json(CONTACTS_KEY, [])]
        except STORE_ERRORS as e:
            logger.error(f"Failed to get contacts: {e}")
            return []

    async def save_contact(self, contact: Contact) -> Contact:
        """Insert contact, or replace the stored contact with the same id."""
        def upsert(raw):
            for index, existing in enumerate(raw):
                if existing.get("id") == contact.id:
                    raw[index] = dump(contact)
                    break
            else:
                raw.append(dump(contact))
            return raw

        try:
            await self.db.update(CONTACTS_KEY, upsert, [])
        except STORE_ERRORS as e:
            logger.error(f"Failed to save contact {contact.id}: {e}")
        return contact

    # Backgrounds

    async def get_chat_background(self, chat_id: str) -> Optional[ChatBackground]:
        try:
            backgrounds = await self.db.get_json(CHAT_BACKGROUNDS_KEY, {})
            if chat_id in backgrounds:
                return ChatBackground.model_validate(backgrounds[chat_id])
        except STORE_ERRORS as e:
            logger.error(f"Failed to get chat background for {chat_id}: {e}")
        return None

    async def set_chat_background(self, chat_id: str, background: Optional[ChatBackground]) -> None:
        """Store a background override; None or the transparent preset removes it."""
        def apply(backgrounds):
            if background is None or background.value == TRANSPARENT:
                backgrounds.pop(chat_id, None)
            else:
                backgrounds[chat_id] = {
                    "type": background.type.value,
                    "value": background.value
                }
            return backgrounds

        try:
            await self.db.update(CHAT_BACKGROUNDS_KEY, apply, {})
        except STORE_ERRORS as e:
            logger.error(f"Failed to set chat background for {chat_id}: {e}")

    async def clear_all_data(self) -> None:
        """Remove every domain collection, used on sign-out and account deletion."""
        try:
            await self.db.remove(DOMAIN_KEYS)
            logger.info("Cleared all local chat and wallet data")
        except STORE_ERRORS as e:
            logger.error(f"Failed to clear data: {e}")


# Export public interface
__all__ = [
    'ChatManager',
    'Chat',
    'Contact',
    'Message',
    'MessageType',
    'DisappearingTimer',
    'AttachmentOptions',
    'ChatBackground',
    'PRESET_BACKGROUNDS',
    'format_duration',
    'describe_attachment'
]
