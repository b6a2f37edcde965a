import time
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class DisappearingTimer(str, Enum):
    OFF = "off"
    HOURS_24 = "24h"
    DAYS_7 = "7d"
    DAYS_30 = "30d"


TIMER_DURATIONS_MS: Dict[DisappearingTimer, int] = {
    DisappearingTimer.OFF: 0,
    DisappearingTimer.HOURS_24: 86_400_000,
    DisappearingTimer.DAYS_7: 604_800_000,
    DisappearingTimer.DAYS_30: 2_592_000_000,
}


def expires_at_for(timer: DisappearingTimer, timestamp: int) -> Optional[int]:
    """Expiry stamp for a message sent at timestamp under timer, None when off."""
    duration = TIMER_DURATIONS_MS[DisappearingTimer(timer)]
    return timestamp + duration if duration else None


class MessageType(str, Enum):
    TEXT = "text"
    PAYMENT = "payment"
    IMAGE = "image"
    LOCATION = "location"
    CONTACT = "contact"
    DOCUMENT = "document"
    AUDIO = "audio"
    SYSTEM = "system"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Contact(BaseModel):
    id: str
    name: str
    username: Optional[str] = None
    avatar_id: Optional[str] = None
    wallet_address: Optional[str] = None
    phone: Optional[str] = None


class Chat(BaseModel):
    id: str
    participants: List[Contact] = Field(default_factory=list)
    last_message: str = ""
    last_message_time: int = 0
    unread_count: int = 0
    is_group: bool = False
    name: Optional[str] = None
    disappearing_messages_timer: DisappearingTimer = DisappearingTimer.OFF


class ImageAttachment(BaseModel):
    uri: str
    width: Optional[int] = None
    height: Optional[int] = None


class LocationAttachment(BaseModel):
    latitude: float
    longitude: float
    address: Optional[str] = None


class ContactAttachment(BaseModel):
    name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None


class DocumentAttachment(BaseModel):
    uri: str
    name: str
    mime_type: Optional[str] = None
    size: Optional[int] = None


class AudioAttachment(BaseModel):
    uri: str
    duration: float


class AttachmentOptions(BaseModel):
    image: Optional[ImageAttachment] = None
    location: Optional[LocationAttachment] = None
    contact: Optional[ContactAttachment] = None
    document: Optional[DocumentAttachment] = None


class Message(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    content: str
    timestamp: int
    type: MessageType = MessageType.TEXT
    payment_amount: Optional[float] = None
    payment_memo: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    image_attachment: Optional[ImageAttachment] = None
    location_attachment: Optional[LocationAttachment] = None
    contact_attachment: Optional[ContactAttachment] = None
    document_attachment: Optional[DocumentAttachment] = None
    audio_attachment: Optional[AudioAttachment] = None
    expires_at: Optional[int] = None

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class BackgroundType(str, Enum):
    COLOR = "color"
    IMAGE = "image"
    PRESET = "preset"


class ChatBackground(BaseModel):
    type: BackgroundType
    value: str


class PresetBackground(ChatBackground):
    id: str
    label: str


# Selecting "default" clears the per-chat override
TRANSPARENT = "transparent"

PRESET_BACKGROUNDS: List[PresetBackground] = [
    PresetBackground(id="default", type=BackgroundType.COLOR, value=TRANSPARENT, label="Default"),
    PresetBackground(id="dark-gradient", type=BackgroundType.COLOR, value="#0B141A", label="Dark"),
    PresetBackground(id="light-pattern", type=BackgroundType.COLOR, value="#ECE5DD", label="Light"),
    PresetBackground(id="teal", type=BackgroundType.COLOR, value="#075E54", label="Teal"),
    PresetBackground(id="navy", type=BackgroundType.COLOR, value="#1A2238", label="Navy"),
    PresetBackground(id="forest", type=BackgroundType.COLOR, value="#1D3C34", label="Forest"),
    PresetBackground(id="burgundy", type=BackgroundType.COLOR, value="#3D1C2A", label="Burgundy"),
    PresetBackground(id="slate", type=BackgroundType.COLOR, value="#2F3640", label="Slate"),
]


def dump(record: BaseModel) -> dict:
    """JSON-ready dict for storage, omitting unset optional fields."""
    return record.model_dump(mode="json", exclude_none=True)
