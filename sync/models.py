from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from chats.models import now_ms


class PendingMessageType(str, Enum):
    TEXT = "text"
    PAYMENT = "payment"


class PaymentData(BaseModel):
    amount: float
    token: str
    recipient_address: str


class PendingMessage(BaseModel):
    id: str
    chat_id: str
    content: str
    type: PendingMessageType = PendingMessageType.TEXT
    created_at: int = Field(default_factory=now_ms)
    retry_count: int = 0
    payment_data: Optional[PaymentData] = None


class SyncStatus(BaseModel):
    """Immutable snapshot handed to sync status subscribers."""

    model_config = ConfigDict(frozen=True)

    is_online: bool = True
    last_sync_time: Optional[int] = None
    pending_count: int = 0
    is_syncing: bool = False
