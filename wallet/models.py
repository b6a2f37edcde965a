from enum import Enum
from typing import Optional
from pydantic import BaseModel

from chats.models import Message


class TransactionType(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
    DEPOSIT = "deposit"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Transaction(BaseModel):
    id: str
    type: TransactionType
    amount: float
    contact_id: Optional[str] = None
    contact_name: Optional[str] = None
    contact_avatar_id: Optional[str] = None
    memo: str = ""
    timestamp: int
    status: TransactionStatus = TransactionStatus.COMPLETED
    tx_hash: Optional[str] = None


class PaymentResult(BaseModel):
    message: Message
    transaction: Transaction
