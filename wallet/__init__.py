"""Wallet module for the local transaction history and balance.

This module handles payment sends and fund additions against the local store.
The stored balance is the authoritative local cache; it is never derived from
the transaction list and is not reconciled with the chain here.

A payment touches three collections (messages, transactions, balance) with
independent writes and no rollback, so a failure part-way leaves the earlier
writes in place.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional

from database import Database
from database.keys import TRANSACTIONS_KEY, BALANCE_KEY
from chats import ChatManager, STORE_ERRORS
from chats.models import MessageType, PaymentStatus, dump, now_ms
from .models import (
    Transaction,
    TransactionType,
    TransactionStatus,
    PaymentResult
)

logger = logging.getLogger(__name__)

DEPOSIT_MEMO = "Added funds via card"

def quantize_amount(amount) -> Decimal:
    """Quantize amount to cents, rounding half up."""
    return Decimal(str(amount)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

def format_amount(amount: float) -> str:
    """Display form of an amount, e.g. $12.50"""
    return f"${quantize_amount(amount)}"

class WalletManager:
    """Manages the local transaction history and balance."""

    def __init__(self, db: Database, chats: ChatManager, clock: Optional[Callable[[], int]] = None) -> None:
        """Initialize wallet manager.

        Args:
            db: Shared local store
            chats: Chat manager used to record payment messages
            clock: Optional millisecond clock, defaults to wall-clock time
        """
        self.db = db
        self.chats = chats
        self.clock = clock or now_ms

    async def get_transactions(self) -> List[Transaction]:
        """Transaction history, newest first."""
        try:
            return [Transaction.model_validate(t) for t in await self.db.get_json(TRANSACTIONS_KEY, [])]
        except STORE_ERRORS as e:
            logger.error(f"Failed to get transactions: {e}")
            return []

    async def get_balance(self) -> float:
        try:
            balance = await self.db.get_json(BALANCE_KEY, 0)
            return float(balance)
        except (TypeError, ValueError) as e:
            logger.error(f"Stored balance is not a number: {e}")
            return 0.0
        except STORE_ERRORS as e:
            logger.error(f"Failed to get balance: {e}")
            return 0.0

    async def _insert_transaction(self, transaction: Transaction) -> None:
        def prepend(transactions):
            transactions.insert(0, dump(transaction))
            return transactions

        await self.db.update(TRANSACTIONS_KEY, prepend, [])

    async def _adjust_balance(self, delta) -> float:
        def apply(balance):
            return float(quantize_amount(Decimal(str(balance or 0)) + quantize_amount(delta)))

        return await self.db.update(BALANCE_KEY, apply, 0)

    async def send_payment(
        self,
        chat_id: str,
        amount: float,
        memo: str,
        recipient_id: str,
        recipient_name: str,
        recipient_avatar_id: Optional[str] = None,
        tx_hash: Optional[str] = None,
        explorer_url: Optional[str] = None
    ) -> PaymentResult:
        """Record a sent payment in the chat, the history and the balance.

        Args:
            chat_id: Chat the payment was sent in
            amount: Amount in currency units
            memo: Free-text memo
            recipient_id: Contact id of the recipient
            recipient_name: Display name of the recipient
            recipient_avatar_id: Avatar of the recipient
            tx_hash: Hash returned by the wallet transfer, if any
            explorer_url: Explorer link returned by the wallet transfer, if any

        Returns:
            The payment message and the transaction
        """
        display = format_amount(amount)
        message = await self.chats.new_message(
            chat_id,
            display,
            "me",
            type=MessageType.PAYMENT,
            payment_amount=amount,
            payment_memo=memo,
            payment_status=PaymentStatus.COMPLETED,
            tx_hash=tx_hash,
            explorer_url=explorer_url
        )
        transaction = Transaction(
            id=f"t{message.timestamp}",
            type=TransactionType.SENT,
            amount=amount,
            contact_id=recipient_id,
            contact_name=recipient_name,
            contact_avatar_id=recipient_avatar_id,
            memo=memo,
            timestamp=message.timestamp,
            status=TransactionStatus.COMPLETED,
            tx_hash=tx_hash
        )

        await self.chats.append_message(message, f"Swiped {display}")

        try:
            await self._insert_transaction(transaction)
        except STORE_ERRORS as e:
            logger.error(f"Failed to record transaction {transaction.id}: {e}")

        try:
            balance = await self._adjust_balance(-quantize_amount(amount))
            logger.info(f"Sent {display} to {recipient_id} in {chat_id}, balance now {balance}")
        except STORE_ERRORS as e:
            logger.error(f"Failed to update balance for payment {transaction.id}: {e}")

        return PaymentResult(message=message, transaction=transaction)

    async def add_funds(self, amount: float) -> Transaction:
        """Increment the balance and record a deposit at the head of the history."""
        now = self.clock()
        transaction = Transaction(
            id=f"t{now}",
            type=TransactionType.DEPOSIT,
            amount=amount,
            memo=DEPOSIT_MEMO,
            timestamp=now,
            status=TransactionStatus.COMPLETED
        )
        try:
            balance = await self._adjust_balance(quantize_amount(amount))
            logger.info(f"Added {format_amount(amount)}, balance now {balance}")
            await self._insert_transaction(transaction)
        except STORE_ERRORS as e:
            logger.error(f"Failed to add funds: {e}")
        return transaction

# Export public interface
__all__ = [
    'WalletManager',
    'Transaction',
    'TransactionType',
    'TransactionStatus',
    'PaymentResult',
    'format_amount',
    'quantize_amount'
]
