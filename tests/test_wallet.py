"""Tests for payments, deposits and the local balance."""

import pytest

from database.keys import BALANCE_KEY
from chats import ChatManager
from chats.models import MessageType, PaymentStatus
from wallet import WalletManager, TransactionType, format_amount
from conftest import FakeClock

pytestmark = pytest.mark.asyncio

async def test_payment_scenario(wallet_manager, chat_manager, alice_chat, clock):
    """Test a $12.50 payment from a $100 balance."""
    await wallet_manager.add_funds(100)
    clock.advance(1000)

    result = await wallet_manager.send_payment(
        alice_chat.id,
        12.5,
        "Lunch",
        recipient_id="u1",
        recipient_name="Alice",
        recipient_avatar_id="a1",
        tx_hash="0xabc"
    )

    assert await wallet_manager.get_balance() == 87.5

    message = result.message
    assert message.type == MessageType.PAYMENT
    assert message.content == "$12.50"
    assert message.payment_amount == 12.5
    assert message.payment_memo == "Lunch"
    assert message.payment_status == PaymentStatus.COMPLETED
    assert message.tx_hash == "0xabc"
    assert (await chat_manager.get_messages(alice_chat.id))[-1] == message

    chat = await chat_manager.get_chat(alice_chat.id)
    assert chat.last_message == "Swiped $12.50"
    assert chat.last_message_time == clock.now

    transactions = await wallet_manager.get_transactions()
    assert transactions[0] == result.transaction
    assert transactions[0].type == TransactionType.SENT
    assert transactions[0].contact_name == "Alice"
    assert transactions[0].id == f"t{clock.now}"
    assert transactions[1].type == TransactionType.DEPOSIT

async def test_add_funds_records_deposit(wallet_manager, clock):
    transaction = await wallet_manager.add_funds(20.005)

    assert transaction.memo == "Added funds via card"
    assert transaction.timestamp == clock.now
    assert await wallet_manager.get_balance() == 20.01
    assert await wallet_manager.get_transactions() == [transaction]

async def test_balance_defaults_to_zero(wallet_manager, db):
    assert await wallet_manager.get_balance() == 0.0

    await db.set_json(BALANCE_KEY, "lots")
    assert await wallet_manager.get_balance() == 0.0

async def test_repeated_amounts_do_not_drift(wallet_manager, alice_chat, clock):
    await wallet_manager.add_funds(0.3)
    for _ in range(3):
        clock.advance(1)
        await wallet_manager.send_payment(alice_chat.id, 0.1, "", "u1", "Alice")

    assert await wallet_manager.get_balance() == 0.0

async def test_format_amount():
    assert format_amount(12.5) == "$12.50"
    assert format_amount(3) == "$3.00"
    assert format_amount(0.125) == "$0.13"

async def test_payment_with_unavailable_storage(failing_db):
    """Test that a payment still returns its records when nothing can be written."""
    clock = FakeClock()
    wallet = WalletManager(failing_db, ChatManager(failing_db, clock), clock)

    result = await wallet.send_payment("c1", 5, "", "u1", "Alice")

    assert result.message.content == "$5.00"
    assert result.transaction.amount == 5
    assert await wallet.get_balance() == 0.0
    assert await wallet.get_transactions() == []
