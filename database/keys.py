"""Storage keys for every logical collection in the local store."""

CHATS_KEY = "@swipeme_chats"
MESSAGES_KEY = "@swipeme_messages"
TRANSACTIONS_KEY = "@swipeme_transactions"
BALANCE_KEY = "@swipeme_balance"
CONTACTS_KEY = "@swipeme_contacts"

CHAT_BACKGROUNDS_KEY = "@swipeme_chat_backgrounds"
PENDING_MESSAGES_KEY = "@swipeme_pending_messages"
LAST_SYNC_KEY = "@swipeme_last_sync"

STORAGE_VERSION_KEY = "@swipeme_storage_version"

# Collections gated by the schema version and wiped on sign-out
DOMAIN_KEYS = [
    CHATS_KEY,
    MESSAGES_KEY,
    TRANSACTIONS_KEY,
    BALANCE_KEY,
    CONTACTS_KEY,
]

# Offline cache bookkeeping, cleared by clear_all_cache()
SYNC_KEYS = [
    PENDING_MESSAGES_KEY,
    LAST_SYNC_KEY,
]

# Order in which nested locks are taken; the sweep holds messages while it
# writes chats, so messages always comes first
LOCK_ORDER = [
    MESSAGES_KEY,
    CHATS_KEY,
    TRANSACTIONS_KEY,
    BALANCE_KEY,
    CONTACTS_KEY,
    CHAT_BACKGROUNDS_KEY,
    PENDING_MESSAGES_KEY,
    LAST_SYNC_KEY,
    STORAGE_VERSION_KEY,
]


def lock_rank(key: str):
    """Sort key placing known keys in LOCK_ORDER, then any other key by name."""
    if key in LOCK_ORDER:
        return (0, LOCK_ORDER.index(key), key)
    return (1, 0, key)
