"""Command line interface for inspecting the local store"""
import asyncio

from . import init_db, close, DatabaseError
from .keys import DOMAIN_KEYS, CHAT_BACKGROUNDS_KEY, SYNC_KEYS, STORAGE_VERSION_KEY

def describe(value) -> str:
    """Short description of a stored document"""
    if value is None:
        return "(empty)"
    if isinstance(value, list):
        return f"{len(value)} records"
    if isinstance(value, dict):
        return f"{len(value)} entries"
    return repr(value)

async def inspect_store():
    """Print the schema version and the size of every collection"""
    db = await init_db()
    try:
        print("\nLocal Store:")
        print("-" * 50)
        print(f"schema version: {await db.adapter.get(STORAGE_VERSION_KEY)}")

        for key in DOMAIN_KEYS + [CHAT_BACKGROUNDS_KEY] + SYNC_KEYS:
            try:
                value = await db.get_json(key)
                print(f"{key}: {describe(value)}")
            except DatabaseError as e:
                print(f"{key}: unreadable ({e})")
    finally:
        await close()

if __name__ == "__main__":
    asyncio.run(inspect_store())
