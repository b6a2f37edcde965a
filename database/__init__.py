"""Database module for the on-device local store.

This module handles:
- Key-value adapter selection (SQLite, in-memory, PostgreSQL)
- The schema version gate
- The process-wide Database lifecycle used by the app entry point

Managers accept an injected Database; the module-level instance only exists
for the entry point and command line tools.
"""

import logging
from typing import Any, Dict, Optional

from .exceptions import (
    DatabaseError,
    StorageUnavailable,
    CorruptRecordError,
    DatabaseSchemaError
)
from .lib.adapters import (
    KeyValueAdapter,
    MemoryAdapter,
    SQLiteAdapter,
    PostgresAdapter,
    create_adapter
)
from .lib.store import Database
from .lib.schema_manager import SchemaManager, CURRENT_STORAGE_VERSION

logger = logging.getLogger(__name__)

_db: Optional[Database] = None

async def init_db(
    settings: Optional[Dict[str, Any]] = None,
    adapter: Optional[KeyValueAdapter] = None
) -> Database:
    """Initialize the process-wide database and apply the schema version gate.

    A failing version gate is logged and the store is still returned, so the
    app keeps working against whatever the adapter can serve.

    Args:
        settings: Optional settings dict. If not provided, will use settings.conf.
        adapter: Optional adapter overriding the configured backend

    Returns:
        The initialized Database
    """
    global _db

    if adapter is None:
        if settings is None:
            # Import here to avoid import-time config loading for library users
            from config import settings_conf
            settings = settings_conf
        adapter = create_adapter(settings)

    db = Database(adapter)
    try:
        await SchemaManager(db).initialize()
    except DatabaseSchemaError as e:
        logger.error(f"Database initialization failed, continuing without version gate: {e}")

    _db = db
    return db

async def get_db() -> Database:
    """Get the process-wide database, initializing it on first use.

    Returns:
        The Database
    """
    if _db is None:
        await init_db()
    return _db

async def close() -> None:
    """Close the process-wide database."""
    global _db

    if _db is not None:
        await _db.close()
        _db = None

# Export public interface
__all__ = [
    'init_db', 'get_db', 'close',
    'Database', 'SchemaManager', 'CURRENT_STORAGE_VERSION',
    'KeyValueAdapter', 'MemoryAdapter', 'SQLiteAdapter', 'PostgresAdapter', 'create_adapter',
    'DatabaseError', 'StorageUnavailable', 'CorruptRecordError', 'DatabaseSchemaError'
]
