"""Local store schema version management.

The local store has no per-field migrations. A single stored version marker
gates every domain collection: when it does not match the version the running
code expects, all domain collections are wiped and the marker is rewritten.
"""
import logging
from typing import List, Optional

from ..exceptions import DatabaseError, DatabaseSchemaError
from ..keys import DOMAIN_KEYS, STORAGE_VERSION_KEY

logger = logging.getLogger(__name__)

# Bump to discard every locally stored chat, message, transaction, balance and contact
CURRENT_STORAGE_VERSION = "3"


class SchemaManager:
    """Applies the schema version gate to a Database."""

    def __init__(
        self,
        db,
        expected_version: str = CURRENT_STORAGE_VERSION,
        collections: Optional[List[str]] = None
    ) -> None:
        """Initialize schema manager.

        Args:
            db: Database to guard
            expected_version: Version string the running code understands
            collections: Keys wiped on mismatch, defaults to the domain collections
        """
        self.db = db
        self.expected_version = expected_version
        self.collections = list(collections or DOMAIN_KEYS)
        self.current_version: Optional[str] = None

    async def get_stored_version(self) -> Optional[str]:
        """Return the stored version marker, or None if none is stored."""
        return await self.db.adapter.get(STORAGE_VERSION_KEY)

    async def initialize(self) -> bool:
        """Check the stored version and wipe the domain collections on mismatch.

        Returns:
            True if the collections were wiped

        Raises:
            DatabaseSchemaError: If the version could not be read or applied
        """
        try:
            stored = await self.get_stored_version()
            if stored == self.expected_version:
                self.current_version = stored
                logger.info(f"Local store schema is up to date (version {stored})")
                return False

            logger.info(
                f"Local store schema version {stored!r} does not match "
                f"{self.expected_version!r}, wiping {len(self.collections)} collections"
            )
            await self.db.remove(self.collections)
            await self.db.adapter.set(STORAGE_VERSION_KEY, self.expected_version)
            self.current_version = self.expected_version
            return True

        except DatabaseError as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to apply schema version gate: {e}") from e
