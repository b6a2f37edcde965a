"""Exceptions raised by the local persistence layer."""


class DatabaseError(Exception):
    """Base class for local store errors."""
    pass


class StorageUnavailable(DatabaseError):
    """Raised when the key-value adapter cannot complete an I/O operation."""

    def __init__(self, operation: str, key: str, cause: Exception = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        message = f"Storage {operation} failed for {key}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class CorruptRecordError(DatabaseError):
    """Raised when a stored value cannot be decoded."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when the schema version gate cannot be applied."""
    pass
