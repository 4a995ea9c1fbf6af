from pathlib import Path
from typing import Optional


class DatabaseError(Exception):
    """Base exception for database-related errors."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class DatabaseConnectionError(DatabaseError):
    """Raised for errors connecting to the database."""

    pass


class SchemaInitializationError(DatabaseError):
    """Raised for errors during schema setup."""

    pass


class LineOperationError(DatabaseError):
    """Raised for errors during deck, opening or line operations."""

    pass


class ReviewOperationError(DatabaseError):
    """Indicates an error while persisting or reading review rows or events."""

    pass


class CounterOperationError(DatabaseError):
    """Indicates an error while reading or writing the daily counters."""

    pass


class MarshallingError(DatabaseError):
    """Indicates an error during data conversion between application models
    and DB format."""

    pass


class DeckNotFoundError(DatabaseError):
    """Raised when a specified deck is not found."""

    pass


class DeckFileError(Exception):
    """Raised when a YAML deck file cannot be read or validated."""

    def __init__(self, file_path: Path, message: str):
        super().__init__(f"{file_path}: {message}")
        self.file_path = file_path
        self.message = message


class InvalidAttemptStateError(ValueError):
    """Raised when an attempt action is not legal in the attempt's state."""

    pass
