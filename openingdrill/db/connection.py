"""
Opens and owns the single DuckDB connection behind a DrillDatabase.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import duckdb

from ..exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class ConnectionHandler:
    """
    Lazily connects to a drill database file or an in-memory database.

    Every connection runs with its session timezone set to UTC, so
    ``TIMESTAMP WITH TIME ZONE`` columns (line creation, review and event
    times) come back as UTC-aware datetimes whatever the host's zone is.
    Local-day arithmetic happens in Python against the learner's timezone.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        self.is_memory = str(db_path).strip().lower() == MEMORY_PATH
        self.db_path_resolved = (
            Path(MEMORY_PATH) if self.is_memory else Path(db_path).resolve()
        )
        self.read_only = read_only
        # True when connecting created the database; set on first connect.
        self.is_new_db = False
        self._connection: Optional[duckdb.DuckDBPyConnection] = None

    def _target(self) -> str:
        if self.is_memory:
            return MEMORY_PATH
        if not self.db_path_resolved.exists():
            if self.read_only:
                raise DatabaseConnectionError(
                    f"Cannot open {self.db_path_resolved} read-only: "
                    "the database file does not exist."
                )
            self.db_path_resolved.parent.mkdir(parents=True, exist_ok=True)
        return str(self.db_path_resolved)

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        Return the open connection, connecting on first use.

        Raises:
            DatabaseConnectionError: If the file is missing in read-only mode
                or DuckDB refuses the connection.
        """
        if self._connection is not None:
            return self._connection

        existed = not self.is_memory and self.db_path_resolved.exists()
        target = self._target()
        try:
            conn = duckdb.connect(database=target, read_only=self.read_only)
            conn.execute("SET TimeZone = 'UTC'")
        except duckdb.Error as e:
            logger.error(f"Could not open drill database {target}: {e}")
            raise DatabaseConnectionError(
                f"Failed to connect to database: {e}", original_exception=e
            ) from e

        self.is_new_db = not existed
        self._connection = conn
        mode = "read-only" if self.read_only else "read-write"
        logger.info(f"Opened drill database {target} ({mode}).")
        return conn

    def close_connection(self) -> None:
        """Close the connection if open; a later call reconnects."""
        conn, self._connection = self._connection, None
        if conn is None:
            return
        try:
            conn.close()
        except duckdb.Error as e:
            logger.error(f"Error closing drill database {self.db_path_resolved}: {e}")
        else:
            logger.info(f"Closed drill database {self.db_path_resolved}.")
