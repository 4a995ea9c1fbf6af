import duckdb
import logging
from .connection import ConnectionHandler
from . import schema
from ..exceptions import DatabaseConnectionError, SchemaInitializationError
from .. import config as drill_config

logger = logging.getLogger(__name__)


class SchemaManager:
    """Manages the database schema initialization and maintenance."""

    def __init__(self, handler: ConnectionHandler):
        self._handler = handler

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        """
        Initializes the database schema using a transaction. Skips if in read-only mode
        unless it's an in-memory DB. Can force recreation of tables, which will
        delete all existing data.
        """
        if self._handle_read_only_initialization(force_recreate_tables):
            return

        conn = self._handler.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                if force_recreate_tables:
                    self._recreate_tables(cursor)
                cursor.execute(schema.DB_SCHEMA_SQL)
                cursor.commit()
            logger.info(
                f"Database schema at {self._handler.db_path_resolved} initialized successfully (or already exists)."  # noqa: E501
            )
        except duckdb.Error as e:
            logger.error(
                f"Error initializing database schema at {self._handler.db_path_resolved}: {e}"  # noqa: E501
            )
            try:
                conn.rollback()
                logger.info(
                    "Transaction rolled back due to schema initialization error."
                )
            except duckdb.Error as rb_err:
                logger.error(f"Failed to rollback transaction: {rb_err}")
            raise SchemaInitializationError(
                f"Failed to initialize schema: {e}", original_exception=e
            ) from e

    def _handle_read_only_initialization(
        self, force_recreate_tables: bool
    ) -> bool:
        """Returns True if initialization should be skipped because of read-only mode."""
        if self._handler.read_only:
            if force_recreate_tables:
                raise DatabaseConnectionError(
                    "Cannot force_recreate_tables in read-only mode."
                )
            if not self._handler.is_memory:
                logger.warning(
                    "Attempting to initialize schema in read-only mode. Skipping."
                )
                return True
        return False

    def _perform_safety_check(self, cursor: duckdb.DuckDBPyConnection) -> None:
        """Refuses to drop tables that still hold review history."""
        if self._handler.is_memory or drill_config.settings.testing_mode:
            return

        try:
            review_result = cursor.execute(
                "SELECT COUNT(*) FROM reviews"
            ).fetchone()
            event_result = cursor.execute(
                "SELECT COUNT(*) FROM review_events"
            ).fetchone()
        except duckdb.CatalogException:
            # Tables do not exist yet; nothing to lose.
            return
        except duckdb.Error as e:
            error_msg = (
                "CRITICAL: Cannot verify if tables contain data before dropping. "
                f"Refusing to proceed to prevent data loss. Error: {e}"
            )
            logger.error(error_msg)
            raise ValueError(error_msg) from e

        review_count = review_result[0] if review_result else 0
        event_count = event_result[0] if event_result else 0
        if review_count > 0 or event_count > 0:
            error_msg = (
                "CRITICAL: Attempted to drop tables with existing data! "
                f"Reviews: {review_count}, Events: {event_count}. "
                "This would cause permanent data loss."
            )
            logger.error(error_msg)
            raise ValueError(error_msg)

    def _recreate_tables(self, cursor: duckdb.DuckDBPyConnection) -> None:
        """Drops all tables and sequences to force recreation."""
        self._perform_safety_check(cursor)

        logger.warning(
            f"Forcing table recreation for {self._handler.db_path_resolved}. ALL EXISTING DATA WILL BE LOST."  # noqa: E501
        )
        for table in schema.TABLE_NAMES:
            cursor.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
        cursor.execute("DROP SEQUENCE IF EXISTS review_event_seq;")
