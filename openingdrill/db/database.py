"""
DuckDB database interactions for openingdrill.
Implements the DrillDatabase facade: the persistence contract for decks,
lines, per-user review rows, the append-only review event log and the daily
counters.
"""

import duckdb
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Type, Union
from ..exceptions import (
    CounterOperationError,
    DatabaseConnectionError,
    DatabaseError,
    LineOperationError,
    MarshallingError,
    ReviewOperationError,
)

from datetime import datetime, date, timezone
import logging
from . import db_utils

from ..models import Deck, Line, Opening, QueueItem, Review, ReviewEvent, ReviewStatus
from .connection import ConnectionHandler
from .schema_manager import SchemaManager

# --- Logging Setup ---
logger = logging.getLogger(__name__)

# Tables holding per-day sets of line ids, keyed by (user, deck, day).
DAILY_LINE_TABLES = ("daily_new_shown", "daily_new_queued")

# --- Helper Functions ---


def _rows_to_dicts(cursor: duckdb.DuckDBPyConnection) -> List[Dict[str, Any]]:
    """Convert cursor results to list of dictionaries using column names."""
    rows = cursor.fetchall()
    if not rows:
        return []
    description = cursor.description
    if description is None:
        return []
    columns = [desc[0] for desc in description]
    return [dict(zip(columns, row, strict=True)) for row in rows]


class DrillDatabase:
    """
    Acts as a Facade for the database subsystem, providing a simple, high-level
    interface for all drill data operations.

    It coordinates the ConnectionHandler, SchemaManager, and data marshalling
    utilities. Intended for use as a context manager.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        """
        Create a DrillDatabase backed by the given DuckDB path.

        Args:
            db_path (str | Path): Path to the database file. Use ':memory:' for an in-memory database.
            read_only (bool): If True, open the database in read-only mode.
        """
        self._handler = ConnectionHandler(db_path=db_path, read_only=read_only)
        self._schema_manager = SchemaManager(self._handler)
        logger.info(
            f"DrillDatabase initialized for DB at: {self._handler.db_path_resolved}"  # noqa: E501
        )

    @property
    def db_path_resolved(self) -> Path:
        return self._handler.db_path_resolved

    @property
    def read_only(self) -> bool:
        return self._handler.read_only

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self._handler.get_connection()

    def close_connection(self) -> None:
        self._handler.close_connection()

    def __enter__(self) -> "DrillDatabase":
        """
        Open the database connection and initialize the schema if a new writable database was created.
        """
        self.get_connection()
        if self._handler.is_new_db and not self._handler.read_only:
            self.initialize_schema()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Ensures the connection is closed on exiting the context."""
        self.close_connection()

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        self._schema_manager.initialize_schema(
            force_recreate_tables=force_recreate_tables
        )

    # --- Shared write helpers ---

    def _require_writable(self, action: str) -> None:
        if self.read_only:
            raise DatabaseConnectionError(f"Cannot {action} in read-only mode.")

    def _rollback(self, conn, label: str) -> None:
        try:
            conn.rollback()
            logger.info(f"Transaction rolled back due to error in {label}.")
        except duckdb.Error as rb_err:
            # Log the rollback error but still raise the original, more
            # informative error.
            logger.error(f"Failed to rollback transaction during {label}: {rb_err}")

    def _execute_batch(
        self,
        sql: str,
        params_list: List[Tuple],
        error_cls: Type[DatabaseError],
        label: str,
    ) -> int:
        """
        Run ``sql`` once per parameter tuple inside a single transaction.

        Returns:
            int: Number of parameter tuples processed.

        Raises:
            error_cls: If the database rejects the batch; the transaction is rolled back.
        """
        if not params_list:
            return 0
        self._require_writable(label)
        conn = self.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                cursor.executemany(sql, params_list)
                cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Error during {label}: {e}")
            self._rollback(conn, label)
            raise error_cls(f"{label} failed: {e}", original_exception=e) from e
        logger.info(f"Successfully processed {len(params_list)} rows in {label}.")
        return len(params_list)

    def _fetch_dicts(
        self,
        sql: str,
        params: Sequence[Any],
        error_cls: Type[DatabaseError],
        label: str,
    ) -> List[Dict[str, Any]]:
        conn = self.get_connection()
        try:
            cursor = conn.execute(sql, list(params))
            return _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error while {label}: {e}")
            raise error_cls(
                f"Failed while {label}: {e}", original_exception=e
            ) from e

    # --- Deck, Opening and Line Operations ---
    # fmt: off
    _UPSERT_DECKS_SQL = """
        INSERT INTO decks (deck_id, name) VALUES ($1, $2)
        ON CONFLICT (deck_id) DO NOTHING;
        """

    _UPSERT_OPENINGS_SQL = """
        INSERT INTO openings (opening_id, deck_id, name, side) VALUES ($1, $2, $3, $4)
        ON CONFLICT (opening_id) DO UPDATE SET
            name = EXCLUDED.name,
            side = EXCLUDED.side;
        """

    _UPSERT_LINES_SQL = """
        INSERT INTO lines (line_id, opening_id, line_name, moves_san, is_active, created_at)
        VALUES ($1, $2, $3, $4, $5, $6)
        ON CONFLICT (line_id) DO UPDATE SET
            line_name = EXCLUDED.line_name,
            moves_san = EXCLUDED.moves_san,
            is_active = EXCLUDED.is_active;
        """
    # fmt: on

    def upsert_decks(self, decks: Sequence[Deck]) -> int:
        return self._execute_batch(
            self._UPSERT_DECKS_SQL,
            db_utils.deck_to_db_params(decks),
            LineOperationError,
            "deck upsert",
        )

    def upsert_openings(self, openings: Sequence[Opening]) -> int:
        return self._execute_batch(
            self._UPSERT_OPENINGS_SQL,
            db_utils.opening_to_db_params(openings),
            LineOperationError,
            "opening upsert",
        )

    def upsert_lines(self, lines: Sequence[Line]) -> int:
        """
        Insert or update lines. ``created_at`` of an existing line is kept so
        the creation order used for new-line queuing stays stable.
        """
        return self._execute_batch(
            self._UPSERT_LINES_SQL,
            db_utils.line_to_db_params(lines),
            LineOperationError,
            "line upsert",
        )

    def get_decks(self) -> List[Deck]:
        rows = self._fetch_dicts(
            "SELECT deck_id, name FROM decks ORDER BY name;",
            (),
            LineOperationError,
            "fetching decks",
        )
        try:
            return [db_utils.db_row_to_deck(row) for row in rows]
        except MarshallingError as e:
            raise LineOperationError(
                "Failed to parse decks from database.", original_exception=e
            ) from e

    def get_deck_by_name(self, name: str) -> Optional[Deck]:
        rows = self._fetch_dicts(
            "SELECT deck_id, name FROM decks WHERE name = $1;",
            (name,),
            LineOperationError,
            f"fetching deck '{name}'",
        )
        if not rows:
            return None
        return db_utils.db_row_to_deck(rows[0])

    def get_lines_for_deck(self, deck_id: uuid.UUID) -> List[Line]:
        """Return every line of a deck ordered by creation time."""
        sql = """
        SELECT l.* FROM lines l
        JOIN openings o ON o.opening_id = l.opening_id
        WHERE o.deck_id = $1
        ORDER BY l.created_at ASC, l.line_id ASC;
        """
        rows = self._fetch_dicts(
            sql, (deck_id,), LineOperationError, "fetching deck lines"
        )
        try:
            return [db_utils.db_row_to_line(row) for row in rows]
        except MarshallingError as e:
            raise LineOperationError(
                f"Failed to parse lines of deck {deck_id}.", original_exception=e
            ) from e

    def delete_lines(self, line_ids: Sequence[uuid.UUID]) -> int:
        """
        Purge lines together with their review rows, events and counter entries.

        Returns:
            int: The number of lines deleted.

        Raises:
            LineOperationError: If the database operation fails.
        """
        if not line_ids:
            return 0
        self._require_writable("delete lines")

        conn = self.get_connection()
        params = (list(line_ids),)
        dependents = ("review_events", "reviews") + DAILY_LINE_TABLES
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                for table in dependents:
                    cursor.execute(
                        f"DELETE FROM {table} WHERE line_id IN (SELECT * FROM UNNEST(?));",  # noqa: E501
                        params,
                    )
                cursor.execute(
                    "DELETE FROM lines WHERE line_id IN (SELECT * FROM UNNEST(?)) RETURNING line_id;",  # noqa: E501
                    params,
                )
                deleted = len(cursor.fetchall())
                cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Failed to delete lines: {e}")
            self._rollback(conn, "line delete")
            raise LineOperationError(
                f"Batch line delete failed: {e}", original_exception=e
            ) from e
        logger.info(f"Successfully deleted {deleted} lines.")
        return deleted

    # --- Queue Queries ---

    def get_due_reviews(
        self, user_id: str, deck_id: uuid.UUID, on_day: date
    ) -> List[QueueItem]:
        """
        Fetch the user's learning/review rows in a deck due on or before ``on_day``.

        Returns:
            List[QueueItem]: Recurring queue items ordered by due date then line creation.

        Raises:
            ReviewOperationError: If the query fails or rows cannot be parsed.
        """
        sql = """
        SELECT r.line_id, r.interval_days, l.moves_san, l.line_name,
               o.name AS opening_name, o.side
        FROM reviews r
        JOIN lines l ON l.line_id = r.line_id
        JOIN openings o ON o.opening_id = l.opening_id
        WHERE r.user_id = $1
          AND o.deck_id = $2
          AND r.status IN ('learning', 'review')
          AND r.due_on <= $3
        ORDER BY r.due_on ASC, l.created_at ASC;
        """
        rows = self._fetch_dicts(
            sql,
            (user_id, deck_id, on_day),
            ReviewOperationError,
            f"fetching due reviews for deck {deck_id}",
        )
        try:
            return [db_utils.db_row_to_queue_item(row, is_new=False) for row in rows]
        except MarshallingError as e:
            raise ReviewOperationError(
                "Failed to parse due reviews.", original_exception=e
            ) from e

    def get_lines_with_review_flag(
        self, user_id: str, deck_id: uuid.UUID
    ) -> List[Dict[str, Any]]:
        """
        Fetch every line of a deck with a flag telling whether the user has any review row.

        Returns:
            List[dict]: Rows ordered by creation time with keys ``line_id``,
            ``moves_san``, ``line_name``, ``is_active``, ``created_at``,
            ``opening_name``, ``side``, ``status`` and ``has_review``.
        """
        sql = """
        SELECT l.line_id, l.moves_san, l.line_name, l.is_active, l.created_at,
               o.name AS opening_name, o.side, r.status,
               (r.line_id IS NOT NULL) AS has_review
        FROM lines l
        JOIN openings o ON o.opening_id = l.opening_id
        LEFT JOIN reviews r ON r.line_id = l.line_id AND r.user_id = $1
        WHERE o.deck_id = $2
        ORDER BY l.created_at ASC, l.line_id ASC;
        """
        return self._fetch_dicts(
            sql,
            (user_id, deck_id),
            LineOperationError,
            f"fetching lines of deck {deck_id}",
        )

    # --- Review Operations ---

    _UPSERT_REVIEW_SQL = """
        INSERT INTO reviews (user_id, line_id, status, due_on, interval_days, last_result, last_seen_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        ON CONFLICT (user_id, line_id) DO UPDATE SET
            status = EXCLUDED.status,
            due_on = EXCLUDED.due_on,
            interval_days = EXCLUDED.interval_days,
            last_result = EXCLUDED.last_result,
            last_seen_at = EXCLUDED.last_seen_at;
        """

    def upsert_review(self, review: Review) -> None:
        """
        Insert or overwrite the single review row of ``(user_id, line_id)``.

        Safe to retry: writing the same review twice leaves the same row.

        Raises:
            DatabaseConnectionError: If the database is read-only.
            ReviewOperationError: If the upsert fails.
        """
        self._execute_batch(
            self._UPSERT_REVIEW_SQL,
            [db_utils.review_to_db_params_tuple(review)],
            ReviewOperationError,
            "review upsert",
        )
        logger.debug(
            f"Review for line {review.line_id} saved: {review.status.value}, "
            f"due {review.due_on}, interval {review.interval_days}"
        )

    def get_review(self, user_id: str, line_id: uuid.UUID) -> Optional[Review]:
        rows = self._fetch_dicts(
            "SELECT * FROM reviews WHERE user_id = $1 AND line_id = $2;",
            (user_id, line_id),
            ReviewOperationError,
            f"fetching review for line {line_id}",
        )
        if not rows:
            return None
        try:
            return db_utils.db_row_to_review(rows[0])
        except MarshallingError as e:
            raise ReviewOperationError(
                f"Failed to parse review for line {line_id}.",
                original_exception=e,
            ) from e

    def mark_line_removed(
        self,
        user_id: str,
        line_id: uuid.UUID,
        seen_at: Optional[datetime] = None,
    ) -> Review:
        """Persist the terminal ``removed`` status for a user's line."""
        review = Review(
            user_id=user_id,
            line_id=line_id,
            status=ReviewStatus.Removed,
            due_on=None,
            interval_days=None,
            last_result=None,
            last_seen_at=seen_at or datetime.now(timezone.utc),
        )
        self.upsert_review(review)
        logger.info(f"Line {line_id} removed for user {user_id}.")
        return review

    def append_review_event(self, event: ReviewEvent) -> int:
        """
        Append one attempt outcome to the event log.

        Returns:
            int: The new event's id.

        Raises:
            ReviewOperationError: If the insert fails.
        """
        self._require_writable("append review events")
        conn = self.get_connection()
        sql = """
        INSERT INTO review_events (user_id, line_id, result, seen_at)
        VALUES ($1, $2, $3, $4)
        RETURNING event_id;
        """
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                cursor.execute(
                    sql, db_utils.review_event_to_db_params_tuple(event)
                )
                result = cursor.fetchone()
                cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Error appending review event: {e}")
            self._rollback(conn, "review event insert")
            raise ReviewOperationError(
                f"Failed to append review event: {e}", original_exception=e
            ) from e
        if not result:
            raise ReviewOperationError(
                "Failed to retrieve event_id after insertion."
            )
        return result[0]

    def get_review_events(
        self, user_id: str, line_id: Optional[uuid.UUID] = None
    ) -> List[ReviewEvent]:
        """Return a user's events (optionally for one line), oldest first."""
        sql = "SELECT * FROM review_events WHERE user_id = $1"
        params: List[Any] = [user_id]
        if line_id is not None:
            sql += " AND line_id = $2"
            params.append(line_id)
        sql += " ORDER BY seen_at ASC, event_id ASC;"
        rows = self._fetch_dicts(
            sql, params, ReviewOperationError, "fetching review events"
        )
        try:
            return [db_utils.db_row_to_review_event(row) for row in rows]
        except MarshallingError as e:
            raise ReviewOperationError(
                "Failed to parse review events.", original_exception=e
            ) from e

    def count_fail_events_since(
        self, user_id: str, line_id: uuid.UUID, since: datetime
    ) -> int:
        """Count ``fail`` events for a line at or after ``since``."""
        sql = """
        SELECT COUNT(*) AS fails FROM review_events
        WHERE user_id = $1 AND line_id = $2 AND result = 'fail' AND seen_at >= $3;
        """
        rows = self._fetch_dicts(
            sql,
            (user_id, line_id, since),
            ReviewOperationError,
            f"counting fail events for line {line_id}",
        )
        return int(rows[0]["fails"]) if rows else 0

    def get_deck_summary(self, user_id: str, on_day: date) -> List[Dict[str, Any]]:
        """
        Per-deck counts for display.

        Returns:
            List[dict]: One row per deck with ``deck_id``, ``name``,
            ``line_count`` (active lines), ``due_count`` (learning/review rows
            due on or before ``on_day``) and ``new_count`` (active lines the
            user has never attempted).
        """
        sql = """
        WITH deck_lines AS (
            SELECT o.deck_id, l.line_id, l.is_active
            FROM lines l JOIN openings o ON o.opening_id = l.opening_id
        ), user_reviews AS (
            SELECT line_id, status, due_on FROM reviews WHERE user_id = $1
        )
        SELECT
            d.deck_id,
            d.name,
            COUNT(dl.line_id) FILTER (WHERE dl.is_active) AS line_count,
            COUNT(ur.line_id) FILTER (
                WHERE ur.status IN ('learning', 'review') AND ur.due_on <= $2
            ) AS due_count,
            COUNT(dl.line_id) FILTER (
                WHERE dl.is_active AND ur.line_id IS NULL
            ) AS new_count
        FROM decks d
        LEFT JOIN deck_lines dl ON dl.deck_id = d.deck_id
        LEFT JOIN user_reviews ur ON ur.line_id = dl.line_id
        GROUP BY d.deck_id, d.name
        ORDER BY d.name;
        """
        return self._fetch_dicts(
            sql, (user_id, on_day), LineOperationError, "summarizing decks"
        )

    # --- Daily Counter Operations ---

    @staticmethod
    def _check_daily_table(table: str) -> None:
        if table not in DAILY_LINE_TABLES:
            raise ValueError(f"Unknown daily counter table: {table}")

    def get_daily_line_ids(
        self, table: str, user_id: str, deck_id: uuid.UUID, day: date
    ) -> Set[uuid.UUID]:
        self._check_daily_table(table)
        rows = self._fetch_dicts(
            f"SELECT line_id FROM {table} WHERE user_id = $1 AND deck_id = $2 AND day = $3;",  # noqa: E501
            (user_id, deck_id, day),
            CounterOperationError,
            f"reading {table}",
        )
        return {row["line_id"] for row in rows}

    def add_daily_line_ids(
        self,
        table: str,
        user_id: str,
        deck_id: uuid.UUID,
        day: date,
        line_ids: Sequence[uuid.UUID],
    ) -> int:
        self._check_daily_table(table)
        sql = f"""
        INSERT INTO {table} (user_id, deck_id, day, line_id) VALUES ($1, $2, $3, $4)
        ON CONFLICT DO NOTHING;
        """
        return self._execute_batch(
            sql,
            [(user_id, deck_id, day, line_id) for line_id in line_ids],
            CounterOperationError,
            f"{table} insert",
        )

    def remove_daily_line_ids(
        self,
        table: str,
        user_id: str,
        deck_id: uuid.UUID,
        day: date,
        line_ids: Sequence[uuid.UUID],
    ) -> int:
        self._check_daily_table(table)
        sql = f"""
        DELETE FROM {table}
        WHERE user_id = $1 AND deck_id = $2 AND day = $3 AND line_id = $4;
        """
        return self._execute_batch(
            sql,
            [(user_id, deck_id, day, line_id) for line_id in line_ids],
            CounterOperationError,
            f"{table} delete",
        )

    def add_time_spent(self, user_id: str, day: date, seconds: int) -> None:
        if seconds <= 0:
            return
        sql = """
        INSERT INTO daily_time_spent (user_id, day, seconds) VALUES ($1, $2, $3)
        ON CONFLICT (user_id, day) DO UPDATE SET
            seconds = daily_time_spent.seconds + EXCLUDED.seconds;
        """
        self._execute_batch(
            sql,
            [(user_id, day, int(seconds))],
            CounterOperationError,
            "time spent update",
        )

    def get_time_spent(self, user_id: str, day: date) -> int:
        rows = self._fetch_dicts(
            "SELECT seconds FROM daily_time_spent WHERE user_id = $1 AND day = $2;",
            (user_id, day),
            CounterOperationError,
            "reading time spent",
        )
        return int(rows[0]["seconds"]) if rows else 0
