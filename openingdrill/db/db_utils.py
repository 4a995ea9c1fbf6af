"""
Utility functions for data marshalling between Pydantic models and database formats.  # noqa: E501
This module helps decouple the core database logic from the specifics of data conversion.  # noqa: E501
"""

from typing import Any, Dict, List, Sequence, Tuple
from pydantic import ValidationError

from ..constants import DEFAULT_PRIOR_INTERVAL_DAYS
from ..models import (
    Deck,
    Line,
    Opening,
    QueueItem,
    Review,
    ReviewEvent,
    Side,
)
from ..exceptions import MarshallingError


def deck_to_db_params(decks: Sequence[Deck]) -> List[Tuple]:
    return [(deck.deck_id, deck.name) for deck in decks]


def opening_to_db_params(openings: Sequence[Opening]) -> List[Tuple]:
    return [
        (o.opening_id, o.deck_id, o.name, o.side.value) for o in openings
    ]


def line_to_db_params(lines: Sequence[Line]) -> List[Tuple]:
    """
    Convert Line models into parameter tuples in column order:
    (line_id, opening_id, line_name, moves_san, is_active, created_at).
    """
    return [
        (
            line.line_id,
            line.opening_id,
            line.line_name,
            list(line.moves_san),
            line.is_active,
            line.created_at,
        )
        for line in lines
    ]


def review_to_db_params_tuple(review: Review) -> Tuple:
    """
    Convert a Review model into a tuple suitable for database upsert.

    Returns:
        tuple: (user_id, line_id, status, due_on, interval_days,
                last_result, last_seen_at)
    """
    return (
        review.user_id,
        review.line_id,
        review.status.value,
        review.due_on,
        review.interval_days,
        review.last_result.value if review.last_result else None,
        review.last_seen_at,
    )


def review_event_to_db_params_tuple(event: ReviewEvent) -> Tuple:
    return (event.user_id, event.line_id, event.result.value, event.seen_at)


def _validate(model_cls, data: Dict[str, Any], label: str):
    try:
        return model_cls(**data)
    except ValidationError as e:
        raise MarshallingError(
            f"Failed to parse {label} from DB row: {data}. Error: {e}",
            original_exception=e,
        ) from e


def db_row_to_deck(row_dict: Dict[str, Any]) -> Deck:
    return _validate(Deck, row_dict, "deck")


def db_row_to_line(row_dict: Dict[str, Any]) -> Line:
    data = {
        key: row_dict[key]
        for key in (
            "line_id",
            "opening_id",
            "line_name",
            "moves_san",
            "is_active",
            "created_at",
        )
    }
    data["moves_san"] = list(data["moves_san"] or [])
    return _validate(Line, data, "line")


def db_row_to_review(row_dict: Dict[str, Any]) -> Review:
    """Converts a database row dictionary to a Review Pydantic model."""
    return _validate(Review, row_dict, "review")


def db_row_to_review_event(row_dict: Dict[str, Any]) -> ReviewEvent:
    return _validate(ReviewEvent, row_dict, "review event")


def db_row_to_queue_item(row_dict: Dict[str, Any], is_new: bool) -> QueueItem:
    """
    Build a session queue item from a line row joined with its opening.

    Recurring rows without a stored interval fall back to the default prior
    interval; new rows carry no interval.

    Raises:
        MarshallingError: If the row cannot be validated into a QueueItem.
    """
    interval = row_dict.get("interval_days")
    if is_new:
        interval = None
    elif interval is None:
        interval = DEFAULT_PRIOR_INTERVAL_DAYS

    side = Side.Black if row_dict.get("side") == Side.Black.value else Side.White
    data = {
        "line_id": row_dict["line_id"],
        "moves_san": list(row_dict.get("moves_san") or []),
        "is_new": is_new,
        "interval_days": interval,
        "opening_name": row_dict.get("opening_name") or "Opening",
        "line_name": row_dict.get("line_name"),
        "player_side": side,
    }
    return _validate(QueueItem, data, "queue item")
