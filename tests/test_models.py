import uuid
from datetime import date

import pytest
from pydantic import ValidationError

from openingdrill.models import (
    Line,
    Opening,
    Outcome,
    QueueItem,
    Review,
    ReviewEvent,
    ReviewStatus,
    Side,
    normalize_moves,
)


def test_normalize_moves_strips_numbers_and_blanks():
    assert normalize_moves(["1.", "e4", " e5 ", "2.Nf3", "2...Nc6", ""]) == [
        "e4",
        "e5",
        "Nf3",
        "Nc6",
    ]


def test_line_cleans_moves():
    line = Line(opening_id=uuid.uuid4(), moves_san=["1.e4", "e5"])
    assert line.moves_san == ["e4", "e5"]
    assert line.is_active
    assert line.created_at.tzinfo is not None


def test_line_requires_a_move():
    with pytest.raises(ValidationError):
        Line(opening_id=uuid.uuid4(), moves_san=["1."])
    with pytest.raises(ValidationError):
        Line(opening_id=uuid.uuid4(), moves_san=[])


def test_line_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        Line(opening_id=uuid.uuid4(), moves_san=["e4"], color="white")


def test_opening_side_from_string():
    opening = Opening(deck_id=uuid.uuid4(), name="Caro-Kann", side="black")
    assert opening.side == Side.Black


def test_review_needs_due_date_unless_removed():
    line_id = uuid.uuid4()
    with pytest.raises(ValidationError):
        Review(user_id="u", line_id=line_id, status=ReviewStatus.Review)
    removed = Review(user_id="u", line_id=line_id, status=ReviewStatus.Removed)
    assert not removed.is_active
    active = Review(
        user_id="u",
        line_id=line_id,
        status="learning",
        due_on=date(2024, 1, 1),
        interval_days=0,
        last_result="fail",
    )
    assert active.is_active
    assert active.last_result == Outcome.Fail


def test_review_interval_cannot_be_negative():
    with pytest.raises(ValidationError):
        Review(
            user_id="u",
            line_id=uuid.uuid4(),
            status=ReviewStatus.Review,
            due_on=date(2024, 1, 1),
            interval_days=-1,
        )


def test_review_validates_on_assignment():
    review = Review(
        user_id="u",
        line_id=uuid.uuid4(),
        status=ReviewStatus.Review,
        due_on=date(2024, 1, 1),
    )
    with pytest.raises(ValidationError):
        review.interval_days = -5


def test_review_event_result_enum():
    event = ReviewEvent(user_id="u", line_id=uuid.uuid4(), result="pass")
    assert event.result == Outcome.Pass
    assert event.event_id is None


def test_queue_item_title():
    item = QueueItem(
        line_id=uuid.uuid4(),
        moves_san=["e4"],
        is_new=True,
        opening_name="Italian Game",
        line_name="Evans Gambit",
    )
    assert item.title == "Italian Game: Evans Gambit"
    item.line_name = None
    assert item.title == "Italian Game"
