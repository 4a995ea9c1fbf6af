"""
Pydantic models for decks, openings, lines and their per-user review state.
"""

from __future__ import annotations

import re
import uuid
from enum import Enum
from uuid import UUID
from datetime import datetime, date, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Move numbers such as "1.", "12..." that may prefix SAN tokens.
MOVE_NUMBER_PATTERN = re.compile(r"^\d+\.+")


class Side(str, Enum):
    """The side the learner plays in an opening."""

    White = "white"
    Black = "black"


class ReviewStatus(str, Enum):
    """
    Scheduling status of a review row. A line without a row is "new".
    """

    Learning = "learning"
    Review = "review"
    Removed = "removed"


class Outcome(str, Enum):
    """Outcome of a single drill attempt."""

    Pass = "pass"
    Fail = "fail"


class UserChoice(str, Enum):
    """Explicit action the learner takes after finishing a line."""

    RepeatAgain = "repeat_again"
    NextOpening = "next_opening"


class AttemptState(str, Enum):
    InProgress = "in-progress"
    FinishedClean = "finished-clean"
    FinishedDirty = "finished-dirty"


def normalize_moves(moves: List[str]) -> List[str]:
    """Strip whitespace and move numbers from SAN tokens, dropping empties."""
    result = []
    for token in moves:
        token = MOVE_NUMBER_PATTERN.sub("", str(token).strip())
        if token:
            result.append(token)
    return result


class Deck(BaseModel):
    """A named collection of openings drilled together."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    deck_id: UUID = Field(default_factory=uuid.uuid4)
    name: str = Field(..., min_length=1)


class Opening(BaseModel):
    """A named group of lines sharing the learner's side-to-play."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    opening_id: UUID = Field(default_factory=uuid.uuid4)
    deck_id: UUID
    name: str = Field(..., min_length=1)
    side: Side = Side.White


class Line(BaseModel):
    """
    One scripted move sequence the learner must reproduce from memory.
    Content is immutable during drilling.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    line_id: UUID = Field(
        default_factory=uuid.uuid4,
        description="Unique identifier of the line.",
    )
    opening_id: UUID = Field(
        ..., description="Parent opening (links to Opening.opening_id)."
    )
    line_name: Optional[str] = Field(
        default=None, description="Optional display name of the line."
    )
    moves_san: List[str] = Field(
        ...,
        min_length=1,
        description="Ordered SAN moves, starting with White's first move.",
    )
    is_active: bool = Field(
        default=True, description="Inactive lines are never offered as new."
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp when the line was created.",
    )

    @field_validator("moves_san")
    @classmethod
    def clean_moves(cls, moves: List[str]) -> List[str]:
        cleaned = normalize_moves(moves)
        if not cleaned:
            raise ValueError("A line needs at least one move.")
        return cleaned


class Review(BaseModel):
    """
    The durable per-user, per-line scheduling record.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    user_id: str = Field(..., min_length=1)
    line_id: UUID
    status: ReviewStatus
    due_on: Optional[date] = Field(
        default=None,
        description="Local (03:00-pivoted) day the line is next due.",
    )
    interval_days: Optional[int] = Field(
        default=None,
        ge=0,
        description="Current interval in days (0 while learning).",
    )
    last_result: Optional[Outcome] = None
    last_seen_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    @model_validator(mode="after")
    def check_due_date_for_active_rows(self) -> "Review":
        if self.status != ReviewStatus.Removed and self.due_on is None:
            raise ValueError(
                f"A '{self.status.value}' review needs a due_on date."
            )
        return self

    @property
    def is_active(self) -> bool:
        return self.status != ReviewStatus.Removed


class ReviewEvent(BaseModel):
    """
    Immutable log entry for one attempt outcome.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    event_id: Optional[int] = Field(
        default=None,
        description="Auto-incrementing PK from review_events (None if new).",
    )
    user_id: str = Field(..., min_length=1)
    line_id: UUID
    result: Outcome
    seen_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class QueueItem(BaseModel):
    """
    A line as presented in one drill session. Never persisted.
    """

    model_config = ConfigDict(extra="forbid")

    line_id: UUID
    moves_san: List[str]
    is_new: bool
    interval_days: Optional[int] = None
    opening_name: str = "Opening"
    line_name: Optional[str] = None
    player_side: Side = Side.White

    @property
    def title(self) -> str:
        if self.line_name:
            return f"{self.opening_name}: {self.line_name}"
        return self.opening_name
