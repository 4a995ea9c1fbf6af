"""Openingdrill - spaced-repetition drills for chess opening lines."""

from .models import (
    Deck,
    Opening,
    Line,
    Review,
    ReviewEvent,
    QueueItem,
    ReviewStatus,
    Outcome,
    UserChoice,
)
from .constants import DEFAULT_DAILY_NEW_CAP, RETRY_DELAY_MINUTES
from .db import DrillDatabase
from .scheduler import DrillScheduler, DrillContext
from .session import DrillSession
from .loader import DeckLoader

__all__ = [
    "Deck",
    "Opening",
    "Line",
    "Review",
    "ReviewEvent",
    "QueueItem",
    "ReviewStatus",
    "Outcome",
    "UserChoice",
    "DEFAULT_DAILY_NEW_CAP",
    "RETRY_DELAY_MINUTES",
    "DrillDatabase",
    "DrillScheduler",
    "DrillContext",
    "DrillSession",
    "DeckLoader",
]
