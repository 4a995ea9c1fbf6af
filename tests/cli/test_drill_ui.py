"""
Unit tests for the openingdrill.cli.drill_ui module.
"""

import random
from unittest.mock import MagicMock, patch

from openingdrill.cli.drill_ui import format_moves, start_drill_flow
from openingdrill.exceptions import ReviewOperationError
from openingdrill.models import ReviewStatus
from openingdrill.session import DrillSession


def _session(db, deck, settings, clock) -> DrillSession:
    return DrillSession(
        db, "tester", deck.deck_id, settings=settings, rng=random.Random(2), clock=clock
    )


def test_format_moves_numbers_both_sides():
    assert format_moves(["e4", "e5", "Nf3"]) == "1. e4 e5 2. Nf3"
    assert format_moves(["Nc6", "Bb5"], start_index=3) == "2... Nc6 3. Bb5"


def test_failed_removal_keeps_the_drill_running(
    seeded_db, sample_deck, settings, clock, capsys
):
    session = _session(seeded_db, sample_deck, settings, clock)
    calls = []

    def flaky_remove(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise ReviewOperationError("database is locked")
        return seeded_db.mark_line_removed(*args, **kwargs)

    session.db = MagicMock(wraps=seeded_db)
    session.db.mark_line_removed.side_effect = flaky_remove

    with patch("rich.console.Console.input", side_effect=["x", "x", "q"]):
        finished = start_drill_flow(session)

    out = capsys.readouterr().out
    assert finished == 0
    assert "Could not remove this line." in out
    assert "Removed" in out
    assert len(calls) == 2
    removed_id = calls[0][1]
    assert seeded_db.get_review("tester", removed_id).status == ReviewStatus.Removed
    assert session.main_queue and all(
        item.line_id != removed_id for item in session.main_queue
    )


def test_failed_removal_after_finishing_prompts_again(
    seeded_db, sample_deck, settings, clock, capsys
):
    session = _session(seeded_db, sample_deck, settings, clock)
    session.db = MagicMock(wraps=seeded_db)
    session.db.mark_line_removed.side_effect = ReviewOperationError("locked")

    with patch(
        "rich.console.Console.input", side_effect=["?", "x", "q"]
    ):
        finished = start_drill_flow(session)

    out = capsys.readouterr().out
    assert finished == 1
    assert "Could not remove this line." in out
    assert not session.removed_ids
