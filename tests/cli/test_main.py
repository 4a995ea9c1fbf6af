# Standard library imports
import re
import uuid
from datetime import date
from unittest.mock import patch

# Third-party imports
import pytest
import yaml
from typer.testing import CliRunner

# Local application imports
from openingdrill.cli.main import _add_new_slots, app
from openingdrill.counters import DailyCounterStore
from openingdrill.db.database import DrillDatabase
from openingdrill.exceptions import DatabaseConnectionError
from openingdrill.models import ReviewStatus


runner = CliRunner()
TODAY = date(2024, 3, 10)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences (color and control codes) from text."""
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)


def normalize_output(text: str) -> str:
    """Strip ANSI codes and collapse whitespace runs into single spaces."""
    text = strip_ansi(text)
    return re.sub(r"\s+", " ", text).strip()


@pytest.fixture
def deck_files(tmp_path):
    """
    Create a deck directory with one valid and one broken deck file.

    Returns:
        tuple: (deck_dir, valid_file, broken_file)
    """
    deck_dir = tmp_path / "decks"
    deck_dir.mkdir()
    valid_deck = {
        "deck": "Open Games",
        "openings": [
            {
                "name": "Italian Game",
                "side": "white",
                "lines": [{"name": "Main", "moves": "1. e4 e5 2. Nf3"}],
            }
        ],
    }
    broken_deck = {"deck": "Broken", "openings": [{"name": "No lines"}]}

    valid_file = deck_dir / "open.yaml"
    broken_file = deck_dir / "broken.yaml"
    with open(valid_file, "w") as f:
        yaml.dump(valid_deck, f)
    with open(broken_file, "w") as f:
        yaml.dump(broken_deck, f)
    return deck_dir, valid_file, broken_file


@pytest.fixture
def loaded_db(tmp_path, deck_files):
    """A database file with the valid deck loaded through the CLI."""
    _, valid_file, _ = deck_files
    db_path = tmp_path / "drill.db"
    result = runner.invoke(app, ["load", str(valid_file), "--db", str(db_path)])
    assert result.exit_code == 0, result.stdout
    return db_path


def test_load_command_reports_errors_and_loads_good_files(tmp_path, deck_files):
    deck_dir, _, _ = deck_files
    db_path = tmp_path / "drill.db"

    result = runner.invoke(app, ["load", str(deck_dir), "--db", str(db_path)])
    output = normalize_output(result.stdout)

    assert result.exit_code == 0
    assert "Errors encountered while loading deck files:" in output
    assert "broken.yaml" in output
    assert "Load complete!" in output
    assert "Open Games: 1 openings, 1 lines" in output

    with DrillDatabase(db_path, read_only=True) as db:
        assert [d.name for d in db.get_decks()] == ["Open Games"]


def test_load_command_fails_when_nothing_loads(tmp_path, deck_files):
    _, _, broken_file = deck_files
    result = runner.invoke(
        app, ["load", str(broken_file), "--db", str(tmp_path / "drill.db")]
    )
    assert result.exit_code == 1
    assert "broken.yaml" in normalize_output(result.stdout)


def test_load_command_no_files(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    result = runner.invoke(app, ["load", str(empty), "--db", str(tmp_path / "d.db")])
    assert result.exit_code == 0
    assert "No deck files found to load." in normalize_output(result.stdout)


def test_decks_command_lists_counts(loaded_db):
    result = runner.invoke(app, ["decks", "--db", str(loaded_db), "--user", "alice"])
    output = normalize_output(result.stdout)
    assert result.exit_code == 0
    assert "Decks" in output
    assert "Open Games" in output


def test_decks_command_empty_database(tmp_path):
    result = runner.invoke(app, ["decks", "--db", str(tmp_path / "empty.db")])
    assert result.exit_code == 0
    assert "No decks found in the database." in normalize_output(result.stdout)


@patch("openingdrill.cli.main.DrillDatabase")
def test_decks_command_database_error(MockDatabase, tmp_path):
    MockDatabase.side_effect = DatabaseConnectionError("locked")
    result = runner.invoke(app, ["decks", "--db", str(tmp_path / "x.db")])
    assert result.exit_code == 1
    assert "A database error occurred: locked" in normalize_output(result.stdout)


def test_drill_command_plays_a_line_and_saves_it(loaded_db):
    result = runner.invoke(
        app,
        ["drill", "Open Games", "--db", str(loaded_db), "--user", "alice"],
        input="e4\nNf3\nn\n",
    )
    output = normalize_output(result.stdout)

    assert result.exit_code == 0, output
    assert "Clean!" in output
    assert "No more lines today. Well done!" in output
    assert "Drill session finished: 1 line(s)." in output

    with DrillDatabase(loaded_db, read_only=True) as db:
        deck = db.get_deck_by_name("Open Games")
        (line,) = db.get_lines_for_deck(deck.deck_id)
        review = db.get_review("alice", line.line_id)
    assert review.status == ReviewStatus.Review
    assert review.interval_days in {1, 2, 3, 4}


def test_drill_command_mistake_then_quit_saves_on_close(loaded_db):
    result = runner.invoke(
        app,
        ["drill", "Open Games", "--db", str(loaded_db), "--user", "bob"],
        input="d4\ne4\nNf3\nq\n",
    )
    output = normalize_output(result.stdout)

    assert result.exit_code == 0, output
    assert "Not the move in this line." in output
    assert "Solution" in output

    with DrillDatabase(loaded_db, read_only=True) as db:
        deck = db.get_deck_by_name("Open Games")
        (line,) = db.get_lines_for_deck(deck.deck_id)
        review = db.get_review("bob", line.line_id)
    assert review.status == ReviewStatus.Learning
    assert review.interval_days == 0


def test_drill_command_remove_line(loaded_db):
    result = runner.invoke(
        app,
        ["drill", "Open Games", "--db", str(loaded_db), "--user", "carol"],
        input="x\n",
    )
    assert result.exit_code == 0
    assert "Removed Italian Game: Main." in normalize_output(result.stdout)

    again = runner.invoke(
        app,
        ["drill", "Open Games", "--db", str(loaded_db), "--user", "carol"],
    )
    assert "Nothing to drill in this deck today." in normalize_output(again.stdout)


def test_drill_command_deck_not_found(loaded_db):
    result = runner.invoke(app, ["drill", "Nope", "--db", str(loaded_db)])
    assert result.exit_code == 1
    assert "Deck 'Nope' not found." in normalize_output(result.stdout)


def test_drill_command_end_of_input_quits(loaded_db):
    result = runner.invoke(
        app, ["drill", "Open Games", "--db", str(loaded_db), "--user", "dave"], input=""
    )
    output = normalize_output(result.stdout)
    assert result.exit_code == 0, output
    assert "Drill session finished: 0 line(s)." in output


def test_new_today_column_subtracts_lines_used_today(memory_db):
    deck_a, deck_b = uuid.uuid4(), uuid.uuid4()
    counters = DailyCounterStore(memory_db)
    counters.mark_new_shown("alice", deck_a, TODAY, [uuid.uuid4() for _ in range(8)])
    rows = [
        {"deck_id": deck_a, "name": "A", "new_count": 5},
        {"deck_id": deck_b, "name": "B", "new_count": 5},
        {"deck_id": deck_b, "name": "C", "new_count": 30},
    ]

    _add_new_slots(counters, rows, "alice", TODAY, cap=10)

    assert [row["new_today"] for row in rows] == [2, 5, 10]
