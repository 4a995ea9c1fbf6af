import sys
import pytest
import random
import uuid
from pathlib import Path
from typing import Generator, List
from datetime import datetime, timedelta, timezone

from openingdrill.config import Settings
from openingdrill.db import DrillDatabase
from openingdrill.models import Deck, Line, Opening, QueueItem, Side


# each test runs on cwd to its temp dir
@pytest.fixture(autouse=True)
def go_to_tmpdir(request):
    """
    Temporarily change the process working directory to the test's tmpdir and prepend that tmpdir to sys.path.
    """
    tmpdir = request.getfixturevalue("tmpdir")
    sys.path.insert(0, str(tmpdir))
    # Chdir only for the duration of the test.
    with tmpdir.as_cwd():
        yield


class FakeClock:
    """Callable wall clock that tests move forward explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# --- Database Fixtures ---
@pytest.fixture
def db_path_memory() -> str:
    return ":memory:"


@pytest.fixture
def db_path_file(tmp_path: Path) -> Path:
    """
    Provide the filesystem path for a temporary test DuckDB database file.
    """
    return tmp_path / "test_drill.db"


@pytest.fixture(params=["memory", "file"])
def db_manager(
    request, db_path_memory: str, db_path_file: Path
) -> Generator[DrillDatabase, None, None]:
    """
    Provide a DrillDatabase instance for tests, either in-memory or file-backed, and ensure proper teardown.

    Parameters:
        request: pytest `FixtureRequest` providing `param` which must be either `"memory"` or `"file"`.
        db_path_memory (str): Path identifier used to create an in-memory database.
        db_path_file (Path): Filesystem path for a temporary file-backed database.
    """
    if request.param == "memory":
        db_man = DrillDatabase(db_path_memory)
    else:
        db_man = DrillDatabase(db_path_file)
    try:
        yield db_man
    finally:
        db_man.close_connection()
        if request.param == "file" and db_path_file.exists():
            try:
                db_path_file.unlink()
            except OSError as e:
                import logging

                logging.warning(
                    f"Error removing temporary DB file in test fixture teardown: {e}"
                )


@pytest.fixture
def initialized_db_manager(db_manager: DrillDatabase) -> DrillDatabase:
    db_manager.initialize_schema()
    return db_manager


@pytest.fixture
def memory_db() -> Generator[DrillDatabase, None, None]:
    """A single in-memory database with its schema, for tests that need no file variant."""
    db = DrillDatabase(":memory:")
    db.initialize_schema()
    try:
        yield db
    finally:
        db.close_connection()


# --- Time Fixtures ---
@pytest.fixture
def fixed_now() -> datetime:
    """Noon UTC on 2024-03-10; the pivoted day is 2024-03-10."""
    return datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_now: datetime) -> FakeClock:
    return FakeClock(fixed_now)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        timezone="UTC",
        user_id="tester",
        daily_new_cap=10,
        retry_delay_minutes=7,
        day_boundary_hours=3,
        testing_mode=True,
    )


# --- Catalog Fixtures ---
@pytest.fixture
def sample_deck() -> Deck:
    return Deck(
        deck_id=uuid.UUID("11111111-1111-1111-1111-111111111111"),
        name="Open Games",
    )


@pytest.fixture
def sample_opening(sample_deck: Deck) -> Opening:
    return Opening(
        opening_id=uuid.UUID("22222222-2222-2222-2222-222222222222"),
        deck_id=sample_deck.deck_id,
        name="Italian Game",
        side=Side.White,
    )


@pytest.fixture
def sample_lines(sample_opening: Opening) -> List[Line]:
    """
    Three white lines created one minute apart, in the order they should be
    offered as new.
    """
    base = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    moves = [
        ["e4", "e5", "Nf3", "Nc6", "Bc4", "Bc5", "c3"],
        ["e4", "e5", "Nf3", "Nc6", "Bc4", "Nf6", "Ng5"],
        ["e4", "e5", "Nf3", "Nc6", "Bc4", "Be7", "d4"],
    ]
    return [
        Line(
            line_id=uuid.UUID(f"3333333{i}-3333-3333-3333-333333333333"),
            opening_id=sample_opening.opening_id,
            line_name=f"Line {i}",
            moves_san=line_moves,
            created_at=base + timedelta(minutes=i),
        )
        for i, line_moves in enumerate(moves)
    ]


@pytest.fixture
def seeded_db(
    memory_db: DrillDatabase,
    sample_deck: Deck,
    sample_opening: Opening,
    sample_lines: List[Line],
) -> DrillDatabase:
    memory_db.upsert_decks([sample_deck])
    memory_db.upsert_openings([sample_opening])
    memory_db.upsert_lines(sample_lines)
    return memory_db


def make_item(
    moves: List[str] = None,
    is_new: bool = False,
    interval_days: int = None,
    side: Side = Side.White,
) -> QueueItem:
    """Build a standalone queue item for tests that do not touch the database."""
    return QueueItem(
        line_id=uuid.uuid4(),
        moves_san=moves or ["e4", "e5", "Nf3"],
        is_new=is_new,
        interval_days=interval_days,
        player_side=side,
    )


@pytest.fixture
def item_factory():
    return make_item
