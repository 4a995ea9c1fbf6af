from pathlib import Path
from typing import Optional

from openingdrill.cli.drill_ui import start_drill_flow
from openingdrill.config import Settings
from openingdrill.db.database import DrillDatabase
from openingdrill.exceptions import DeckNotFoundError
from openingdrill.session import DrillSession


def drill_logic(
    deck_name: str,
    db_path: Path,
    settings: Settings,
    user_id: Optional[str] = None,
) -> int:
    """
    Set up and start a drill session for the specified deck.

    Opens the database, resolves the deck by name, creates a drill session
    for the user and launches the interactive drill flow.

    Parameters:
        deck_name (str): Name of the deck to drill.
        db_path (Path): Path to the drill database file.
        settings (Settings): Policy settings (timezone, daily new cap, delays).
        user_id (Optional[str]): Learner id; defaults to ``settings.user_id``.

    Returns:
        int: Number of lines finished.

    Raises:
        DeckNotFoundError: If no deck with ``deck_name`` exists.
    """
    with DrillDatabase(db_path=db_path) as db_manager:
        db_manager.initialize_schema()
        deck = db_manager.get_deck_by_name(deck_name)
        if deck is None:
            raise DeckNotFoundError(f"Deck '{deck_name}' not found.")

        session = DrillSession(
            db=db_manager,
            user_id=user_id or settings.user_id,
            deck_id=deck.deck_id,
            settings=settings,
        )
        return start_drill_flow(session)
