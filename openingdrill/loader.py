"""
Loads deck definitions from YAML files into Deck, Opening and Line models.

A deck file looks like::

    deck: Open Games
    openings:
      - name: Italian Game
        side: white
        lines:
          - name: Giuoco Pianissimo
            moves: 1. e4 e5 2. Nf3 Nc6 3. Bc4 Bc5 4. c3 Nf6 5. d3

Identifiers are derived deterministically from the deck, opening and moves,
so reloading an edited file updates lines instead of duplicating them.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel as PydanticBaseModel, ConfigDict, Field, ValidationError, field_validator

from .db.database import DrillDatabase
from .exceptions import DeckFileError
from .models import Deck, Line, Opening, Side, normalize_moves

logger = logging.getLogger(__name__)

# Namespace for uuid5 identifiers of deck content.
DECK_NAMESPACE = uuid.UUID("6f1c2a52-8d0e-4b7a-9f5e-2d3c4b5a6e7f")


# --- Internal Pydantic Models for Raw YAML Validation ---


class _RawLineEntry(PydanticBaseModel):
    id: Optional[uuid.UUID] = Field(default=None)
    name: Optional[str] = Field(default=None)
    moves: List[str] = Field(..., min_length=1)
    active: bool = True

    model_config = ConfigDict(extra="forbid")

    @field_validator("moves", mode="before")
    @classmethod
    def split_moves(cls, v: Any) -> Any:
        """Accept a whitespace separated string or a list of tokens."""
        if isinstance(v, str):
            v = v.split()
        if isinstance(v, list):
            return normalize_moves(v)
        return v


class _RawOpeningEntry(PydanticBaseModel):
    name: str = Field(..., min_length=1)
    side: Side = Side.White
    lines: List[_RawLineEntry] = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")

    @field_validator("side", mode="before")
    @classmethod
    def lower_side(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class _RawDeckFile(PydanticBaseModel):
    deck: str = Field(..., min_length=1)
    openings: List[_RawOpeningEntry] = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


@dataclass
class LoadedDeck:
    """Models built from one deck file."""

    source: Path
    deck: Deck
    openings: List[Opening] = field(default_factory=list)
    lines: List[Line] = field(default_factory=list)


def deck_uuid(deck_name: str) -> uuid.UUID:
    return uuid.uuid5(DECK_NAMESPACE, f"deck:{deck_name}")


def opening_uuid(deck_name: str, opening_name: str) -> uuid.UUID:
    return uuid.uuid5(DECK_NAMESPACE, f"opening:{deck_name}:{opening_name}")


def line_uuid(deck_name: str, opening_name: str, moves: List[str]) -> uuid.UUID:
    return uuid.uuid5(
        DECK_NAMESPACE, f"line:{deck_name}:{opening_name}:{' '.join(moves)}"
    )


class DeckLoader:
    """Reads YAML deck files and turns them into models."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now

    def load_file(self, file_path: Path) -> LoadedDeck:
        """
        Parse and validate one deck file.

        Raises:
            DeckFileError: If the file is missing, unreadable, not valid YAML,
                fails schema validation or repeats a line.
        """
        try:
            content = file_path.read_text(encoding="utf-8")
            raw = yaml.safe_load(content)
        except FileNotFoundError:
            raise DeckFileError(file_path, "File not found.") from None
        except IOError as e:
            raise DeckFileError(file_path, f"Could not read file: {e}") from e
        except yaml.YAMLError as e:
            raise DeckFileError(file_path, f"Invalid YAML syntax: {e}") from e

        if not isinstance(raw, dict):
            raise DeckFileError(
                file_path, "Top level of YAML must be a dictionary (deck object)."
            )

        try:
            deck_file = _RawDeckFile.model_validate(raw)
        except ValidationError as e:
            error_details = e.errors()[0]
            location = ".".join(map(str, error_details["loc"]))
            msg = error_details["msg"]
            raise DeckFileError(
                file_path, f"Validation error in field '{location}': {msg}"
            ) from e

        return self._build_models(file_path, deck_file)

    def _build_models(self, file_path: Path, deck_file: _RawDeckFile) -> LoadedDeck:
        deck_name = deck_file.deck.strip()
        deck = Deck(deck_id=deck_uuid(deck_name), name=deck_name)
        loaded = LoadedDeck(source=file_path, deck=deck)
        # Creation order follows file order.
        base_time = self.now or datetime.now(timezone.utc)
        seen = set()

        for opening_entry in deck_file.openings:
            opening_name = opening_entry.name.strip()
            opening = Opening(
                opening_id=opening_uuid(deck_name, opening_name),
                deck_id=deck.deck_id,
                name=opening_name,
                side=opening_entry.side,
            )
            loaded.openings.append(opening)

            for line_entry in opening_entry.lines:
                line_id = line_entry.id or line_uuid(
                    deck_name, opening_name, line_entry.moves
                )
                if line_id in seen:
                    raise DeckFileError(
                        file_path,
                        f"Duplicate line in opening '{opening_name}': "
                        f"{' '.join(line_entry.moves)}",
                    )
                seen.add(line_id)
                loaded.lines.append(
                    Line(
                        line_id=line_id,
                        opening_id=opening.opening_id,
                        line_name=line_entry.name,
                        moves_san=line_entry.moves,
                        is_active=line_entry.active,
                        created_at=base_time
                        + timedelta(microseconds=len(loaded.lines)),
                    )
                )

        logger.debug(
            f"Parsed deck '{deck_name}' from {file_path.name}: "
            f"{len(loaded.openings)} openings, {len(loaded.lines)} lines"
        )
        return loaded

    def load_directory(
        self, source: Path
    ) -> Tuple[List[LoadedDeck], List[DeckFileError]]:
        """
        Load every ``*.yaml``/``*.yml`` file under ``source``.

        Per-file errors are collected instead of aborting the whole load.
        """
        if not source.exists():
            return [], [
                DeckFileError(source, f"Source directory does not exist: {source}")
            ]

        if source.is_file():
            yaml_files = [source]
        else:
            yaml_files = sorted(
                list(source.rglob("*.yaml")) + list(source.rglob("*.yml"))
            )
        logger.info(f"Found {len(yaml_files)} deck files to load in {source}")

        decks: List[LoadedDeck] = []
        errors: List[DeckFileError] = []
        for file_path in yaml_files:
            try:
                decks.append(self.load_file(file_path))
            except DeckFileError as e:
                logger.warning(str(e))
                errors.append(e)
        return decks, errors


def store_decks(
    db: DrillDatabase, decks: Union[LoadedDeck, List[LoadedDeck]]
) -> int:
    """
    Upsert decks, openings and lines into the database.

    Returns:
        int: Number of lines written.
    """
    if isinstance(decks, LoadedDeck):
        decks = [decks]
    written = 0
    for loaded in decks:
        db.upsert_decks([loaded.deck])
        db.upsert_openings(loaded.openings)
        written += db.upsert_lines(loaded.lines)
        logger.info(
            f"Stored deck '{loaded.deck.name}' with {len(loaded.lines)} lines."
        )
    return written
