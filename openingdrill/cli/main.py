"""
CLI entry point for openingdrill.
"""

# Standard library imports
import logging
from datetime import date
from pathlib import Path
from typing import List, Optional

# Third-party imports
import typer
from rich.console import Console
from rich.table import Table

# Local application imports
from openingdrill import config as drill_config
from openingdrill.cli._drill_logic import drill_logic
from openingdrill.config import clamp_daily_cap
from openingdrill.counters import DailyCounterStore
from openingdrill.day_boundary import local_day, resolve_timezone, utc_now
from openingdrill.db.database import DrillDatabase
from openingdrill.exceptions import DatabaseError, DeckNotFoundError
from openingdrill.loader import DeckLoader, LoadedDeck, store_decks


console = Console()

app = typer.Typer(
    name="openingdrill",
    help="Openingdrill: spaced-repetition drills for chess opening lines.",
    add_completion=False,
    rich_markup_mode="markdown",
)


# ---------------------------------------------------------------------------
# Helpers for resolving the --db path (OPENINGDRILL_DB envvar, then settings)
# ---------------------------------------------------------------------------


def _resolve_db_path(db: Optional[Path]) -> Path:
    """Resolve db path from CLI flag / OPENINGDRILL_DB, else the configured default."""
    if db is not None:
        return db
    return drill_config.settings.db_path


# Common typer options reused across commands
_db_option = typer.Option(  # noqa: B008
    None,
    "--db",
    help="Path to the DuckDB database file. "
    "Falls back to OPENINGDRILL_DB env var.",
    envvar="OPENINGDRILL_DB",
)

_user_option = typer.Option(  # noqa: B008
    None,
    "--user",
    help="Learner id. Defaults to OPENINGDRILL_USER_ID or 'local'.",
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
):
    """Openingdrill command group."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


# ---------------------------------------------------------------------------
# Load command
# ---------------------------------------------------------------------------


def _load_decks_from_sources(sources: List[Path]) -> List[LoadedDeck]:
    """
    Load deck files from every source path and return the parsed decks.

    Prints any file errors. Exits with code 1 when nothing could be loaded
    and errors occurred, with code 0 when there was simply nothing to load.
    """
    loader = DeckLoader()
    decks: List[LoadedDeck] = []
    errors = []
    for source in sources:
        loaded, file_errors = loader.load_directory(source)
        decks.extend(loaded)
        errors.extend(file_errors)

    if errors:
        console.print(
            "[bold red]Errors encountered while loading deck files:[/bold red]"
        )
        for error in errors:
            console.print(f"- {error}")

    if not decks:
        if errors:
            raise typer.Exit(code=1)
        console.print("[yellow]No deck files found to load. Exiting.[/yellow]")
        raise typer.Exit(code=0)
    return decks


@app.command()
def load(
    sources: List[Path] = typer.Argument(  # noqa: B008
        ..., help="YAML deck files or directories containing them."
    ),
    db: Optional[Path] = _db_option,
):
    """
    Load decks, openings and lines from YAML files into the database.

    Reloading a file updates existing lines; review history is kept.
    """
    db_path = _resolve_db_path(db)
    decks = _load_decks_from_sources(sources)
    try:
        with DrillDatabase(db_path=db_path) as db_inst:
            db_inst.initialize_schema()
            written = store_decks(db_inst, decks)
    except DatabaseError as e:
        console.print(f"[bold red]Database Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    console.print("[bold green]Load complete![/bold green]")
    for loaded in decks:
        console.print(
            f"- [cyan]{loaded.deck.name}[/cyan]: "
            f"{len(loaded.openings)} openings, {len(loaded.lines)} lines"
        )
    console.print(f"- [green]{written}[/green] lines inserted or updated.")


# ---------------------------------------------------------------------------
# Decks command
# ---------------------------------------------------------------------------


def _add_new_slots(
    counters: DailyCounterStore, rows: List[dict], user_id: str, today: date, cap: int
) -> List[dict]:
    """Set each row's "new_today": new lines still drillable today under the cap."""
    for row in rows:
        slots = counters.remaining_new_slots(user_id, row["deck_id"], today, cap)
        row["new_today"] = min(slots, row["new_count"])
    return rows


def _display_deck_summary(cons: Console, rows: List[dict]):
    """
    Render and print a table of per-deck counts.

    Parameters:
        cons (Console): Rich Console used to print the table.
        rows (List[dict]): Rows with "name", "line_count", "due_count",
            "new_count" and "new_today".
    """
    table = Table(title="Decks")
    table.add_column("Deck", style="cyan")
    table.add_column("Lines", style="magenta")
    table.add_column("Due Today", style="yellow")
    table.add_column("New Available", style="green")
    table.add_column("New Today (cap)", style="green")
    for row in rows:
        table.add_row(
            row["name"],
            str(row["line_count"]),
            str(row["due_count"]),
            str(row["new_count"]),
            str(row["new_today"]),
        )
    cons.print(table)


@app.command()
def decks(
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
):
    """Show every deck with its line, due and new counts."""
    db_path = _resolve_db_path(db)
    settings = drill_config.settings
    user_id = user or settings.user_id
    today = local_day(
        utc_now(),
        resolve_timezone(settings.timezone),
        boundary_hours=settings.day_boundary_hours,
    )
    try:
        with DrillDatabase(db_path=db_path) as db_inst:
            rows = _add_new_slots(
                DailyCounterStore(db_inst),
                db_inst.get_deck_summary(user_id, today),
                user_id,
                today,
                clamp_daily_cap(settings.daily_new_cap),
            )
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e

    if not rows:
        console.print("[yellow]No decks found in the database.[/yellow]")
        return
    _display_deck_summary(console, rows)


# ---------------------------------------------------------------------------
# Drill command
# ---------------------------------------------------------------------------


@app.command()
def drill(
    deck_name: str = typer.Argument(  # noqa: B008
        ..., help="The name of the deck to drill."
    ),
    db: Optional[Path] = _db_option,
    user: Optional[str] = _user_option,
    new_cap: Optional[int] = typer.Option(  # noqa: B008
        None,
        "--new-cap",
        help="Maximum new lines per day (1-90). "
        "Defaults to OPENINGDRILL_DAILY_NEW_CAP.",
    ),
    tz: Optional[str] = typer.Option(  # noqa: B008
        None,
        "--timezone",
        help="IANA timezone for the 03:00 day boundary. "
        "Defaults to OPENINGDRILL_TIMEZONE.",
    ),
):
    """
    Starts an interactive drill session for the specified deck.

    Type SAN moves; `?` shows the solution, `r` repeats a finished line,
    `n` or Enter moves on, `x` removes the line for good and `q` quits.
    """
    db_path = _resolve_db_path(db)
    overrides = {}
    if new_cap is not None:
        overrides["daily_new_cap"] = clamp_daily_cap(new_cap)
    if tz is not None:
        overrides["timezone"] = tz
    settings = drill_config.settings.model_copy(update=overrides)

    console.print(f"Starting drill for deck: [bold cyan]{deck_name}[/bold cyan]")
    try:
        drill_logic(
            deck_name=deck_name,
            db_path=db_path,
            settings=settings,
            user_id=user,
        )
    except DeckNotFoundError as e:
        console.print(f"[bold]Error: {e}[/bold]")
        raise typer.Exit(code=1) from e
    except DatabaseError as e:
        console.print(f"[bold]A database error occurred: {e}[/bold]")
        raise typer.Exit(code=1) from e


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """
    Run the CLI application.

    If an unexpected exception occurs, print a bold red error message to the console and exit the process with status code 1.
    """
    try:
        app()
    except Exception as e:
        console.print(f"[bold red]UNEXPECTED ERROR: {e}[/bold red]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
