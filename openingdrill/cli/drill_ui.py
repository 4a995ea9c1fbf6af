"""
Command-line interface for drilling opening lines.
"""

import logging
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel

from openingdrill.exceptions import ReviewOperationError
from openingdrill.models import QueueItem, Side
from openingdrill.session import DrillSession

logger = logging.getLogger(__name__)
console = Console()

SHOW_SOLUTION_KEY = "?"
REPEAT_KEY = "r"
NEXT_KEYS = ("", "n")
REMOVE_KEY = "x"
QUIT_KEY = "q"


def format_moves(moves: List[str], start_index: int = 0) -> str:
    """
    Render SAN moves with move numbers, e.g. ``1. e4 e5 2. Nf3``.

    Parameters:
        moves (List[str]): SAN tokens, White's first move at index 0 of the line.
        start_index (int): Index of ``moves[0]`` within the full line.
    """
    parts = []
    for offset, san in enumerate(moves):
        index = start_index + offset
        if index % 2 == 0:
            parts.append(f"{index // 2 + 1}. {san}")
        elif offset == 0:
            parts.append(f"{index // 2 + 1}... {san}")
        else:
            parts.append(san)
    return " ".join(parts)


def _ask(prompt: str) -> str:
    """Read one answer; end of input counts as quitting."""
    try:
        return console.input(prompt).strip()
    except EOFError:
        return QUIT_KEY


def _show_header(session: DrillSession, item: QueueItem) -> None:
    stats = session.stats()
    kind = "new" if item.is_new else "review"
    side = "White" if item.player_side == Side.White else "Black"
    console.rule(
        f"[bold]{item.title}[/bold] [dim]({kind}, you play {side})[/dim]"
    )
    console.print(
        f"[dim]{stats['remaining']} left in queue, "
        f"{stats['delayed']} waiting for retry, "
        f"{stats['new_queued']} new line(s) still to learn, "
        f"{stats['new_remaining_today']} new slot(s) left today[/dim]"
    )


def _show_position(session: DrillSession) -> None:
    attempt = session.attempt
    if attempt is None:
        return
    played = format_moves(attempt.played_moves)
    console.print(f"Moves so far: [cyan]{played or '(start)'}[/cyan]")


def _show_result(session: DrillSession) -> None:
    attempt = session.attempt
    if attempt is None:
        return
    line = format_moves(attempt.moves)
    if attempt.failed:
        console.print(Panel(line, title="Solution", border_style="red"))
    else:
        console.print(Panel(line, title="Clean!", border_style="green"))


def _play_line(session: DrillSession) -> Optional[str]:
    """
    Prompt for moves until the attempt finishes.

    Returns:
        The control key that interrupted the line (remove or quit), or None
        once the attempt is finished.
    """
    attempt = session.attempt
    while attempt is not None and not attempt.finished:
        _show_position(session)
        answer = _ask(
            "[bold]Your move[/bold] [dim](? solution, x remove, q quit)[/dim]: "
        )
        if answer in (REMOVE_KEY, QUIT_KEY):
            return answer
        if answer == SHOW_SOLUTION_KEY:
            session.show_solution()
        elif not answer:
            continue
        elif session.play_move(answer):
            console.print("[green]Correct.[/green]")
        else:
            console.print(
                "[bold red]Not the move in this line. Try again.[/bold red]"
            )
    return None


def _remove_line(session: DrillSession) -> bool:
    """Remove the current line; returns False when the write failed."""
    try:
        session.remove()
    except ReviewOperationError as e:
        logger.error(f"Failed to remove line: {e}")
        console.print(
            "[bold red]Could not remove this line. "
            "Press x to try again.[/bold red]"
        )
        return False
    return True


def _finish_line(session: DrillSession) -> Optional[str]:
    """
    Ask what to do with a finished line and act on it.

    Returns:
        QUIT_KEY when the learner quits, otherwise None.
    """
    _show_result(session)
    while True:
        answer = _ask(
            "[bold]\\[n]ext, \\[r]epeat, \\[x] remove, \\[q]uit:[/bold] "
        ).lower()
        if answer == QUIT_KEY:
            return QUIT_KEY
        if answer == REPEAT_KEY:
            session.repeat()
            return None
        if answer == REMOVE_KEY:
            if _remove_line(session):
                return None
            continue
        if answer in NEXT_KEYS:
            try:
                session.advance()
            except ReviewOperationError as e:
                logger.error(f"Failed to save line: {e}")
                console.print(
                    "[bold red]Could not save this line. "
                    "Press Enter to retry.[/bold red]"
                )
                continue
            return None
        console.print("[bold red]Unknown choice.[/bold red]")


def start_drill_flow(session: DrillSession) -> int:
    """
    Manages the command-line drill flow.

    Args:
        session: A DrillSession for the chosen deck.

    Returns:
        The number of lines finished.
    """
    console.print("[bold cyan]Starting drill session...[/bold cyan]")
    finished = 0
    try:
        item = session.start()
        if item is None:
            console.print(
                "[bold yellow]Nothing to drill in this deck today.[/bold yellow]"
            )
            return 0

        while session.current is not None:
            item = session.current
            _show_header(session, item)

            action = _play_line(session)
            if action == QUIT_KEY:
                break
            if action == REMOVE_KEY:
                if not _remove_line(session):
                    continue
                console.print(f"[yellow]Removed {item.title}.[/yellow]")
                continue

            finished += 1
            if _finish_line(session) == QUIT_KEY:
                break

        if session.completed:
            console.print(
                "[bold green]No more lines today. Well done![/bold green]"
            )
    finally:
        session.close()
    console.print(f"[bold cyan]Drill session finished: {finished} line(s).[/bold cyan]")
    return finished
