"""
State machine for a single pass through one displayed line.
"""

import logging
from typing import List, Optional

from .exceptions import InvalidAttemptStateError
from .models import AttemptState, Outcome, QueueItem, Side

logger = logging.getLogger(__name__)


class Attempt:
    """
    Tracks the learner stepping through a line's player-side moves.

    Opponent moves are played automatically. The attempt finishes clean when
    every move was reproduced without a mistake, and dirty after any mistake
    or a show-solution reveal.
    """

    def __init__(self, item: QueueItem):
        self.item = item
        self.move_index = 0
        self.had_mistakes = False
        self.clicked_show_solution = False
        self.state = AttemptState.InProgress
        # Guards: one persisted decision and one logged event per attempt.
        self.saved = False
        self.event_logged = False
        self._auto_play()

    @property
    def moves(self) -> List[str]:
        return self.item.moves_san

    @property
    def finished(self) -> bool:
        return self.state != AttemptState.InProgress

    @property
    def failed(self) -> bool:
        return self.had_mistakes or self.clicked_show_solution

    @property
    def outcome(self) -> Optional[Outcome]:
        if not self.finished:
            return None
        return Outcome.Fail if self.failed else Outcome.Pass

    @property
    def is_player_turn(self) -> bool:
        white_to_move = self.move_index % 2 == 0
        return white_to_move == (self.item.player_side == Side.White)

    @property
    def expected_move(self) -> Optional[str]:
        if self.move_index >= len(self.moves):
            return None
        return self.moves[self.move_index]

    @property
    def played_moves(self) -> List[str]:
        return self.moves[: self.move_index]

    def _auto_play(self) -> None:
        """Play opponent moves until it is the learner's turn or the line ends."""
        while self.move_index < len(self.moves) and not self.is_player_turn:
            self.move_index += 1
        if self.move_index >= len(self.moves):
            self._finish()

    def _finish(self) -> None:
        self.state = (
            AttemptState.FinishedDirty
            if self.failed
            else AttemptState.FinishedClean
        )
        logger.debug(f"Attempt on line {self.item.line_id} {self.state.value}")

    def _require_in_progress(self, action: str) -> None:
        if self.finished:
            raise InvalidAttemptStateError(
                f"Cannot {action}: attempt is already {self.state.value}."
            )

    def play_move(self, san: str) -> bool:
        """
        Submit the learner's move.

        Returns:
            bool: True if it matched the line; False marks a mistake and
            leaves the position unchanged.
        """
        self._require_in_progress("play a move")
        if san.strip() == self.expected_move:
            self.move_index += 1
            self._auto_play()
            return True
        self.had_mistakes = True
        return False

    def show_solution(self) -> None:
        """Reveal the remaining moves and finish the attempt as failed."""
        self._require_in_progress("show the solution")
        self.clicked_show_solution = True
        self.move_index = len(self.moves)
        self._finish()

    def reset(self) -> None:
        """Start the same line again at move 0 (repeat, no persistence)."""
        if not self.finished:
            raise InvalidAttemptStateError(
                "Cannot repeat a line that is still in progress."
            )
        self.move_index = 0
        self.had_mistakes = False
        self.clicked_show_solution = False
        self.state = AttemptState.InProgress
        self.saved = False
        self.event_logged = False
        self._auto_play()

    def mark_saved(self) -> None:
        self.saved = True
