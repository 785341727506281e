"""Opponent move generation with a layered fallback chain.

The opponent plays as a rival persona chosen from the position's own
move number, so the choice is reproducible per game and independent of
any other game running in the same process. Moves are tried from the
suggestion service first, then the analysis oracle, then a random legal
move, and every candidate is checked locally before it is accepted.
"""

from __future__ import annotations

import logging
import random

import chess

from chess_mentor.errors import NoLegalMovesError
from chess_mentor.gateways import AnalysisGateway, SuggestionGateway
from chess_mentor.models import OpponentMove
from chess_mentor.personas import OPPONENT_PERSONAS, Persona, random_justification
from chess_mentor.timeouts import with_timeout

logger = logging.getLogger(__name__)

SUGGESTION_ATTEMPTS = 2
FALLBACK_ANALYSIS_DEPTH = 6

_ANALYSIS_JUSTIFICATION = "Playing the objectively strongest continuation."
_RANDOM_JUSTIFICATION = "Playing a solid continuation."


def opponent_persona(board: chess.Board) -> Persona:
    """Persona for the opponent in this position."""
    return OPPONENT_PERSONAS[board.fullmove_number % len(OPPONENT_PERSONAS)]


def _legal_move(board: chess.Board, move_code: str) -> chess.Move | None:
    try:
        move = chess.Move.from_uci(move_code)
    except (chess.InvalidMoveError, ValueError):
        return None
    return move if move in board.legal_moves else None


class OpponentMoveGenerator:
    """Produces one reply move for the side to move."""

    def __init__(
        self,
        analysis: AnalysisGateway,
        suggestions: SuggestionGateway,
        suggestion_timeout: float = 2.0,
        analysis_depth: int = FALLBACK_ANALYSIS_DEPTH,
        rng: random.Random | None = None,
    ) -> None:
        self._analysis = analysis
        self._suggestions = suggestions
        self._suggestion_timeout = suggestion_timeout
        self._analysis_depth = analysis_depth
        self._rng = rng or random.Random()

    async def generate_move(self, position: str) -> OpponentMove:
        """Generate the opponent's reply.

        Args:
            position: FEN with the opponent to move.

        Returns:
            OpponentMove; `source` records which fallback level produced it.

        Raises:
            NoLegalMovesError: The position has no legal moves. Callers
                check for game over before asking for a reply.
        """
        board = chess.Board(position)
        legal = list(board.legal_moves)
        if not legal:
            raise NoLegalMovesError(position)

        persona = opponent_persona(board)

        for attempt in range(1, SUGGESTION_ATTEMPTS + 1):
            try:
                suggested = await with_timeout(
                    self._suggestions.suggest_moves(position, persona, 1),
                    self._suggestion_timeout,
                )
            except Exception as exc:  # try the next attempt
                logger.warning("Opponent suggestion attempt %d failed: %s", attempt, exc)
                continue
            if not suggested:
                logger.info("Opponent suggestion attempt %d returned nothing", attempt)
                continue
            move = _legal_move(board, suggested[0])
            if move is None:
                logger.info("Suggested opponent move %s is illegal, retrying", suggested[0])
                continue
            return OpponentMove(
                move=move.uci(),
                move_text=board.san(move),
                persona=persona,
                justification=random_justification(persona),
                source="suggestion",
            )

        logger.info("Opponent falling back to analysis move")
        try:
            analysis = await self._analysis.analyze(position, depth=self._analysis_depth)
        except Exception as exc:  # fall through to a random move
            logger.warning("Opponent analysis fallback failed: %s", exc)
        else:
            if analysis.principal_variation:
                move = _legal_move(board, analysis.principal_variation[0])
                if move is not None:
                    return OpponentMove(
                        move=move.uci(),
                        move_text=board.san(move),
                        persona=Persona.FISCHER,
                        justification=_ANALYSIS_JUSTIFICATION,
                        source="analysis",
                    )
                logger.warning(
                    "Analysis returned invalid move %s, using random fallback",
                    analysis.principal_variation[0],
                )

        move = self._rng.choice(legal)
        return OpponentMove(
            move=move.uci(),
            move_text=board.san(move),
            persona=Persona.FISCHER,
            justification=_RANDOM_JUSTIFICATION,
            source="random",
        )
