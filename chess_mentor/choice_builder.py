"""Choice builder: three persona-attributed move choices per turn.

Legal moves are computed locally and used as the only source of truth
for legality; nothing a gateway returns is trusted until it has been
checked against that set. Persona suggestions are fetched concurrently,
each under its own short deadline, and a failing or slow persona simply
contributes nothing.
"""

from __future__ import annotations

import asyncio
import logging
import time

import chess

from chess_mentor.concepts import newly_attacked_squares, tag_move
from chess_mentor.engine import greedy_line
from chess_mentor.errors import NoLegalMovesError
from chess_mentor.gateways import AnalysisGateway, SuggestionGateway
from chess_mentor.models import (
    AnalysisResult,
    Choice,
    Difficulty,
    MovePreview,
    PreviewMove,
)
from chess_mentor.personas import Persona, personas_for_turn, random_plan
from chess_mentor.timeouts import with_timeout

logger = logging.getLogger(__name__)

CHOICE_IDS = ("A", "B", "C")
SUGGESTION_TIMEOUT_SECONDS = 0.7
NON_BEST_PENALTY_CP = 30
PV_PREVIEW_LENGTH = 4


def legal_move_codes(board: chess.Board) -> list[str]:
    """All legal moves as UCI codes, in python-chess enumeration order."""
    return [move.uci() for move in board.legal_moves]


def _enhance_plan(plan: str, hint_level: int, move: str) -> str:
    """Add hint detail to a plan line according to hint level.

    1 is the bare plan, 2 adds a short context clause, 3 spells out the
    squares involved.
    """
    if hint_level <= 1:
        return plan
    if hint_level == 2:
        return f"{plan} (develops pieces and improves position)"
    return f"{plan} (move from {move[:2]} to {move[2:4]} to improve your pieces and control key squares)"


def simple_line(position: str, move_code: str) -> list[str]:
    """A short local line: the move, a greedy reply and a greedy follow-up."""
    board = chess.Board(position)
    board.push_uci(move_code)
    return [move_code] + greedy_line(board, 2)


def build_preview(position: str, move_code: str, line: list[str]) -> MovePreview:
    """Preview of a choice: newly attacked squares and the expected line.

    The opponent reply and follow-up come from line[1] and line[2]
    when those are legal in sequence; otherwise they stay None.
    """
    board = chess.Board(position)
    move = chess.Move.from_uci(move_code)
    preview = MovePreview(
        move_from=move_code[:2],
        move_to=move_code[2:4],
        newly_attacked=newly_attacked_squares(board, move),
    )
    board.push(move)

    if len(line) > 1:
        reply = _legal_or_none(board, line[1])
        if reply is not None:
            preview.opponent_reply = PreviewMove(move=line[1], san=board.san(reply))
            board.push(reply)
            if len(line) > 2:
                follow = _legal_or_none(board, line[2])
                if follow is not None:
                    preview.follow_up = PreviewMove(move=line[2], san=board.san(follow))
    return preview


def _legal_or_none(board: chess.Board, move_code: str) -> chess.Move | None:
    try:
        move = chess.Move.from_uci(move_code)
    except (chess.InvalidMoveError, ValueError):
        return None
    return move if move in board.legal_moves else None


class ChoiceBuilder:
    """Builds the three choices offered to the player each turn."""

    def __init__(
        self,
        analysis: AnalysisGateway,
        suggestions: SuggestionGateway,
        suggestion_timeout: float = SUGGESTION_TIMEOUT_SECONDS,
        analysis_depth: int = 10,
        top_k: int = 5,
    ) -> None:
        self._analysis = analysis
        self._suggestions = suggestions
        self._suggestion_timeout = suggestion_timeout
        self._analysis_depth = analysis_depth
        self._top_k = top_k

    async def build_choices(
        self,
        position: str,
        difficulty: Difficulty,
        turn_number: int = 0,
    ) -> list[Choice]:
        """Build up to three choices for a position.

        Args:
            position: FEN of the position the player is to move in.
            difficulty: Current difficulty (hint level shapes plan text).
            turn_number: Selects the persona trio for this turn.

        Returns:
            min(3, number of legal moves) choices with distinct moves.

        Raises:
            NoLegalMovesError: The position has no legal moves.
        """
        started = time.perf_counter()
        board = chess.Board(position)
        legal = legal_move_codes(board)
        if not legal:
            raise NoLegalMovesError(position)
        legal_set = set(legal)

        analysis = await self._analysis.analyze(position, depth=self._analysis_depth)
        personas = personas_for_turn(turn_number)
        suggested = await self._gather_suggestions(position, personas, legal_set)
        moves = self._assign_moves(analysis, personas, suggested, legal, legal_set)
        lines = await self._lines_for(position, moves, analysis)

        choices = []
        for choice_id, persona, move_code in zip(CHOICE_IDS, personas, moves):
            move = chess.Move.from_uci(move_code)
            line, eval_estimate = lines[move_code]
            choices.append(
                Choice(
                    id=choice_id,
                    move=move_code,
                    persona=persona,
                    plan_text=_enhance_plan(
                        random_plan(persona), difficulty.hint_level, move_code
                    ),
                    principal_variation=line,
                    eval_estimate=eval_estimate,
                    concept_tags=tag_move(board, move),
                    preview=build_preview(position, move_code, line),
                )
            )

        logger.debug(
            "Built %d choices in %.0fms", len(choices), (time.perf_counter() - started) * 1000
        )
        return choices

    async def _suggest(
        self, position: str, persona: Persona, legal_set: set[str]
    ) -> list[str]:
        try:
            moves = await with_timeout(
                self._suggestions.suggest_moves(position, persona, self._top_k),
                self._suggestion_timeout,
            )
        except Exception as exc:  # any gateway failure means no suggestions
            logger.warning("Suggestions for %s failed: %s", persona.value, exc)
            return []
        if moves is None:
            logger.warning("Suggestions for %s timed out", persona.value)
            return []
        return [m for m in moves if m in legal_set]

    async def _gather_suggestions(
        self,
        position: str,
        personas: tuple[Persona, ...],
        legal_set: set[str],
    ) -> dict[Persona, list[str]]:
        results = await asyncio.gather(
            *(self._suggest(position, persona, legal_set) for persona in personas)
        )
        return dict(zip(personas, results))

    @staticmethod
    def _assign_moves(
        analysis: AnalysisResult,
        personas: tuple[Persona, ...],
        suggested: dict[Persona, list[str]],
        legal: list[str],
        legal_set: set[str],
    ) -> list[str]:
        """Pick one distinct move per slot.

        Slot A gets the analysis best move when it is legal. Every other
        slot (and slot A when the best move is unusable) takes its
        persona's first unused suggestion, then the next unused legal move.
        """
        used: list[str] = []
        best = analysis.principal_variation[0] if analysis.principal_variation else None

        for slot, persona in enumerate(personas):
            if len(used) >= len(legal):
                break
            move = None
            if slot == 0 and best in legal_set:
                move = best
            if move is None:
                move = next((m for m in suggested.get(persona, []) if m not in used), None)
            if move is None:
                move = next((m for m in legal if m not in used), None)
            if move is not None:
                used.append(move)
        return used

    async def _lines_for(
        self, position: str, moves: list[str], analysis: AnalysisResult
    ) -> dict[str, tuple[list[str], int]]:
        """Principal variation and eval estimate for each chosen move.

        The best move reuses the analysis line. Others are scored in one
        score_moves call; if that fails, a local greedy line and a fixed
        penalty stand in.
        """
        best = analysis.principal_variation[0] if analysis.principal_variation else None
        white_to_move = chess.Board(position).turn == chess.WHITE
        penalty = -NON_BEST_PENALTY_CP if white_to_move else NON_BEST_PENALTY_CP

        lines: dict[str, tuple[list[str], int]] = {}
        if best in moves:
            lines[best] = (analysis.principal_variation[:PV_PREVIEW_LENGTH], analysis.eval)

        others = [m for m in moves if m != best]
        if not others:
            return lines

        try:
            scored = await self._analysis.score_moves(position, others)
        except Exception as exc:  # fall back to local lines
            logger.warning("score_moves failed, using local lines: %s", exc)
            scored = []

        by_move = {s.move: s for s in scored}
        for move in others:
            entry = by_move.get(move)
            if entry is not None and entry.principal_variation:
                delta = entry.eval_delta if white_to_move else -entry.eval_delta
                lines[move] = (
                    entry.principal_variation[:PV_PREVIEW_LENGTH],
                    analysis.eval + delta,
                )
            else:
                lines[move] = (simple_line(position, move), analysis.eval + penalty)
        return lines
