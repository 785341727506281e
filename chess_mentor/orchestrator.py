"""Move orchestration: one player move from validation to next turn.

process_move runs a single transaction per call:

 1. load the game record
 2. check legality and evaluate the position, concurrently
 3. reject illegal moves without touching the store, then look up
    the turn being answered (rebuilt within next_turn_timeout)
 4. apply and persist the player's move
 5. check for game over
 6. evaluate the new position, explain the move and generate the
    opponent's reply, concurrently
 7. score the move from the mover's side
 8. apply the opponent's reply
 9. check for game over again
10. build the next turn, falling back to a quick package
11. return the response

Only analysis failures on the required path and unknown games escape
as exceptions; every other collaborator failure degrades.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import chess

from chess_mentor.concepts import DEFAULT_TAG, primary_tag
from chess_mentor.config import Settings
from chess_mentor.errors import GameNotFoundError, NoLegalMovesError
from chess_mentor.gateways import (
    AnalysisGateway,
    ExplanationGateway,
    TemplateExplanationGateway,
)
from chess_mentor.models import (
    Explanation,
    ExplanationRequest,
    GameRecord,
    MoveFeedback,
    MoveRequest,
    MoveResponse,
    OpponentMove,
    TurnPackage,
)
from chess_mentor.opponent import OpponentMoveGenerator
from chess_mentor.personas import Persona
from chess_mentor.store import checked_update, store_call
from chess_mentor.timeouts import with_timeout
from chess_mentor.turn_builder import TurnBuilder

logger = logging.getLogger(__name__)

BLUNDER_THRESHOLD_CP = -200

ILLEGAL_MOVE_TEXT = "Illegal move. Please try again."
STALE_POSITION_TEXT = "The position has changed. Refresh and try again."
GAME_OVER_TEXT = "The game is already over."
CALLER_REPLY_JUSTIFICATION = "Played by the opponent."


def mover_delta(mover: chess.Color, eval_before: int, eval_after: int) -> int:
    """Evaluation change from the mover's side (positive is good for them)."""
    if mover == chess.WHITE:
        return eval_after - eval_before
    return eval_before - eval_after


def is_blunder(delta: int) -> bool:
    return delta <= BLUNDER_THRESHOLD_CP


def _parse_move(board: chess.Board, move_code: str) -> chess.Move | None:
    try:
        move = chess.Move.from_uci(move_code)
    except (chess.InvalidMoveError, ValueError):
        return None
    return move if move in board.legal_moves else None


def _rejected(position: str, text: str, evaluation: int = 0) -> MoveResponse:
    return MoveResponse(
        accepted=False,
        position=position,
        feedback=MoveFeedback(
            eval_before=evaluation,
            eval_after=evaluation,
            delta=0,
            explanation_text=text,
        ),
        next_turn=None,
    )


class MoveOrchestrator:
    """Runs move transactions for all games of one service."""

    def __init__(
        self,
        analysis: AnalysisGateway,
        explanations: ExplanationGateway,
        opponent: OpponentMoveGenerator,
        turn_builder: TurnBuilder,
        store: Any,
        settings: Settings | None = None,
    ) -> None:
        self._analysis = analysis
        self._explanations = explanations
        self._fallback_explanations = TemplateExplanationGateway()
        self._opponent = opponent
        self._turns = turn_builder
        self._store = store
        self._settings = settings or Settings()
        # Per-game locks live only while some call holds or awaits them.
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def process_move(self, game_id: str, request: MoveRequest) -> MoveResponse:
        """Process one player move.

        Moves for the same game are serialised; different games run
        concurrently.

        Args:
            game_id: Game to move in.
            request: The player's move and options.

        Returns:
            MoveResponse. Illegal and stale moves come back with
            accepted=False and the stored position untouched.

        Raises:
            GameNotFoundError: Unknown game id.
            ConcurrentMoveError: Another writer moved the position.
        """
        lock = self._locks.setdefault(game_id, asyncio.Lock())
        self._lock_users[game_id] = self._lock_users.get(game_id, 0) + 1
        try:
            async with lock:
                return await self._process(game_id, request)
        finally:
            self._lock_users[game_id] -= 1
            if not self._lock_users[game_id]:
                del self._lock_users[game_id]
                del self._locks[game_id]

    async def _process(self, game_id: str, request: MoveRequest) -> MoveResponse:
        started = time.perf_counter()

        # 1. load
        record = await self._load(game_id)
        position = record.position
        board = chess.Board(position)

        if request.current_position is not None and request.current_position != position:
            logger.info("Rejecting stale move %s for game %s", request.move_code, game_id)
            return _rejected(position, STALE_POSITION_TEXT)
        if board.is_game_over():
            return _rejected(position, GAME_OVER_TEXT)

        # 2. validate
        legal, before = await asyncio.gather(
            self._analysis.is_legal(position, request.move_code),
            self._analysis.analyze(position, depth=self._settings.move_analysis_depth),
        )

        # 3. reject
        move = _parse_move(board, request.move_code) if legal else None
        if move is None:
            return _rejected(position, ILLEGAL_MOVE_TEXT)

        turn = await self._current_turn(game_id, record, board)

        # 4. apply player move
        mover = board.turn
        concept_tag = self._concept_tag(turn, request, board, move)
        board.push(move)
        after_position = board.fen()
        record = await checked_update(
            self._store,
            record,
            {"position": after_position, "current_turn": None, **self._status_fields(board)},
            retries=self._settings.write_retries,
        )

        # 5. game over?
        game_over = board.is_game_over()

        # 6. fan-out
        generate_reply = not game_over and not request.skip_opponent_reply and (
            request.opponent_move_code is None
        )
        after, explanation, reply = await asyncio.gather(
            self._analysis.analyze(after_position, depth=self._settings.move_analysis_depth),
            self._explain(record, turn, request, position, concept_tag),
            self._generate_reply(after_position) if generate_reply else _none(),
        )

        # 7. score
        delta = mover_delta(mover, before.eval, after.eval)

        # 8. opponent reply
        if reply is None and request.opponent_move_code is not None and not game_over:
            reply = self._caller_reply(board, request.opponent_move_code)
        if reply is not None:
            board.push_uci(reply.move)
            record = await checked_update(
                self._store,
                record,
                {"position": board.fen(), **self._status_fields(board)},
                retries=self._settings.write_retries,
            )
            logger.info(
                "Opponent (%s, %s) played %s in game %s",
                reply.persona.value,
                reply.source,
                reply.move_text,
                game_id,
            )

        feedback = MoveFeedback(
            eval_before=before.eval,
            eval_after=after.eval,
            delta=delta,
            explanation_text=explanation.text,
            concept_tags=explanation.concept_tags,
            is_blunder=is_blunder(delta),
            opponent_move=reply,
        )

        # 9. game over after the reply?
        game_over = board.is_game_over()

        # 10. next turn
        next_turn = None if game_over else await self._bounded_turn(game_id, record, board)

        logger.debug(
            "Processed %s for %s in %.0fms",
            request.move_code,
            game_id,
            (time.perf_counter() - started) * 1000,
        )

        # 11. respond
        return MoveResponse(
            accepted=True,
            position=board.fen(),
            feedback=feedback,
            next_turn=next_turn,
            game_over=game_over,
            result=board.result() if game_over else None,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _load(self, game_id: str) -> GameRecord:
        record = await store_call(self._store.get_game, game_id)
        if record is None:
            raise GameNotFoundError(game_id)
        return record

    async def _current_turn(
        self, game_id: str, record: GameRecord, board: chess.Board
    ) -> TurnPackage:
        """The turn the player is answering, rebuilt if nothing is stored."""
        if record.current_turn is not None and record.current_turn.position == record.position:
            return record.current_turn
        logger.info("No stored turn for %s, using cache or rebuilding", game_id)
        return await self._bounded_turn(game_id, record, board)

    @staticmethod
    def _concept_tag(
        turn: TurnPackage, request: MoveRequest, board: chess.Board, move: chess.Move
    ) -> str:
        for choice in turn.choices:
            if choice.id == request.choice_id and choice.move == request.move_code:
                if choice.concept_tags:
                    return choice.concept_tags[0]
        return primary_tag(board, move) or DEFAULT_TAG

    @staticmethod
    def _status_fields(board: chess.Board) -> dict[str, str]:
        return {"status": "finished"} if board.is_game_over() else {}

    async def _explain(
        self,
        record: GameRecord,
        turn: TurnPackage,
        request: MoveRequest,
        position: str,
        concept_tag: str,
    ) -> Explanation:
        pv = next(
            (
                c.principal_variation
                for c in turn.choices
                if c.move == request.move_code and c.principal_variation
            ),
            [request.move_code],
        )
        explanation_request = ExplanationRequest(
            position=position,
            chosen_move=request.move_code,
            best_move=turn.best_move.move,
            principal_variation=pv,
            concept_tag=concept_tag,
            skill_rating=record.rating,
        )
        try:
            return await self._explanations.explain(explanation_request)
        except Exception as exc:  # degrade to the local templates
            logger.warning("Explanation failed, using template: %s", exc)
            return await self._fallback_explanations.explain(explanation_request)

    async def _generate_reply(self, position: str) -> OpponentMove | None:
        try:
            return await self._opponent.generate_move(position)
        except NoLegalMovesError:
            return None
        except Exception:
            logger.exception("Opponent move generation failed")
            return None

    @staticmethod
    def _caller_reply(board: chess.Board, move_code: str) -> OpponentMove | None:
        move = _parse_move(board, move_code)
        if move is None:
            logger.warning("Ignoring illegal opponent move %s", move_code)
            return None
        return OpponentMove(
            move=move.uci(),
            move_text=board.san(move),
            persona=Persona.HUMAN_LIKE,
            justification=CALLER_REPLY_JUSTIFICATION,
            source="caller",
        )

    async def _bounded_turn(
        self, game_id: str, record: GameRecord, board: chess.Board
    ) -> TurnPackage:
        """Cached turn, else a full build within next_turn_timeout.

        A slow or failing build gives the quick package, which is cached
        for the position so later calls do not retry the same build.
        """
        cached = self._turns.get_cached(game_id, record.position)
        if cached is not None:
            return cached
        try:
            turn = await with_timeout(
                self._turns.build(game_id, record), self._settings.next_turn_timeout
            )
        except Exception as exc:  # any build failure gives the quick package
            logger.warning("Turn build failed for %s: %s", game_id, exc)
            turn = None
        if turn is None:
            logger.warning("Using quick turn for %s", game_id)
            turn = self._turns.quick(game_id, board, record.rating)
            self._turns.remember(game_id, turn)
        return turn


async def _none() -> None:
    return None
