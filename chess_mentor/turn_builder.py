"""Turn package assembly, persistence and background precompute."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import chess

from chess_mentor.choice_builder import CHOICE_IDS, ChoiceBuilder, legal_move_codes
from chess_mentor.config import Settings
from chess_mentor.difficulty import calculate_difficulty, calculate_time_budget
from chess_mentor.errors import ChessMentorError, ConcurrentMoveError
from chess_mentor.gateways import AnalysisGateway
from chess_mentor.models import BestMove, Choice, GameRecord, TurnPackage
from chess_mentor.personas import personas_for_turn
from chess_mentor.store import checked_update, side_of, store_call
from chess_mentor.turn_cache import TurnCache

logger = logging.getLogger(__name__)

QUICK_PLAN_TEXT = "Consider this move."


class TurnBuilder:
    """Builds the TurnPackage for a game's current position.

    Owns no state of its own: packages are persisted on the game record
    and mirrored in the shared TurnCache.
    """

    def __init__(
        self,
        choice_builder: ChoiceBuilder,
        analysis: AnalysisGateway,
        store: Any,
        cache: TurnCache,
        settings: Settings | None = None,
    ) -> None:
        self._choices = choice_builder
        self._analysis = analysis
        self._store = store
        self._cache = cache
        self._settings = settings or Settings()
        self._tasks: set[asyncio.Task] = set()

    async def build(self, game_id: str, record: GameRecord) -> TurnPackage:
        """Full build: engine strength, best move, three choices, time budget.

        The package is written to the record's current_turn and cached.
        If another move lands while building, the stale package is
        returned but neither persisted nor cached.

        Args:
            game_id: Game the package belongs to.
            record: Freshly read game record.

        Returns:
            The new TurnPackage.

        Raises:
            NoLegalMovesError: The position is terminal.
        """
        started = time.perf_counter()
        board = chess.Board(record.position)
        difficulty = calculate_difficulty(record.rating)
        await self._analysis.set_strength(difficulty.engine_strength)

        analysis = await self._analysis.analyze(
            record.position, depth=self._settings.turn_analysis_depth
        )
        choices = await self._choices.build_choices(
            record.position, difficulty, turn_number=board.fullmove_number
        )

        best = analysis.principal_variation[0] if analysis.principal_variation else choices[0].move
        turn = TurnPackage(
            game_id=game_id,
            position=record.position,
            side_to_move=side_of(record.position),
            choices=choices,
            best_move=BestMove(move=best, eval=analysis.eval),
            difficulty=difficulty,
            time_budget_ms=calculate_time_budget(difficulty, board.fullmove_number),
        )

        try:
            await checked_update(
                self._store,
                record,
                {"current_turn": turn},
                retries=self._settings.write_retries,
            )
        except ConcurrentMoveError:
            logger.info("Game %s moved while its turn was built, discarding", game_id)
            return turn

        self._cache.set(game_id, turn)
        logger.debug(
            "Built turn for %s in %.0fms", game_id, (time.perf_counter() - started) * 1000
        )
        return turn

    def quick(self, game_id: str, board: chess.Board, rating: int) -> TurnPackage:
        """Degraded package from the first legal moves, without any gateway call."""
        difficulty = calculate_difficulty(rating)
        moves = legal_move_codes(board)[: len(CHOICE_IDS)]
        personas = personas_for_turn(board.fullmove_number)
        choices = [
            Choice(id=choice_id, move=move, persona=persona, plan_text=QUICK_PLAN_TEXT)
            for choice_id, persona, move in zip(CHOICE_IDS, personas, moves)
        ]
        return TurnPackage(
            game_id=game_id,
            position=board.fen(),
            side_to_move="w" if board.turn == chess.WHITE else "b",
            choices=choices,
            best_move=BestMove(move=moves[0] if moves else "", eval=0),
            difficulty=difficulty,
            time_budget_ms=calculate_time_budget(difficulty, board.fullmove_number),
            is_quick=True,
        )

    def remember(self, game_id: str, turn: TurnPackage) -> None:
        """Cache a package built outside build(), e.g. a quick fallback."""
        self._cache.set(game_id, turn)

    def get_cached(self, game_id: str, position: str) -> TurnPackage | None:
        """Cached package for the game, only if it was built for this position."""
        turn = self._cache.get(game_id)
        if turn is None:
            return None
        if turn.position != position:
            self._cache.delete(game_id)
            return None
        return turn

    def schedule_precompute(self, game_id: str) -> asyncio.Task | None:
        """Start building the game's turn in the background.

        Returns:
            The task, or None if a precompute for this game is already
            running.
        """
        if not self._cache.mark_in_flight(game_id):
            return None
        task = asyncio.create_task(self._precompute(game_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _precompute(self, game_id: str) -> None:
        try:
            record = await store_call(self._store.get_game, game_id)
            if record is None or chess.Board(record.position).is_game_over():
                return
            if self.get_cached(game_id, record.position) is not None:
                return
            await self.build(game_id, record)
        except ChessMentorError as exc:
            logger.warning("Precompute for %s failed: %s", game_id, exc)
        except Exception:
            logger.exception("Precompute for %s crashed", game_id)
        finally:
            self._cache.clear_in_flight(game_id)

    async def close(self) -> None:
        """Cancel outstanding precompute tasks."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
