"""Service facade: create games, fetch turns and submit moves.

GameService wires the collaborators together from Settings. Anything
not passed in explicitly is chosen from the configuration: HTTP clients
when service URLs are set, local implementations otherwise; Stockfish
when it can be found, material analysis otherwise; SQLite when a
database path is set, memory otherwise.
"""

from __future__ import annotations

import logging
from typing import Any

from chess_mentor.choice_builder import ChoiceBuilder
from chess_mentor.config import Settings
from chess_mentor.engine import MaterialAnalysisGateway, StockfishAnalysisGateway
from chess_mentor.errors import GameNotFoundError
from chess_mentor.gateways import (
    AnalysisGateway,
    ExplanationGateway,
    HeuristicSuggestionGateway,
    HttpExplanationGateway,
    HttpSuggestionGateway,
    SuggestionGateway,
    TemplateExplanationGateway,
)
from chess_mentor.models import GameRecord, MoveRequest, MoveResponse, TurnPackage
from chess_mentor.opponent import OpponentMoveGenerator
from chess_mentor.orchestrator import MoveOrchestrator
from chess_mentor.store import InMemoryGameStore, SqliteGameStore, maybe_await, store_call
from chess_mentor.turn_builder import TurnBuilder
from chess_mentor.turn_cache import TurnCache

logger = logging.getLogger(__name__)


def default_analysis(settings: Settings) -> AnalysisGateway:
    try:
        return StockfishAnalysisGateway(settings.stockfish_path)
    except FileNotFoundError:
        logger.warning("Stockfish not found, using material analysis")
        return MaterialAnalysisGateway()


def default_suggestions(settings: Settings) -> SuggestionGateway:
    if settings.suggestion_url:
        return HttpSuggestionGateway(settings.suggestion_url, timeout=settings.http_timeout)
    return HeuristicSuggestionGateway()


def default_explanations(settings: Settings) -> ExplanationGateway:
    if settings.explanation_url:
        return HttpExplanationGateway(settings.explanation_url, timeout=settings.http_timeout)
    return TemplateExplanationGateway()


def default_store(settings: Settings) -> Any:
    if settings.db_path:
        return SqliteGameStore(settings.db_path)
    return InMemoryGameStore()


class GameService:
    """Entry point for transports.

    Owns the TurnCache; one instance per process.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        analysis: AnalysisGateway | None = None,
        suggestions: SuggestionGateway | None = None,
        explanations: ExplanationGateway | None = None,
        store: Any = None,
        cache: TurnCache | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.analysis = analysis or default_analysis(self.settings)
        self.suggestions = suggestions or default_suggestions(self.settings)
        self.explanations = explanations or default_explanations(self.settings)
        self.store = store if store is not None else default_store(self.settings)
        self.cache = cache or TurnCache(
            ttl_seconds=self.settings.cache_ttl_seconds,
            capacity=self.settings.cache_capacity,
        )

        choice_builder = ChoiceBuilder(
            self.analysis,
            self.suggestions,
            suggestion_timeout=self.settings.suggestion_timeout,
            analysis_depth=self.settings.choice_analysis_depth,
            top_k=self.settings.suggestion_top_k,
        )
        self.turn_builder = TurnBuilder(
            choice_builder, self.analysis, self.store, self.cache, self.settings
        )
        opponent = OpponentMoveGenerator(
            self.analysis,
            self.suggestions,
            suggestion_timeout=self.settings.opponent_suggestion_timeout,
            analysis_depth=self.settings.opponent_analysis_depth,
        )
        self.orchestrator = MoveOrchestrator(
            self.analysis,
            self.explanations,
            opponent,
            self.turn_builder,
            self.store,
            self.settings,
        )

    async def create_game(self, rating: int | None = None) -> str:
        """Create a game at the starting position and start building its first turn.

        Args:
            rating: Player rating; defaults to the configured default.

        Returns:
            The new game id.
        """
        rating = self.settings.default_rating if rating is None else rating
        game_id = await store_call(self.store.create_game, rating=rating)
        logger.info("Created game %s (rating %d)", game_id, rating)
        self.turn_builder.schedule_precompute(game_id)
        return game_id

    async def get_game(self, game_id: str) -> GameRecord:
        record = await store_call(self.store.get_game, game_id)
        if record is None:
            raise GameNotFoundError(game_id)
        return record

    async def get_turn(self, game_id: str) -> TurnPackage:
        """Current turn: from the cache, then the record, then a full build.

        Raises:
            GameNotFoundError: Unknown game id.
            NoLegalMovesError: The game is over.
        """
        record = await self.get_game(game_id)
        cached = self.turn_builder.get_cached(game_id, record.position)
        if cached is not None:
            return cached
        if record.current_turn is not None and record.current_turn.position == record.position:
            self.cache.set(game_id, record.current_turn)
            return record.current_turn
        return await self.turn_builder.build(game_id, record)

    async def submit_move(self, game_id: str, request: MoveRequest) -> MoveResponse:
        return await self.orchestrator.process_move(game_id, request)

    async def close(self) -> None:
        """Stop background work and release collaborators."""
        await self.turn_builder.close()
        for resource in (self.analysis, self.suggestions, self.explanations, self.store):
            closer = getattr(resource, "close", None)
            if closer is not None:
                await maybe_await(closer())
