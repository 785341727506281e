"""Collaborator contracts and their implementations.

The orchestration core talks to three outside services: an analysis
oracle (see engine.py), a persona move-suggestion service and a
natural-language explanation service. Each has an HTTP client for the
deployed service and a local implementation that needs no network.
"""

from __future__ import annotations

import logging
from typing import Protocol

import chess
import httpx

from chess_mentor.concepts import tag_move
from chess_mentor.errors import GatewayError
from chess_mentor.models import (
    AnalysisResult,
    Explanation,
    ExplanationRequest,
    ScoredMove,
)
from chess_mentor.personas import PERSONAS, Persona

logger = logging.getLogger(__name__)


class AnalysisGateway(Protocol):
    async def analyze(self, position: str, depth: int = ...) -> AnalysisResult: ...

    async def is_legal(self, position: str, move: str) -> bool: ...

    async def score_moves(self, position: str, moves: list[str]) -> list[ScoredMove]: ...

    async def set_strength(self, rating: int) -> None: ...


class SuggestionGateway(Protocol):
    async def suggest_moves(
        self, position: str, persona: Persona, top_k: int
    ) -> list[str]: ...


class ExplanationGateway(Protocol):
    async def explain(self, request: ExplanationRequest) -> Explanation: ...


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------


class _HttpGateway:
    """Shared httpx plumbing for the remote services."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _post(self, path: str, payload: dict) -> dict:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise GatewayError(f"POST {path} failed: {exc}") from exc
        except ValueError as exc:
            raise GatewayError(f"POST {path} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise GatewayError(f"POST {path} returned {type(data).__name__}, expected object")
        return data

    async def close(self) -> None:
        await self._client.aclose()


class HttpSuggestionGateway(_HttpGateway):
    """Client for the persona move-suggestion service."""

    async def suggest_moves(self, position: str, persona: Persona, top_k: int) -> list[str]:
        data = await self._post(
            "/style/suggest",
            {"fen": position, "styleId": persona.value, "topK": top_k},
        )
        moves = data.get("moves", [])
        if not isinstance(moves, list):
            raise GatewayError("Suggestion response 'moves' must be a list")
        return [str(m) for m in moves][:top_k]


class HttpExplanationGateway(_HttpGateway):
    """Client for the coaching explanation service."""

    async def explain(self, request: ExplanationRequest) -> Explanation:
        data = await self._post(
            "/coach/explain",
            {
                "fen": request.position,
                "chosenMove": request.chosen_move,
                "bestMove": request.best_move,
                "pv": request.principal_variation,
                "conceptTag": request.concept_tag,
                "userSkill": request.skill_rating,
            },
        )
        text = data.get("explanation")
        if not isinstance(text, str):
            raise GatewayError("Explanation response missing 'explanation' text")
        tags = data.get("conceptTags") or [request.concept_tag]
        return Explanation(text=text, concept_tags=[str(t) for t in tags])


# ---------------------------------------------------------------------------
# Local suggestion service
# ---------------------------------------------------------------------------

_CAPTURE_VALUES = {
    chess.PAWN: 1,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 9,
    chess.KING: 0,
}

_TACTICAL_TAGS = {
    "checkmate": 50,
    "back_rank": 50,
    "double_attack": 4,
    "discovered_attack": 3,
    "fork": 3,
    "pin": 2,
    "pawn_promotion": 6,
}

_POSITIONAL_TAGS = {
    "development": 2,
    "center_control": 2,
    "king_safety": 3,
    "open_file": 1,
    "passed_pawn": 2,
    "king_activity": 1,
}


def _hangs(board: chess.Board, move: chess.Move) -> int:
    """Value of the moved piece if it lands en prise and undefended."""
    piece = board.piece_at(move.from_square)
    if piece is None or piece.piece_type == chess.KING:
        return 0
    after = board.copy(stack=False)
    after.push(move)
    mover = piece.color
    if after.is_attacked_by(not mover, move.to_square) and not after.is_attacked_by(
        mover, move.to_square
    ):
        return _CAPTURE_VALUES[piece.piece_type]
    return 0


class HeuristicSuggestionGateway:
    """Ranks legal moves by a persona's taste without any network call.

    Aggressive personas weight captures, checks and tactical motifs;
    quieter ones weight development, centre control and king safety.
    Every persona avoids leaving the moved piece hanging.
    """

    def _score(self, board: chess.Board, move: chess.Move, aggression: int) -> int:
        tags = tag_move(board, move)
        tactical = sum(_TACTICAL_TAGS.get(t, 0) for t in tags)
        positional = sum(_POSITIONAL_TAGS.get(t, 0) for t in tags)
        if board.is_capture(move):
            victim = board.piece_at(move.to_square)
            tactical += _CAPTURE_VALUES[victim.piece_type] if victim else 1
        if board.gives_check(move):
            tactical += 1
        return aggression * tactical + (10 - aggression) * positional - 10 * _hangs(board, move)

    async def suggest_moves(self, position: str, persona: Persona, top_k: int) -> list[str]:
        board = chess.Board(position)
        aggression = PERSONAS[persona].aggression_weight
        scored = [
            (self._score(board, move, aggression), index, move.uci())
            for index, move in enumerate(board.legal_moves)
        ]
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [uci for _, _, uci in scored[:top_k]]


# ---------------------------------------------------------------------------
# Local explanation service
# ---------------------------------------------------------------------------

_TAG_TEMPLATES = {
    "checkmate": "{move} delivers checkmate.",
    "back_rank": "{move} exploits the weak back rank for mate.",
    "double_attack": "{move} gives a double check, so only a king move saves the day.",
    "discovered_attack": "{move} uncovers an attack from a piece behind it.",
    "fork": "{move} attacks two valuable targets at once.",
    "pin": "{move} pins a piece that cannot move without exposing something bigger.",
    "pawn_promotion": "{move} promotes the pawn.",
    "passed_pawn": "{move} pushes a passed pawn with nothing to stop it on its file.",
    "king_activity": "{move} activates the king, a strong piece in the endgame.",
    "king_safety": "{move} tucks the king away safely.",
    "development": "{move} develops a piece toward the action.",
    "center_control": "{move} fights for the centre.",
    "open_file": "{move} puts a heavy piece on an open file.",
    "piece_activity": "{move} improves piece activity.",
}


class TemplateExplanationGateway:
    """Builds short coaching text from concept tags and the best move."""

    async def explain(self, request: ExplanationRequest) -> Explanation:
        board = chess.Board(request.position)
        try:
            move = chess.Move.from_uci(request.chosen_move)
            san = board.san(move) if move in board.legal_moves else request.chosen_move
        except (chess.InvalidMoveError, ValueError):
            move, san = None, request.chosen_move

        tags = [request.concept_tag]
        if move is not None and move in board.legal_moves:
            tags = list(dict.fromkeys([request.concept_tag] + tag_move(board, move)))

        template = _TAG_TEMPLATES.get(tags[0], _TAG_TEMPLATES["piece_activity"])
        text = template.format(move=san)

        if request.best_move and request.best_move != request.chosen_move:
            best_san = request.best_move
            try:
                best = chess.Move.from_uci(request.best_move)
                if best in board.legal_moves:
                    best_san = board.san(best)
            except (chess.InvalidMoveError, ValueError):
                pass
            if request.skill_rating < 1600:
                text += f" The engine preferred {best_san}; compare the two ideas."
            else:
                text += f" {best_san} was stronger."
        elif request.best_move:
            text += " That was the engine's top choice."

        return Explanation(text=text, concept_tags=tags)
