"""MCP server for Chess Mentor.

Exposes the turn pipeline as FastMCP tools: start a game, fetch the
current three-choice turn, submit a move and inspect the game record.
Collaborators are configured from CHESS_MENTOR_* environment variables.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import asdict
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP  # noqa: E402

from chess_mentor.errors import ChessMentorError, GameNotFoundError, NoLegalMovesError  # noqa: E402
from chess_mentor.models import MoveRequest  # noqa: E402
from chess_mentor.service import GameService  # noqa: E402

from response_schemas import (  # noqa: E402
    GAME_RECORD_SCHEMA,
    MOVE_RESPONSE_SCHEMA,
    TURN_SCHEMA,
    minify_game_record,
    minify_move_response,
    minify_turn,
    validate_response,
)

logger = logging.getLogger(__name__)

mcp = FastMCP("chess-mentor")

_service: GameService | None = None


def _get_service() -> GameService:
    """Return the process-wide service, creating it on first use."""
    global _service
    if _service is None:
        _service = GameService()
    return _service


def _checked(response: dict, schema: dict) -> dict:
    """Log schema violations (only when CHESS_MENTOR_VALIDATE=1)."""
    for error in validate_response(response, schema):
        logger.warning("Response schema violation: %s", error)
    return response


# ---------------------------------------------------------------------------
# Game tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def new_game(rating: int = 1200) -> dict:
    """Start a new game from the initial position.

    The first turn starts building in the background.

    Args:
        rating: Player rating; sets opponent strength and hint level.

    Returns:
        Dict with the new game_id and the starting position.
    """
    service = _get_service()
    try:
        game_id = await service.create_game(rating)
        record = await service.get_game(game_id)
    except ChessMentorError as exc:
        return {"error": str(exc)}
    return _checked(minify_game_record(asdict(record)), GAME_RECORD_SCHEMA)


@mcp.tool()
async def get_turn(game_id: str) -> dict:
    """Get the three move choices for the player's current turn.

    Args:
        game_id: UUID of the game.

    Returns:
        Minified TurnPackage dict.
    """
    try:
        turn = await _get_service().get_turn(game_id)
    except GameNotFoundError:
        return {"error": f"Game not found: {game_id}"}
    except NoLegalMovesError:
        return {"error": "Game is already over."}
    except ChessMentorError as exc:
        return {"error": str(exc)}
    return _checked(minify_turn(asdict(turn)), TURN_SCHEMA)


@mcp.tool()
async def submit_move(
    game_id: str,
    move: str,
    choice_id: str = "",
    skip_opponent_reply: bool = False,
    opponent_move: str | None = None,
    current_position: str | None = None,
) -> dict:
    """Submit the player's move and get feedback plus the next turn.

    Args:
        game_id: UUID of the game.
        move: Move in UCI notation (e.g., 'e2e4', 'e7e8q').
        choice_id: Id of the chosen choice ('A', 'B' or 'C'), if any.
        skip_opponent_reply: Do not generate an opponent reply.
        opponent_move: Opponent reply in UCI supplied by the caller.
        current_position: FEN the player saw; a mismatch rejects the move.

    Returns:
        Minified MoveResponse dict.
    """
    request = MoveRequest(
        move_code=move,
        choice_id=choice_id,
        skip_opponent_reply=skip_opponent_reply,
        opponent_move_code=opponent_move,
        current_position=current_position,
    )
    try:
        response = await _get_service().submit_move(game_id, request)
    except GameNotFoundError:
        return {"error": f"Game not found: {game_id}"}
    except ChessMentorError as exc:
        return {"error": str(exc)}
    return _checked(minify_move_response(asdict(response)), MOVE_RESPONSE_SCHEMA)


@mcp.tool()
async def get_game(game_id: str) -> dict:
    """Get the stored game record.

    Args:
        game_id: UUID of the game.

    Returns:
        Dict with position, rating, version and status.
    """
    try:
        record = await _get_service().get_game(game_id)
    except GameNotFoundError:
        return {"error": f"Game not found: {game_id}"}
    return _checked(minify_game_record(asdict(record)), GAME_RECORD_SCHEMA)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    mcp.run()
