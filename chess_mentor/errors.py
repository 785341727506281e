"""Exception hierarchy for Chess Mentor.

Illegal player moves are not errors: they come back as a rejected
MoveResponse. Everything here is raised.
"""

from __future__ import annotations

__all__ = [
    "ChessMentorError",
    "ConcurrentMoveError",
    "GameNotFoundError",
    "GatewayError",
    "NoLegalMovesError",
    "VersionConflictError",
]


class ChessMentorError(Exception):
    """Base class for all Chess Mentor errors."""


class GameNotFoundError(ChessMentorError):
    def __init__(self, game_id: str) -> None:
        super().__init__(f"Game not found: {game_id}")
        self.game_id = game_id


class NoLegalMovesError(ChessMentorError):
    def __init__(self, position: str) -> None:
        super().__init__(f"No legal moves available: {position}")
        self.position = position


class VersionConflictError(ChessMentorError):
    """A write was conditioned on a version that is no longer current."""

    def __init__(self, game_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Version conflict for game {game_id}: "
            f"expected {expected}, found {actual}"
        )
        self.game_id = game_id
        self.expected = expected
        self.actual = actual


class ConcurrentMoveError(ChessMentorError):
    """Another writer changed the position while a move was in flight."""


class GatewayError(ChessMentorError):
    """A remote collaborator returned an error or an unusable payload."""
