"""Runtime configuration read from CHESS_MENTOR_* environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

_ENV_PREFIX = "CHESS_MENTOR_"


def _env_str(name: str, default: str | None) -> str | None:
    value = os.environ.get(_ENV_PREFIX + name)
    if value is None or value == "":
        return default
    return value


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(_ENV_PREFIX + name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{_ENV_PREFIX}{name} must be a number, got {value!r}") from exc


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


@dataclass(frozen=True)
class Settings:
    """Service settings.

    Remote service URLs are optional: when unset the service uses the
    local suggestion and explanation implementations.
    """

    suggestion_url: str | None = None
    explanation_url: str | None = None
    stockfish_path: str | None = None
    db_path: str | None = None

    suggestion_timeout: float = 0.7
    opponent_suggestion_timeout: float = 2.0
    next_turn_timeout: float = 8.0
    http_timeout: float = 10.0

    suggestion_top_k: int = 5
    choice_analysis_depth: int = 10
    move_analysis_depth: int = 10
    turn_analysis_depth: int = 12
    opponent_analysis_depth: int = 6

    cache_ttl_seconds: float = 300.0
    cache_capacity: int = 100
    default_rating: int = 1200
    write_retries: int = 3

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment, falling back to defaults."""
        defaults = cls()
        return cls(
            suggestion_url=_env_str("SUGGESTION_URL", defaults.suggestion_url),
            explanation_url=_env_str("EXPLANATION_URL", defaults.explanation_url),
            stockfish_path=_env_str("STOCKFISH_PATH", defaults.stockfish_path),
            db_path=_env_str("DB_PATH", defaults.db_path),
            suggestion_timeout=_env_float("SUGGESTION_TIMEOUT", defaults.suggestion_timeout),
            opponent_suggestion_timeout=_env_float(
                "OPPONENT_SUGGESTION_TIMEOUT", defaults.opponent_suggestion_timeout
            ),
            next_turn_timeout=_env_float("NEXT_TURN_TIMEOUT", defaults.next_turn_timeout),
            http_timeout=_env_float("HTTP_TIMEOUT", defaults.http_timeout),
            suggestion_top_k=_env_int("SUGGESTION_TOP_K", defaults.suggestion_top_k),
            choice_analysis_depth=_env_int(
                "CHOICE_ANALYSIS_DEPTH", defaults.choice_analysis_depth
            ),
            move_analysis_depth=_env_int("MOVE_ANALYSIS_DEPTH", defaults.move_analysis_depth),
            turn_analysis_depth=_env_int("TURN_ANALYSIS_DEPTH", defaults.turn_analysis_depth),
            opponent_analysis_depth=_env_int(
                "OPPONENT_ANALYSIS_DEPTH", defaults.opponent_analysis_depth
            ),
            cache_ttl_seconds=_env_float("CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
            cache_capacity=_env_int("CACHE_CAPACITY", defaults.cache_capacity),
            default_rating=_env_int("DEFAULT_RATING", defaults.default_rating),
            write_retries=_env_int("WRITE_RETRIES", defaults.write_retries),
        )
