"""Difficulty scaling from player rating.

Pure functions: rating -> opponent strength and hint level, and
difficulty + move number -> suggested thinking time.
"""

from __future__ import annotations

from chess_mentor.models import Difficulty

_MIN_ENGINE_STRENGTH = 800
_MAX_ENGINE_STRENGTH = 3000
_STRENGTH_OFFSET = 100

# (exclusive move-number bound, base milliseconds)
_PHASE_BUDGETS_MS = [
    (20, 30000),
    (40, 20000),
]
_LATE_BUDGET_MS = 15000


def calculate_difficulty(rating: int) -> Difficulty:
    """Map a player rating to engine strength and hint level.

    Hint levels: 3 = obvious, 2 = moderate, 1 = minimal. Lower rated
    players get more help.

    Args:
        rating: Player rating (Elo-like).

    Returns:
        Difficulty with engine_strength clamped to 800-3000.
    """
    engine_strength = min(
        _MAX_ENGINE_STRENGTH,
        max(_MIN_ENGINE_STRENGTH, rating + _STRENGTH_OFFSET),
    )
    if rating < 1200:
        hint_level = 3
    elif rating < 1600:
        hint_level = 2
    else:
        hint_level = 1
    return Difficulty(engine_strength=engine_strength, hint_level=hint_level)


def calculate_time_budget(difficulty: Difficulty, move_number: int) -> int:
    """Suggested time for a move in milliseconds.

    Opening moves get more time than endgame moves; more hints mean a
    little more time to read them.

    Args:
        difficulty: Current difficulty settings.
        move_number: Full-move number of the position.

    Returns:
        Time budget in milliseconds.
    """
    base = _LATE_BUDGET_MS
    for bound, budget in _PHASE_BUDGETS_MS:
        if move_number < bound:
            base = budget
            break
    return round(base * (1 + 0.1 * difficulty.hint_level))
