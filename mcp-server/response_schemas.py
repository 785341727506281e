"""Response schemas and minification for MCP tool responses.

Minifies turn packages and move responses before they go back to the
LLM client. Principal variations are truncated and the difficulty is
flattened into the turn.
"""

from __future__ import annotations

import os

_PV_LIMIT = 4


def _plain(value):
    """Enum members become their values; everything else passes through."""
    return getattr(value, "value", value)


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_choice(choice: dict) -> dict:
    """Minify one Choice dict.

    Keeps the move, persona and plan, truncates the principal variation
    and reduces the preview to the squares and SAN of the expected line.

    Args:
        choice: Choice dict (from dataclasses.asdict).

    Returns:
        Minified dict.
    """
    result = {
        key: choice.get(key)
        for key in ("id", "move", "persona", "plan_text", "eval_estimate", "concept_tags")
    }
    result["persona"] = _plain(result["persona"])

    pv = choice.get("principal_variation", [])
    result["principal_variation"] = pv[:_PV_LIMIT] if isinstance(pv, list) else pv

    preview = choice.get("preview")
    if isinstance(preview, dict):
        compact = {"newly_attacked": preview.get("newly_attacked", [])}
        for key in ("opponent_reply", "follow_up"):
            half_move = preview.get(key)
            if half_move is not None:
                compact[key] = half_move.get("san")
        result["preview"] = compact

    return result


def minify_turn(turn: dict) -> dict:
    """Minify a TurnPackage dict for MCP response.

    Args:
        turn: Full TurnPackage dict (from dataclasses.asdict).

    Returns:
        Minified dict with flattened difficulty and compact choices.
    """
    result = {}
    for key in ("game_id", "position", "side_to_move", "time_budget_ms", "is_quick"):
        if key in turn:
            result[key] = turn[key]

    best = turn.get("best_move") or {}
    result["best_move"] = best.get("move")
    result["best_eval"] = best.get("eval")

    difficulty = turn.get("difficulty") or {}
    result["engine_strength"] = difficulty.get("engine_strength")
    result["hint_level"] = difficulty.get("hint_level")

    result["choices"] = [minify_choice(c) for c in turn.get("choices", [])]
    return result


def minify_move_response(response: dict) -> dict:
    """Minify a MoveResponse dict for MCP response.

    The opponent move is reduced to SAN, persona and justification and
    omitted entirely when there was no reply.

    Args:
        response: Full MoveResponse dict (from dataclasses.asdict).

    Returns:
        Minified dict.
    """
    result = {
        key: response.get(key)
        for key in ("accepted", "position", "game_over", "result")
    }

    feedback = response.get("feedback") or {}
    compact = {
        key: feedback.get(key)
        for key in (
            "eval_before", "eval_after", "delta", "explanation_text",
            "concept_tags", "is_blunder",
        )
    }
    opponent = feedback.get("opponent_move")
    if opponent is not None:
        compact["opponent_move"] = {
            "move": opponent.get("move"),
            "move_text": opponent.get("move_text"),
            "persona": _plain(opponent.get("persona")),
            "justification": opponent.get("justification"),
        }
    result["feedback"] = compact

    next_turn = response.get("next_turn")
    result["next_turn"] = minify_turn(next_turn) if next_turn is not None else None
    return result


def minify_game_record(record: dict) -> dict:
    """Minify a GameRecord dict: the stored turn is summarised, not repeated."""
    result = {
        key: record.get(key)
        for key in ("game_id", "position", "rating", "version", "status", "created_at")
    }
    result["has_current_turn"] = record.get("current_turn") is not None
    return result


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

TURN_SCHEMA = {
    "game_id": str,
    "position": str,
    "side_to_move": str,
    "time_budget_ms": int,
    "is_quick": bool,
    "best_move": str,
    "best_eval": int,
    "engine_strength": int,
    "hint_level": int,
    "choices": list,
}

CHOICE_SCHEMA = {
    "id": str,
    "move": str,
    "persona": str,
    "plan_text": str,
    "eval_estimate": int,
    "concept_tags": list,
    "principal_variation": list,
}

MOVE_RESPONSE_SCHEMA = {
    "accepted": bool,
    "position": str,
    "game_over": bool,
    "result": (str, type(None)),
    "feedback": dict,
    "next_turn": (dict, type(None)),
}

FEEDBACK_SCHEMA = {
    "eval_before": int,
    "eval_after": int,
    "delta": int,
    "explanation_text": str,
    "concept_tags": list,
    "is_blunder": bool,
}

GAME_RECORD_SCHEMA = {
    "game_id": str,
    "position": str,
    "rating": int,
    "version": int,
    "status": str,
    "created_at": str,
    "has_current_turn": bool,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when CHESS_MENTOR_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("CHESS_MENTOR_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        else:
            if not isinstance(value, expected_types):
                errors.append(
                    f"Key '{key}': expected {expected_types.__name__}, "
                    f"got {type(value).__name__}"
                )

    return errors
