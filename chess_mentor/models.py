"""Shared data models for the Chess Mentor turn pipeline.

TurnPackage, MoveFeedback and MoveResponse are the contract between
the orchestration core and whatever transport serves it. Positions are
FEN strings and moves are UCI codes throughout. Evaluations are
centipawns from White's point of view.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from chess_mentor.personas import Persona


@dataclass
class Difficulty:
    """Opponent strength and how much help the player gets."""

    engine_strength: int
    hint_level: int


@dataclass
class PreviewMove:
    """One half-move of a previewed line."""

    move: str
    san: str


@dataclass
class MovePreview:
    """Tactical picture after a candidate move, for hover display."""

    move_from: str
    move_to: str
    newly_attacked: list[str] = field(default_factory=list)
    opponent_reply: PreviewMove | None = None
    follow_up: PreviewMove | None = None


@dataclass
class Choice:
    """A candidate move offered to the player, attributed to a persona."""

    id: str
    move: str
    persona: Persona
    plan_text: str
    principal_variation: list[str] = field(default_factory=list)
    eval_estimate: int = 0
    concept_tags: list[str] = field(default_factory=list)
    preview: MovePreview | None = None


@dataclass
class BestMove:
    move: str
    eval: int


@dataclass
class TurnPackage:
    """Everything the player needs to make one move."""

    game_id: str
    position: str
    side_to_move: str
    choices: list[Choice]
    best_move: BestMove
    difficulty: Difficulty
    time_budget_ms: int
    is_quick: bool = False


@dataclass
class OpponentMove:
    """A reply produced by the opponent generator."""

    move: str
    move_text: str
    persona: Persona
    justification: str
    source: str = "suggestion"


@dataclass
class MoveFeedback:
    """Quality feedback for the move the player just made.

    delta is oriented to the side that moved: positive means the move
    improved that side's evaluation.
    """

    eval_before: int
    eval_after: int
    delta: int
    explanation_text: str
    concept_tags: list[str] = field(default_factory=list)
    is_blunder: bool = False
    opponent_move: OpponentMove | None = None


@dataclass
class MoveRequest:
    move_code: str
    choice_id: str = ""
    skip_opponent_reply: bool = False
    opponent_move_code: str | None = None
    current_position: str | None = None


@dataclass
class MoveResponse:
    accepted: bool
    position: str
    feedback: MoveFeedback
    next_turn: TurnPackage | None = None
    game_over: bool = False
    result: str | None = None


@dataclass
class GameRecord:
    """Authoritative per-game state held by a position store."""

    game_id: str
    position: str
    rating: int
    current_turn: TurnPackage | None = None
    version: int = 1
    status: str = "active"
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


# ---------------------------------------------------------------------------
# Gateway payloads
# ---------------------------------------------------------------------------


@dataclass
class AnalysisResult:
    eval: int
    principal_variation: list[str] = field(default_factory=list)
    depth: int = 0


@dataclass
class ScoredMove:
    """A candidate move scored relative to the current position.

    eval_delta is from the perspective of the side to move.
    """

    move: str
    eval_delta: int
    principal_variation: list[str] = field(default_factory=list)


@dataclass
class ExplanationRequest:
    position: str
    chosen_move: str
    best_move: str
    principal_variation: list[str]
    concept_tag: str
    skill_rating: int


@dataclass
class Explanation:
    text: str
    concept_tags: list[str] = field(default_factory=list)
