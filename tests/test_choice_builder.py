"""Tests for ChoiceBuilder: three distinct, legal, persona-attributed choices."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock

import chess
import pytest

from chess_mentor.choice_builder import (
    ChoiceBuilder,
    _enhance_plan,
    build_preview,
    legal_move_codes,
    simple_line,
)
from chess_mentor.errors import NoLegalMovesError
from chess_mentor.gateways import HeuristicSuggestionGateway
from chess_mentor.models import AnalysisResult, Difficulty
from chess_mentor.personas import PERSONAS, personas_for_turn

from conftest import (
    EXTRA_QUEEN_FEN,
    ONE_MOVE_FEN,
    STALEMATE_FEN,
    FailingSuggestions,
    ScriptedAnalysis,
    SlowSuggestions,
    StaticSuggestions,
)

_DIFFICULTY = Difficulty(engine_strength=1300, hint_level=1)


def _builder(analysis=None, suggestions=None, timeout=0.05) -> ChoiceBuilder:
    return ChoiceBuilder(
        analysis or ScriptedAnalysis(),
        suggestions or HeuristicSuggestionGateway(),
        suggestion_timeout=timeout,
    )


# ---------------------------------------------------------------------------
# Choice set shape
# ---------------------------------------------------------------------------


class TestChoiceSet:

    @pytest.mark.asyncio
    async def test_three_distinct_legal_choices(self):
        choices = await _builder().build_choices(chess.STARTING_FEN, _DIFFICULTY)

        legal = set(legal_move_codes(chess.Board()))
        assert [c.id for c in choices] == ["A", "B", "C"]
        assert len({c.move for c in choices}) == 3
        assert all(c.move in legal for c in choices)

    @pytest.mark.asyncio
    async def test_personas_follow_the_turn_rotation(self):
        choices = await _builder().build_choices(chess.STARTING_FEN, _DIFFICULTY, turn_number=5)
        assert tuple(c.persona for c in choices) == personas_for_turn(5)

    @pytest.mark.asyncio
    async def test_plan_text_comes_from_persona_pool(self):
        choices = await _builder().build_choices(chess.STARTING_FEN, _DIFFICULTY)
        for choice in choices:
            assert choice.plan_text in PERSONAS[choice.persona].plan_pool
            assert choice.concept_tags

    @pytest.mark.asyncio
    async def test_fewer_legal_moves_than_slots(self):
        choices = await _builder().build_choices(ONE_MOVE_FEN, _DIFFICULTY)
        assert [c.move for c in choices] == ["a1b2"]

    @pytest.mark.asyncio
    async def test_no_legal_moves_raises(self):
        with pytest.raises(NoLegalMovesError):
            await _builder().build_choices(STALEMATE_FEN, _DIFFICULTY)


# ---------------------------------------------------------------------------
# Move assignment
# ---------------------------------------------------------------------------


class TestAssignment:

    @pytest.mark.asyncio
    async def test_slot_a_takes_analysis_best_move(self):
        analysis = ScriptedAnalysis()
        analysis.analyze = AsyncMock(
            return_value=AnalysisResult(eval=25, principal_variation=["d2d4", "d7d5"])
        )
        suggestions = StaticSuggestions(["d2d4", "c2c4", "g1f3"])

        choices = await _builder(analysis, suggestions).build_choices(
            chess.STARTING_FEN, _DIFFICULTY
        )

        assert choices[0].move == "d2d4"
        assert choices[0].eval_estimate == 25
        # Later slots skip the move already used.
        assert choices[1].move == "c2c4"
        assert choices[2].move == "g1f3"

    @pytest.mark.asyncio
    async def test_illegal_suggestions_are_filtered(self):
        suggestions = StaticSuggestions(["e2e5", "a1a8", "zzzz"])
        choices = await _builder(suggestions=suggestions).build_choices(
            chess.STARTING_FEN, _DIFFICULTY
        )
        legal = set(legal_move_codes(chess.Board()))
        assert all(c.move in legal for c in choices)

    @pytest.mark.asyncio
    async def test_all_suggestions_time_out(self):
        slow = SlowSuggestions(delay=5.0)
        started = time.perf_counter()

        choices = await _builder(suggestions=slow, timeout=0.05).build_choices(
            chess.STARTING_FEN, _DIFFICULTY
        )

        assert len(choices) == 3
        assert len({c.move for c in choices}) == 3
        assert time.perf_counter() - started < 2.0
        # Losing calls are cancelled, not left running.
        assert slow.cancelled == 3

    @pytest.mark.asyncio
    async def test_all_suggestions_fail(self):
        choices = await _builder(suggestions=FailingSuggestions()).build_choices(
            chess.STARTING_FEN, _DIFFICULTY
        )
        assert len(choices) == 3

    @pytest.mark.asyncio
    async def test_analysis_failure_propagates(self):
        analysis = ScriptedAnalysis(fail_on={chess.STARTING_FEN})
        with pytest.raises(RuntimeError):
            await _builder(analysis).build_choices(chess.STARTING_FEN, _DIFFICULTY)


# ---------------------------------------------------------------------------
# Evaluations and previews
# ---------------------------------------------------------------------------


class TestEvalEstimates:

    @pytest.mark.asyncio
    async def test_extra_queen_best_choice_is_positive(self):
        choices = await _builder().build_choices(EXTRA_QUEEN_FEN, _DIFFICULTY)
        assert choices[0].eval_estimate > 500

    @pytest.mark.asyncio
    async def test_score_moves_failure_uses_local_lines(self):
        analysis = ScriptedAnalysis()
        analysis.score_moves = AsyncMock(side_effect=RuntimeError("engine down"))

        choices = await _builder(analysis).build_choices(chess.STARTING_FEN, _DIFFICULTY)

        best_eval = choices[0].eval_estimate
        for choice in choices[1:]:
            assert choice.principal_variation[0] == choice.move
            assert choice.eval_estimate == best_eval - 30

    @pytest.mark.asyncio
    async def test_penalty_is_from_black_point_of_view(self):
        analysis = ScriptedAnalysis()
        analysis.score_moves = AsyncMock(return_value=[])
        black_to_move = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"

        choices = await _builder(analysis).build_choices(black_to_move, _DIFFICULTY)

        for choice in choices[1:]:
            assert choice.eval_estimate == choices[0].eval_estimate + 30


class TestPreview:

    def test_preview_from_line(self):
        preview = build_preview(chess.STARTING_FEN, "e2e4", ["e2e4", "e7e5", "g1f3"])
        assert preview.move_from == "e2"
        assert preview.move_to == "e4"
        assert "d5" in preview.newly_attacked
        assert preview.opponent_reply.san == "e5"
        assert preview.follow_up.san == "Nf3"

    def test_preview_ignores_illegal_line(self):
        preview = build_preview(chess.STARTING_FEN, "e2e4", ["e2e4", "e2e4"])
        assert preview.opponent_reply is None
        assert preview.follow_up is None

    def test_simple_line_starts_with_move(self):
        line = simple_line(chess.STARTING_FEN, "g1f3")
        assert line[0] == "g1f3"
        assert len(line) == 3


class TestPlanHints:

    def test_hint_levels(self):
        assert _enhance_plan("Attack", 1, "e2e4") == "Attack"
        assert _enhance_plan("Attack", 2, "e2e4").startswith("Attack (")
        assert "e2 to e4" in _enhance_plan("Attack", 3, "e2e4")
