"""Shared test fixtures with dual-mode support (local gateways vs real Stockfish).

Usage:
    pytest tests/                  # Fast, engine-free gateways
    pytest tests/ --e2e            # Real Stockfish for integration tests

Fixtures:
    material_analysis  - Engine-free analysis gateway (material count).
    fast_settings      - Settings with short timeouts for tests.
    service            - GameService wired with local collaborators.
    enable_validation  - Sets CHESS_MENTOR_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import asyncio
import os

import pytest

from chess_mentor.config import Settings
from chess_mentor.engine import MaterialAnalysisGateway
from chess_mentor.errors import GatewayError
from chess_mentor.gateways import HeuristicSuggestionGateway, TemplateExplanationGateway
from chess_mentor.models import AnalysisResult, Explanation, ExplanationRequest
from chess_mentor.personas import Persona
from chess_mentor.store import InMemoryGameStore
from chess_mentor.service import GameService

# White has an extra queen; White to move.
EXTRA_QUEEN_FEN = "4k3/8/8/8/8/8/4P3/3QK2Q w - - 0 1"
# Black king on g8 boxed in by its own pawns; Ra8 is mate.
BACK_RANK_FEN = "6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1"
# White king on a1 whose only legal move is Kxb2.
ONE_MOVE_FEN = "k7/8/8/8/8/8/1r6/K7 w - - 0 1"
# White to move and stalemated.
STALEMATE_FEN = "k7/8/8/8/8/8/2q5/K7 w - - 0 1"


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for real Stockfish tests."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run with real Stockfish engine (no mocks).",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (requires real Stockfish)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip e2e tests unless --e2e is passed."""
    if config.getoption("--e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="needs --e2e and a Stockfish binary")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class ScriptedAnalysis(MaterialAnalysisGateway):
    """Material analysis with per-position overrides and call counting.

    evals maps FEN -> White-POV eval; positions not listed fall back to
    material. fail_on makes analyze raise for the listed FENs.
    """

    def __init__(self, evals: dict[str, int] | None = None, fail_on: set[str] | None = None):
        super().__init__()
        self.evals = evals or {}
        self.fail_on = fail_on or set()
        self.analyze_calls: list[str] = []

    async def analyze(self, position: str, depth: int = 1) -> AnalysisResult:
        self.analyze_calls.append(position)
        if position in self.fail_on:
            raise RuntimeError(f"analysis failed for {position}")
        result = await super().analyze(position, depth)
        if position in self.evals:
            result.eval = self.evals[position]
        return result


class StaticSuggestions:
    """Returns the same list for every persona."""

    def __init__(self, moves: list[str]):
        self.moves = moves
        self.calls: list[Persona] = []

    async def suggest_moves(self, position: str, persona: Persona, top_k: int) -> list[str]:
        self.calls.append(persona)
        return self.moves[:top_k]


class SlowSuggestions:
    """Sleeps past any sensible deadline; records cancellations."""

    def __init__(self, delay: float = 5.0):
        self.delay = delay
        self.cancelled = 0

    async def suggest_moves(self, position: str, persona: Persona, top_k: int) -> list[str]:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return []


class FailingSuggestions:
    async def suggest_moves(self, position: str, persona: Persona, top_k: int) -> list[str]:
        raise GatewayError("suggestion service unavailable")


class FailingExplanations:
    async def explain(self, request: ExplanationRequest) -> Explanation:
        raise GatewayError("explanation service unavailable")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def material_analysis():
    return MaterialAnalysisGateway()


@pytest.fixture()
def fast_settings():
    return Settings(
        suggestion_timeout=0.05,
        opponent_suggestion_timeout=0.05,
        next_turn_timeout=2.0,
    )


@pytest.fixture()
def store():
    return InMemoryGameStore()


@pytest.fixture()
def service(fast_settings, store):
    """GameService with engine-free collaborators."""
    return GameService(
        settings=fast_settings,
        analysis=ScriptedAnalysis(),
        suggestions=HeuristicSuggestionGateway(),
        explanations=TemplateExplanationGateway(),
        store=store,
    )


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set CHESS_MENTOR_VALIDATE=1 for the test session.

    Restores the original env var value after the test.
    """
    original = os.environ.get("CHESS_MENTOR_VALIDATE")
    os.environ["CHESS_MENTOR_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("CHESS_MENTOR_VALIDATE", None)
    else:
        os.environ["CHESS_MENTOR_VALIDATE"] = original
