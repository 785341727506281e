"""Tests for the HTTP clients and the local suggestion/explanation services."""

from __future__ import annotations

import json

import chess
import httpx
import pytest

from chess_mentor.errors import GatewayError
from chess_mentor.gateways import (
    HeuristicSuggestionGateway,
    HttpExplanationGateway,
    HttpSuggestionGateway,
    TemplateExplanationGateway,
)
from chess_mentor.models import ExplanationRequest
from chess_mentor.personas import Persona

from conftest import BACK_RANK_FEN


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="http://test", transport=httpx.MockTransport(handler))


def _explanation_request(**overrides) -> ExplanationRequest:
    fields = dict(
        position=chess.STARTING_FEN,
        chosen_move="e2e4",
        best_move="e2e4",
        principal_variation=["e2e4", "e7e5"],
        concept_tag="center_control",
        skill_rating=1200,
    )
    fields.update(overrides)
    return ExplanationRequest(**fields)


# ---------------------------------------------------------------------------
# HTTP suggestion client
# ---------------------------------------------------------------------------


class TestHttpSuggestionGateway:

    @pytest.mark.asyncio
    async def test_posts_wire_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"moves": ["e2e4", "d2d4", "g1f3"]})

        gateway = HttpSuggestionGateway("http://test", client=_client(handler))
        moves = await gateway.suggest_moves(chess.STARTING_FEN, Persona.TAL, 2)

        assert moves == ["e2e4", "d2d4"]
        assert seen["path"] == "/style/suggest"
        assert seen["body"] == {"fen": chess.STARTING_FEN, "styleId": "tal", "topK": 2}
        await gateway.close()

    @pytest.mark.asyncio
    async def test_server_error_raises_gateway_error(self):
        gateway = HttpSuggestionGateway(
            "http://test", client=_client(lambda request: httpx.Response(503))
        )
        with pytest.raises(GatewayError):
            await gateway.suggest_moves(chess.STARTING_FEN, Persona.TAL, 3)
        await gateway.close()

    @pytest.mark.asyncio
    async def test_malformed_payload_raises_gateway_error(self):
        gateway = HttpSuggestionGateway(
            "http://test",
            client=_client(lambda request: httpx.Response(200, json={"moves": "e2e4"})),
        )
        with pytest.raises(GatewayError):
            await gateway.suggest_moves(chess.STARTING_FEN, Persona.TAL, 3)
        await gateway.close()

    @pytest.mark.asyncio
    async def test_non_json_body_raises_gateway_error(self):
        gateway = HttpSuggestionGateway(
            "http://test",
            client=_client(lambda request: httpx.Response(200, text="<html>")),
        )
        with pytest.raises(GatewayError):
            await gateway.suggest_moves(chess.STARTING_FEN, Persona.TAL, 3)
        await gateway.close()


# ---------------------------------------------------------------------------
# HTTP explanation client
# ---------------------------------------------------------------------------


class TestHttpExplanationGateway:

    @pytest.mark.asyncio
    async def test_posts_wire_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"explanation": "Grabs the centre.", "conceptTags": ["center_control"]}
            )

        gateway = HttpExplanationGateway("http://test", client=_client(handler))
        explanation = await gateway.explain(_explanation_request())

        assert explanation.text == "Grabs the centre."
        assert explanation.concept_tags == ["center_control"]
        assert seen["path"] == "/coach/explain"
        assert seen["body"] == {
            "fen": chess.STARTING_FEN,
            "chosenMove": "e2e4",
            "bestMove": "e2e4",
            "pv": ["e2e4", "e7e5"],
            "conceptTag": "center_control",
            "userSkill": 1200,
        }
        await gateway.close()

    @pytest.mark.asyncio
    async def test_missing_tags_default_to_request_tag(self):
        gateway = HttpExplanationGateway(
            "http://test",
            client=_client(lambda request: httpx.Response(200, json={"explanation": "Fine."})),
        )
        explanation = await gateway.explain(_explanation_request(concept_tag="development"))
        assert explanation.concept_tags == ["development"]
        await gateway.close()

    @pytest.mark.asyncio
    async def test_missing_text_raises(self):
        gateway = HttpExplanationGateway(
            "http://test", client=_client(lambda request: httpx.Response(200, json={}))
        )
        with pytest.raises(GatewayError):
            await gateway.explain(_explanation_request())
        await gateway.close()


# ---------------------------------------------------------------------------
# Local implementations
# ---------------------------------------------------------------------------


class TestHeuristicSuggestionGateway:

    @pytest.mark.asyncio
    async def test_returns_top_k_legal_moves(self):
        moves = await HeuristicSuggestionGateway().suggest_moves(
            chess.STARTING_FEN, Persona.KARPOV, 5
        )
        legal = {m.uci() for m in chess.Board().legal_moves}
        assert len(moves) == 5
        assert set(moves) <= legal

    @pytest.mark.asyncio
    async def test_every_persona_finds_mate(self):
        gateway = HeuristicSuggestionGateway()
        for persona in (Persona.TAL, Persona.CAPABLANCA):
            moves = await gateway.suggest_moves(BACK_RANK_FEN, persona, 1)
            assert moves == ["a1a8"]

    @pytest.mark.asyncio
    async def test_deterministic(self):
        gateway = HeuristicSuggestionGateway()
        first = await gateway.suggest_moves(chess.STARTING_FEN, Persona.FISCHER, 3)
        second = await gateway.suggest_moves(chess.STARTING_FEN, Persona.FISCHER, 3)
        assert first == second


class TestTemplateExplanationGateway:

    @pytest.mark.asyncio
    async def test_best_move_praised(self):
        explanation = await TemplateExplanationGateway().explain(_explanation_request())
        assert explanation.text.startswith("e4")
        assert "top choice" in explanation.text
        assert explanation.concept_tags[0] == "center_control"

    @pytest.mark.asyncio
    async def test_beginner_gets_comparison(self):
        explanation = await TemplateExplanationGateway().explain(
            _explanation_request(chosen_move="g1f3", concept_tag="development", skill_rating=900)
        )
        assert "Nf3" in explanation.text
        assert "The engine preferred e4" in explanation.text

    @pytest.mark.asyncio
    async def test_strong_player_gets_terse_comparison(self):
        explanation = await TemplateExplanationGateway().explain(
            _explanation_request(chosen_move="g1f3", concept_tag="development", skill_rating=2000)
        )
        assert explanation.text.endswith("e4 was stronger.")
