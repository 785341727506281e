"""Strategic personas used to diversify choices and the opponent's play.

Each persona is an enum member mapped to a PersonaProfile holding its
display data, the plan and justification pools it draws text from, and
an aggression weight used when ranking moves locally.
"""

from __future__ import annotations

import enum
import random
from dataclasses import dataclass


class Persona(str, enum.Enum):
    FISCHER = "fischer"
    TAL = "tal"
    CAPABLANCA = "capablanca"
    KARPOV = "karpov"
    HUMAN_LIKE = "human_like"


@dataclass(frozen=True)
class PersonaProfile:
    display_name: str
    nickname: str
    description: str
    plan_pool: tuple[str, ...]
    justification_pool: tuple[str, ...]
    aggression_weight: int


PERSONAS: dict[Persona, PersonaProfile] = {
    Persona.FISCHER: PersonaProfile(
        display_name="Bobby Fischer",
        nickname="The Perfectionist",
        description="Precise, objective play seeking the best move",
        plan_pool=(
            "Find the best move",
            "Maintain precision",
            "Punish inaccuracies",
            "Calculate concretely",
            "Exploit weaknesses objectively",
        ),
        justification_pool=(
            "Playing the most precise move.",
            "Following opening principles strictly.",
            "Maintaining the initiative.",
        ),
        aggression_weight=7,
    ),
    Persona.TAL: PersonaProfile(
        display_name="Mikhail Tal",
        nickname="The Magician",
        description="Aggressive, tactical play with sacrifices",
        plan_pool=(
            "Create complications",
            "Attack the king",
            "Sacrifice for initiative",
            "Generate tactical chaos",
            "Seize the initiative",
        ),
        justification_pool=(
            "Creating complications and attacking chances.",
            "Sacrificing material for initiative.",
            "Keeping the position sharp and tactical.",
        ),
        aggression_weight=10,
    ),
    Persona.CAPABLANCA: PersonaProfile(
        display_name="José Raúl Capablanca",
        nickname="The Chess Machine",
        description="Simple, technical play aiming for the endgame",
        plan_pool=(
            "Simplify and outplay",
            "Build endgame edge",
            "Solid technique",
            "Improve piece placement",
            "Accumulate small advantages",
        ),
        justification_pool=(
            "Simplifying toward a favorable endgame.",
            "Improving piece coordination.",
            "Controlling key squares.",
        ),
        aggression_weight=4,
    ),
    Persona.KARPOV: PersonaProfile(
        display_name="Anatoly Karpov",
        nickname="The Constrictor",
        description="Prophylactic play, restricting the opponent",
        plan_pool=(
            "Restrict counterplay",
            "Accumulate advantages",
            "Prophylactic play",
            "Improve worst piece",
            "Squeeze the position",
        ),
        justification_pool=(
            "Restricting your options while improving my position.",
            "Building pressure methodically.",
            "Accumulating small advantages.",
        ),
        aggression_weight=5,
    ),
    Persona.HUMAN_LIKE: PersonaProfile(
        display_name="Human-like",
        nickname="Like You",
        description="Natural, intuitive moves a club player would choose",
        plan_pool=(
            "Play the natural move",
            "Develop and stay solid",
            "Trust your intuition",
        ),
        justification_pool=(
            "This felt like the natural move.",
            "Developing my pieces naturally.",
            "A solid, intuitive choice.",
        ),
        aggression_weight=5,
    ),
}

# Three personas per turn, rotated so consecutive turns differ.
TURN_PERSONAS: tuple[tuple[Persona, Persona, Persona], ...] = (
    (Persona.FISCHER, Persona.TAL, Persona.CAPABLANCA),
    (Persona.KARPOV, Persona.FISCHER, Persona.TAL),
    (Persona.CAPABLANCA, Persona.KARPOV, Persona.FISCHER),
    (Persona.TAL, Persona.CAPABLANCA, Persona.KARPOV),
)

OPPONENT_PERSONAS: tuple[Persona, ...] = (
    Persona.TAL,
    Persona.KARPOV,
    Persona.CAPABLANCA,
    Persona.FISCHER,
)


def profile(persona: Persona) -> PersonaProfile:
    """Return the profile for a persona."""
    return PERSONAS[persona]


def personas_for_turn(turn_number: int) -> tuple[Persona, Persona, Persona]:
    """Return the persona trio for a turn number.

    Deterministic: the same turn number always yields the same trio.
    """
    return TURN_PERSONAS[turn_number % len(TURN_PERSONAS)]


def random_plan(persona: Persona) -> str:
    return random.choice(PERSONAS[persona].plan_pool)


def random_justification(persona: Persona) -> str:
    return random.choice(PERSONAS[persona].justification_pool)
