"""Fallback city descriptions for the image generator.

When a choice carries no explicit ``visual_change`` the engine asks the image
generator to paint a description synthesised from the current state: size
tier from population, landmark clauses for strong stats, the choice just made
and the last few decisions.
"""

from __future__ import annotations

from game.state import Civilization, GameState

CIVILIZATION_CONTEXT: dict[Civilization, str] = {
    Civilization.ROME: "Ancient Roman",
    Civilization.INDIA: "Ancient Indian",
    Civilization.EGYPT: "Ancient Egyptian",
}

# (exclusive population ceiling, tier name, clause); the last tier has no ceiling.
SETTLEMENT_TIERS: list[tuple[int | None, str, str]] = [
    (500, "village", "A small humble village with basic huts and farmland."),
    (2000, "town", "A growing town with stone buildings, a marketplace, and surrounding farms."),
    (10000, "city", "A thriving city with temples, walls, and bustling streets."),
    (None, "metropolis", "A grand metropolis with monumental architecture, large walls, and sprawling districts."),
]

# Stats at or above this level add a landmark clause.
LANDMARK_LEVEL = 4
LANDMARK_CLAUSES: list[tuple[str, str]] = [
    ("defense", "Strong fortifications and watchtowers surround the city."),
    ("culture", "Beautiful temples and monuments adorn the skyline."),
    ("gold", "A wealthy trading hub with ornate buildings and a large marketplace."),
    ("food", "Lush farmlands and granaries surround the settlement."),
]

RECENT_HISTORY_LENGTH = 3


def format_year(year: int) -> str:
    """Render an in-game year, e.g. ``-1000`` -> ``'1000 BCE'``."""
    if year < 0:
        return f"{abs(year)} BCE"
    return f"{year} CE"


def settlement_tier(population: int) -> tuple[str, str]:
    """Return ``(tier name, descriptive clause)`` for a population."""
    for ceiling, name, clause in SETTLEMENT_TIERS:
        if ceiling is None or population < ceiling:
            return name, clause
    raise AssertionError("unreachable: last tier has no ceiling")


def build_city_description(state: GameState, choice_label: str | None = None) -> str:
    stats = state.stats
    civ_name = CIVILIZATION_CONTEXT[state.civilization]
    parts = [
        f"A {civ_name} city settlement in {format_year(state.year)} "
        f"with approximately {stats.population} inhabitants."
    ]

    parts.append(settlement_tier(stats.population)[1])

    for stat, clause in LANDMARK_CLAUSES:
        if getattr(stats, stat) >= LANDMARK_LEVEL:
            parts.append(clause)

    if choice_label:
        parts.append(f"The city has recently undergone changes: {choice_label}.")

    recent = state.history[-RECENT_HISTORY_LENGTH:]
    if recent:
        parts.append("Recent history: " + "; ".join(h.choice_label for h in recent) + ".")

    return " ".join(parts)
