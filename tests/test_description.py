"""Tests for game.description — fallback image prompts and year formatting."""

from __future__ import annotations

import pytest

from game.description import build_city_description, format_year, settlement_tier
from game.state import Civilization, GameState, HistoryEntry, Stats


class TestFormatYear:
    @pytest.mark.parametrize(
        ("year", "expected"),
        [(-1000, "1000 BCE"), (-1, "1 BCE"), (0, "0 CE"), (476, "476 CE")],
    )
    def test_format(self, year: int, expected: str) -> None:
        assert format_year(year) == expected


class TestSettlementTier:
    @pytest.mark.parametrize(
        ("population", "tier"),
        [(0, "village"), (499, "village"), (500, "town"), (1999, "town"),
         (2000, "city"), (9999, "city"), (10000, "metropolis")],
    )
    def test_tiers(self, population: int, tier: str) -> None:
        assert settlement_tier(population)[0] == tier


class TestBuildCityDescription:
    def test_opening_sentence(self) -> None:
        state = GameState.new(Civilization.INDIA)
        text = build_city_description(state)
        assert text.startswith(
            "A Ancient Indian city settlement in 1000 BCE with approximately 1500 inhabitants. "
            "A growing town"
        )

    def test_landmarks_for_strong_stats(self) -> None:
        state = GameState(stats=Stats(population=300, gold=4, food=5, defense=4, culture=3))
        text = build_city_description(state)
        assert "fortifications" in text
        assert "trading hub" in text
        assert "farmlands" in text
        assert "temples and monuments" not in text

    def test_choice_and_recent_history(self) -> None:
        history = tuple(
            HistoryEntry(turn=i, year=-1000, event_title=f"E{i}", choice_label=f"Choice {i}")
            for i in range(4)
        )
        state = GameState(history=history)
        text = build_city_description(state, choice_label="Raise walls")
        assert "The city has recently undergone changes: Raise walls." in text
        assert text.endswith("Recent history: Choice 1; Choice 2; Choice 3.")

    def test_no_history_clause_for_new_game(self) -> None:
        assert "Recent history" not in build_city_description(GameState())
