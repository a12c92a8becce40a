"""Resource model — bounded arithmetic for the city's stats.

Gold, food, defense and culture live on a 0–5 scale and are clamped after
every change.  Population has no upper bound, but a single setback can only
remove a limited share of it: the loss is capped at
``max(50, ceil(population * 0.15))`` so one bad event cannot wipe out a
thriving city, while small settlements stay volatile.

Every function here is pure.
"""

from __future__ import annotations

import math
from typing import Mapping

from game.state import RESOURCE_MAX, RESOURCE_MIN, RESOURCE_STATS, STAT_NAMES, Stats

MAX_POPULATION_LOSS_FRACTION = 0.15
MIN_POPULATION_LOSS_CAP = 50


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def population_loss_cap(population: int) -> int:
    """Largest number of people a single choice may remove."""
    return max(MIN_POPULATION_LOSS_CAP, math.ceil(population * MAX_POPULATION_LOSS_FRACTION))


def apply_population_change(population: int, delta: int) -> int:
    if delta >= 0:
        return population + delta
    loss = min(abs(delta), population_loss_cap(population))
    return max(0, population - loss)


def apply_effects(stats: Stats, effects: Mapping[str, int]) -> Stats:
    """Return ``stats`` with a choice's sparse ``effects`` applied.

    Missing keys count as zero and unknown keys are ignored.  The population
    cap truncates oversized losses silently; the narrative that accompanies a
    choice is not adjusted to match.
    """
    values = {
        key: clamp(getattr(stats, key) + (effects.get(key) or 0), RESOURCE_MIN, RESOURCE_MAX)
        for key in RESOURCE_STATS
    }
    values["population"] = apply_population_change(stats.population, effects.get("population") or 0)
    return Stats(**values)


def stat_deltas(before: Stats, after: Stats) -> dict[str, int] | None:
    """Return ``after - before`` for the stats that changed, or None if none did."""
    deltas = {
        key: getattr(after, key) - getattr(before, key)
        for key in STAT_NAMES
        if getattr(after, key) != getattr(before, key)
    }
    return deltas or None
