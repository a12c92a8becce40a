"""Read-only timeline over a game's history, used for scrubbing.

Index ``i`` in ``[0, len(history))`` previews the city as it looked before
turn ``history[i].turn`` resolved; index ``len(history)`` is the present.
Nothing here ever touches a ``GameState``.
"""

from __future__ import annotations

import math
from typing import Sequence

from game.state import HistoryEntry


class _Present:
    """Sentinel for "the live game state" at the end of the timeline."""

    _instance: _Present | None = None

    def __new__(cls) -> _Present:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PRESENT"

    def __bool__(self) -> bool:
        return False


PRESENT = _Present()


def scrub(history: Sequence[HistoryEntry], index: int) -> HistoryEntry | _Present:
    """Return the entry at ``index``, or ``PRESENT`` for ``index == len(history)``."""
    if index == len(history):
        return PRESENT
    if 0 <= index < len(history):
        return history[index]
    raise IndexError(f"timeline index {index} outside 0..{len(history)}")


def index_for_fraction(fraction: float, length: int) -> int:
    """Map a drag position in [0, 1] onto the ``length + 1`` timeline steps."""
    steps = length + 1
    fraction = max(0.0, min(1.0, fraction))
    return min(math.floor(fraction * steps), steps - 1)


class HistoryScrubber:
    """A cursor over a fixed history snapshot.

    The cursor starts at the present.  ``step`` moves it one entry at a time,
    ``drag`` follows a continuous gesture and ``release`` snaps back to the
    present, the way the timeline does when the pointer is lifted.
    """

    def __init__(self, history: Sequence[HistoryEntry]) -> None:
        self._history = tuple(history)
        self._index = len(self._history)

    @property
    def length(self) -> int:
        return len(self._history)

    @property
    def index(self) -> int:
        return self._index

    @property
    def is_present(self) -> bool:
        return self._index == len(self._history)

    @property
    def entry(self) -> HistoryEntry | None:
        """The previewed entry, or None while at the present."""
        found = scrub(self._history, self._index)
        return None if found is PRESENT else found

    def seek(self, index: int) -> HistoryEntry | None:
        self._index = max(0, min(len(self._history), index))
        return self.entry

    def step(self, delta: int) -> HistoryEntry | None:
        return self.seek(self._index + delta)

    def drag(self, fraction: float) -> HistoryEntry | None:
        return self.seek(index_for_fraction(fraction, len(self._history)))

    def release(self) -> None:
        self._index = len(self._history)
