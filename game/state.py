"""Runtime game state — the single source of truth for one city's run.

``GameState`` is a frozen Pydantic model holding everything the turn machine
needs and everything that is persisted between sessions:

- Civilization, turn counter and in-game year (negative years are BCE)
- The five city stats
- Current and previous city images (base64 text + MIME type)
- The append-only history used for timeline scrubbing
- The pending event, the machine phase and the outcome narrative

Transitions never mutate a state in place; ``game.machine`` derives a new one
with ``model_copy``.  ``last_choice_stat_deltas`` is display-only and is
excluded from serialisation.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Enumerations ────────────────────────────────────────────────────────────


class Civilization(str, Enum):
    ROME = "rome"
    INDIA = "india"
    EGYPT = "egypt"


class Phase(str, Enum):
    LOADING = "loading"
    EVENT = "event"
    PROCESSING = "processing"
    OUTCOME = "outcome"
    IDLE = "idle"


# ── Constants ───────────────────────────────────────────────────────────────

STAT_NAMES = ("population", "gold", "food", "defense", "culture")
RESOURCE_STATS = ("gold", "food", "defense", "culture")
RESOURCE_MIN = 0
RESOURCE_MAX = 5

MAX_TURNS = 25
START_YEAR = -1000  # 1000 BCE

DEFAULT_YEAR_ADVANCE = 5
MIN_YEAR_ADVANCE = 3
MAX_YEAR_ADVANCE = 15

DEFAULT_MIME_TYPE = "image/png"

# Phases that only exist while a network call is in flight.
TRANSIENT_PHASES = frozenset({Phase.LOADING, Phase.PROCESSING})


# ── Stats ───────────────────────────────────────────────────────────────────


class Stats(BaseModel):
    model_config = ConfigDict(frozen=True)

    population: int = Field(1500, ge=0)
    gold: int = Field(3, ge=RESOURCE_MIN, le=RESOURCE_MAX)
    food: int = Field(3, ge=RESOURCE_MIN, le=RESOURCE_MAX)
    defense: int = Field(1, ge=RESOURCE_MIN, le=RESOURCE_MAX)
    culture: int = Field(1, ge=RESOURCE_MIN, le=RESOURCE_MAX)


INITIAL_STATS = Stats()


# ── Event ───────────────────────────────────────────────────────────────────


class Choice(BaseModel):
    """One option of a ``GameEvent``.  ``effects`` is sparse: absent stats are unchanged."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    label: str
    effects: dict[str, int] = Field(default_factory=dict)
    visual_change: str = Field("", alias="visualChange")
    outcome: str = ""

    @field_validator("effects", mode="before")
    @classmethod
    def _known_stats_only(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        return {k: v for k, v in value.items() if k in STAT_NAMES and v is not None}


class GameEvent(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    description: str
    visual_change: str = Field("", alias="visualChange")
    choices: tuple[Choice, ...] = Field(min_length=2)
    year_advance: int = Field(DEFAULT_YEAR_ADVANCE, alias="yearAdvance")

    @field_validator("year_advance", mode="before")
    @classmethod
    def _clamp_year_advance(cls, value: object) -> object:
        if value is None:
            return DEFAULT_YEAR_ADVANCE
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(max(MIN_YEAR_ADVANCE, min(MAX_YEAR_ADVANCE, value)))
        return value

    def find_choice(self, choice_id: str) -> Choice | None:
        """Return the choice with the given id, or None if the event has none."""
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


# ── Images & History ────────────────────────────────────────────────────────


class CityImage(BaseModel):
    """An encoded city picture: base64 ``data`` plus its MIME type."""

    model_config = ConfigDict(frozen=True)

    data: str
    mime_type: str = DEFAULT_MIME_TYPE


class HistoryEntry(BaseModel):
    """The city as it looked *before* a turn resolved."""

    model_config = ConfigDict(frozen=True)

    turn: int
    year: int
    event_title: str
    choice_label: str
    image: str | None = None
    image_mime_type: str = DEFAULT_MIME_TYPE


# ── Game State ──────────────────────────────────────────────────────────────


class GameState(BaseModel):
    model_config = ConfigDict(frozen=True)

    civilization: Civilization = Civilization.ROME
    turn: int = Field(0, ge=0)
    year: int = START_YEAR
    stats: Stats = INITIAL_STATS

    # Images
    current_image: str | None = None
    previous_image: str | None = None
    current_image_mime_type: str = DEFAULT_MIME_TYPE

    history: tuple[HistoryEntry, ...] = ()

    # Turn machine
    current_event: GameEvent | None = None
    phase: Phase = Phase.LOADING
    outcome_text: str | None = None
    game_over: bool = False

    # Deltas from the last choice, for the outcome screen only
    last_choice_stat_deltas: dict[str, int] | None = Field(default=None, exclude=True)

    @classmethod
    def new(cls, civilization: Civilization = Civilization.ROME) -> GameState:
        """Return the initial state of a brand-new game."""
        return cls(civilization=civilization)

    @property
    def collapsed(self) -> bool:
        return self.stats.population <= 0

    def resumed(self) -> GameState:
        """Return this state as it should look after a reload.

        No in-flight network call survives a restart, so ``loading`` and
        ``processing`` fall back to ``idle``.
        """
        update: dict = {"last_choice_stat_deltas": None}
        if self.phase in TRANSIENT_PHASES:
            update["phase"] = Phase.IDLE
        return self.model_copy(update=update)

    def recent_history(self, limit: int = 5) -> list[HistoryEntry]:
        return list(self.history[-limit:]) if limit > 0 else []

    def snapshot(self, history_limit: int = 5) -> dict:
        """Return a compact, image-free view of the state for generation prompts."""
        return {
            "civilization": self.civilization.value,
            "turn": self.turn,
            "year": self.year,
            "stats": self.stats.model_dump(),
            "history": [
                {
                    "turn": h.turn,
                    "year": h.year,
                    "event_title": h.event_title,
                    "choice_label": h.choice_label,
                }
                for h in self.recent_history(history_limit)
            ],
        }
