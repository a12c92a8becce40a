"""Turn state machine — the pure transition function of the game loop.

Transitions::

    loading     --GameStarted-->    event
    event       --ChoiceMade-->     processing
    processing  --GameEnded-->      idle (game_over)
    processing  --OutcomeReady-->   outcome
    outcome     --TurnRequested-->  loading
    idle        --TurnRequested-->  loading
    loading     --EventArrived-->   event
    loading     --TurnFailed-->     idle

``dispatch(state, action)`` returns the next ``GameState`` and never performs
I/O.  ``game.engine.TurnEngine`` calls the collaborators and feeds their
results back in as actions.  An action that the current phase does not accept
raises ``TransitionError`` and leaves the state untouched; once ``game_over``
is set no turn action is accepted at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from game.errors import TransitionError
from game.resources import apply_effects, stat_deltas
from game.state import (
    MAX_TURNS,
    Choice,
    CityImage,
    GameEvent,
    GameState,
    HistoryEntry,
    Phase,
    Stats,
)


# ── Actions ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class GameStarted:
    """The base image and the first event are available."""

    image: CityImage
    event: GameEvent


@dataclass(frozen=True)
class ChoiceMade:
    choice: Choice


@dataclass(frozen=True)
class GameEnded:
    """The resolved turn hit the turn limit or emptied the city."""


@dataclass(frozen=True)
class OutcomeReady:
    """The outcome of ``choice`` is ready; ``image`` is None if painting failed."""

    choice: Choice
    image: CityImage | None = None


@dataclass(frozen=True)
class TurnRequested:
    """The player continues past an outcome (or resumes an idle game)."""


@dataclass(frozen=True)
class EventArrived:
    """A new event, plus the repainted city if the image update succeeded."""

    event: GameEvent
    image: CityImage | None = None


@dataclass(frozen=True)
class TurnFailed:
    """Event generation failed; fall back to a stable phase."""


Action = Union[GameStarted, ChoiceMade, GameEnded, OutcomeReady, TurnRequested, EventArrived, TurnFailed]


# ── Rules ───────────────────────────────────────────────────────────────────


def is_game_over(turn: int, stats: Stats) -> bool:
    return turn >= MAX_TURNS or stats.population <= 0


def can_start(state: GameState) -> bool:
    """A game starts from ``loading``, or from ``idle`` if the first start failed."""
    if state.game_over or state.turn != 0 or state.history:
        return False
    if state.phase == Phase.LOADING:
        return True
    return state.phase == Phase.IDLE and state.current_image is None and state.current_event is None


def can_advance(state: GameState) -> bool:
    return not state.game_over and state.phase in (Phase.OUTCOME, Phase.IDLE)


def outcome_text_for(choice: Choice) -> str:
    return choice.outcome or f"You chose: {choice.label}"


def _reject(state: GameState, action: Action, reason: str = "") -> TransitionError:
    name = type(action).__name__
    detail = f" ({reason})" if reason else ""
    return TransitionError(f"{name} is not accepted in phase '{state.phase.value}'{detail}")


# ── Dispatch ────────────────────────────────────────────────────────────────


def dispatch(state: GameState, action: Action) -> GameState:
    """Apply ``action`` to ``state`` and return the resulting state."""
    if state.game_over:
        raise _reject(state, action, "game is over")

    if isinstance(action, GameStarted):
        return _on_game_started(state, action)
    if isinstance(action, ChoiceMade):
        return _on_choice_made(state, action)
    if isinstance(action, GameEnded):
        return _on_game_ended(state, action)
    if isinstance(action, OutcomeReady):
        return _on_outcome_ready(state, action)
    if isinstance(action, TurnRequested):
        return _on_turn_requested(state, action)
    if isinstance(action, EventArrived):
        return _on_event_arrived(state, action)
    if isinstance(action, TurnFailed):
        return _on_turn_failed(state, action)
    raise TypeError(f"Unknown action: {action!r}")


def _on_game_started(state: GameState, action: GameStarted) -> GameState:
    if not can_start(state):
        raise _reject(state, action)
    return state.model_copy(update={
        "current_image": action.image.data,
        "current_image_mime_type": action.image.mime_type,
        "current_event": action.event,
        "phase": Phase.EVENT,
    })


def _on_choice_made(state: GameState, action: ChoiceMade) -> GameState:
    event = state.current_event
    if state.phase != Phase.EVENT or event is None:
        raise _reject(state, action)
    choice = action.choice
    if choice not in event.choices:
        raise _reject(state, action, f"choice '{choice.id}' does not belong to '{event.title}'")

    new_stats = apply_effects(state.stats, choice.effects)

    # Snapshot of the turn being resolved, taken before anything changes.
    entry = HistoryEntry(
        turn=state.turn,
        year=state.year,
        event_title=event.title,
        choice_label=choice.label,
        image=state.current_image,
        image_mime_type=state.current_image_mime_type,
    )

    return state.model_copy(update={
        "stats": new_stats,
        "year": state.year + event.year_advance,
        "turn": state.turn + 1,
        "history": state.history + (entry,),
        "current_event": None,
        "phase": Phase.PROCESSING,
        "last_choice_stat_deltas": stat_deltas(state.stats, new_stats),
    })


def _on_game_ended(state: GameState, action: GameEnded) -> GameState:
    if state.phase != Phase.PROCESSING or not is_game_over(state.turn, state.stats):
        raise _reject(state, action)
    return state.model_copy(update={"phase": Phase.IDLE, "game_over": True})


def _on_outcome_ready(state: GameState, action: OutcomeReady) -> GameState:
    if state.phase != Phase.PROCESSING:
        raise _reject(state, action)
    update: dict = {
        "outcome_text": outcome_text_for(action.choice),
        "phase": Phase.OUTCOME,
    }
    if action.image is not None:
        update.update(
            previous_image=state.current_image,
            current_image=action.image.data,
            current_image_mime_type=action.image.mime_type,
        )
    return state.model_copy(update=update)


def _on_turn_requested(state: GameState, action: TurnRequested) -> GameState:
    if not can_advance(state):
        raise _reject(state, action)
    return state.model_copy(update={"phase": Phase.LOADING})


def _on_event_arrived(state: GameState, action: EventArrived) -> GameState:
    if state.phase != Phase.LOADING:
        raise _reject(state, action)
    update: dict = {
        "current_event": action.event,
        "phase": Phase.EVENT,
        "last_choice_stat_deltas": None,
    }
    if action.image is not None:
        update.update(
            previous_image=state.current_image,
            current_image=action.image.data,
            current_image_mime_type=action.image.mime_type,
        )
    else:
        update["previous_image"] = None
    return state.model_copy(update=update)


def _on_turn_failed(state: GameState, action: TurnFailed) -> GameState:
    if state.phase != Phase.LOADING:
        raise _reject(state, action)
    return state.model_copy(update={"phase": Phase.IDLE})
