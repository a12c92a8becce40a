"""Turn engine — drives the game loop against its collaborators.

``TurnEngine`` is the single owner of a game's ``GameState``.  It holds:
- ``state``      — the last committed state (never mutated, only replaced)
- ``events``     — the event generator (LLM-backed or demo)
- ``images``     — the image generator
- ``messages``   — optional generator of flavour text shown while loading
- ``store``      — optional ``StateStore`` the engine persists to

Every public coroutine is one turn transition.  Pure transition rules live in
``game.machine``; the engine only performs I/O and dispatches the results.
Only one transition may run at a time: a second call while one is in flight
raises ``BusyError``.  Loading messages are fetched on independent tasks and
delivered through ``on_messages``; they never block a transition.

The engine is free of UI concerns so it can be tested directly.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Awaitable, Callable, Iterator, Protocol, Sequence, TypeVar

from game import machine
from game.assets import load_base_image
from game.description import build_city_description
from game.errors import BusyError, GameError, GenerationError, TransitionError
from game.machine import (
    Action,
    ChoiceMade,
    EventArrived,
    GameEnded,
    GameStarted,
    OutcomeReady,
    TurnFailed,
    TurnRequested,
)
from game.save import StateStore
from game.state import (
    Choice,
    CityImage,
    Civilization,
    GameEvent,
    GameState,
    HistoryEntry,
    Phase,
    Stats,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# The generator only needs the last few turns for context.
EVENT_HISTORY_LIMIT = 5
START_ATTEMPTS = 2  # first event: one silent retry


# ── Collaborators ───────────────────────────────────────────────────────────


class EventGenerator(Protocol):
    async def generate_event(
        self,
        turn: int,
        year: int,
        stats: Stats,
        history: Sequence[HistoryEntry],
        civilization: Civilization,
    ) -> GameEvent: ...


class ImageGenerator(Protocol):
    async def generate_image(
        self,
        prompt: str,
        previous_image: str | None = None,
        previous_mime_type: str | None = None,
        population: int | None = None,
        civilization: Civilization | None = None,
    ) -> CityImage: ...


class LoadingMessageGenerator(Protocol):
    async def generate_messages(
        self,
        phase: Phase,
        event_title: str | None = None,
        choice_label: str | None = None,
        year: int | None = None,
    ) -> list[str]: ...


BaseImageLoader = Callable[[Civilization], CityImage]


# ── Engine ──────────────────────────────────────────────────────────────────


class TurnEngine:
    """Async orchestrator around the pure turn machine.

    ``on_change`` is called with every committed state and ``on_messages``
    with each batch of generated loading messages.  ``timeout`` (seconds)
    bounds every collaborator call; a timeout counts as an ordinary failure.
    """

    def __init__(
        self,
        game_id: str,
        state: GameState,
        *,
        events: EventGenerator,
        images: ImageGenerator,
        messages: LoadingMessageGenerator | None = None,
        store: StateStore | None = None,
        base_images: BaseImageLoader = load_base_image,
        on_change: Callable[[GameState], None] | None = None,
        on_messages: Callable[[list[str]], None] | None = None,
        timeout: float | None = None,
    ) -> None:
        self.game_id = game_id
        self._state = state
        self.events = events
        self.images = images
        self.messages = messages
        self.store = store
        self.base_images = base_images
        self.on_change = on_change
        self.on_messages = on_messages
        self.timeout = timeout

        # Flag set while a turn transition is running.
        self._busy = False
        # Loading messages for the current transition; None until they arrive.
        self.loading_messages: list[str] | None = None
        self._message_epoch = 0
        self._message_tasks: set[asyncio.Task] = set()

    @classmethod
    def open(
        cls,
        game_id: str,
        store: StateStore,
        civilization: Civilization = Civilization.ROME,
        **kwargs,
    ) -> TurnEngine:
        """Resume ``game_id`` from ``store``, or begin a fresh game.

        A save that never got its first image is treated as absent.
        """
        saved = store.load(game_id)
        if saved is None or saved.current_image is None:
            state = GameState.new(civilization)
        else:
            state = saved
        return cls(game_id, state, store=store, **kwargs)

    # ── State ───────────────────────────────────────────────────────────

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def needs_start(self) -> bool:
        """True until the first event has been committed."""
        return machine.can_start(self._state)

    def _commit(self, action: Action, persist: bool = True) -> GameState:
        self._state = machine.dispatch(self._state, action)
        if persist and self.store is not None:
            self.store.save(self.game_id, self._state)
        if self.on_change is not None:
            self.on_change(self._state)
        return self._state

    def _restore(self, state: GameState) -> None:
        self._state = state
        if self.on_change is not None:
            self.on_change(state)

    @contextmanager
    def _transition(self) -> Iterator[GameState]:
        """Run one transition exclusively; roll back on unexpected errors.

        Yields the state the transition started from.  Anything other than a
        ``GameError`` escaping the body restores that state (with an in-flight
        phase normalised to ``idle``) before re-raising as ``GenerationError``.
        """
        if self._busy:
            raise BusyError("A turn is already being resolved")
        self._busy = True
        before = self._state
        try:
            yield before
        except GameError:
            raise
        except Exception as exc:
            logger.exception("Turn transition failed unexpectedly")
            self._restore(before.resumed())
            raise GenerationError("Something went wrong") from exc
        finally:
            self._busy = False

    # ── Transitions ─────────────────────────────────────────────────────

    async def start_game(self) -> GameState:
        """Load the base image and the first event: ``loading`` -> ``event``.

        The event request is retried once.  A missing base image raises
        ``BaseImageError`` and nothing is committed.
        """
        with self._transition() as before:
            if not machine.can_start(before):
                raise TransitionError(f"Cannot start a game in phase '{before.phase.value}'")

            image = self.base_images(before.civilization)
            try:
                event = await self._request_event(before, attempts=START_ATTEMPTS)
            except GenerationError:
                if before.phase == Phase.LOADING:
                    self._commit(TurnFailed(), persist=False)
                raise
            return self._commit(GameStarted(image=image, event=event))

    async def choose(self, choice: Choice | str) -> GameState:
        """Resolve the pending event with ``choice``: ``event`` -> ``outcome``.

        The ``processing`` state is committed (not persisted) before any image
        is requested.  If the turn ends the game, it is committed as
        ``idle`` + ``game_over`` and no image is requested.  An image failure
        still commits the outcome, keeping the previous picture.
        """
        with self._transition() as before:
            event = before.current_event
            if before.phase != Phase.EVENT or event is None:
                raise TransitionError(f"No event to resolve in phase '{before.phase.value}'")
            if isinstance(choice, str):
                found = event.find_choice(choice)
                if found is None:
                    raise TransitionError(f"Unknown choice '{choice}' for '{event.title}'")
                choice = found

            processing = self._commit(ChoiceMade(choice), persist=False)

            if machine.is_game_over(processing.turn, processing.stats):
                logger.info(
                    "Game %s over at turn %d (population %d)",
                    self.game_id, processing.turn, processing.stats.population,
                )
                return self._commit(GameEnded())

            self._spawn_messages(Phase.PROCESSING, event.title, choice.label, before.year)

            prompt = choice.visual_change or build_city_description(processing, choice.label)
            image = await self._request_image(
                prompt,
                before.current_image,
                before.current_image_mime_type,
                processing.stats.population,
                processing.civilization,
            )
            return self._commit(OutcomeReady(choice=choice, image=image))

    async def next_turn(self) -> GameState:
        """Fetch the next event: ``outcome``/``idle`` -> ``loading`` -> ``event``.

        If the event describes a visual change the city is repainted; that
        image is optional.  An event failure reverts to ``idle`` and raises
        ``GenerationError``.
        """
        with self._transition() as before:
            if not machine.can_advance(before):
                raise TransitionError(f"Cannot advance from phase '{before.phase.value}'")

            self._commit(TurnRequested(), persist=False)

            last = before.history[-1] if before.history else None
            self._spawn_messages(
                Phase.LOADING,
                last.event_title if last else None,
                last.choice_label if last else None,
                before.year,
            )

            try:
                event = await self._request_event(before, attempts=1)
            except GenerationError:
                self._commit(TurnFailed(), persist=False)
                raise

            image = None
            if event.visual_change and before.current_image:
                image = await self._request_image(
                    event.visual_change,
                    before.current_image,
                    before.current_image_mime_type,
                    before.stats.population,
                    before.civilization,
                )
            return self._commit(EventArrived(event=event, image=image))

    def new_game(self, civilization: Civilization | None = None) -> GameState:
        """Discard this game and begin a fresh one under the same id."""
        if self._busy:
            raise BusyError("A turn is already being resolved")
        if self.store is not None:
            self.store.delete(self.game_id)
        self.loading_messages = None
        self._restore(GameState.new(civilization or self._state.civilization))
        return self._state

    # ── Collaborator calls ──────────────────────────────────────────────

    async def _call(self, make: Callable[[], Awaitable[T]]) -> T:
        if self.timeout is None:
            return await make()
        return await asyncio.wait_for(make(), self.timeout)

    async def _request_event(self, state: GameState, attempts: int) -> GameEvent:
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return await self._call(lambda: self.events.generate_event(
                    state.turn,
                    state.year,
                    state.stats,
                    state.recent_history(EVENT_HISTORY_LIMIT),
                    state.civilization,
                ))
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Event generation failed (attempt %d/%d): %s", attempt, attempts, exc
                )
        raise GenerationError("Failed to generate event") from last_error

    async def _request_image(
        self,
        prompt: str,
        previous_image: str | None,
        previous_mime_type: str,
        population: int,
        civilization: Civilization,
    ) -> CityImage | None:
        """Return a new city image, or None if the generator failed."""
        try:
            image = await self._call(lambda: self.images.generate_image(
                prompt,
                previous_image,
                previous_mime_type,
                population,
                civilization,
            ))
        except Exception as exc:
            logger.warning("Image generation failed, keeping previous image: %s", exc)
            return None
        if image is None or not image.data:
            logger.warning("Image generator returned no image data")
            return None
        return image

    # ── Loading messages (side channel) ─────────────────────────────────

    def _spawn_messages(
        self,
        phase: Phase,
        event_title: str | None,
        choice_label: str | None,
        year: int | None,
    ) -> None:
        self.loading_messages = None
        self._message_epoch += 1
        if self.messages is None:
            return
        task = asyncio.create_task(
            self._fetch_messages(self._message_epoch, phase, event_title, choice_label, year)
        )
        self._message_tasks.add(task)
        task.add_done_callback(self._message_tasks.discard)

    async def _fetch_messages(
        self,
        epoch: int,
        phase: Phase,
        event_title: str | None,
        choice_label: str | None,
        year: int | None,
    ) -> None:
        try:
            found = await self._call(lambda: self.messages.generate_messages(
                phase, event_title, choice_label, year
            ))
        except Exception as exc:
            logger.debug("Loading messages unavailable: %s", exc)
            return
        # A later transition has started; these messages are stale.
        if epoch != self._message_epoch or not found:
            return
        self.loading_messages = list(found)
        if self.on_messages is not None:
            self.on_messages(self.loading_messages)

    async def drain_messages(self) -> None:
        """Wait for outstanding loading-message tasks (used on shutdown and in tests)."""
        if self._message_tasks:
            await asyncio.gather(*self._message_tasks, return_exceptions=True)
