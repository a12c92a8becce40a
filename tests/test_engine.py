"""Tests for game.engine — the async turn orchestrator."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from game.demo import DemoEventGenerator, DemoImageGenerator, DemoNarrator, demo_base_image
from game.engine import EVENT_HISTORY_LIMIT, TurnEngine
from game.errors import BaseImageError, BusyError, GenerationError, TransitionError
from game.save import FileStateStore, MemoryStateStore, restore_state
from game.state import (
    MAX_TURNS,
    Choice,
    CityImage,
    Civilization,
    GameEvent,
    GameState,
    Phase,
    Stats,
)

BASE = CityImage(data="YmFzZQ==", mime_type="image/jpeg")
PAINTED = CityImage(data="cGFpbnRlZA==", mime_type="image/png")
GAME_ID = "game-1"


def _event(title: str = "Flood", visual_change: str = "Water in the streets.") -> GameEvent:
    return GameEvent(
        title=title,
        description="The river rises.",
        visual_change=visual_change,
        year_advance=5,
        choices=(
            Choice(id="levee", label="Build levees", effects={"gold": 1},
                   visual_change="Stone levees line the river.", outcome="The levees hold."),
            Choice(id="pray", label="Pray", effects={"culture": 1}),
        ),
    )


def _make_engine(
    state: GameState | None = None,
    store: MemoryStateStore | None = None,
    **kwargs,
) -> TurnEngine:
    events = MagicMock()
    events.generate_event = AsyncMock(return_value=_event())
    images = MagicMock()
    images.generate_image = AsyncMock(return_value=PAINTED)
    params = dict(
        events=events,
        images=images,
        store=store if store is not None else MemoryStateStore(),
        base_images=MagicMock(return_value=BASE),
    )
    params.update(kwargs)
    return TurnEngine(GAME_ID, state or GameState.new(), **params)


# ── start_game ──────────────────────────────────────────────────────────────


class TestStartGame:
    @pytest.mark.asyncio
    async def test_first_event_with_base_image(self) -> None:
        engine = _make_engine()
        state = await engine.start_game()

        assert state.phase == Phase.EVENT
        assert state.current_image == BASE.data
        assert state.current_image_mime_type == "image/jpeg"
        assert state.current_event.title == "Flood"
        engine.base_images.assert_called_once_with(Civilization.ROME)
        engine.events.generate_event.assert_awaited_once_with(
            0, -1000, Stats(), [], Civilization.ROME
        )
        engine.images.generate_image.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_persists_started_game(self) -> None:
        store = MemoryStateStore()
        engine = _make_engine(store=store)
        await engine.start_game()
        assert store.load(GAME_ID).phase == Phase.EVENT

    @pytest.mark.asyncio
    async def test_retries_event_once(self) -> None:
        engine = _make_engine()
        engine.events.generate_event.side_effect = [RuntimeError("timeout"), _event()]
        state = await engine.start_game()
        assert state.phase == Phase.EVENT
        assert engine.events.generate_event.await_count == 2

    @pytest.mark.asyncio
    async def test_two_failures_raise_and_leave_game_unstarted(self) -> None:
        store = MemoryStateStore()
        engine = _make_engine(store=store)
        engine.events.generate_event.side_effect = RuntimeError("down")

        with pytest.raises(GenerationError):
            await engine.start_game()

        assert engine.events.generate_event.await_count == 2
        assert engine.state.phase == Phase.IDLE
        assert engine.state.current_image is None
        assert engine.needs_start
        assert store.load(GAME_ID) is None

    @pytest.mark.asyncio
    async def test_single_choice_event_is_rejected(self) -> None:
        """A malformed event never reaches the state."""
        from agents.chronicler import parse_event

        async def one_choice(*args):
            return parse_event(
                '{"title": "T", "description": "D", "choices": [{"id": "a", "label": "A"}]}'
            )

        engine = _make_engine()
        engine.events.generate_event.side_effect = one_choice
        with pytest.raises(GenerationError):
            await engine.start_game()
        assert engine.state.current_event is None
        assert engine.state.turn == 0

    @pytest.mark.asyncio
    async def test_retry_from_idle_after_failure(self) -> None:
        engine = _make_engine()
        engine.events.generate_event.side_effect = RuntimeError("down")
        with pytest.raises(GenerationError):
            await engine.start_game()

        engine.events.generate_event.side_effect = None
        state = await engine.start_game()
        assert state.phase == Phase.EVENT

    @pytest.mark.asyncio
    async def test_missing_base_image_propagates(self) -> None:
        engine = _make_engine(base_images=MagicMock(side_effect=BaseImageError("missing")))
        with pytest.raises(BaseImageError):
            await engine.start_game()
        assert engine.state.phase == Phase.LOADING
        engine.events.generate_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        with pytest.raises(TransitionError):
            await engine.start_game()


# ── choose ──────────────────────────────────────────────────────────────────


class TestChoose:
    @pytest.mark.asyncio
    async def test_outcome_with_new_image(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        state = await engine.choose("levee")

        assert state.phase == Phase.OUTCOME
        assert state.turn == 1
        assert state.year == -995
        assert state.stats.gold == 4
        assert state.outcome_text == "The levees hold."
        assert state.current_image == PAINTED.data
        assert state.previous_image == BASE.data
        assert state.last_choice_stat_deltas == {"gold": 1}
        engine.images.generate_image.assert_awaited_once_with(
            "Stone levees line the river.", BASE.data, "image/jpeg", 1500, Civilization.ROME
        )

    @pytest.mark.asyncio
    async def test_accepts_choice_object(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        state = await engine.choose(engine.state.current_event.choices[1])
        assert state.outcome_text == "You chose: Pray"

    @pytest.mark.asyncio
    async def test_fallback_description_when_no_visual_change(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        await engine.choose("pray")
        prompt = engine.images.generate_image.await_args.args[0]
        assert prompt.startswith("A Ancient Roman city settlement in 995 BCE")
        assert "The city has recently undergone changes: Pray." in prompt

    @pytest.mark.asyncio
    async def test_image_failure_keeps_previous_picture(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        engine.images.generate_image.side_effect = RuntimeError("no image")
        state = await engine.choose("levee")
        assert state.phase == Phase.OUTCOME
        assert state.current_image == BASE.data
        assert state.outcome_text == "The levees hold."

    @pytest.mark.asyncio
    async def test_processing_committed_before_image_request(self) -> None:
        seen: list[Phase] = []
        engine = _make_engine(on_change=lambda s: seen.append(s.phase))
        await engine.start_game()
        await engine.choose("levee")
        assert seen == [Phase.EVENT, Phase.PROCESSING, Phase.OUTCOME]

    @pytest.mark.asyncio
    async def test_unknown_choice(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        with pytest.raises(TransitionError):
            await engine.choose("nope")
        assert engine.state.phase == Phase.EVENT

    @pytest.mark.asyncio
    async def test_turn_24_ends_game_without_image(self) -> None:
        state = GameState(
            turn=MAX_TURNS - 1,
            current_image=BASE.data,
            current_event=_event(),
            phase=Phase.EVENT,
        )
        store = MemoryStateStore()
        engine = _make_engine(state=state, store=store)

        result = await engine.choose("levee")

        assert result.turn == MAX_TURNS
        assert result.game_over
        assert result.phase == Phase.IDLE
        engine.images.generate_image.assert_not_awaited()
        assert store.load(GAME_ID).game_over

    @pytest.mark.asyncio
    async def test_empty_city_ends_game(self) -> None:
        event = GameEvent(
            title="Plague",
            description="Fever.",
            choices=(
                Choice(id="a", label="Pray", effects={"population": -500}),
                Choice(id="b", label="Flee", effects={}),
            ),
        )
        state = GameState(
            stats=Stats(population=40),
            current_image=BASE.data,
            current_event=event,
            phase=Phase.EVENT,
        )
        engine = _make_engine(state=state)
        result = await engine.choose("a")
        assert result.stats.population == 0
        assert result.game_over
        engine.images.generate_image.assert_not_awaited()


# ── next_turn ───────────────────────────────────────────────────────────────


class TestNextTurn:
    async def _at_outcome(self, **kwargs) -> TurnEngine:
        engine = _make_engine(**kwargs)
        await engine.start_game()
        await engine.choose("levee")
        engine.events.generate_event.reset_mock()
        engine.images.generate_image.reset_mock()
        return engine

    @pytest.mark.asyncio
    async def test_next_event_repaints_city(self) -> None:
        engine = await self._at_outcome()
        engine.events.generate_event.return_value = _event("Drought", "Cracked fields.")
        state = await engine.next_turn()

        assert state.phase == Phase.EVENT
        assert state.current_event.title == "Drought"
        assert state.previous_image == PAINTED.data
        assert state.last_choice_stat_deltas is None
        engine.events.generate_event.assert_awaited_once_with(
            1, -995, Stats(gold=4), list(state.history), Civilization.ROME
        )
        engine.images.generate_image.assert_awaited_once_with(
            "Cracked fields.", PAINTED.data, "image/png", 1500, Civilization.ROME
        )

    @pytest.mark.asyncio
    async def test_no_visual_change_skips_image(self) -> None:
        engine = await self._at_outcome()
        engine.events.generate_event.return_value = _event("Quiet", visual_change="")
        state = await engine.next_turn()
        engine.images.generate_image.assert_not_awaited()
        assert state.previous_image is None
        assert state.current_image == PAINTED.data

    @pytest.mark.asyncio
    async def test_image_failure_is_not_fatal(self) -> None:
        engine = await self._at_outcome()
        engine.images.generate_image.side_effect = RuntimeError("nope")
        state = await engine.next_turn()
        assert state.phase == Phase.EVENT
        assert state.current_image == PAINTED.data
        assert state.previous_image is None

    @pytest.mark.asyncio
    async def test_event_failure_reverts_to_idle(self) -> None:
        engine = await self._at_outcome()
        before = engine.state
        engine.events.generate_event.side_effect = RuntimeError("down")

        with pytest.raises(GenerationError):
            await engine.next_turn()

        assert engine.events.generate_event.await_count == 1
        state = engine.state
        assert state.phase == Phase.IDLE
        assert state.turn == before.turn
        assert state.stats == before.stats
        assert state.history == before.history

    @pytest.mark.asyncio
    async def test_idle_can_advance_again(self) -> None:
        engine = await self._at_outcome()
        engine.events.generate_event.side_effect = RuntimeError("down")
        with pytest.raises(GenerationError):
            await engine.next_turn()
        engine.events.generate_event.side_effect = None
        state = await engine.next_turn()
        assert state.phase == Phase.EVENT

    @pytest.mark.asyncio
    async def test_history_sent_to_generator_is_limited(self) -> None:
        engine = await self._at_outcome()
        for _ in range(6):
            await engine.next_turn()
            await engine.choose("pray")
        await engine.next_turn()
        history = engine.events.generate_event.await_args.args[3]
        assert len(history) == EVENT_HISTORY_LIMIT
        assert history[-1] == engine.state.history[-1]

    @pytest.mark.asyncio
    async def test_rejected_during_event(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        with pytest.raises(TransitionError):
            await engine.next_turn()


# ── Whole games ─────────────────────────────────────────────────────────────


class TestFullGame:
    @pytest.mark.asyncio
    async def test_twenty_five_choices_end_the_game(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        for turn in range(MAX_TURNS):
            assert not engine.state.game_over
            await engine.choose("pray")
            if turn < MAX_TURNS - 1:
                await engine.next_turn()

        state = engine.state
        assert state.game_over
        assert state.turn == MAX_TURNS
        assert len(state.history) == MAX_TURNS
        # first event + one per intermediate turn
        assert engine.events.generate_event.await_count == MAX_TURNS
        assert engine.images.generate_image.await_count == 2 * (MAX_TURNS - 1)

        events_before = engine.events.generate_event.await_count
        with pytest.raises(TransitionError):
            await engine.next_turn()
        assert engine.events.generate_event.await_count == events_before

    @pytest.mark.asyncio
    async def test_history_entries_carry_pre_transition_values(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        snapshots = []
        for _ in range(4):
            snapshots.append((engine.state.turn, engine.state.year, engine.state.current_image))
            await engine.choose("levee")
            await engine.next_turn()

        history = engine.state.history
        assert len(history) == 4
        assert [(h.turn, h.year, h.image) for h in history] == snapshots

    @pytest.mark.asyncio
    async def test_demo_collaborators_play_a_game(self) -> None:
        engine = TurnEngine(
            GAME_ID,
            GameState.new(Civilization.EGYPT),
            events=DemoEventGenerator(),
            images=DemoImageGenerator(),
            messages=DemoNarrator(),
            store=MemoryStateStore(),
            base_images=demo_base_image,
        )
        await engine.start_game()
        for _ in range(3):
            first = engine.state.current_event.choices[0]
            await engine.choose(first)
            await engine.next_turn()
        await engine.drain_messages()
        assert engine.state.turn == 3
        assert engine.state.current_image


# ── Guards, resumption and side channels ────────────────────────────────────


class TestBusyGuard:
    @pytest.mark.asyncio
    async def test_second_transition_while_busy(self) -> None:
        engine = _make_engine()
        gate = asyncio.Event()

        async def slow_event(*args):
            await gate.wait()
            return _event()

        engine.events.generate_event.side_effect = slow_event
        task = asyncio.create_task(engine.start_game())
        await asyncio.sleep(0)
        assert engine.busy

        with pytest.raises(BusyError):
            await engine.start_game()
        with pytest.raises(BusyError):
            engine.new_game()

        gate.set()
        state = await task
        assert state.phase == Phase.EVENT
        assert not engine.busy


class TestRollback:
    @pytest.mark.asyncio
    async def test_unexpected_error_restores_committed_state(self) -> None:
        engine = _make_engine()
        await engine.start_game()
        committed = engine.state

        def broken_save(game_id, state):
            if state.phase == Phase.OUTCOME:
                raise RuntimeError("disk on fire")
            return True

        engine.store = MagicMock()
        engine.store.save.side_effect = broken_save
        with pytest.raises(GenerationError):
            await engine.choose("levee")

        assert engine.state == committed.resumed()
        assert not engine.busy


class TestResume:
    @pytest.mark.asyncio
    async def test_processing_state_is_never_persisted(self) -> None:
        store = MemoryStateStore()
        engine = _make_engine(store=store)
        await engine.start_game()
        gate = asyncio.Event()

        async def slow_image(*args):
            await gate.wait()
            return PAINTED

        engine.images.generate_image.side_effect = slow_image
        task = asyncio.create_task(engine.choose("levee"))
        await asyncio.sleep(0)
        assert engine.state.phase == Phase.PROCESSING

        saved = store.load(GAME_ID)
        assert saved.phase == Phase.EVENT
        assert saved.turn == 0
        assert saved.history == ()

        gate.set()
        await task

    def test_open_resumes_saved_game(self) -> None:
        store = MemoryStateStore()
        saved = GameState(
            turn=3,
            current_image=BASE.data,
            phase=Phase.PROCESSING,
            civilization=Civilization.INDIA,
        )
        store.save(GAME_ID, saved)
        engine = TurnEngine.open(GAME_ID, store, events=MagicMock(), images=MagicMock())
        assert engine.state.turn == 3
        assert engine.state.phase == Phase.IDLE
        assert engine.state.civilization == Civilization.INDIA
        assert not engine.needs_start

    def test_open_without_image_starts_fresh(self) -> None:
        store = MemoryStateStore()
        store.save(GAME_ID, GameState(turn=2, phase=Phase.IDLE))
        engine = TurnEngine.open(
            GAME_ID, store, Civilization.EGYPT, events=MagicMock(), images=MagicMock()
        )
        assert engine.state == GameState.new(Civilization.EGYPT)

    def test_new_game_discards_save(self) -> None:
        store = MemoryStateStore()
        store.save(GAME_ID, GameState(turn=5, current_image=BASE.data))
        engine = TurnEngine.open(GAME_ID, store, events=MagicMock(), images=MagicMock())
        engine.new_game(Civilization.INDIA)
        assert store.load(GAME_ID) is None
        assert engine.state.civilization == Civilization.INDIA
        assert engine.state.phase == Phase.LOADING

    def test_new_game_survives_unwritable_store(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        engine = _make_engine(store=FileStateStore(directory=blocker))
        state = engine.new_game(Civilization.EGYPT)
        assert state == GameState.new(Civilization.EGYPT)

    def test_open_with_corrupt_civilization_starts_fresh(self) -> None:
        store = MagicMock()
        store.load.return_value = restore_state(
            {"state": {"turn": 2, "civilization": ["rome"], "current_image": BASE.data}}
        )
        engine = TurnEngine.open(GAME_ID, store, events=MagicMock(), images=MagicMock())
        assert engine.state == GameState.new()


class TestLoadingMessages:
    @pytest.mark.asyncio
    async def test_messages_delivered_through_callback(self) -> None:
        received: list[list[str]] = []
        messages = MagicMock()
        messages.generate_messages = AsyncMock(return_value=["Masons at work"])
        engine = _make_engine(messages=messages, on_messages=received.append)
        await engine.start_game()
        await engine.choose("levee")
        await engine.drain_messages()

        assert received == [["Masons at work"]]
        messages.generate_messages.assert_awaited_once_with(
            Phase.PROCESSING, "Flood", "Build levees", -1000
        )

    @pytest.mark.asyncio
    async def test_message_failure_is_ignored(self) -> None:
        messages = MagicMock()
        messages.generate_messages = AsyncMock(side_effect=RuntimeError("quota"))
        engine = _make_engine(messages=messages)
        await engine.start_game()
        state = await engine.choose("levee")
        await engine.drain_messages()
        assert state.phase == Phase.OUTCOME
        assert engine.loading_messages is None

    @pytest.mark.asyncio
    async def test_stale_messages_are_dropped(self) -> None:
        received: list[list[str]] = []
        gate = asyncio.Event()

        async def slow_messages(phase, *args):
            if phase == Phase.PROCESSING:
                await gate.wait()
                return ["stale"]
            return ["fresh"]

        messages = MagicMock()
        messages.generate_messages = AsyncMock(side_effect=slow_messages)
        engine = _make_engine(messages=messages, on_messages=received.append)
        await engine.start_game()
        await engine.choose("levee")
        await engine.next_turn()
        await asyncio.sleep(0)
        gate.set()
        await engine.drain_messages()

        assert received == [["fresh"]]
        assert engine.loading_messages == ["fresh"]

    @pytest.mark.asyncio
    async def test_no_messages_requested_when_game_ends(self) -> None:
        messages = MagicMock()
        messages.generate_messages = AsyncMock(return_value=["x"])
        state = GameState(
            turn=MAX_TURNS - 1,
            current_image=BASE.data,
            current_event=_event(),
            phase=Phase.EVENT,
        )
        engine = _make_engine(state=state, messages=messages)
        await engine.choose("levee")
        await engine.drain_messages()
        messages.generate_messages.assert_not_awaited()


class TestTimeout:
    @pytest.mark.asyncio
    async def test_slow_event_counts_as_failure(self) -> None:
        engine = _make_engine(timeout=0.01)

        async def never(*args):
            await asyncio.sleep(10)

        engine.events.generate_event.side_effect = never
        with pytest.raises(GenerationError):
            await engine.start_game()
        assert engine.events.generate_event.await_count == 2
