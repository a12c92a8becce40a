"""Game screen — the city picture, its stats, the current event and the timeline.

Every turn transition runs on an async worker that awaits the engine; the
engine reports each committed state through ``on_change`` and loading
messages through ``on_messages``, and the screen redraws from those.

Keys: ``1``-``9`` choose, ``enter`` continue, ``←``/``→`` scrub the history,
``e`` export the picture on screen, ``h`` home, ``q`` quit.
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path

from rich.text import Text
from textual import work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.screen import Screen
from textual.widgets import Static

from game.assets import decode_image
from game.errors import BusyError, GameError
from game.history import HistoryScrubber
from game.state import GameState, Phase
from imaging.terminal import open_image, to_halfblocks
from ui.widgets.event_panel import EventPanel
from ui.widgets.stats_bar import StatsBar
from ui.widgets.timeline import Timeline

logger = logging.getLogger(__name__)

# Shown until (or instead of) generated loading messages.
FALLBACK_MESSAGES = [
    "Surveyors walk the city walls",
    "Scribes record the season's harvest",
    "Smoke curls from the potters' kilns",
    "Fishermen haul their nets ashore",
    "Priests light the evening lamps",
]
MESSAGE_INTERVAL = 2.5  # seconds

_EXPORT_DIR = Path("exports")


class GameScreen(Screen):
    BINDINGS = [
        *[Binding(str(n), f"choose({n})", f"Choice {n}", show=False) for n in range(1, 10)],
        Binding("enter", "continue_turn", "Continue", show=True),
        Binding("left", "scrub(-1)", "Back in time", show=False),
        Binding("right", "scrub(1)", "Forward in time", show=False),
        Binding("e", "export_image", "Export [E]", show=True),
        Binding("h", "home", "Home [H]", show=True),
        Binding("q", "quit_game", "Quit", show=True),
    ]

    DEFAULT_CSS = """
    GameScreen {
        layout: vertical;
    }
    #game-body {
        height: 1fr;
        layout: horizontal;
    }
    #city-view {
        width: 1fr;
        height: 1fr;
        content-align: center middle;
    }
    #city-view.dimmed {
        opacity: 50%;
    }
    #bottom-bar {
        height: 3;
        border-top: solid $primary;
        layout: horizontal;
        padding: 0 1;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.scrubber = HistoryScrubber(())
        self._messages: list[str] = list(FALLBACK_MESSAGES)
        self._message_index = 0
        # (hash of image data, columns) of the rendered picture
        self._picture_key: tuple[int, int] | None = None
        self._picture: Text | None = None

    @property
    def engine(self):
        return self.app.engine

    def compose(self) -> ComposeResult:
        yield StatsBar(id="stats-bar")
        with Horizontal(id="game-body"):
            yield Static("", id="city-view")
            yield EventPanel(id="event-panel")
        with Horizontal(id="bottom-bar"):
            yield Timeline(id="timeline")

    def on_mount(self) -> None:
        engine = self.engine
        engine.on_change = self._on_state_change
        engine.on_messages = self._on_messages
        self.set_interval(MESSAGE_INTERVAL, self._rotate_message)
        self._on_state_change(engine.state)

        if engine.state.game_over:
            self._show_game_over()
        elif engine.needs_start and engine.state.phase == Phase.LOADING:
            self._start_game()

    def on_resize(self) -> None:
        self._update_picture()

    # ── Engine callbacks ────────────────────────────────────────────────

    def _on_state_change(self, state: GameState) -> None:
        if self.scrubber.length != len(state.history):
            self.scrubber = HistoryScrubber(state.history)
        if state.phase in (Phase.LOADING, Phase.PROCESSING) and not self.engine.loading_messages:
            self._messages = list(FALLBACK_MESSAGES)
            self._message_index = 0
        self._update_all_widgets()

    def _on_messages(self, messages: list[str]) -> None:
        self._messages = list(messages)
        self._message_index = 0
        self._show_message()

    def _rotate_message(self) -> None:
        if self.engine is None or self.engine.state.phase not in (Phase.LOADING, Phase.PROCESSING):
            return
        self._message_index = (self._message_index + 1) % len(self._messages)
        self._show_message()

    def _show_message(self) -> None:
        self.query_one("#event-panel", EventPanel).set_message(
            self._messages[self._message_index % len(self._messages)]
        )

    # ── Widget Updates ──────────────────────────────────────────────────

    def _update_all_widgets(self) -> None:
        state = self.engine.state
        self.query_one("#stats-bar", StatsBar).set_stats(state.stats, state.last_choice_stat_deltas)
        panel = self.query_one("#event-panel", EventPanel)
        panel.set_state(state)
        self._show_message()
        self.query_one("#timeline", Timeline).set_data(self.scrubber, state.turn, state.year)
        self._update_picture()

    def _displayed_image(self) -> tuple[str | None, str]:
        """The image on screen: a past turn while scrubbing, else the live city."""
        entry = self.scrubber.entry
        if entry is not None:
            return entry.image, entry.image_mime_type
        state = self.engine.state
        return state.current_image, state.current_image_mime_type

    def _update_picture(self) -> None:
        if self.engine is None:
            return
        view = self.query_one("#city-view", Static)
        data, _ = self._displayed_image()
        view.set_class(self.engine.state.phase == Phase.PROCESSING, "dimmed")
        if not data:
            view.update(Text("Your settlement awaits…", style="dim italic"))
            return

        columns = max(8, view.size.width or 60)
        key = (hash(data), columns)
        if key != self._picture_key:
            try:
                self._picture = to_halfblocks(open_image(data), columns)
            except (OSError, ValueError):
                logger.warning("Could not render city image", exc_info=True)
                self._picture = Text("(unreadable image)", style="red")
            self._picture_key = key
        view.update(self._picture)

    # ── Turn actions ────────────────────────────────────────────────────

    def action_choose(self, number: int) -> None:
        state = self.engine.state
        if state.phase != Phase.EVENT or state.current_event is None:
            return
        choices = state.current_event.choices
        if 1 <= number <= len(choices):
            self.scrubber.release()
            self._choose(choices[number - 1].id)

    def action_continue_turn(self) -> None:
        state = self.engine.state
        if state.game_over:
            self._show_game_over()
        elif self.engine.needs_start:
            self._start_game()
        elif state.phase in (Phase.OUTCOME, Phase.IDLE):
            self.scrubber.release()
            self._next_turn()

    @work(group="turn", exclusive=False)
    async def _start_game(self) -> None:
        await self._run(self.engine.start_game)

    @work(group="turn", exclusive=False)
    async def _choose(self, choice_id: str) -> None:
        await self._run(lambda: self.engine.choose(choice_id))
        if self.engine.state.game_over:
            self._show_game_over()

    @work(group="turn", exclusive=False)
    async def _next_turn(self) -> None:
        await self._run(self.engine.next_turn)

    async def _run(self, transition) -> None:
        try:
            await transition()
        except BusyError:
            return
        except GameError as exc:
            logger.warning("Turn transition failed: %s", exc)
            self.notify(str(exc), title="Something went wrong", severity="error")
        self._update_all_widgets()

    # ── History ─────────────────────────────────────────────────────────

    def action_scrub(self, delta: int) -> None:
        self.scrubber.step(delta)
        self._update_all_widgets()

    # ── Export ──────────────────────────────────────────────────────────

    def action_export_image(self) -> None:
        data, mime_type = self._displayed_image()
        if not data:
            self.notify("No image to export yet", severity="warning")
            return
        state = self.engine.state
        turn = self.scrubber.entry.turn if self.scrubber.entry else state.turn
        ext = mimetypes.guess_extension(mime_type) or ".png"
        path = _EXPORT_DIR / f"{state.civilization.value}-{self.engine.game_id}-turn{turn}{ext}"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(decode_image(data))
        except (OSError, ValueError) as exc:
            logger.warning("Export failed: %s", exc)
            self.notify(f"Export failed: {exc}", severity="error")
            return
        self.notify(f"Saved {path}")

    # ── Navigation ──────────────────────────────────────────────────────

    def _show_game_over(self) -> None:
        from ui.screens.game_over import GameOverScreen

        self.app.switch_screen(GameOverScreen())

    def action_home(self) -> None:
        if self.engine.busy:
            return
        self.app.go_home()

    def action_quit_game(self) -> None:
        self.app.exit()
