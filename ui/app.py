"""City Builder — Textual application entry point.

``CityBuilderApp`` owns the save store and the current ``TurnEngine`` and
provides the methods the screens use:

- ``on_mount``   — show the ``TitleScreen``, or jump straight into a game
                   when one was requested on the command line.
- ``open_game``  — build an engine for a game id (resuming its save if any)
                   and switch to ``GameScreen``.
- ``new_game``   — start a fresh game under a new id.
- ``go_home``    — back to the title screen.

All screen transitions flow through the app so there is a single place
that holds shared state (store, engine, demo flag).
"""

from __future__ import annotations

import logging

from textual.app import App

from game.assets import load_base_image
from game.demo import DemoEventGenerator, DemoImageGenerator, DemoNarrator, demo_base_image
from game.engine import TurnEngine
from game.save import FileStateStore, StateStore, new_game_id
from game.state import Civilization

logger = logging.getLogger(__name__)


class CityBuilderApp(App):
    """Root Textual application for City Builder."""

    TITLE = "Ancient City Builder"

    def __init__(
        self,
        demo: bool = False,
        game_id: str | None = None,
        civilization: Civilization = Civilization.ROME,
        store: StateStore | None = None,
    ) -> None:
        super().__init__()
        self.demo_mode = demo
        self.store = store or FileStateStore()
        self.engine: TurnEngine | None = None
        self._initial_game = game_id
        self._initial_civ = civilization

    def on_mount(self) -> None:
        if self._initial_game:
            self.open_game(self._initial_game, self._initial_civ, switch=False)
            return
        from ui.screens.title import TitleScreen

        self.push_screen(TitleScreen())

    def build_engine(self, game_id: str, civilization: Civilization) -> TurnEngine:
        """Create an engine wired to the demo or the LLM collaborators."""
        if self.demo_mode:
            return TurnEngine.open(
                game_id,
                self.store,
                civilization,
                events=DemoEventGenerator(),
                images=DemoImageGenerator(),
                messages=DemoNarrator(),
                base_images=demo_base_image,
            )

        # Imported lazily so demo mode never needs model clients.
        from agents.artist import Artist
        from agents.chronicler import Chronicler
        from agents.client import generation_timeout
        from agents.narrator import Narrator

        return TurnEngine.open(
            game_id,
            self.store,
            civilization,
            events=Chronicler(),
            images=Artist(),
            messages=Narrator(),
            base_images=load_base_image,
            timeout=generation_timeout(),
        )

    def open_game(self, game_id: str, civilization: Civilization = Civilization.ROME, switch: bool = True) -> None:
        self.engine = self.build_engine(game_id, civilization)
        logger.info(
            "Opened game %s (%s, turn %d, phase %s)",
            game_id,
            self.engine.state.civilization.value,
            self.engine.state.turn,
            self.engine.state.phase.value,
        )

        from ui.screens.game import GameScreen

        if switch:
            self.switch_screen(GameScreen())
        else:
            self.push_screen(GameScreen())

    def new_game(self, civilization: Civilization) -> None:
        self.open_game(new_game_id(), civilization)

    def go_home(self) -> None:
        from ui.screens.title import TitleScreen

        self.engine = None
        self.switch_screen(TitleScreen())
