"""Title screen — civilization picker, saved games and a dithered backdrop.

The backdrop is the Rome base image pushed through the ordered-dither
background preset and drawn as glyphs behind the menu.  It is rendered on a
worker thread once the screen knows its size.
"""

from __future__ import annotations

import logging
from datetime import datetime

from textual import work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import Screen
from textual.widgets import Button, ListItem, ListView, Static

from game.assets import load_base_image
from game.demo import demo_base_image
from game.description import format_year
from game.errors import BaseImageError
from game.state import Civilization
from imaging.background import render_background
from imaging.terminal import CELL_ASPECT, open_image, to_rich_text

logger = logging.getLogger(__name__)

TITLE_ART = r"""
╔═══════════════════════════════════════════╗
║                                           ║
║      ◆  A N C I E N T   C I T Y  ◆        ║
║                                           ║
║       Found it. Feed it. Defend it.       ║
║                                           ║
╚═══════════════════════════════════════════╝
"""

CIVILIZATIONS: list[tuple[Civilization, str]] = [
    (Civilization.ROME, "🏛  Rome"),
    (Civilization.INDIA, "🐘 India"),
    (Civilization.EGYPT, "🔺 Egypt"),
]

# Backdrop pixels per terminal cell (horizontally).
_BACKDROP_SCALE = 4
MAX_SAVES_SHOWN = 8


class TitleScreen(Screen):
    BINDINGS = [
        Binding("escape", "quit", "Quit"),
        Binding("q", "quit", "Quit"),
    ]

    DEFAULT_CSS = """
    TitleScreen {
        layers: backdrop menu;
        align: center middle;
    }
    #backdrop {
        layer: backdrop;
        width: 100%;
        height: 100%;
        background: black;
    }
    #title-box {
        layer: menu;
        width: 60;
        height: auto;
        padding: 1 3;
        border: heavy $accent;
        background: $surface 85%;
    }
    #title-art {
        height: auto;
        text-align: center;
        color: $accent;
        text-style: bold;
    }
    #mode-label {
        text-align: center;
        color: $text-muted;
        height: auto;
    }
    #civ-row {
        height: auto;
        align-horizontal: center;
        margin-top: 1;
    }
    #civ-row Button {
        margin: 0 1;
    }
    #save-list {
        height: auto;
        max-height: 12;
        border: solid $primary-darken-2;
        margin-top: 1;
    }
    .save-item {
        height: 2;
        padding: 0 1;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("", id="backdrop")
        with Vertical(id="title-box"):
            yield Static(TITLE_ART, id="title-art")
            mode = "Demo mode (offline)" if self.app.demo_mode else "Choose your civilization"
            yield Static(mode, id="mode-label")
            with Horizontal(id="civ-row"):
                for civ, label in CIVILIZATIONS:
                    yield Button(label, id=f"civ-{civ.value}", variant="primary")

            items = [self._make_list_item(meta) for meta in self._saves()[:MAX_SAVES_SHOWN]]
            if items:
                yield ListView(*items, id="save-list")

    def on_mount(self) -> None:
        self.call_after_refresh(self._start_backdrop)

    def _start_backdrop(self) -> None:
        size = self.query_one("#backdrop").size
        if size.width and size.height:
            self._render_backdrop(size.width, size.height)

    # ── Saves ───────────────────────────────────────────────────────────

    def _saves(self) -> list:
        list_saves = getattr(self.app.store, "list_saves", None)
        return list_saves() if list_saves else []

    @staticmethod
    def _make_list_item(meta) -> ListItem:
        try:
            date_str = datetime.fromisoformat(meta.saved_at).astimezone().strftime("%Y-%m-%d %H:%M")
        except ValueError:
            date_str = meta.saved_at[:16] or "unknown date"
        status = "fallen" if meta.game_over else f"turn {meta.turn}"
        item = ListItem(
            Static(f"[bold]{meta.civilization.title()}[/bold] · {status} · {format_year(meta.year)}"),
            Static(f"[dim]Saved {date_str}[/dim]"),
            classes="save-item",
        )
        item.data = (meta.game_id, meta.civilization)  # type: ignore[attr-defined]
        return item

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        game_id, civ = event.item.data  # type: ignore[attr-defined]
        try:
            civilization = Civilization(civ)
        except ValueError:
            civilization = Civilization.ROME
        self.app.open_game(game_id, civilization)

    # ── Menu ────────────────────────────────────────────────────────────

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id or ""
        if button_id.startswith("civ-"):
            self.app.new_game(Civilization(button_id.removeprefix("civ-")))

    def action_quit(self) -> None:
        self.app.exit()

    # ── Backdrop ────────────────────────────────────────────────────────

    @work(thread=True, exclusive=True, group="backdrop")
    def _render_backdrop(self, columns: int, rows: int) -> None:
        try:
            source = open_image(load_base_image(Civilization.ROME).data)
        except BaseImageError:
            source = open_image(demo_base_image(Civilization.ROME).data)

        size = (columns * _BACKDROP_SCALE, rows * _BACKDROP_SCALE * CELL_ASPECT)
        overlay = render_background(source, size)
        text = to_rich_text(overlay, columns)
        self.app.call_from_thread(self.query_one("#backdrop", Static).update, text)
        logger.debug("Rendered %dx%d title backdrop", *size)
