"""Game-over screen — shown when the reign ends (turn limit or empty city).

Shows the final stats, the year the reign ended and the last decisions.
The player can start a new game with the same civilization, go back to the
title screen or quit.
"""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Center, Vertical
from textual.screen import Screen
from textual.widgets import Static

from game.description import format_year
from game.state import MAX_TURNS, STAT_NAMES

RECENT_DECISIONS = 5


class GameOverScreen(Screen):
    BINDINGS = [
        Binding("n", "new_game", "New game"),
        Binding("h", "home", "Home"),
        Binding("q", "quit_game", "Quit"),
    ]

    DEFAULT_CSS = """
    GameOverScreen {
        align: center middle;
    }
    #ending-box {
        width: 70;
        height: auto;
        padding: 2 4;
        border: double $accent;
        background: $surface;
    }
    #ending-header {
        text-align: center;
        text-style: bold;
        color: $accent;
        margin-bottom: 1;
    }
    #ending-text {
        text-align: center;
        text-style: italic;
        margin: 1 0;
    }
    #ending-stats, #ending-history {
        margin: 1 0;
        text-align: center;
    }
    #ending-prompt {
        text-align: center;
        margin-top: 2;
    }
    """

    def compose(self) -> ComposeResult:
        state = self.app.engine.state

        if state.collapsed:
            verdict = f"Your city fell silent in {format_year(state.year)}."
        else:
            verdict = f"After {MAX_TURNS} turns your reign ends in {format_year(state.year)}."

        with Center():
            with Vertical(id="ending-box"):
                yield Static("═══  THE END  ═══", id="ending-header")
                yield Static(verdict, id="ending-text")

                stats_text = "  ".join(
                    f"{name}: {getattr(state.stats, name)}" for name in STAT_NAMES
                )
                yield Static(f"Final stats: {stats_text}", id="ending-stats")

                recent = state.history[-RECENT_DECISIONS:]
                lines = [
                    f"{format_year(h.year)}: {h.event_title} — {h.choice_label}" for h in recent
                ]
                yield Static("\n".join(lines) or "No decisions recorded.", id="ending-history")

                yield Static("[N] New Game    [H] Home    [Q] Quit", id="ending-prompt")

    def action_new_game(self) -> None:
        self.app.new_game(self.app.engine.state.civilization)

    def action_home(self) -> None:
        self.app.go_home()

    def action_quit_game(self) -> None:
        self.app.exit()
