"""StatsBar widget — the city's five stats as icon + bar + value columns.

Resources render as ``<icon> <name> ■■■□□ <value>`` on their 0..5 scale;
population renders as a plain number.  After a choice resolves, the deltas it
caused are shown next to the values in green/red.
"""

from __future__ import annotations

from rich.columns import Columns
from rich.text import Text
from textual.widget import Widget

from game.state import RESOURCE_MAX, STAT_NAMES, Stats

STAT_ICONS: dict[str, str] = {
    "population": "👥",
    "gold": "💰",
    "food": "🌾",
    "defense": "🛡",
    "culture": "🏛",
}

_NAME_MAX = 10


class StatsBar(Widget):
    DEFAULT_CSS = """
    StatsBar {
        height: auto;
        min-height: 3;
        max-height: 6;
        padding: 1 2;
        border-bottom: solid $primary-darken-2;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._stats: Stats | None = None
        self._deltas: dict[str, int] = {}

    def set_stats(self, stats: Stats, deltas: dict[str, int] | None = None) -> None:
        self._stats = stats
        self._deltas = dict(deltas or {})
        self.refresh()

    def render(self) -> Columns | Text:
        if self._stats is None:
            return Text("No city yet", style="dim")
        items = [
            self._render_stat(name, getattr(self._stats, name), self._deltas.get(name, 0))
            for name in STAT_NAMES
        ]
        return Columns(items, equal=True, expand=True, padding=(0, 2))

    @staticmethod
    def _render_stat(name: str, val: int, delta: int = 0) -> Text:
        text = Text(no_wrap=True)
        text.append(f"{STAT_ICONS[name]} ", style="bold")
        text.append(f"{name.title()[:_NAME_MAX]} ", style="bold")

        if name == "population":
            text.append(f"{val:,}", style="bold red" if val <= 0 else "cyan")
        else:
            text.append("■" * val, style=_val_color(val))
            text.append("□" * (RESOURCE_MAX - val), style="bright_black")
            text.append(f" {val}", style=_val_color(val))

        if delta:
            sign = "+" if delta > 0 else ""
            color = "green" if delta > 0 else "red"
            text.append(f" ({sign}{delta})", style=color)
        return text


def _val_color(val: int) -> str:
    if val <= 1:
        return "red"
    if val <= 2:
        return "yellow"
    return "green"
