"""Timeline widget — the history scrubber at the bottom of the game screen.

One cell per history entry plus a final cell for the present:
  ● = past turn,  ◆ = present,  highlighted cell = the turn being previewed.

Next to the cells it shows either the live turn and year, or, while
scrubbing, which past turn is on screen.
"""

from __future__ import annotations

from rich.text import Text
from textual.widget import Widget

from game.description import format_year
from game.history import HistoryScrubber
from game.state import MAX_TURNS


class Timeline(Widget):
    DEFAULT_CSS = """
    Timeline {
        width: 1fr;
        height: 3;
        content-align: left middle;
        padding: 0 1;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._scrubber: HistoryScrubber | None = None
        self._turn: int = 0
        self._year: int = 0

    def set_data(self, scrubber: HistoryScrubber, turn: int, year: int) -> None:
        self._scrubber = scrubber
        self._turn = turn
        self._year = year
        self.refresh()

    def render(self) -> Text:
        text = Text(no_wrap=True, overflow="ellipsis")
        scrubber = self._scrubber
        if scrubber is None:
            return text

        for i in range(scrubber.length + 1):
            glyph = "◆" if i == scrubber.length else "●"
            if i == scrubber.index:
                text.append(glyph, style="bold reverse yellow")
            else:
                text.append(glyph, style="green" if i < scrubber.length else "bold")
            text.append(" ")

        text.append("  ", style="dim")
        entry = scrubber.entry
        if entry is None:
            text.append(f"Turn {self._turn}/{MAX_TURNS}", style="bold")
            text.append(f"  ·  {format_year(self._year)}", style="dim")
        else:
            text.append(f"Before turn {entry.turn + 1}", style="bold yellow")
            text.append(f"  ·  {format_year(entry.year)}", style="dim")
            text.append(f"  ·  {entry.event_title}", style="italic")
        text.append("  ·  ←/→ scrub", style="dim")
        return text
