"""EventPanel widget — the right-hand panel of the game screen.

What it shows depends on the phase:

``event``                — title, description and the numbered choices
``processing``/``loading`` — the current loading message
``outcome``              — the outcome narrative and the continue prompt
``idle``                 — a prompt to continue (or retry the first event)
"""

from __future__ import annotations

from rich.panel import Panel
from rich.text import Text
from textual.widget import Widget

from game.state import Choice, GameState, Phase, STAT_NAMES


class EventPanel(Widget):
    DEFAULT_CSS = """
    EventPanel {
        width: 48;
        min-width: 36;
        max-width: 60;
        padding: 0 1;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._state: GameState | None = None
        self._message: str = ""

    def set_state(self, state: GameState) -> None:
        self._state = state
        self.refresh()

    def set_message(self, message: str) -> None:
        self._message = message
        self.refresh()

    def render(self) -> Panel:
        state = self._state
        if state is None:
            return _panel(Text("…", style="dim"), "City")

        if state.phase == Phase.EVENT and state.current_event is not None:
            event = state.current_event
            text = Text()
            text.append(event.description + "\n\n")
            for i, choice in enumerate(event.choices, start=1):
                text.append(f"[{i}] ", style="bold cyan")
                text.append(choice.label + "\n", style="bold")
                effects = _render_effects(choice)
                if effects.plain:
                    text.append("    ")
                    text.append_text(effects)
                    text.append("\n")
            return _panel(text, event.title, border_style="yellow")

        if state.phase in (Phase.LOADING, Phase.PROCESSING):
            text = Text(self._message or "The city stirs…", style="italic", justify="center")
            title = "Shaping the city" if state.phase == Phase.PROCESSING else "Time passes"
            return _panel(text, title)

        if state.phase == Phase.OUTCOME:
            text = Text()
            text.append((state.outcome_text or "") + "\n\n")
            text.append("[Enter] Continue", style="bold cyan")
            return _panel(text, "Outcome", border_style="green")

        # idle
        if state.game_over:
            return _panel(Text("Your reign has ended.", style="bold"), "Game over")
        hint = "[Enter] Try again" if state.current_image is None else "[Enter] Continue"
        return _panel(Text(hint, style="bold cyan", justify="center"), "Waiting")


def _panel(content: Text, title: str, border_style: str = "bright_black") -> Panel:
    return Panel(content, title=f"[bold]{title}[/]", border_style=border_style, padding=(1, 1))


def _render_effects(choice: Choice) -> Text:
    text = Text()
    for name in STAT_NAMES:
        delta = choice.effects.get(name)
        if not delta:
            continue
        sign = "+" if delta > 0 else ""
        text.append(f"{name} {sign}{delta}  ", style="green" if delta > 0 else "red")
    return text
