"""Narrator agent — short atmospheric lines shown while the city loads."""

from __future__ import annotations

import re

from langchain_core.messages import HumanMessage

from agents.client import get_message_model
from agents.prompt_loader import render
from game.state import Phase

MAX_MESSAGES = 5
MAX_MESSAGE_LENGTH = 60

_BULLET_RE = re.compile(r"^[\d\-.*•]+\s*")
_QUOTES = "\"'“”"


def parse_messages(text: str) -> list[str]:
    """Split a reply into at most five short lines, without bullets or quotes."""
    messages: list[str] = []
    for line in text.splitlines():
        line = _BULLET_RE.sub("", line.strip()).strip().strip(_QUOTES).strip()
        if 0 < len(line) < MAX_MESSAGE_LENGTH:
            messages.append(line)
    return messages[:MAX_MESSAGES]


class Narrator:
    def __init__(self) -> None:
        self.model = get_message_model()

    def build_prompt(
        self,
        phase: Phase,
        event_title: str | None = None,
        choice_label: str | None = None,
        year: int | None = None,
    ) -> str:
        if phase == Phase.PROCESSING and event_title and choice_label:
            return render(
                "loading_processing.j2",
                event_title=event_title,
                choice_label=choice_label,
                year=year,
            )
        return render("loading_idle.j2", year=year)

    async def generate_messages(
        self,
        phase: Phase,
        event_title: str | None = None,
        choice_label: str | None = None,
        year: int | None = None,
    ) -> list[str]:
        prompt = self.build_prompt(phase, event_title, choice_label, year)
        result = await self.model.ainvoke([HumanMessage(content=prompt)])
        return parse_messages(result.content)
