"""Chronicler agent — writes each turn's event using the event LLM.

The Chronicler receives the turn number, the in-game year, the city stats,
the last few history entries and the civilization.  It renders the Jinja2
prompt templates, appends the schema's format instructions, calls the model
and decodes the reply:

1. take the body of a ```json fence if there is one,
2. repair minor JSON damage with ``json_repair``,
3. validate against ``GameEventDef`` and convert to a ``GameEvent``.

Anything that fails along the way raises ``GenerationError``; a half-valid
event is never returned.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

import json_repair
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.output_parsers import PydanticOutputParser
from pydantic import ValidationError

from agents.client import get_event_model
from agents.prompt_loader import render
from agents.schemas import GameEventDef
from game.errors import GenerationError
from game.state import Civilization, GameEvent, HistoryEntry, Stats

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL)

# Stat levels at or below which the prompt steers toward a crisis.
CRISIS_LEVEL = 1


def parse_event(raw: str) -> GameEvent:
    """Decode a model reply into a ``GameEvent`` or raise ``GenerationError``."""
    match = _FENCE_RE.search(raw)
    json_str = match.group(1).strip() if match else raw.strip()

    repaired = json_repair.repair_json(json_str, return_objects=True)
    if not isinstance(repaired, dict):
        raise GenerationError("Event reply is not a JSON object")
    try:
        return GameEventDef.model_validate(repaired).to_event()
    except ValidationError as exc:
        raise GenerationError(f"Invalid event structure: {exc.error_count()} error(s)") from exc


class Chronicler:
    def __init__(self) -> None:
        self.model = get_event_model()

    def build_messages(
        self,
        turn: int,
        year: int,
        stats: Stats,
        history: Sequence[HistoryEntry],
        civilization: Civilization,
    ) -> list:
        system_prompt = render(
            "event_system.j2",
            turn=turn,
            year=year,
            stats=stats,
            history=list(history),
            civilization=civilization.value,
            first_turn=turn == 0,
            low_food=stats.food <= CRISIS_LEVEL,
            low_defense=stats.defense <= CRISIS_LEVEL,
        )
        parser = PydanticOutputParser(pydantic_object=GameEventDef)
        user_prompt = render("event_user.j2", format_instructions=parser.get_format_instructions())
        return [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]

    async def generate_event(
        self,
        turn: int,
        year: int,
        stats: Stats,
        history: Sequence[HistoryEntry],
        civilization: Civilization,
    ) -> GameEvent:
        messages = self.build_messages(turn, year, stats, history, civilization)
        result = await self.model.ainvoke(messages)
        event = parse_event(result.content)
        logger.info("Turn %d event: %s (%d choices)", turn, event.title, len(event.choices))
        return event
