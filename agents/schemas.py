"""Decode targets for LLM output.

These models describe exactly what the event model is asked to return (the
field descriptions feed ``PydanticOutputParser`` format instructions).  They
accept the camelCase keys the model writes and are converted into the game's
own ``GameEvent`` once validated.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from game.state import MAX_YEAR_ADVANCE, MIN_YEAR_ADVANCE, Choice, GameEvent


# ── Effects ─────────────────────────────────────────────────────────────────


class EffectsDef(BaseModel):
    population: int | None = Field(None, description="Population change, between -500 and +500")
    gold: int | None = Field(None, description="Gold change, between -2 and +2")
    food: int | None = Field(None, description="Food change, between -2 and +2")
    defense: int | None = Field(None, description="Defense change, between -2 and +2")
    culture: int | None = Field(None, description="Culture change, between -2 and +2")


# ── Event ───────────────────────────────────────────────────────────────────


class ChoiceDef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Short unique identifier, e.g. 'choice1'")
    label: str = Field(description="Short physical action, e.g. 'Build stone levees'")
    effects: EffectsDef = Field(default_factory=EffectsDef, description="Stat changes caused by this choice")
    visual_change: str = Field(
        "",
        alias="visualChange",
        description="What the city looks like AFTER this choice, described physically",
    )
    outcome: str = Field("", description="1-2 sentence dramatic narrative of what happened")


class GameEventDef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, description="Short event title")
    description: str = Field(min_length=1, description="2-3 dramatic, visual sentences")
    visual_change: str = Field(
        "",
        alias="visualChange",
        description="What the city looks like NOW, as the event strikes",
    )
    choices: list[ChoiceDef] = Field(min_length=2, description="2 or 3 choices")
    year_advance: float | None = Field(
        None,
        alias="yearAdvance",
        description=f"Years that pass once resolved, between {MIN_YEAR_ADVANCE} and {MAX_YEAR_ADVANCE}",
    )

    def to_event(self) -> GameEvent:
        return GameEvent(
            title=self.title,
            description=self.description,
            visual_change=self.visual_change,
            year_advance=self.year_advance,
            choices=tuple(
                Choice(
                    id=c.id,
                    label=c.label,
                    effects=c.effects.model_dump(exclude_none=True),
                    visual_change=c.visual_change,
                    outcome=c.outcome,
                )
                for c in self.choices
            ),
        )
