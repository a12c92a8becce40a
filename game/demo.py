"""Offline collaborators for demo mode.

This module provides a scripted event pool (no event model needed), a
procedural city painter (no image model needed) and canned loading messages,
so the whole turn loop can be played and tested without an API key.

Everything here is deterministic: the same turn, civilization and prompt
always produce the same event and the same picture.
"""

from __future__ import annotations

import io
import random
import zlib
from typing import Sequence

from PIL import Image, ImageDraw

from game.assets import encode_image
from game.state import (
    INITIAL_STATS,
    Choice,
    CityImage,
    Civilization,
    GameEvent,
    HistoryEntry,
    Phase,
    Stats,
)

CANVAS_SIZE = (512, 384)

# (ground, river, roof) colours per civilization
_PALETTES: dict[Civilization, tuple[tuple[int, int, int], ...]] = {
    Civilization.ROME: ((122, 128, 84), (70, 110, 150), (178, 84, 52)),
    Civilization.INDIA: ((150, 120, 70), (60, 100, 120), (196, 120, 40)),
    Civilization.EGYPT: ((206, 176, 118), (40, 90, 140), (228, 212, 170)),
}


def _c(id: str, label: str, outcome: str, visual: str = "", **effects: int) -> Choice:
    return Choice(id=id, label=label, effects=effects, visual_change=visual, outcome=outcome)


def get_demo_event_pool() -> list[GameEvent]:
    """Return the scripted events, in the order a demo game meets them."""
    return [
        GameEvent(
            title="The First Foundations",
            description=(
                "Your people have settled beside the river. The elders gather at dusk "
                "to decide what the village should raise first."
            ),
            visual_change="A cluster of mud huts beside a slow river, smoke rising from cook fires.",
            year_advance=10,
            choices=(
                _c("farms", "Clear land for farms",
                   "The first furrows are cut, and by harvest the granaries overflow.",
                   "Neat green fields spread out from the huts along the river.",
                   food=2, population=150),
                _c("palisade", "Raise a wooden palisade",
                   "A ring of sharpened logs now guards the huts. Raiders think twice.",
                   "A wooden palisade encircles the village.",
                   defense=2, gold=-1),
                _c("shrine", "Build a riverside shrine",
                   "Pilgrims arrive with offerings, and the village gains a heart.",
                   "A small stone shrine stands on the riverbank.",
                   culture=2, gold=-1),
            ),
        ),
        GameEvent(
            title="The River Floods",
            description=(
                "Spring rains swell the river past its banks. Water pours into the "
                "lower quarter and families climb onto their roofs."
            ),
            visual_change="Brown floodwater covers the eastern quarter; people wait on rooftops.",
            year_advance=5,
            choices=(
                _c("levees", "Build stone levees",
                   "Your engineers worked tirelessly; the waters receded and the quarter was rebuilt stronger.",
                   "Stone levees line the riverbank and the quarter stands dry again.",
                   gold=-1, defense=1, population=-80),
                _c("higher", "Move homes to higher ground",
                   "The people abandon the lowlands and build anew on the hills.",
                   "New houses climb the hillside; the old quarter lies empty and muddy.",
                   food=-1, population=-40),
            ),
        ),
        GameEvent(
            title="Gold in the Hills",
            description="Shepherds return with glittering stones from the eastern hills.",
            visual_change="Tents and diggings scar the hills east of the city.",
            year_advance=7,
            choices=(
                _c("mine", "Open a royal mine",
                   "Ore carts rattle through the gates and the treasury swells.",
                   "Mine shafts and spoil heaps cover the eastern hills.",
                   gold=2, population=200),
                _c("leave", "Leave the hills sacred",
                   "The priests bless your restraint and pilgrims honour the untouched hills.",
                   "",
                   culture=1),
            ),
        ),
        GameEvent(
            title="Raiders at the Gates",
            description="A warband camps within sight of the walls, their fires burning through the night.",
            visual_change="Enemy tents and banners ring the city; smoke rises from outlying farms.",
            year_advance=3,
            choices=(
                _c("fight", "Rally the militia",
                   "Your warriors rallied at the gates and repelled the invaders!",
                   "Broken siege ladders lie beneath the walls; the enemy camp is burning.",
                   defense=-1, population=-300, culture=1),
                _c("tribute", "Pay tribute",
                   "The raiders ride off laden with silver, and the city breathes again.",
                   "The enemy camp is packed up; the fields are quiet once more.",
                   gold=-2),
                _c("walls", "Man the walls and wait",
                   "The siege drags on for a season before the raiders give up.",
                   "Soldiers line every wall; the outer fields lie trampled.",
                   food=-2, population=-150),
            ),
        ),
        GameEvent(
            title="A Caravan from Afar",
            description="Camels laden with spices and silk crowd the market square.",
            visual_change="A long caravan winds through the city gates into a crowded marketplace.",
            year_advance=6,
            choices=(
                _c("market", "Expand the marketplace",
                   "Merchant stalls multiply and foreign coins ring on the counters.",
                   "A sprawling marketplace with striped awnings fills the city centre.",
                   gold=2, population=300),
                _c("tax", "Tax the traders heavily",
                   "The treasury fills, though the caravans may not return.",
                   "",
                   gold=1, culture=-1),
            ),
        ),
        GameEvent(
            title="Famine Years",
            description="The rains fail two years running. The fields crack and the granaries empty.",
            visual_change="Brown, cracked fields surround the city; the river has shrunk to a trickle.",
            year_advance=4,
            choices=(
                _c("canals", "Dig irrigation canals",
                   "The canals bring the river back to the fields, and green returns.",
                   "Irrigation canals criss-cross the fields, which are green again.",
                   food=2, gold=-2),
                _c("ration", "Ration the grain",
                   "Hard months pass; many leave, but the city endures.",
                   "",
                   food=1, population=-400),
            ),
        ),
        GameEvent(
            title="The Grand Temple",
            description="Your architects present plans for a temple that would dwarf every building in the city.",
            visual_change="Scaffolding and stone blocks crowd the central square.",
            year_advance=12,
            choices=(
                _c("build", "Build the temple",
                   "Years of labour raise a wonder that draws visitors from distant lands.",
                   "A towering columned temple dominates the skyline.",
                   culture=2, gold=-2, population=250),
                _c("aqueduct", "Build an aqueduct instead",
                   "Fresh water flows into every quarter, and the city grows healthy.",
                   "A long arched aqueduct strides across the plain into the city.",
                   food=1, population=500),
            ),
        ),
        GameEvent(
            title="Plague Ships",
            description="Sailors from a foreign port bring a fever that spreads through the docks.",
            visual_change="Quarantine flags fly over the harbour; the streets are empty.",
            year_advance=3,
            choices=(
                _c("quarantine", "Quarantine the docks",
                   "The fever is contained, though trade suffers for a year.",
                   "Barricades seal off the harbour district.",
                   gold=-1, population=-100),
                _c("ignore", "Keep the port open",
                   "The fever spreads through every quarter before it burns out.",
                   "",
                   population=-5000, gold=1),
            ),
        ),
    ]


# ── Painter ─────────────────────────────────────────────────────────────────


def paint_city(
    civilization: Civilization,
    population: int,
    seed: int = 0,
    size: tuple[int, int] = CANVAS_SIZE,
) -> bytes:
    """Paint a top-down toy city and return it as PNG bytes.

    The number of buildings grows with population; ``seed`` varies the layout.
    """
    ground, river, roof = _PALETTES[civilization]
    width, height = size
    rng = random.Random(f"{civilization.value}:{seed}")

    img = Image.new("RGB", size, ground)
    draw = ImageDraw.Draw(img)

    # River across the lower third
    river_y = int(height * 0.72)
    draw.rectangle([0, river_y, width, river_y + height // 12], fill=river)

    # Buildings cluster around the centre; the radius grows with the city.
    count = max(6, min(400, population // 40))
    spread = min(0.45, 0.12 + population / 40000)
    cx, cy = width / 2, height * 0.42
    for _ in range(count):
        x = int(cx + rng.gauss(0, spread) * width)
        y = int(cy + rng.gauss(0, spread * 0.6) * height)
        w = rng.randint(4, 10)
        h = rng.randint(4, 8)
        shade = rng.randint(-25, 25)
        color = tuple(max(0, min(255, c + shade)) for c in roof)
        draw.rectangle([x, y, x + w, y + h], fill=color, outline=(40, 30, 20))

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def demo_base_image(civilization: Civilization) -> CityImage:
    """Stand-in for the static civilization asset."""
    return CityImage(
        data=encode_image(paint_city(civilization, INITIAL_STATS.population)),
        mime_type="image/png",
    )


# ── Collaborators ───────────────────────────────────────────────────────────


class DemoEventGenerator:
    """Plays the scripted pool in order, looping once exhausted."""

    def __init__(self, pool: list[GameEvent] | None = None) -> None:
        self.pool = pool or get_demo_event_pool()

    async def generate_event(
        self,
        turn: int,
        year: int,
        stats: Stats,
        history: Sequence[HistoryEntry],
        civilization: Civilization,
    ) -> GameEvent:
        return self.pool[turn % len(self.pool)]


class DemoImageGenerator:
    """Repaints the toy city for the new population; the prompt seeds the layout."""

    async def generate_image(
        self,
        prompt: str,
        previous_image: str | None = None,
        previous_mime_type: str | None = None,
        population: int | None = None,
        civilization: Civilization | None = None,
    ) -> CityImage:
        seed = zlib.crc32(prompt.encode("utf-8"))
        raw = paint_city(
            civilization or Civilization.ROME,
            population if population is not None else INITIAL_STATS.population,
            seed=seed,
        )
        return CityImage(data=encode_image(raw), mime_type="image/png")


DEMO_MESSAGES: dict[Phase, list[str]] = {
    Phase.PROCESSING: [
        "Messengers run through the streets",
        "Masons sharpen their chisels",
        "The council argues late into the night",
    ],
    Phase.LOADING: [
        "Children play near the river",
        "Merchants open their stalls at dawn",
        "Elders gather beneath the old oak",
    ],
}


class DemoNarrator:
    async def generate_messages(
        self,
        phase: Phase,
        event_title: str | None = None,
        choice_label: str | None = None,
        year: int | None = None,
    ) -> list[str]:
        return list(DEMO_MESSAGES.get(phase, DEMO_MESSAGES[Phase.LOADING]))
