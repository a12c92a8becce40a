"""Artist agent — paints and repaints the city with an image model.

Requests go through OpenRouter's chat completions endpoint with
``modalities=["image", "text"]``; generated pictures come back on the
assistant message as ``images`` entries holding ``data:`` URLs.

When a previous image is supplied the model is asked to *update* that
picture; otherwise it paints from the description alone.  The framing zooms
out as the population grows so the whole city stays in frame.
"""

from __future__ import annotations

import logging
import re

from agents.client import get_image_client, image_model_name
from agents.prompt_loader import render
from game.errors import GenerationError
from game.state import DEFAULT_MIME_TYPE, CityImage, Civilization

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)

DEFAULT_POPULATION = 200

# (exclusive population ceiling, framing); the last tier has no ceiling.
FRAMING_TIERS: list[tuple[int | None, str]] = [
    (500, "Close aerial view showing individual huts and people. The settlement is small and intimate."),
    (2000, "Medium aerial view. The town is growing; zoom out slightly to show the expanding borders, "
           "surrounding farms, and new districts."),
    (5000, "Wide aerial view. The city is substantial; zoom out to show the full city walls, multiple "
           "districts, and surrounding countryside. Keep the city centered."),
    (15000, "High aerial view. This is a major city; zoom out further to show the sprawling metropolis, "
            "outer settlements, trade routes, and surrounding landscape. City stays centered."),
    (None, "Very high aerial/satellite view. This is a grand civilization; zoom out significantly to show "
           "the massive city, satellite towns, harbors, roads, and vast territory. City centered in frame."),
]


def framing_for(population: int | None) -> str:
    pop = DEFAULT_POPULATION if population is None else population
    for ceiling, framing in FRAMING_TIERS:
        if ceiling is None or pop < ceiling:
            return framing
    raise AssertionError("unreachable: last tier has no ceiling")


def _field(obj: object, name: str) -> object:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_image(response: object) -> CityImage:
    """Pull the first generated image out of a chat completion.

    Raises ``GenerationError`` if the reply carries no image.
    """
    choices = _field(response, "choices") or []
    for choice in choices:
        message = _field(choice, "message")
        for item in _field(message, "images") or []:
            url = _field(_field(item, "image_url"), "url")
            if not isinstance(url, str):
                continue
            match = _DATA_URL_RE.match(url.strip())
            if match and match.group("data"):
                return CityImage(data=match.group("data"), mime_type=match.group("mime"))
    raise GenerationError("No image was generated")


class Artist:
    def __init__(self) -> None:
        self.client = get_image_client()
        self.model = image_model_name()

    def build_messages(
        self,
        prompt: str,
        previous_image: str | None = None,
        previous_mime_type: str | None = None,
        population: int | None = None,
        civilization: Civilization | None = None,
    ) -> list[dict]:
        system_prompt = render(
            "image_system.j2",
            framing=framing_for(population),
            civilization=civilization.value if civilization else None,
        )
        if previous_image:
            mime = previous_mime_type or DEFAULT_MIME_TYPE
            content = [
                {"type": "image_url", "image_url": {"url": f"data:{mime};base64,{previous_image}"}},
                {"type": "text", "text": render("image_update.j2", changes=prompt)},
            ]
        else:
            content = [{"type": "text", "text": render("image_fresh.j2", description=prompt)}]
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": content},
        ]

    async def generate_image(
        self,
        prompt: str,
        previous_image: str | None = None,
        previous_mime_type: str | None = None,
        population: int | None = None,
        civilization: Civilization | None = None,
    ) -> CityImage:
        messages = self.build_messages(
            prompt, previous_image, previous_mime_type, population, civilization
        )
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            extra_body={"modalities": ["image", "text"]},
        )
        image = extract_image(response)
        logger.info("Generated %s image (%d base64 chars)", image.mime_type, len(image.data))
        return image
