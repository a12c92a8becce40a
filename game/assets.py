"""Static per-civilization base images and image encoding helpers.

Every game opens on a hand-picked picture of its civilization rather than a
generated one.  Images live in ``assets/civilizations/`` at the project root
(override with ``CITY_ASSETS_DIR``) as ``<civilization>.jpg`` or
``<civilization>.png``; the JPEG is preferred when both exist.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from pathlib import Path

from game.errors import BaseImageError
from game.state import CityImage, Civilization

logger = logging.getLogger(__name__)

_ASSETS_DIR = Path(__file__).parent.parent / "assets" / "civilizations"

# Tried in order.
BASE_IMAGE_FORMATS: list[tuple[str, str]] = [
    (".jpg", "image/jpeg"),
    (".png", "image/png"),
]


def assets_dir() -> Path:
    override = os.getenv("CITY_ASSETS_DIR")
    return Path(override) if override else _ASSETS_DIR


def encode_image(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def decode_image(data: str) -> bytes:
    """Decode a base64 image payload; raises ``ValueError`` on bad input."""
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 image payload: {exc}") from exc


def load_base_image(civilization: Civilization, directory: Path | None = None) -> CityImage:
    """Return the base image for ``civilization``.

    Raises ``BaseImageError`` if neither a JPEG nor a PNG exists; a game cannot
    start without one.
    """
    directory = directory or assets_dir()
    for suffix, mime_type in BASE_IMAGE_FORMATS:
        path = directory / f"{civilization.value}{suffix}"
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            continue
        except OSError as exc:
            raise BaseImageError(f"Could not read base image {path}: {exc}") from exc
        logger.debug("Loaded base image %s (%d bytes)", path, len(raw))
        return CityImage(data=encode_image(raw), mime_type=mime_type)

    raise BaseImageError(
        f"Base image not found for {civilization.value}. Add "
        f"{civilization.value}.jpg (or .png) to {directory}"
    )
