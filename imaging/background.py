"""Dithered backdrop for the title screen and the ``--dither`` command."""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image, ImageOps

from imaging.dither import DitherOptions, dither_image
from imaging.gradient import GradientSpec

logger = logging.getLogger(__name__)

BACKGROUND_OPTIONS = DitherOptions(
    threshold=130,
    invert=True,
    brightness=-28,
    contrast=28,
    gradient=GradientSpec.flat(opacity=46, density=100),
)


def cover_fit(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Scale ``image`` to cover ``size`` and centre-crop it onto a black canvas."""
    canvas = Image.new("RGB", size, (0, 0, 0))
    fitted = ImageOps.fit(image.convert("RGBA"), size, method=Image.Resampling.LANCZOS)
    canvas.paste(fitted, (0, 0), fitted)
    return canvas


def render_background(
    image: Image.Image,
    size: tuple[int, int],
    options: DitherOptions = BACKGROUND_OPTIONS,
) -> Image.Image:
    return dither_image(cover_fit(image, size), options)


def dither_file(source: Path, target: Path, size: tuple[int, int] | None = None) -> Path:
    """Render the background overlay for the image at ``source`` into ``target`` (PNG)."""
    with Image.open(source) as img:
        img.load()
        overlay = render_background(img, size or img.size)
    overlay.save(target, format="PNG")
    logger.info("Wrote dithered background %s (%dx%d)", target, *overlay.size)
    return target
