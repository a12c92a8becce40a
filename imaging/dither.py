"""Ordered dithering — turns a picture into a sparse grid of white cells.

The source is sampled on a regular grid, each sample's luminance is pushed
through a contrast curve, a brightness offset and an optional inversion, and
then compared against a threshold.  With ``use_ordered`` the threshold is
modulated by the 8x8 Bayer matrix, scaled by the gradient's local density;
each "on" cell becomes a white square whose alpha is the gradient's local
opacity.  Cells that stay off are fully transparent, so the result is an
overlay to composite over some backdrop, not a filtered copy of the source.

The pass is deterministic: the same pixels and options always produce the
same RGBA bytes.
"""

from __future__ import annotations

import math

from PIL import Image, ImageDraw, ImageFilter
from pydantic import BaseModel, ConfigDict, Field

from imaging.gradient import GradientSpec, mask_at

BAYER_MATRIX_8X8: tuple[tuple[int, ...], ...] = (
    (0, 48, 12, 60, 3, 51, 15, 63),
    (32, 16, 44, 28, 35, 19, 47, 31),
    (8, 56, 4, 52, 11, 59, 7, 55),
    (40, 24, 36, 20, 43, 27, 39, 23),
    (2, 50, 14, 62, 1, 49, 13, 61),
    (34, 18, 46, 30, 33, 17, 45, 29),
    (10, 58, 6, 54, 9, 57, 5, 53),
    (42, 26, 38, 22, 41, 25, 37, 21),
)


class DitherOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    threshold: float = 128
    pixel_size: int = Field(default=1, ge=1)
    spacing: int = Field(default=2, ge=1)
    blur: float = Field(default=0, ge=0)
    resolution: int = Field(default=2, ge=1)
    invert: bool = False
    brightness: float = 0
    contrast: float = 0
    use_ordered: bool = True
    gradient: GradientSpec = Field(default_factory=GradientSpec.flat)

    @property
    def stride(self) -> int:
        return max(1, math.floor(self.spacing / self.resolution))


def luminance(r: int, g: int, b: int) -> float:
    return r * 0.299 + g * 0.587 + b * 0.114


def adjust(value: float, options: DitherOptions) -> float:
    """Apply the contrast curve, brightness offset and inversion to a luminance."""
    c = options.contrast / 100
    value = value * (1 + c) + value * (value / 255) * c
    value += options.brightness
    if options.invert:
        value = 255 - value
    return value


def is_on(value: float, x: int, y: int, density: float, options: DitherOptions) -> bool:
    if not options.use_ordered:
        return value > options.threshold
    bayer = BAYER_MATRIX_8X8[y % 8][x % 8] / 64
    return value > options.threshold + (bayer - 0.5) * 255 * density


def dither_image(image: Image.Image, options: DitherOptions | None = None) -> Image.Image:
    """Return the RGBA dither overlay for ``image`` (same size as the source).

    Squares are painted in scan order.  When ``pixel_size`` is larger than
    the stride, squares overlap and each one is alpha-composited over what is
    already there, so overlaps grow more opaque.
    """
    options = options or DitherOptions()
    source = image.convert("RGB")
    if options.blur > 0:
        source = source.filter(ImageFilter.GaussianBlur(radius=options.blur))

    width, height = source.size
    pixels = source.load()
    overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    size = options.pixel_size
    overlapping = size > options.stride
    # One white square per alpha level, for compositing.
    squares: dict[int, Image.Image] = {}

    for y in range(0, height, options.stride):
        for x in range(0, width, options.stride):
            r, g, b = pixels[x, y]
            value = adjust(luminance(r, g, b), options)
            mask = mask_at(x, y, width, height, options.gradient)
            if not is_on(value, x, y, mask.density, options):
                continue
            alpha = round(mask.opacity * 255)
            if overlapping:
                square = squares.get(alpha)
                if square is None:
                    square = squares[alpha] = Image.new("RGBA", (size, size), (255, 255, 255, alpha))
                overlay.alpha_composite(square, dest=(x, y))
            else:
                # Cells never overlap, so the overlay under them is still clear.
                draw.rectangle([x, y, x + size - 1, y + size - 1], fill=(255, 255, 255, alpha))

    return overlay
