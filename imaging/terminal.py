"""Render images as rich ``Text`` for Textual widgets.

Two renderings:

``to_rich_text``   — a dither overlay as shaded glyphs, for the title backdrop.
``to_halfblocks``  — a colour picture as ``▀`` cells (top pixel in the
                     foreground, bottom pixel in the background), giving two
                     image rows per terminal row.
"""

from __future__ import annotations

import io

from PIL import Image
from rich.color import Color
from rich.style import Style
from rich.text import Text

from game.assets import decode_image

# Coverage ramp, sparse to dense.
_SHADES = " ·:░▒▓█"

# A terminal cell is roughly twice as tall as it is wide.
CELL_ASPECT = 2


def _rows_for(size: tuple[int, int], columns: int, per_row: int) -> int:
    width, height = size
    return max(1, round(columns * height / width / per_row))


def to_rich_text(overlay: Image.Image, columns: int) -> Text:
    """Downsample an RGBA dither overlay to ``columns`` glyphs per row."""
    columns = max(1, columns)
    rows = _rows_for(overlay.size, columns, CELL_ASPECT)
    alpha = overlay.getchannel("A").resize((columns, rows), Image.Resampling.BOX)
    pixels = alpha.load()

    text = Text(no_wrap=True, overflow="crop")
    last = len(_SHADES) - 1
    for y in range(rows):
        line = "".join(_SHADES[round(pixels[x, y] / 255 * last)] for x in range(columns))
        text.append(line, style="grey62")
        if y < rows - 1:
            text.append("\n")
    return text


def to_halfblocks(image: Image.Image, columns: int) -> Text:
    """Render a colour image with half-block characters."""
    columns = max(1, columns)
    rows = _rows_for(image.size, columns, 1)
    rows += rows % 2
    small = image.convert("RGB").resize((columns, rows), Image.Resampling.LANCZOS)
    pixels = small.load()

    text = Text(no_wrap=True, overflow="crop")
    for y in range(0, rows, 2):
        for x in range(columns):
            top = Color.from_rgb(*pixels[x, y])
            bottom = Color.from_rgb(*pixels[x, y + 1])
            text.append("▀", style=Style(color=top, bgcolor=bottom))
        if y < rows - 2:
            text.append("\n")
    return text


def open_image(data: str) -> Image.Image:
    """Decode a base64 image payload into a loaded PIL image."""
    img = Image.open(io.BytesIO(decode_image(data)))
    img.load()
    return img
