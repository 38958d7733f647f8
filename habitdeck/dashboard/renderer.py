"""Key face and console renderers."""

import base64
import io
import logging
from typing import Iterable

from PIL import Image, ImageDraw

from ..sync.grid import Cell

logger = logging.getLogger(__name__)

ASCII_MARKS = {True: "✔", False: " "}


class KeyRenderer:
    """Renders the checked / empty square shown on a key."""

    def __init__(self, size: int = 72):
        """
        Initialize renderer.

        Args:
            size: Key face edge in pixels (72 for a Stream Deck MK.2)
        """
        self.size = size
        self._cache: dict[bool, bytes] = {}

    def render_key(self, is_done: bool) -> bytes:
        """
        Render a key face.

        Args:
            is_done: Draw a check mark inside the square

        Returns:
            PNG bytes
        """
        if is_done not in self._cache:
            image = self._draw(is_done)
            buffer = io.BytesIO()
            image.save(buffer, "PNG")
            self._cache[is_done] = buffer.getvalue()
            logger.debug(f"Rendered {'done' if is_done else 'empty'} key face ({self.size}px)")
        return self._cache[is_done]

    def render_key_base64(self, is_done: bool) -> str:
        return base64.b64encode(self.render_key(is_done)).decode("ascii")

    def _draw(self, is_done: bool) -> Image.Image:
        """Draw the square, and the check mark when done."""
        size = self.size
        image = Image.new("RGB", (size, size), "black")
        draw = ImageDraw.Draw(image)

        margin = size // 6
        stroke = max(2, size // 18)
        box = [margin, margin, size - margin, size - margin]
        draw.rounded_rectangle(box, radius=size // 10, outline="white", width=stroke)

        if is_done:
            inner = size - 2 * margin
            points = [
                (margin + inner * 0.22, margin + inner * 0.52),
                (margin + inner * 0.42, margin + inner * 0.72),
                (margin + inner * 0.78, margin + inner * 0.30),
            ]
            draw.line(points, fill="white", width=stroke + 1, joint="curve")

        return image


def format_grid(cells: Iterable[Cell], cols: int, title: str = "Stream Deck") -> list[str]:
    """
    Draw the grid as a box of ASCII check marks, one string per line.

    Args:
        cells: Cells in index order
        cols: Cells per row
        title: Caption in the top box

    Returns:
        Lines ready to be logged
    """
    cells = list(cells)
    if not cells or cols < 1:
        return []

    width = cols * 4 - 1
    lines = [
        "┌" + "─" * width + "┐",
        "│" + title.center(width) + "│",
        "├" + "───┬" * (cols - 1) + "───┤",
    ]

    rows = [cells[i:i + cols] for i in range(0, len(cells), cols)]
    for n, row in enumerate(rows):
        lines.append("│" + "".join(f" {ASCII_MARKS[cell.is_done]} │" for cell in row))
        if n < len(rows) - 1:
            lines.append("├" + "───┼" * (cols - 1) + "───┤")

    lines.append("└" + "───┴" * (cols - 1) + "───┘")
    return lines
