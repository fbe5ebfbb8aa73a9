"""Raster target for the client sketch.

The drawing area is a `SCALE` x `SCALE` square surrounded by a `BORDER`
pixel margin. Unit-disk coordinates in [-1, 1] map onto the drawing area
with

    pixel(v) = floor((v + 1) * SCALE / 2) + BORDER

on both axes. The y axis is not flipped, so positive y goes down the image.
Segments are plotted with Pillow's one-pixel line primitive, which clips to
the image bounds.
"""

from __future__ import annotations

import logging
import math

from PIL import Image, ImageDraw

from circle.point import Point

logger = logging.getLogger(__name__)

SCALE = 1024
BORDER = SCALE // 16

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)


def to_pixel(v: float, scale: int = SCALE, border: int = BORDER) -> int:
    return math.floor((v + 1.0) * scale / 2.0) + border


class Canvas:
    def __init__(self, scale: int = SCALE, border: int = BORDER):
        self.scale = scale
        self.border = border
        side = scale + border * 2
        self.image = Image.new("RGBA", (side, side), WHITE)
        self._draw = ImageDraw.Draw(self.image)

    @property
    def size(self) -> int:
        return self.image.width

    def line(self, p1: Point, p2: Point) -> None:
        """Draw an opaque black segment between two unit-disk points."""
        x1, y1 = self._trans(p1)
        x2, y2 = self._trans(p2)
        self._draw.line([(x1, y1), (x2, y2)], fill=BLACK, width=1)

    def _trans(self, p: Point) -> tuple[int, int]:
        return (
            to_pixel(p.x, self.scale, self.border),
            to_pixel(p.y, self.scale, self.border),
        )

    def save(self, path: str) -> None:
        self.image.save(path, format="PNG")
        logger.info("Saved sketch to %s", path)
