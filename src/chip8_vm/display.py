"""Framebuffer: 64x32 monochrome display for the CHIP-8 VM."""

from typing import List

import numpy as np


SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
SPRITE_WIDTH = 8


class Framebuffer:
    """Flat row-major array of 0/1 pixels plus a redraw-needed flag.

    Attributes:
        pixels: numpy uint8 array of SCREEN_WIDTH * SCREEN_HEIGHT cells
        needs_redraw: Set whenever pixels change, cleared by the consumer
    """

    def __init__(self):
        self.pixels = np.zeros(SCREEN_WIDTH * SCREEN_HEIGHT, dtype=np.uint8)
        self.needs_redraw = False

    def clear(self) -> None:
        self.pixels.fill(0)
        self.needs_redraw = True

    def reset(self) -> None:
        self.pixels.fill(0)
        self.needs_redraw = False

    def get_pixel(self, x: int, y: int) -> int:
        return int(self.pixels[(y % SCREEN_HEIGHT) * SCREEN_WIDTH + (x % SCREEN_WIDTH)])

    def draw_sprite(self, x: int, y: int, rows: bytes) -> bool:
        """XOR-blit an 8-pixel-wide sprite with per-axis wraparound.

        Args:
            x: Left column (wrapped modulo SCREEN_WIDTH)
            y: Top row (wrapped modulo SCREEN_HEIGHT)
            rows: One byte per sprite row, MSB is the leftmost pixel

        Returns:
            True if any lit pixel was turned off (collision)
        """
        collision = False
        for row, bits in enumerate(rows):
            py = (y + row) % SCREEN_HEIGHT
            for col in range(SPRITE_WIDTH):
                if bits & (0x80 >> col):
                    pos = py * SCREEN_WIDTH + (x + col) % SCREEN_WIDTH
                    if self.pixels[pos]:
                        collision = True
                    self.pixels[pos] ^= 1
        self.needs_redraw = True
        return collision

    def consume_redraw(self) -> bool:
        """Return the redraw flag and clear it."""
        pending = self.needs_redraw
        self.needs_redraw = False
        return pending

    def rows(self) -> List[List[int]]:
        """Pixels as SCREEN_HEIGHT lists of SCREEN_WIDTH ints."""
        return self.pixels.reshape(SCREEN_HEIGHT, SCREEN_WIDTH).tolist()

    def lit_count(self) -> int:
        return int(self.pixels.sum())
