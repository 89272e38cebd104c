"""
Pixel level primitives for the manual color remover.

`PixelBuffer` is the RGBA grid the removal engine works on; `matches` is the
per-pixel background test.
"""

from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np
from PIL import Image

RGBA = Tuple[int, int, int, int]


def color_distance(pixel: Sequence[int], reference: Sequence[int]) -> float:
    """Euclidean distance over the R, G, B channels. Alpha is ignored."""
    dr = int(pixel[0]) - int(reference[0])
    dg = int(pixel[1]) - int(reference[1])
    db = int(pixel[2]) - int(reference[2])
    return math.sqrt(dr * dr + dg * dg + db * db)


def matches(pixel: Sequence[int], reference: Sequence[int], tolerance: int) -> bool:
    """True when `pixel` is background for `reference`: distance strictly below tolerance."""
    return color_distance(pixel, reference) < tolerance


class PixelBuffer:
    """Fixed-size RGBA buffer backed by a (height, width, 4) uint8 array."""

    def __init__(self, data: np.ndarray):
        if data.ndim != 3 or data.shape[2] != 4:
            raise ValueError(f"expected an (H, W, 4) array, got shape {data.shape}")
        self._data = data.astype(np.uint8, copy=False)

    @classmethod
    def blank(cls, width: int, height: int, fill: RGBA = (0, 0, 0, 255)) -> "PixelBuffer":
        data = np.empty((height, width, 4), dtype=np.uint8)
        data[...] = fill
        return cls(data)

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        return cls(np.array(image.convert("RGBA"), dtype=np.uint8))

    def to_image(self) -> Image.Image:
        return Image.fromarray(self._data)

    @property
    def width(self) -> int:
        return int(self._data.shape[1])

    @property
    def height(self) -> int:
        return int(self._data.shape[0])

    @property
    def array(self) -> np.ndarray:
        return self._data

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int) -> RGBA:
        if not self.in_bounds(x, y):
            raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height} buffer")
        r, g, b, a = self._data[y, x]
        return (int(r), int(g), int(b), int(a))

    def set(self, x: int, y: int, rgba: Sequence[int]) -> None:
        if not self.in_bounds(x, y):
            raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height} buffer")
        self._data[y, x] = rgba

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self._data.copy())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self._data.shape == other._data.shape and bool(np.array_equal(self._data, other._data))

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"
