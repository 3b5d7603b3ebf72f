"""
Image pyramids for coarse-to-fine optical flow.

Each level halves the previous one with a 2x2 box filter. The same
downsampling runs for both frames of a tracking call so their levels
line up exactly.
"""

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from motiontrack.core.image import PixelBuffer


# Smallest width/height a pyramid level may have
MIN_LEVEL_SIZE = 2


@dataclass(frozen=True)
class Pyramid:
    """
    Ordered, immutable sequence of PixelBuffers.

    Level 0 is the full resolution image, level k has roughly
    1/2**k of its linear size.
    """
    levels: tuple[PixelBuffer, ...]

    def __len__(self) -> int:
        return len(self.levels)

    def __getitem__(self, level: int) -> PixelBuffer:
        return self.levels[level]

    def __iter__(self) -> Iterator[PixelBuffer]:
        return iter(self.levels)

    @property
    def base(self) -> PixelBuffer:
        return self.levels[0]

    def sizes(self) -> list[tuple[int, int]]:
        """Return (width, height) of every level."""
        return [(buf.width, buf.height) for buf in self.levels]


def downsample(buffer: PixelBuffer) -> PixelBuffer | None:
    """
    Halve a buffer with a 2x2 box filter.

    An odd trailing row or column is dropped. Returns None when the
    result would be smaller than MIN_LEVEL_SIZE in either direction.
    """
    new_h = buffer.height // 2
    new_w = buffer.width // 2
    if new_h < MIN_LEVEL_SIZE or new_w < MIN_LEVEL_SIZE:
        return None

    src = buffer.data[:new_h * 2, :new_w * 2]
    blocks = src.reshape(new_h, 2, new_w, 2)
    # Fixed summation order keeps repeated builds bit-identical
    summed = (blocks[:, 0, :, 0] + blocks[:, 0, :, 1]) + (blocks[:, 1, :, 0] + blocks[:, 1, :, 1])
    return PixelBuffer(np.ascontiguousarray(summed * 0.25))


def build_pyramid(base: PixelBuffer, levels: int) -> Pyramid:
    """
    Build an image pyramid.

    Args:
        base: Full resolution image (level 0)
        levels: Requested number of levels, including the base

    Returns:
        Pyramid with at most ``levels`` levels. Fewer are returned when
        the image gets too small to halve again.

    Raises:
        ValueError: If levels < 1
    """
    if levels < 1:
        raise ValueError(f"Pyramid needs at least one level, got {levels}")

    built = [base]
    while len(built) < levels:
        smaller = downsample(built[-1])
        if smaller is None:
            break
        built.append(smaller)

    return Pyramid(tuple(built))
