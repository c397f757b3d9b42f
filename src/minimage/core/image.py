"""Per-image state and pixel buffer helpers."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np

from minimage.core.errors import ImageNotInitializedError

CHANNELS = 4  # RGBA


def new_pixels(width: int, height: int) -> np.ndarray:
    """Allocate a zeroed RGBA buffer, row-major, height x width x 4."""
    return np.zeros((height, width, CHANNELS), dtype=np.uint8)


@dataclass
class ImageState:
    """Mutable record owned by exactly one image pipeline.

    ``pixels`` is ``None`` until a generating stage has run.
    """

    pixels: np.ndarray | None = None
    prefix: str | None = None

    @property
    def initialized(self) -> bool:
        return self.pixels is not None

    @property
    def width(self) -> int:
        return 0 if self.pixels is None else int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return 0 if self.pixels is None else int(self.pixels.shape[0])

    def require_pixels(self, image_id: int) -> np.ndarray:
        """Return the pixel buffer or raise if no generating stage ran."""
        if self.pixels is None:
            raise ImageNotInitializedError(image_id)
        return self.pixels


@contextlib.contextmanager
def fresh_buffer(width: int, height: int) -> Iterator[np.ndarray]:
    """Scope a newly allocated buffer for a generating compute call.

    The buffer is only handed over if the caller keeps a reference after the
    block; on failure it is dropped here.
    """
    buffer = new_pixels(width, height)
    try:
        yield buffer
    finally:
        del buffer


@contextlib.contextmanager
def scratch_buffer(pixels: np.ndarray) -> Iterator[np.ndarray]:
    """Scope a contiguous scratch copy of ``pixels`` for one compute call.

    The routine works on the copy; results are written back into ``pixels``
    only when the block exits normally. The copy is released on every path.
    """
    scratch = np.ascontiguousarray(pixels, dtype=np.uint8).copy()
    try:
        yield scratch
        pixels[...] = scratch
    finally:
        del scratch
