"""Reference compute routines implemented with numpy.

Each routine processes the image in horizontal bands and reports progress
after every band. When the callback returns False the routine stops and
leaves the remaining rows untouched.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence

import numpy as np

from minimage.core.gateway import Circle, ProgressCallback

DEFAULT_BANDS = 20

WHITE = np.array([255, 255, 255, 255], dtype=np.uint8)


def _row_bands(height: int, progress: ProgressCallback, bands: int = DEFAULT_BANDS) -> Iterator[tuple[int, int]]:
    """Yield (start, stop) row ranges, reporting progress after each one."""
    if not progress(0.0):
        return
    step = max(1, -(-height // bands))
    for y0 in range(0, height, step):
        y1 = min(height, y0 + step)
        yield y0, y1
        if not progress(y1 / height):
            return


class ReferenceGateway:
    """numpy implementation of the compute gateway."""

    def __init__(self, bands: int = DEFAULT_BANDS) -> None:
        self.bands = bands

    def generate(self, buffer: np.ndarray, width: int, height: int, progress: ProgressCallback) -> None:
        """Fill a red/blue gradient: red grows along x, blue along y."""
        red = (255 * np.arange(width) // width).astype(np.int32)
        for y0, y1 in _row_bands(height, progress, self.bands):
            blue = (255 * np.arange(y0, y1) // height).astype(np.int32)
            band = buffer[y0:y1]
            band[..., 0] = red[None, :]
            band[..., 1] = red[None, :] * blue[:, None] // 255
            band[..., 2] = blue[:, None]
            band[..., 3] = 255

    def blur(
        self,
        buffer: np.ndarray,
        width: int,
        height: int,
        blur_width: int,
        blur_height: int,
        progress: ProgressCallback,
    ) -> None:
        """Box blur with an edge-clamped blur_width x blur_height window."""
        src = buffer.astype(np.float64)
        integral = np.zeros((height + 1, width + 1, src.shape[2]), dtype=np.float64)
        integral[1:, 1:] = src.cumsum(axis=0).cumsum(axis=1)

        ys = np.arange(height)
        y_lo = np.clip(ys - blur_height // 2, 0, height)
        y_hi = np.clip(ys + (blur_height - blur_height // 2), 0, height)
        xs = np.arange(width)
        x_lo = np.clip(xs - blur_width // 2, 0, width)
        x_hi = np.clip(xs + (blur_width - blur_width // 2), 0, width)
        col_count = (x_hi - x_lo).astype(np.float64)

        for y0, y1 in _row_bands(height, progress, self.bands):
            lo = integral[y_lo[y0:y1]]
            hi = integral[y_hi[y0:y1]]
            total = hi[:, x_hi] - lo[:, x_hi] - hi[:, x_lo] + lo[:, x_lo]
            count = (y_hi[y0:y1] - y_lo[y0:y1]).astype(np.float64)[:, None] * col_count[None, :]
            buffer[y0:y1] = np.clip(np.rint(total / count[..., None]), 0, 255).astype(np.uint8)

    def draw_circles(
        self,
        buffer: np.ndarray,
        width: int,
        height: int,
        circles: Sequence[Circle],
        progress: ProgressCallback,
    ) -> None:
        """Fill each circle white; progress is reported per circle."""
        if not circles or not progress(0.0):
            return
        scale = max(width, height)
        for i, circle in enumerate(circles):
            cx = circle.x * width
            cy = circle.y * height
            r = circle.radius * scale
            x0, x1 = max(0, int(cx - r)), min(width, int(cx + r) + 1)
            y0, y1 = max(0, int(cy - r)), min(height, int(cy + r) + 1)
            if x0 < x1 and y0 < y1:
                yy, xx = np.mgrid[y0:y1, x0:x1]
                inside = (xx + 0.5 - cx) ** 2 + (yy + 0.5 - cy) ** 2 <= r * r
                buffer[y0:y1, x0:x1][inside] = WHITE
            if not progress((i + 1) / len(circles)):
                return

    def color_correction(
        self,
        buffer: np.ndarray,
        width: int,
        height: int,
        red: float,
        green: float,
        blue: float,
        progress: ProgressCallback,
    ) -> None:
        """Add red/green/blue (as fractions of full scale) to each channel."""
        offset = np.array([red, green, blue], dtype=np.float64) * 255.0
        for y0, y1 in _row_bands(height, progress, self.bands):
            band = buffer[y0:y1, :, :3].astype(np.float64) + offset
            buffer[y0:y1, :, :3] = np.clip(np.rint(band), 0, 255).astype(np.uint8)

    def gamma_correction(
        self, buffer: np.ndarray, width: int, height: int, gamma: float, progress: ProgressCallback
    ) -> None:
        """Map each color channel through c -> 255 * (c / 255) ** gamma."""
        lut = np.clip(np.rint(255.0 * (np.arange(256) / 255.0) ** gamma), 0, 255).astype(np.uint8)
        for y0, y1 in _row_bands(height, progress, self.bands):
            buffer[y0:y1, :, :3] = lut[buffer[y0:y1, :, :3]]

    def draw_room(
        self,
        buffer: np.ndarray,
        width: int,
        height: int,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        progress: ProgressCallback,
    ) -> None:
        """Paint white every pixel whose normalized position is inside the box."""
        nx = np.arange(width) / width
        cols = (nx >= x1) & (nx <= x2)
        for r0, r1 in _row_bands(height, progress, self.bands):
            ny = np.arange(r0, r1) / height
            rows = (ny >= y1) & (ny <= y2)
            mask = rows[:, None] & cols[None, :]
            buffer[r0:r1][mask] = WHITE
