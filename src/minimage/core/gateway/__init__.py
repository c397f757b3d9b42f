"""Compute gateway: the boundary to the pixel routines.

Every compute stage hands the gateway a contiguous RGBA buffer
(``height x width x 4`` uint8), its size, the stage parameters and a
progress callback. Calls are synchronous and mutate the buffer in place.
The callback receives a float in [0, 1] and returns False when the routine
must stop; stopping early is not an error.

Backends:
    reference -- numpy implementation shipped with MinImage
    native    -- ctypes bridge to a shared library with the same entry points
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np

from minimage.core.errors import ConfigError

ProgressCallback = Callable[[float], bool]


@dataclass(frozen=True)
class Circle:
    """Circle with center and radius normalized to the image (0 to 1)."""

    x: float
    y: float
    radius: float


class ComputeGateway(Protocol):
    """Synchronous pixel routines."""

    def generate(self, buffer: np.ndarray, width: int, height: int, progress: ProgressCallback) -> None:
        ...

    def blur(
        self,
        buffer: np.ndarray,
        width: int,
        height: int,
        blur_width: int,
        blur_height: int,
        progress: ProgressCallback,
    ) -> None:
        ...

    def draw_circles(
        self,
        buffer: np.ndarray,
        width: int,
        height: int,
        circles: Sequence[Circle],
        progress: ProgressCallback,
    ) -> None:
        ...

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
        ...

    def gamma_correction(
        self, buffer: np.ndarray, width: int, height: int, gamma: float, progress: ProgressCallback
    ) -> None:
        ...

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
        ...


def create_gateway(backend: str = "reference", library_path: Path | None = None) -> ComputeGateway:
    """Build the gateway selected by configuration.

    Args:
        backend: 'reference' or 'native'
        library_path: Shared library for the native backend

    Raises:
        ConfigError: Unknown backend or native backend without a library path
    """
    if backend == "reference":
        from minimage.core.gateway.reference import ReferenceGateway

        return ReferenceGateway()
    if backend == "native":
        if library_path is None:
            raise ConfigError(
                "The native backend needs gateway.library_path",
                "Pass --library PATH or set MINIMAGE_GATEWAY_LIBRARY_PATH",
            )
        from minimage.core.gateway.native import NativeGateway

        return NativeGateway(library_path)
    raise ConfigError(f"Unknown gateway backend: {backend!r}")


__all__ = ["Circle", "ComputeGateway", "ProgressCallback", "create_gateway"]
