"""ctypes bridge to a native compute library.

Expected C entry points (cdecl), all mutating ``texture`` in place:

    void GenerateImage(Color* texture, int width, int height, ProgressCallback cb);
    void Blur(Color* texture, int width, int height, int blurWidth, int blurHeight, ProgressCallback cb);
    void DrawCircles(Color* texture, int width, int height, Circle* circles, int count, ProgressCallback cb);
    void ColorCorrection(Color* texture, int width, int height, float r, float g, float b, ProgressCallback cb);
    void GammaCorrection(Color* texture, int width, int height, float gamma, ProgressCallback cb);
    void DrawRoom(Color* texture, int width, int height, float x1, float y1, float x2, float y2, ProgressCallback cb);

    typedef bool (*ProgressCallback)(float progress);
    typedef struct { unsigned char r, g, b, a; } Color;
    typedef struct { float x, y, radius; } Circle;
"""

from __future__ import annotations

import ctypes
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import numpy as np

from minimage.core.errors import GatewayError, NativeLibraryError
from minimage.core.gateway import Circle, ProgressCallback
from minimage.core.logging import get_logger

log = get_logger(__name__)


class Color(ctypes.Structure):
    _fields_ = [
        ("r", ctypes.c_ubyte),
        ("g", ctypes.c_ubyte),
        ("b", ctypes.c_ubyte),
        ("a", ctypes.c_ubyte),
    ]


class CircleStruct(ctypes.Structure):
    _fields_ = [
        ("x", ctypes.c_float),
        ("y", ctypes.c_float),
        ("radius", ctypes.c_float),
    ]


PROGRESS_CALLBACK = ctypes.CFUNCTYPE(ctypes.c_bool, ctypes.c_float)
TEXTURE = ctypes.POINTER(Color)

_SIGNATURES: dict[str, list[Any]] = {
    "GenerateImage": [TEXTURE, ctypes.c_int, ctypes.c_int, PROGRESS_CALLBACK],
    "Blur": [TEXTURE, ctypes.c_int, ctypes.c_int, ctypes.c_int, ctypes.c_int, PROGRESS_CALLBACK],
    "DrawCircles": [
        TEXTURE,
        ctypes.c_int,
        ctypes.c_int,
        ctypes.POINTER(CircleStruct),
        ctypes.c_int,
        PROGRESS_CALLBACK,
    ],
    "ColorCorrection": [
        TEXTURE,
        ctypes.c_int,
        ctypes.c_int,
        ctypes.c_float,
        ctypes.c_float,
        ctypes.c_float,
        PROGRESS_CALLBACK,
    ],
    "GammaCorrection": [TEXTURE, ctypes.c_int, ctypes.c_int, ctypes.c_float, PROGRESS_CALLBACK],
    "DrawRoom": [
        TEXTURE,
        ctypes.c_int,
        ctypes.c_int,
        ctypes.c_float,
        ctypes.c_float,
        ctypes.c_float,
        ctypes.c_float,
        PROGRESS_CALLBACK,
    ],
}


def _texture(buffer: np.ndarray, width: int, height: int) -> Any:
    if buffer.dtype != np.uint8 or buffer.shape != (height, width, 4) or not buffer.flags.c_contiguous:
        raise ValueError(
            f"texture must be a contiguous uint8 array of shape {(height, width, 4)}, "
            f"got {buffer.dtype} {buffer.shape}"
        )
    return buffer.ctypes.data_as(TEXTURE)


class _ProgressBridge:
    """Python callback wrapped for the C side.

    ctypes cannot raise through a foreign frame, so an exception from the
    Python callback is kept here and the routine is told to stop.
    ``callback`` must stay referenced until the native call returns.
    """

    def __init__(self, progress: ProgressCallback) -> None:
        self.progress = progress
        self.error: BaseException | None = None
        self.callback = PROGRESS_CALLBACK(self._invoke)

    def _invoke(self, value: float) -> bool:
        if self.error is not None:
            return False
        try:
            return bool(self.progress(float(value)))
        except Exception as e:
            self.error = e
            return False


class NativeGateway:
    """Compute gateway backed by a shared library loaded with ctypes."""

    def __init__(self, library_path: Path) -> None:
        self.library_path = Path(library_path)
        self._lib: ctypes.CDLL | None = None
        self._functions: dict[str, Any] = {}
        self._lock = threading.Lock()

    def _function(self, name: str) -> Any:
        with self._lock:
            if name in self._functions:
                return self._functions[name]
            if self._lib is None:
                try:
                    self._lib = ctypes.CDLL(str(self.library_path))
                except OSError as e:
                    raise NativeLibraryError(str(self.library_path), str(e)) from e
                log.debug(f"Loaded native compute library {self.library_path}")
            try:
                fn = getattr(self._lib, name)
            except AttributeError as e:
                raise NativeLibraryError(str(self.library_path), f"missing entry point {name}") from e
            fn.argtypes = _SIGNATURES[name]
            fn.restype = None
            self._functions[name] = fn
            return fn

    def _call(
        self,
        name: str,
        buffer: np.ndarray,
        width: int,
        height: int,
        args: tuple[Any, ...],
        progress: ProgressCallback,
    ) -> None:
        """Invoke entry point ``name`` and re-raise a failed progress callback.

        Raises:
            NativeLibraryError: If the library or entry point is unavailable
            GatewayError: If the progress callback raised during the call
        """
        fn = self._function(name)
        bridge = _ProgressBridge(progress)
        fn(_texture(buffer, width, height), width, height, *args, bridge.callback)
        if bridge.error is not None:
            e = bridge.error
            raise GatewayError(f"Progress callback failed during {name}: {type(e).__name__}: {e}") from e

    def generate(self, buffer: np.ndarray, width: int, height: int, progress: ProgressCallback) -> None:
        self._call("GenerateImage", buffer, width, height, (), progress)

    def blur(
        self,
        buffer: np.ndarray,
        width: int,
        height: int,
        blur_width: int,
        blur_height: int,
        progress: ProgressCallback,
    ) -> None:
        self._call("Blur", buffer, width, height, (blur_width, blur_height), progress)

    def draw_circles(
        self,
        buffer: np.ndarray,
        width: int,
        height: int,
        circles: Sequence[Circle],
        progress: ProgressCallback,
    ) -> None:
        array = (CircleStruct * len(circles))(
            *(CircleStruct(c.x, c.y, c.radius) for c in circles)
        )
        self._call("DrawCircles", buffer, width, height, (array, len(circles)), progress)

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
        self._call("ColorCorrection", buffer, width, height, (red, green, blue), progress)

    def gamma_correction(
        self, buffer: np.ndarray, width: int, height: int, gamma: float, progress: ProgressCallback
    ) -> None:
        self._call("GammaCorrection", buffer, width, height, (gamma,), progress)

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
        self._call("DrawRoom", buffer, width, height, (x1, y1, x2, y2), progress)
