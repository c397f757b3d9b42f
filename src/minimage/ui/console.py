"""Progress surfaces for the terminal.

RichSurface repaints the whole frame in place with ``rich.live.Live``.
PlainSurface is for pipes and logs: it prints a frame at most once per
interval plus the final frame of every run.
"""

from __future__ import annotations

import sys
import time
from typing import TextIO

from rich.console import Console
from rich.live import Live
from rich.text import Text

from minimage.core.logging import console_write


class RichSurface:
    """Live-updating progress view.

    Workers log while the view is live; rich redirects stdout/stderr so
    those lines appear above the progress frame.
    """

    def __init__(self, console: Console | None = None, color: bool = True) -> None:
        self.console = console if console is not None else Console(no_color=not color, highlight=False)
        self._live: Live | None = None

    def reset(self) -> None:
        self.finish()
        self._live = self._start()

    def render(self, frame: str) -> None:
        live = self._live if self._live is not None else self._start()
        self._live = live
        live.update(Text(frame), refresh=True)

    def finish(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def _start(self) -> Live:
        live = Live(Text(""), console=self.console, auto_refresh=False, transient=False)
        live.start()
        return live


class PlainSurface:
    """Periodic frame printer for non-interactive output."""

    def __init__(self, stream: TextIO | None = None, interval: float = 1.0) -> None:
        self.stream = stream
        self.interval = interval
        self._last_frame = ""
        self._last_written = ""
        self._next_tick = 0.0

    def reset(self) -> None:
        self._last_frame = ""
        self._last_written = ""
        self._next_tick = 0.0

    def render(self, frame: str) -> None:
        self._last_frame = frame
        now = time.monotonic()
        if now < self._next_tick:
            return
        self._write(frame)
        self._next_tick = now + self.interval

    def finish(self) -> None:
        if self._last_frame and self._last_frame != self._last_written:
            self._write(self._last_frame)

    def _write(self, frame: str) -> None:
        console_write(frame, stream=self.stream if self.stream is not None else sys.stdout)
        self._last_written = frame


def create_surface(color: bool = True, stream: TextIO | None = None) -> RichSurface | PlainSurface:
    """Pick the live view on a terminal, the plain printer elsewhere."""
    out = stream if stream is not None else sys.stdout
    if out.isatty():
        return RichSurface(Console(file=out, no_color=not color, highlight=False))
    return PlainSurface(stream)
