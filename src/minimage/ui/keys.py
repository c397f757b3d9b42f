"""Key listener that trips the cancellation token during a run."""

from __future__ import annotations

import os
import select
import sys
import threading
from typing import TextIO

from minimage.core.cancellation import CancellationToken
from minimage.core.logging import console_write, get_logger

log = get_logger(__name__)


class KeyListener:
    """Watch stdin for the cancel key while a run is in progress.

    - In TTY: switches the terminal to cbreak mode and polls for keys.
    - In non-TTY: does nothing; the run can only end on its own.

    Use as a context manager around one run::

        token = CancellationToken()
        with KeyListener(token, "x"):
            processor.process(line, token)
    """

    def __init__(
        self,
        token: CancellationToken,
        key: str = "x",
        *,
        stream: TextIO | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        self.token = token
        self.key = key.lower()
        self._stream = stream if stream is not None else sys.stdin
        self._poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._saved_attrs: list | None = None

    @property
    def enabled(self) -> bool:
        try:
            return os.name == "posix" and self._stream.isatty()
        except ValueError:
            return False

    def start(self) -> None:
        if not self.enabled or self._thread is not None:
            return
        import termios
        import tty

        fd = self._stream.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="minimage_keys", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        t = self._thread
        if t is not None:
            t.join(timeout=2.0)
        self._thread = None
        if self._saved_attrs is not None:
            import termios

            termios.tcsetattr(self._stream.fileno(), termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None

    def __enter__(self) -> KeyListener:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    def feed(self, char: str) -> bool:
        """Handle one key press; returns True if it cancelled the run."""
        if char.lower() != self.key:
            return False
        if self.token.cancel():
            console_write("\nExit execution requested!")
            log.debug("Cancel key pressed")
            return True
        return False

    def _run(self) -> None:
        fd = self._stream.fileno()
        while not self._stop.is_set() and not self.token.cancelled:
            ready, _w, _x = select.select([fd], [], [], self._poll_interval)
            if not ready:
                continue
            data = os.read(fd, 1)
            if not data:
                return
            self.feed(data.decode(errors="ignore"))
