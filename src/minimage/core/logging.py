"""Centralized logging system for MinImage.

Provides unified logging across the core with 4 verbosity levels:
- QUIET (0): Warnings + errors
- NORMAL (1): Info + warnings + errors
- VERBOSE (2): Detailed info
- DEBUG (3): Everything including internal state

Usage:
    from minimage.core.logging import get_logger, set_verbosity

    logger = get_logger(__name__)
    set_verbosity(2)  # VERBOSE

    logger.debug("Internal state")
    logger.verbose("Stage Blur finished for image 3")
    logger.info("Saved: demo_1.jpeg")
    logger.warning("Skipping uninitialized image")
    logger.error("Error applying blur")

Image pipelines log from worker threads, so console writes go through a
single lock to keep lines from interleaving.
"""

from __future__ import annotations

import sys
import threading
from enum import IntEnum

from minimage.core.errors import ConfigError
from minimage.core.log_bus import LogRecord, get_log_bus


class VerbosityLevel(IntEnum):
    """Verbosity levels for MinImage."""

    QUIET = 0  # Warnings + errors
    NORMAL = 1  # Info + warnings + errors
    VERBOSE = 2  # Detailed info
    DEBUG = 3  # Everything


_LEVEL_NAMES: dict[str, VerbosityLevel] = {
    "quiet": VerbosityLevel.QUIET,
    "normal": VerbosityLevel.NORMAL,
    "verbose": VerbosityLevel.VERBOSE,
    "debug": VerbosityLevel.DEBUG,
}

# Global verbosity level
_VERBOSITY: VerbosityLevel = VerbosityLevel.NORMAL

# Color support
_USE_COLORS: bool = True

_CONSOLE_LOCK = threading.Lock()


def set_verbosity(level: int | VerbosityLevel) -> None:
    """Set global verbosity level.

    Args:
        level: Verbosity level (0-3 or VerbosityLevel enum)
    """
    global _VERBOSITY

    if isinstance(level, int):
        level = VerbosityLevel(level)

    _VERBOSITY = level


def get_verbosity() -> VerbosityLevel:
    """Get current verbosity level.

    Returns:
        Current verbosity level
    """
    return _VERBOSITY


def parse_verbosity(value: object) -> VerbosityLevel:
    """Convert a config or CLI value into a verbosity level.

    Accepts the enum itself, integers 0-3, their string forms, and the level
    names quiet/normal/verbose/debug (case-insensitive).

    Raises:
        ConfigError: If the value does not name a level.
    """
    if isinstance(value, VerbosityLevel):
        return value
    if isinstance(value, bool):
        raise ConfigError(f"Invalid logging.level type: {type(value).__name__}")
    if isinstance(value, int):
        try:
            return VerbosityLevel(value)
        except ValueError as e:
            raise ConfigError(f"Invalid logging.level integer: {value}") from e
    if isinstance(value, str):
        v = value.strip().lower()
        if v.isdigit():
            return parse_verbosity(int(v))
        if v in _LEVEL_NAMES:
            return _LEVEL_NAMES[v]
        allowed = ", ".join(_LEVEL_NAMES)
        raise ConfigError(f"Invalid logging.level string: {value!r}. Allowed values: {allowed}")
    raise ConfigError(f"Invalid logging.level type: {type(value).__name__}")


def set_colors(enabled: bool) -> None:
    """Enable or disable colored output.

    Args:
        enabled: Whether to use colors
    """
    global _USE_COLORS
    _USE_COLORS = enabled


def console_write(text: str, *, stream=None) -> None:
    """Write a line to the console while holding the console lock."""
    out = stream if stream is not None else sys.stdout
    with _CONSOLE_LOCK:
        print(text, file=out, flush=True)


class MinImageLogger:
    """Logger for MinImage with verbosity support."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "VERBOSE": "\033[34m",  # Blue
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "RESET": "\033[0m",
    }

    def __init__(self, name: str):
        """Initialize logger.

        Args:
            name: Logger name (usually module name)
        """
        self.name = name

    def _should_log(self, level: VerbosityLevel) -> bool:
        return level <= _VERBOSITY

    def _format_message(self, level: str, message: str, stream) -> str:
        if _USE_COLORS and stream.isatty():
            color = self.COLORS.get(level, "")
            reset = self.COLORS["RESET"]
            return f"{color}[{level.lower()}]{reset} {message}"
        return f"[{level.lower()}] {message}"

    def _emit(self, level_name: str, message: str) -> None:
        stream = sys.stderr if level_name == "ERROR" else sys.stdout
        formatted = self._format_message(level_name, message, stream)

        plain = f"[{level_name.lower()}] {message}"
        get_log_bus().publish(LogRecord(level_name=level_name, plain=plain, logger_name=self.name))

        console_write(formatted, stream=stream)

    def _log(self, level: VerbosityLevel, level_name: str, message: str) -> None:
        if not self._should_log(level):
            return
        self._emit(level_name, message)

    def debug(self, message: str) -> None:
        """Log debug message (verbosity >= DEBUG)."""
        self._log(VerbosityLevel.DEBUG, "DEBUG", message)

    def verbose(self, message: str) -> None:
        """Log verbose message (verbosity >= VERBOSE)."""
        self._log(VerbosityLevel.VERBOSE, "VERBOSE", message)

    def info(self, message: str) -> None:
        """Log info message (verbosity >= NORMAL)."""
        self._log(VerbosityLevel.NORMAL, "INFO", message)

    def warning(self, message: str) -> None:
        """Log warning message (verbosity >= QUIET)."""
        self._log(VerbosityLevel.QUIET, "WARNING", message)

    def error(self, message: str) -> None:
        """Log error message (always shown)."""
        self._emit("ERROR", message)


# Logger registry
_LOGGERS: dict[str, MinImageLogger] = {}
_REGISTRY_LOCK = threading.Lock()


def get_logger(name: str = __name__) -> MinImageLogger:
    """Get logger instance for module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    with _REGISTRY_LOCK:
        if name not in _LOGGERS:
            _LOGGERS[name] = MinImageLogger(name)
        return _LOGGERS[name]
