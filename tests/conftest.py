"""Pytest configuration and fixtures."""

import os
import sys
import threading
from pathlib import Path

import pytest

# Add src to path (for 'minimage.*' imports)
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root / "src"))

from minimage.core.config import ConfigResolver  # noqa: E402
from minimage.core.gateway.reference import ReferenceGateway  # noqa: E402
from minimage.core.logging import VerbosityLevel, set_colors, set_verbosity  # noqa: E402
from minimage.core.progress import ProgressAggregator  # noqa: E402


class RecordingSurface:
    """Progress surface that keeps every frame it is asked to show."""

    def __init__(self) -> None:
        self.frames: list[str] = []
        self.resets = 0
        self.finishes = 0
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self.resets += 1

    def render(self, frame: str) -> None:
        with self._lock:
            self.frames.append(frame)

    def finish(self) -> None:
        with self._lock:
            self.finishes += 1

    @property
    def last(self) -> str:
        return self.frames[-1] if self.frames else ""


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep MINIMAGE_* variables and global logging state from leaking."""
    for key in list(os.environ):
        if key.startswith("MINIMAGE_"):
            monkeypatch.delenv(key, raising=False)
    set_verbosity(VerbosityLevel.NORMAL)
    set_colors(False)
    yield
    set_verbosity(VerbosityLevel.NORMAL)
    set_colors(True)


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def aggregator(surface):
    return ProgressAggregator(surface, bar_size=20)


@pytest.fixture
def gateway():
    """Reference gateway with a few bands so small images report several steps."""
    return ReferenceGateway(bands=4)


@pytest.fixture
def resolver(tmp_path):
    """Resolver that ignores any real user/system config."""
    return ConfigResolver(
        cli_args={},
        user_config_path=tmp_path / "user.yaml",
        system_config_path=tmp_path / "system.yaml",
    )
