"""Shared progress view for all image pipelines of a run.

Every pipeline writes into one mapping of image id -> ProgressRecord. Each
mutation happens under a single lock and is followed by a full repaint of all
records onto the configured surface.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

DEFAULT_BAR_SIZE = 50


@dataclass
class ProgressRecord:
    """Progress of one image."""

    percent_complete: int = 0
    stages_finished: int = 0
    status_message: str = ""


class ProgressSurface(Protocol):
    """Output target for rendered progress frames."""

    def reset(self) -> None:
        """Prepare for a new run (clear previous frames)."""
        ...

    def render(self, frame: str) -> None:
        """Show a complete frame, replacing the previous one."""
        ...

    def finish(self) -> None:
        """Leave the last frame on screen after the run."""
        ...


def render_bar(percent: int, bar_size: int, stage_count: int) -> str:
    """Render one fixed-width bar with stage dividers.

    A cell is filled when its position is below
    ``round(percent / 100 * bar_size)``. Dividers mark every
    ``bar_size // stage_count`` cells.

    Args:
        percent: Completion percentage (0-100)
        bar_size: Number of cells
        stage_count: Number of stages in the plan

    Returns:
        Bar text such as ``[####|----] 40%``
    """
    filled = round(percent / 100 * bar_size)
    cells = ["#" if i < filled else "-" for i in range(bar_size)]

    if stage_count > 0:
        step = bar_size // stage_count
        if step > 0:
            for i in range(step, bar_size - bar_size % stage_count, step):
                cells[i] = "|"

    return f"[{''.join(cells)}] {percent}%"


def render_frame(records: Mapping[int, ProgressRecord], bar_size: int, stage_count: int) -> str:
    """Render the whole progress view, one line per image."""
    lines = [f"Generating {len(records)} images..."]
    for image_id in sorted(records):
        record = records[image_id]
        bar = render_bar(record.percent_complete, bar_size, stage_count)
        lines.append(f" Image: {image_id + 1:<10} {bar}  {record.status_message}")
    return "\n".join(lines)


class ProgressAggregator:
    """Thread-safe progress mapping with repaint-on-write.

    Example:
        aggregator = ProgressAggregator(surface)
        aggregator.initialize(image_count=3, stage_count=2)
        aggregator.report_sub_progress(0, 50, "Blurring...")
        aggregator.report_stage_finished(0)
    """

    def __init__(self, surface: ProgressSurface | None = None, bar_size: int = DEFAULT_BAR_SIZE) -> None:
        if bar_size < 1:
            raise ValueError("bar_size must be >= 1")
        self._surface = surface
        self._bar_size = bar_size
        self._lock = threading.Lock()
        self._records: dict[int, ProgressRecord] = {}
        self._stage_count = 0

    @property
    def stage_count(self) -> int:
        return self._stage_count

    @property
    def bar_size(self) -> int:
        return self._bar_size

    def initialize(self, image_count: int, stage_count: int) -> None:
        """Start a run: drop previous records and create one per image.

        Args:
            image_count: Number of image pipelines
            stage_count: Number of stages each pipeline will run
        """
        if stage_count < 1:
            raise ValueError("stage_count must be >= 1")
        with self._lock:
            self._stage_count = stage_count
            self._records = {image_id: ProgressRecord() for image_id in range(image_count)}
            if self._surface is not None:
                self._surface.reset()

    def restart(self) -> None:
        """Forget all records (no repaint)."""
        with self._lock:
            self._stage_count = 0
            self._records = {}

    def report_sub_progress(self, image_id: int, sub_percent: int, message: str = "") -> None:
        """Record progress inside the stage currently running for an image.

        The in-flight stage contributes ``sub_percent / stage_count`` on top of
        the stages already finished. Every stage weighs the same.
        """
        with self._lock:
            record = self._records.get(image_id)
            if record is None:
                return
            n = self._stage_count
            percent = sub_percent // n + record.stages_finished * 100 // n
            record.percent_complete = min(100, max(record.percent_complete, percent))
            record.status_message = message
            self._redraw()

    def report_stage_finished(self, image_id: int) -> None:
        """Count one more finished stage; the last one pins the bar at 100%."""
        with self._lock:
            record = self._records.get(image_id)
            if record is not None:
                record.stages_finished += 1
                if record.stages_finished == self._stage_count:
                    record.percent_complete = 100
            self._redraw()

    def finish(self) -> None:
        """Tell the surface the run is over."""
        with self._lock:
            if self._surface is not None:
                self._surface.finish()

    def snapshot(self) -> dict[int, ProgressRecord]:
        """Return copies of all records."""
        with self._lock:
            return {
                image_id: ProgressRecord(
                    percent_complete=r.percent_complete,
                    stages_finished=r.stages_finished,
                    status_message=r.status_message,
                )
                for image_id, r in self._records.items()
            }

    def render(self) -> str:
        """Render the current frame without publishing it."""
        with self._lock:
            return render_frame(self._records, self._bar_size, self._stage_count)

    def _redraw(self) -> None:
        # Caller holds self._lock.
        if self._surface is None:
            return
        self._surface.render(render_frame(self._records, self._bar_size, self._stage_count))
