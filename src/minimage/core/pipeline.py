"""Per-image pipeline: run every stage of a plan against one image."""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

import numpy as np

from minimage.core.cancellation import CancellationToken
from minimage.core.chain import ChainPlan
from minimage.core.gateway import ComputeGateway
from minimage.core.image import ImageState
from minimage.core.imageio import load_image
from minimage.core.logging import get_logger
from minimage.core.progress import ProgressAggregator
from minimage.core.stages import StageContext

log = get_logger(__name__)


class ImageStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return not _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[ImageStatus, set[ImageStatus]] = {
    ImageStatus.PENDING: {ImageStatus.RUNNING, ImageStatus.CANCELLED},
    ImageStatus.RUNNING: {ImageStatus.COMPLETED, ImageStatus.ABORTED, ImageStatus.CANCELLED},
    ImageStatus.COMPLETED: set(),
    ImageStatus.ABORTED: set(),
    ImageStatus.CANCELLED: set(),
}


@dataclass(slots=True)
class ImageOutcome:
    image_id: int
    status: ImageStatus = ImageStatus.PENDING
    stage_index: int = 0
    reason: str | None = None

    def transition(self, new_status: ImageStatus) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise ValueError(
                f"illegal image state transition: {self.status.value} -> {new_status.value}"
            )
        self.status = new_status


@dataclass
class ImagePipeline:
    """Sequential executor of a plan for a single image id.

    The pipeline is the only writer of ``state``. Cancellation is checked
    before every stage; inside a stage it reaches the compute routine through
    the progress callback.
    """

    image_id: int
    plan: ChainPlan
    state: ImageState
    gateway: ComputeGateway
    token: CancellationToken
    progress: ProgressAggregator
    loader: Callable[[Path], np.ndarray] = load_image
    rng: random.Random = field(default_factory=random.Random)

    def run(self) -> ImageOutcome:
        outcome = ImageOutcome(self.image_id)
        if self.token.cancelled:
            outcome.transition(ImageStatus.CANCELLED)
            return outcome

        outcome.transition(ImageStatus.RUNNING)
        ctx = StageContext(
            image_id=self.image_id,
            state=self.state,
            gateway=self.gateway,
            token=self.token,
            progress=self.progress,
            loader=self.loader,
            rng=self.rng,
        )

        for index, spec in enumerate(self.plan.stages):
            outcome.stage_index = index
            if self.token.cancelled:
                log.debug(f"Image {self.image_id}: cancelled before stage {index} ({spec.name})")
                outcome.transition(ImageStatus.CANCELLED)
                return outcome

            try:
                spec.handler.execute(ctx, spec)
            except Exception as e:
                outcome.reason = str(e)
                log.error(f"Error applying {spec.name} to image {self.image_id + 1}: {e}")
                outcome.transition(ImageStatus.ABORTED)
                return outcome

            # A stage stopped early by the callback still counts as finished.
            self.progress.report_stage_finished(self.image_id)
            log.debug(f"Image {self.image_id}: stage {index} ({spec.name}) finished")

        outcome.stage_index = self.plan.stage_count
        outcome.transition(ImageStatus.COMPLETED)
        return outcome
