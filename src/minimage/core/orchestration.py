"""Pipeline orchestrator: one concurrent pipeline per image.

The orchestrator is UI-agnostic. Front-ends observe a run through the
progress surface and the event bus.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from minimage.core.cancellation import CancellationToken
from minimage.core.chain import ChainPlan
from minimage.core.events import IMAGE_FINISHED, RUN_FINISHED, RUN_STARTED, EventBus, get_event_bus
from minimage.core.gateway import ComputeGateway
from minimage.core.image import ImageState
from minimage.core.imageio import load_image
from minimage.core.logging import get_logger
from minimage.core.pipeline import ImageOutcome, ImagePipeline, ImageStatus
from minimage.core.progress import ProgressAggregator

_LOGGER = get_logger(__name__)


def _duration_ms(start: float, end: float) -> int:
    return int((end - start) * 1000)


@dataclass
class RunOutcome:
    """Aggregate result of one run."""

    outcomes: dict[int, ImageOutcome]
    states: dict[int, ImageState]
    cancelled: bool = False

    @property
    def completed(self) -> list[int]:
        return sorted(i for i, o in self.outcomes.items() if o.status is ImageStatus.COMPLETED)

    @property
    def aborted(self) -> list[int]:
        return sorted(i for i, o in self.outcomes.items() if o.status is ImageStatus.ABORTED)

    @property
    def should_save(self) -> bool:
        """Images are handed to the saver only if the run was never cancelled."""
        return not self.cancelled

    @property
    def succeeded(self) -> bool:
        return not self.cancelled and not self.aborted

    def completed_states(self) -> dict[int, ImageState]:
        return {i: self.states[i] for i in self.completed}


class Orchestrator:
    """Run a validated plan across ``plan.image_count`` images.

    Example:
        orchestrator = Orchestrator(gateway, aggregator)
        outcome = orchestrator.run(plan, CancellationToken())
        if outcome.should_save:
            saver.save_all(outcome.completed_states(), output_dir)
    """

    def __init__(
        self,
        gateway: ComputeGateway,
        progress: ProgressAggregator,
        loader: Callable[[Path], np.ndarray] = load_image,
        event_bus: EventBus | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.gateway = gateway
        self.progress = progress
        self.loader = loader
        self.event_bus = event_bus if event_bus is not None else get_event_bus()
        self._rng = rng if rng is not None else random.Random()

    def run(self, plan: ChainPlan, token: CancellationToken) -> RunOutcome:
        """Execute the plan concurrently and wait for every image.

        Args:
            plan: Validated chain plan
            token: Cancellation token for this run

        Returns:
            RunOutcome with one terminal outcome per image id
        """
        image_ids = range(plan.image_count)
        states = {image_id: ImageState() for image_id in image_ids}

        if token.cancelled:
            _LOGGER.verbose("Run cancelled before start; nothing to do")
            outcomes = {image_id: ImageOutcome(image_id) for image_id in image_ids}
            for outcome in outcomes.values():
                outcome.transition(ImageStatus.CANCELLED)
            return RunOutcome(outcomes=outcomes, states=states, cancelled=True)

        self.progress.initialize(plan.image_count, plan.stage_count)
        self.event_bus.publish(
            RUN_STARTED,
            {"image_count": plan.image_count, "stage_count": plan.stage_count},
        )
        _LOGGER.debug(f"Starting {plan.image_count} pipelines, {plan.stage_count} stages each")

        pipelines = [
            ImagePipeline(
                image_id=image_id,
                plan=plan,
                state=states[image_id],
                gateway=self.gateway,
                token=token,
                progress=self.progress,
                loader=self.loader,
                rng=random.Random(self._rng.random()),
            )
            for image_id in image_ids
        ]

        start = time.monotonic()
        outcomes: dict[int, ImageOutcome] = {}
        with ThreadPoolExecutor(max_workers=plan.image_count, thread_name_prefix="minimage-image") as pool:
            futures: dict[Future[ImageOutcome], int] = {
                pool.submit(pipeline.run): pipeline.image_id for pipeline in pipelines
            }
            for future in as_completed(futures):
                image_id = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    _LOGGER.error(f"Pipeline for image {image_id + 1} crashed: {type(e).__name__}: {e}")
                    outcome = ImageOutcome(image_id, ImageStatus.ABORTED, reason=str(e))
                outcomes[image_id] = outcome
                self.event_bus.publish(
                    IMAGE_FINISHED,
                    {
                        "image_id": image_id,
                        "status": outcome.status.value,
                        "stage_index": outcome.stage_index,
                        "reason": outcome.reason,
                    },
                )

        self.progress.finish()
        result = RunOutcome(outcomes=outcomes, states=states, cancelled=token.cancelled)
        self.event_bus.publish(
            RUN_FINISHED,
            {
                "cancelled": result.cancelled,
                "completed": result.completed,
                "aborted": result.aborted,
                "duration_ms": _duration_ms(start, time.monotonic()),
            },
        )
        _LOGGER.verbose(
            f"Run finished: {len(result.completed)} completed, {len(result.aborted)} aborted"
            + (", cancelled" if result.cancelled else "")
        )
        return result
