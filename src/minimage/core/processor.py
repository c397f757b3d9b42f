"""Command processor: one entry point per line of user input."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import numpy as np

from minimage.core.cancellation import CancellationToken
from minimage.core.chain import HelpRequest, split_chain, validate
from minimage.core.errors import ChainValidationError, FileError
from minimage.core.events import EventBus
from minimage.core.gateway import ComputeGateway
from minimage.core.imageio import ImageSaver, load_image
from minimage.core.logging import console_write, get_logger
from minimage.core.orchestration import Orchestrator
from minimage.core.progress import ProgressAggregator

log = get_logger(__name__)

CHANGE_PATH = "ChangePath"


class CommandProcessor:
    """Dispatch ``Help``, ``ChangePath <dir>`` or a command chain.

    Example:
        processor = CommandProcessor(gateway, ProgressAggregator(surface), ImageSaver())
        processor.process("Generate 2 64 64 | Blur 3 3 | Output demo")
        # writes demo_1.jpeg and demo_2.jpeg into the output directory
    """

    def __init__(
        self,
        gateway: ComputeGateway,
        progress: ProgressAggregator,
        saver: ImageSaver,
        output_dir: Path = Path("."),
        cancel_key: str = "x",
        loader: Callable[[Path], np.ndarray] = load_image,
        event_bus: EventBus | None = None,
    ) -> None:
        self.progress = progress
        self.saver = saver
        self.output_dir = Path(output_dir)
        self.cancel_key = cancel_key
        self.orchestrator = Orchestrator(gateway, progress, loader=loader, event_bus=event_bus)

    def process(self, line: str | None, token: CancellationToken | None = None) -> bool:
        """Handle one line of input.

        Args:
            line: Raw user input
            token: Cancellation token for the run (a fresh one if omitted)

        Returns:
            True only when a chain ran to completion without aborted images
            and its results were saved.
        """
        self.progress.restart()
        text = (line or "").strip()

        if self._is_change_path(text):
            self.change_path(text.split()[1])
            return False

        try:
            plan = validate(text, cancel_key=self.cancel_key)
        except ChainValidationError as e:
            log.error(str(e))
            log.error("Invalid command chain")
            return False

        if isinstance(plan, HelpRequest):
            console_write(plan.text)
            return False

        token = token if token is not None else CancellationToken()
        if token.cancelled:
            log.info("Operation canceled by user")
            return False

        outcome = self.orchestrator.run(plan, token)
        if not outcome.should_save:
            log.info("Command processing canceled")
            return False

        try:
            self.saver.save_all(outcome.completed_states(), self.output_dir)
        except FileError as e:
            log.error(str(e))
            return False

        for image_id in outcome.aborted:
            reason = outcome.outcomes[image_id].reason
            log.warning(f"Image {image_id + 1} was not saved: {reason}")
        return outcome.succeeded

    def change_path(self, directory: str) -> bool:
        """Set the save directory if it exists; keep the old one otherwise."""
        target = Path(directory).expanduser()
        if not target.is_dir():
            log.error(f"Directory does not exist: {target}")
            return False
        self.output_dir = target
        log.info(f"New path set: {target}")
        return True

    @staticmethod
    def _is_change_path(text: str) -> bool:
        parts = split_chain(text)
        if len(parts) != 1:
            return False
        tokens = parts[0].split()
        return len(tokens) == 2 and tokens[0] == CHANGE_PATH
