"""Stage registry: one typed handler per command name.

A handler knows its argument signature (used by the chain validator) and how
to run against one image (used by the image pipeline). Because unknown names
never pass validation, runtime dispatch through ``STAGES`` is total.
"""

from __future__ import annotations

import math
import random
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, ClassVar

import numpy as np

from minimage.core.cancellation import CancellationToken
from minimage.core.errors import ChainValidationError, GatewayError
from minimage.core.gateway import Circle, ComputeGateway, ProgressCallback
from minimage.core.image import ImageState, fresh_buffer, scratch_buffer
from minimage.core.imageio import load_image
from minimage.core.progress import ProgressAggregator


class StageName(StrEnum):
    GENERATE = "Generate"
    INPUT = "Input"
    BLUR = "Blur"
    RANDOM_CIRCLES = "RandomCircles"
    COLOR_CORRECTION = "ColorCorrection"
    GAMMA_CORRECTION = "GammaCorrection"
    ROOM = "Room"
    OUTPUT = "Output"
    HELP = "Help"


_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")


def parse_int(token: str) -> int:
    """Parse a plain ASCII decimal integer (sign allowed, no separators)."""
    if not _INT_RE.fullmatch(token):
        raise ValueError(f"not an integer: {token!r}")
    return int(token)


def parse_float(token: str) -> float:
    """Parse a finite decimal or scientific float literal."""
    if not _FLOAT_RE.fullmatch(token):
        raise ValueError(f"not a number: {token!r}")
    value = float(token)
    if not math.isfinite(value):
        raise ValueError(f"not a finite number: {token!r}")
    return value


@dataclass(frozen=True)
class ArgSpec:
    """One positional stage argument."""

    name: str
    kind: type
    minimum: int | None = None

    def parse(self, token: str) -> Any:
        if self.kind is int:
            value: Any = parse_int(token)
        elif self.kind is float:
            value = parse_float(token)
        else:
            value = token
        if self.minimum is not None and value < self.minimum:
            raise ValueError(f"{self.name} must be >= {self.minimum}, got {value}")
        return value


@dataclass(frozen=True)
class StageSpec:
    """One parsed command: tag, typed arguments and the text it came from."""

    name: StageName
    arguments: tuple[Any, ...]
    text: str = ""

    @property
    def handler(self) -> StageHandler:
        return STAGES[self.name]


@dataclass
class StageContext:
    """Everything a stage may touch while running for one image."""

    image_id: int
    state: ImageState
    gateway: ComputeGateway
    token: CancellationToken
    progress: ProgressAggregator
    loader: Callable[[Path], np.ndarray] = load_image
    rng: random.Random = field(default_factory=random.Random)

    def report(self, percent: int, message: str) -> None:
        """Forward sub-stage progress unless the run was cancelled."""
        if self.token.cancelled:
            return
        self.progress.report_sub_progress(self.image_id, percent, message)

    def callback(self, message: str) -> ProgressCallback:
        """Build the gateway progress callback for this image.

        Returns False as soon as the token is tripped, which tells the
        compute routine to stop.
        """

        def _on_progress(value: float) -> bool:
            if self.token.cancelled:
                return False
            self.progress.report_sub_progress(self.image_id, int(round(value * 100)), message)
            return True

        return _on_progress


class StageHandler:
    """Base class for stage handlers."""

    name: ClassVar[StageName]
    args: ClassVar[tuple[ArgSpec, ...]] = ()
    generating: ClassVar[bool] = False
    description: ClassVar[str] = ""
    message: ClassVar[str] = ""

    @property
    def arity(self) -> int:
        """Token count including the stage name."""
        return len(self.args) + 1

    @property
    def usage(self) -> str:
        return " ".join([self.name.value, *(f"<{a.name}>" for a in self.args)])

    def parse(self, text: str) -> StageSpec:
        """Parse one stage of a chain.

        Raises:
            ChainValidationError: Wrong name, arity or argument type.
        """
        tokens = text.split()
        if not tokens or tokens[0] != self.name.value:
            raise ChainValidationError(f"Invalid command in chain: '{text}'", text)
        if len(tokens) != self.arity:
            raise ChainValidationError(
                f"Invalid command in chain: '{text}' (usage: {self.usage})", text
            )
        values = []
        for spec, token in zip(self.args, tokens[1:]):
            try:
                values.append(spec.parse(token))
            except ValueError as e:
                raise ChainValidationError(
                    f"Invalid command in chain: '{text}' ({e}; usage: {self.usage})", text
                ) from e
        return StageSpec(name=self.name, arguments=tuple(values), text=text)

    def image_count(self, spec: StageSpec) -> int:
        """Number of images a generating stage produces."""
        raise NotImplementedError(f"{self.name} is not a generating stage")

    def execute(self, ctx: StageContext, spec: StageSpec) -> None:
        raise NotImplementedError


STAGES: dict[StageName, StageHandler] = {}


def register_stage(cls: type[StageHandler]) -> type[StageHandler]:
    """Class decorator adding a handler to the registry."""
    STAGES[cls.name] = cls()
    return cls


def get_stage(name: str) -> StageHandler | None:
    """Look up a handler by its command name (case-sensitive)."""
    try:
        return STAGES.get(StageName(name))
    except ValueError:
        return None


@register_stage
class GenerateStage(StageHandler):
    name = StageName.GENERATE
    args = (ArgSpec("imagesnumber", int, 1), ArgSpec("width", int, 1), ArgSpec("height", int, 1))
    generating = True
    description = "Generate images of the specified size."
    message = "Generating..."

    def image_count(self, spec: StageSpec) -> int:
        return int(spec.arguments[0])

    def execute(self, ctx: StageContext, spec: StageSpec) -> None:
        _count, width, height = spec.arguments
        with fresh_buffer(width, height) as buffer:
            ctx.gateway.generate(buffer, width, height, ctx.callback(self.message))
            ctx.state.pixels = buffer
        ctx.report(100, self.message)


@register_stage
class InputStage(StageHandler):
    name = StageName.INPUT
    args = (ArgSpec("file_name", str),)
    generating = True
    description = "Load an image from the given file."
    message = "Loading Image"

    def image_count(self, spec: StageSpec) -> int:
        return 1

    def execute(self, ctx: StageContext, spec: StageSpec) -> None:
        ctx.report(0, self.message)
        pixels = ctx.loader(Path(spec.arguments[0]))
        ctx.report(50, "Processing Image")
        ctx.state.pixels = pixels
        ctx.report(100, "Image Loaded")


@register_stage
class BlurStage(StageHandler):
    name = StageName.BLUR
    args = (ArgSpec("width", int), ArgSpec("height", int))
    description = "Apply a blur effect to the image."
    message = "Blurring..."

    def execute(self, ctx: StageContext, spec: StageSpec) -> None:
        blur_width, blur_height = spec.arguments
        pixels = ctx.state.require_pixels(ctx.image_id)
        if blur_width <= 0 or blur_height <= 0:
            raise GatewayError("Blur dimensions must be greater than zero")
        width, height = ctx.state.width, ctx.state.height
        with scratch_buffer(pixels) as buffer:
            ctx.gateway.blur(buffer, width, height, blur_width, blur_height, ctx.callback(self.message))


@register_stage
class RandomCirclesStage(StageHandler):
    name = StageName.RANDOM_CIRCLES
    args = (ArgSpec("numCircles", int), ArgSpec("radius", int))
    description = "Add random circles to the image."
    message = "Drawing Circles..."

    def execute(self, ctx: StageContext, spec: StageSpec) -> None:
        count, radius = spec.arguments
        pixels = ctx.state.require_pixels(ctx.image_id)
        width, height = ctx.state.width, ctx.state.height
        if count <= 0:
            raise GatewayError("Number of circles must be greater than zero")
        if radius <= 0 or radius > min(width, height) / 2:
            raise GatewayError("Radius must be positive and fit within the image")

        normalized = radius / max(width, height)
        circles = [Circle(ctx.rng.random(), ctx.rng.random(), normalized) for _ in range(count)]
        with scratch_buffer(pixels) as buffer:
            ctx.gateway.draw_circles(buffer, width, height, circles, ctx.callback(self.message))


@register_stage
class ColorCorrectionStage(StageHandler):
    name = StageName.COLOR_CORRECTION
    args = (ArgSpec("red", float), ArgSpec("green", float), ArgSpec("blue", float))
    description = "Apply color correction by adding red, green, and blue values."
    message = "Color Correcting..."

    def execute(self, ctx: StageContext, spec: StageSpec) -> None:
        red, green, blue = spec.arguments
        pixels = ctx.state.require_pixels(ctx.image_id)
        width, height = ctx.state.width, ctx.state.height
        with scratch_buffer(pixels) as buffer:
            ctx.gateway.color_correction(buffer, width, height, red, green, blue, ctx.callback(self.message))


@register_stage
class GammaCorrectionStage(StageHandler):
    name = StageName.GAMMA_CORRECTION
    args = (ArgSpec("gamma", float),)
    description = "Apply gamma correction with the specified gamma value."
    message = "Gamma Correcting..."

    def execute(self, ctx: StageContext, spec: StageSpec) -> None:
        (gamma,) = spec.arguments
        pixels = ctx.state.require_pixels(ctx.image_id)
        if gamma <= 0:
            raise GatewayError("Gamma must be greater than zero")
        width, height = ctx.state.width, ctx.state.height
        with scratch_buffer(pixels) as buffer:
            ctx.gateway.gamma_correction(buffer, width, height, gamma, ctx.callback(self.message))


@register_stage
class RoomStage(StageHandler):
    name = StageName.ROOM
    args = (ArgSpec("x1", float), ArgSpec("y1", float), ArgSpec("x2", float), ArgSpec("y2", float))
    description = "Draw a filled rectangle with the given coordinates, given from 0 to 1."
    message = "Drawing Room..."

    def execute(self, ctx: StageContext, spec: StageSpec) -> None:
        x1, y1, x2, y2 = spec.arguments
        pixels = ctx.state.require_pixels(ctx.image_id)
        width, height = ctx.state.width, ctx.state.height
        with scratch_buffer(pixels) as buffer:
            ctx.gateway.draw_room(buffer, width, height, x1, y1, x2, y2, ctx.callback(self.message))


@register_stage
class OutputStage(StageHandler):
    name = StageName.OUTPUT
    args = (ArgSpec("filename_prefix", str),)
    description = "Save the image with the given filename prefix."
    message = "Naming File"

    def parse(self, text: str) -> StageSpec:
        spec = super().parse(text)
        prefix = spec.arguments[0]
        # Saved files must land directly inside the output directory.
        if prefix in (".", "..") or "\\" in prefix or Path(prefix).name != prefix:
            raise ChainValidationError(
                f"Invalid command in chain: '{text}' (filename_prefix must be a plain file name; "
                f"usage: {self.usage})",
                text,
            )
        return spec

    def execute(self, ctx: StageContext, spec: StageSpec) -> None:
        ctx.state.require_pixels(ctx.image_id)
        ctx.report(0, self.message)
        ctx.state.prefix = spec.arguments[0]
        ctx.report(100, self.message)


def help_text(cancel_key: str = "x") -> str:
    """Build the command listing printed for ``Help``."""
    generating = [h for h in STAGES.values() if h.generating]
    processing = [h for h in STAGES.values() if not h.generating]
    lines = ["List of available commands:", "", "Generating commands:", ""]
    lines += [f"{h.usage} - {h.description}" for h in generating]
    lines += ["", "Processing commands:", ""]
    lines += [f"{h.usage} - {h.description}" for h in processing]
    lines += [
        "",
        "Command syntax should be as follows:",
        "<Generating command> | <Processing command> | <Processing command>",
        "",
        "A generating command at the beginning is mandatory and only one is allowed.",
        "Following commands are typed after '|'; their number is not limited.",
        "",
        f"During execution, press '{cancel_key}' to abort the run.",
        "",
        "Other commands:",
        "",
        "ChangePath <path> - Set the folder where images will be saved.",
    ]
    return "\n".join(lines)
