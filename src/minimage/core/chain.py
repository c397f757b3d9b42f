"""Command chain grammar and validator.

A chain is a ``|``-separated list of stages; each stage is a command name
followed by whitespace-separated arguments::

    Generate 3 640 480 | Blur 5 5 | Output demo

Validation is all-or-nothing: either a complete ChainPlan comes back or a
ChainValidationError is raised and nothing runs.
"""

from __future__ import annotations

from dataclasses import dataclass

from minimage.core.errors import ChainValidationError
from minimage.core.stages import StageName, StageSpec, get_stage, help_text

SEPARATOR = "|"


@dataclass(frozen=True)
class ChainPlan:
    """Validated, ordered stages plus the number of images to process.

    ``stages[0]`` is the only generating stage.
    """

    stages: tuple[StageSpec, ...]
    image_count: int

    @property
    def stage_count(self) -> int:
        return len(self.stages)

    @property
    def generating(self) -> StageSpec:
        return self.stages[0]


@dataclass(frozen=True)
class HelpRequest:
    """A chain consisting only of ``Help``."""

    text: str


def split_chain(chain_text: str) -> list[str]:
    """Split a chain on the separator and trim each stage."""
    return [part.strip() for part in chain_text.split(SEPARATOR)]


def is_help(stage_text: str) -> bool:
    return stage_text.split() == [StageName.HELP.value]


def validate(chain_text: str | None, cancel_key: str = "x") -> ChainPlan | HelpRequest:
    """Turn raw chain text into an executable plan.

    Args:
        chain_text: One line of user input
        cancel_key: Key shown in the help listing

    Returns:
        ChainPlan, or HelpRequest when the chain is a lone ``Help``

    Raises:
        ChainValidationError: Empty chain, missing or repeated generating
            stage, unknown command or bad arguments
    """
    if chain_text is None or chain_text.strip() == "":
        raise ChainValidationError("Command chain is empty")

    parts = split_chain(chain_text)
    if len(parts) == 1 and is_help(parts[0]):
        return HelpRequest(help_text(cancel_key))

    stages: list[StageSpec] = []
    image_count = 0
    for text in parts:
        if is_help(text):
            continue

        tokens = text.split()
        handler = get_stage(tokens[0]) if tokens else None

        if not stages:
            if handler is None or not handler.generating:
                raise ChainValidationError(
                    f"The chain must begin with a generating command, got '{text}'", text
                )
            try:
                spec = handler.parse(text)
            except ChainValidationError as e:
                raise ChainValidationError(
                    f"The chain must begin with a valid generating command: {e.message}", text
                ) from e
            image_count = handler.image_count(spec)
            stages.append(spec)
            continue

        if handler is None:
            raise ChainValidationError(f"Invalid command in chain: '{text}'", text)
        if handler.generating:
            raise ChainValidationError(
                f"Invalid command in chain: '{text}' (only one generating command is allowed)", text
            )
        stages.append(handler.parse(text))

    if not stages:
        raise ChainValidationError("The chain must contain a generating command")

    return ChainPlan(stages=tuple(stages), image_count=image_count)
