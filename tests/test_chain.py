"""Tests for the command chain validator."""

import pytest

from minimage.core.chain import ChainPlan, HelpRequest, validate
from minimage.core.errors import ChainValidationError
from minimage.core.stages import StageName


def test_generate_chain_builds_plan() -> None:
    plan = validate("Generate 3 64 32 | Blur 5 5 | Output demo")

    assert isinstance(plan, ChainPlan)
    assert plan.image_count == 3
    assert plan.stage_count == 3
    assert [s.name for s in plan.stages] == [StageName.GENERATE, StageName.BLUR, StageName.OUTPUT]
    assert plan.stages[0].arguments == (3, 64, 32)
    assert plan.stages[2].arguments == ("demo",)


def test_input_chain_has_one_image() -> None:
    plan = validate("Input photo.png | GammaCorrection 2.2")

    assert isinstance(plan, ChainPlan)
    assert plan.image_count == 1
    assert plan.generating.arguments == ("photo.png",)


def test_stages_are_trimmed() -> None:
    plan = validate("   Generate 1 4 4   |   Room 0.1 0.2 0.3 0.4  ")

    assert isinstance(plan, ChainPlan)
    assert plan.stages[1].text == "Room 0.1 0.2 0.3 0.4"


def test_lone_help_returns_listing() -> None:
    result = validate("  Help  ", cancel_key="q")

    assert isinstance(result, HelpRequest)
    assert "Generate <imagesnumber> <width> <height>" in result.text
    assert "Room <x1> <y1> <x2> <y2>" in result.text
    assert "ChangePath" in result.text
    assert "press 'q'" in result.text


def test_help_inside_chain_is_dropped() -> None:
    plan = validate("Help | Generate 2 8 8 | Help | Blur 1 1")

    assert isinstance(plan, ChainPlan)
    assert plan.stage_count == 2
    assert plan.image_count == 2


@pytest.mark.parametrize("text", ["", "   ", None])
def test_empty_chain_rejected(text) -> None:
    with pytest.raises(ChainValidationError, match="empty"):
        validate(text)


def test_first_stage_must_generate() -> None:
    with pytest.raises(ChainValidationError, match="must begin with a generating command"):
        validate("Blur 3 3 | Generate 1 4 4")


def test_only_help_is_not_a_chain() -> None:
    with pytest.raises(ChainValidationError):
        validate("Help | Help")


def test_malformed_generating_stage_rejected() -> None:
    with pytest.raises(ChainValidationError, match="valid generating command"):
        validate("Generate 2 64")


def test_second_generating_stage_rejected() -> None:
    with pytest.raises(ChainValidationError, match="only one generating command") as exc:
        validate("Generate 1 4 4 | Input photo.png")

    assert exc.value.stage_text == "Input photo.png"


def test_unknown_stage_rejected_with_its_text() -> None:
    with pytest.raises(ChainValidationError) as exc:
        validate("Generate 1 4 4 | Sharpen 3")

    assert exc.value.stage_text == "Sharpen 3"
    assert "Sharpen 3" in str(exc.value)
    assert exc.value.suggestion is not None


def test_empty_stage_between_pipes_rejected() -> None:
    with pytest.raises(ChainValidationError):
        validate("Generate 1 4 4 || Blur 1 1")


def test_names_are_case_sensitive() -> None:
    with pytest.raises(ChainValidationError):
        validate("generate 1 4 4")


@pytest.mark.parametrize(
    "stage",
    [
        "Blur 3",
        "Blur 3 3 3",
        "Blur 3.5 3",
        "Blur 1_000 3",
        "RandomCircles 5 x",
        "ColorCorrection a 0 0",
        "GammaCorrection nan",
        "GammaCorrection inf",
        "GammaCorrection",
        "Room 0 0 1",
        "Output",
        "Output a b",
    ],
)
def test_bad_signature_rejected(stage: str) -> None:
    with pytest.raises(ChainValidationError):
        validate(f"Generate 1 4 4 | {stage}")


@pytest.mark.parametrize("generate", ["Generate 0 4 4", "Generate 1 0 4", "Generate 1 4 -2", "Generate x 4 4"])
def test_generate_needs_positive_sizes(generate: str) -> None:
    with pytest.raises(ChainValidationError):
        validate(generate)


def test_float_literals_accepted() -> None:
    plan = validate("Generate 1 4 4 | ColorCorrection 0.1 -0.2 1e-1 | Room .1 .2 0.9 1")

    assert isinstance(plan, ChainPlan)
    assert plan.stages[1].arguments == pytest.approx((0.1, -0.2, 0.1))
    assert plan.stages[2].arguments == pytest.approx((0.1, 0.2, 0.9, 1.0))


def test_runtime_ranges_are_not_checked_here() -> None:
    # Negative blur sizes are syntactically valid; the stage rejects them when it runs.
    plan = validate("Generate 1 4 4 | Blur -1 3 | GammaCorrection -2")

    assert isinstance(plan, ChainPlan)
    assert plan.stages[1].arguments == (-1, 3)


def test_pipes_without_spaces() -> None:
    plan = validate("Generate 3 100 100|Blur 3 3|Output demo")

    assert isinstance(plan, ChainPlan)
    assert (plan.stage_count, plan.image_count) == (3, 3)

    with pytest.raises(ChainValidationError):
        validate("Generate 2 10 10|Generate 1 5 5")


@pytest.mark.parametrize(
    "chain",
    [
        "Generate ٣ 4 4",
        "Generate 1 ４ 4",
        "Generate 1 4 4 | Blur ٣ 3",
        "Generate 1 4 4 | GammaCorrection ٢.5",
    ],
)
def test_only_ascii_digits_are_numbers(chain: str) -> None:
    with pytest.raises(ChainValidationError):
        validate(chain)


@pytest.mark.parametrize("prefix", ["../up", "a/b", "/tmp/abs", "..", ".", "dir\\name", "trailing/"])
def test_output_prefix_must_be_a_plain_name(prefix: str) -> None:
    with pytest.raises(ChainValidationError, match="filename_prefix"):
        validate(f"Generate 1 4 4 | Output {prefix}")


def test_output_prefix_may_contain_dots() -> None:
    plan = validate("Generate 1 4 4 | Output v1.2_final")

    assert isinstance(plan, ChainPlan)
    assert plan.stages[1].arguments == ("v1.2_final",)
