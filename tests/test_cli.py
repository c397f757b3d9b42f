"""Tests for the command-line entry point."""

import io

import pytest

from minimage.cli import build_parser, build_processor, cli_args_from_namespace, main, repl
from minimage.core.config import ConfigResolver
from minimage.core.errors import ConfigError
from minimage.core.logging import VerbosityLevel, get_verbosity


def _argv(tmp_path, *extra):
    return ["--config", str(tmp_path / "none.yaml"), "--output", str(tmp_path / "out"), *extra]


def test_one_shot_chain_succeeds(tmp_path) -> None:
    code = main(_argv(tmp_path, "-c", "Generate 2 6 6 | GammaCorrection 2 | Output cli"))

    assert code == 0
    assert (tmp_path / "out" / "cli_1.jpeg").exists()
    assert (tmp_path / "out" / "cli_2.jpeg").exists()


def test_one_shot_invalid_chain_fails(tmp_path) -> None:
    assert main(_argv(tmp_path, "-c", "Output nothing")) == 1


def test_bad_config_fails_fast(tmp_path, capsys) -> None:
    assert main(_argv(tmp_path, "--bar-size", "0", "-c", "Generate 1 2 2")) == 1
    assert "progress.bar_size" in capsys.readouterr().err


def test_native_backend_needs_library(tmp_path) -> None:
    assert main(_argv(tmp_path, "--backend", "native", "-c", "Generate 1 2 2")) == 1


def test_flags_map_to_nested_config() -> None:
    args = build_parser().parse_args(
        ["-d", "--no-color", "--backend", "native", "--library", "lib.so", "--bar-size", "30"]
    )

    assert cli_args_from_namespace(args) == {
        "logging": {"level": "debug", "color": False},
        "gateway": {"backend": "native", "library_path": "lib.so"},
        "progress": {"bar_size": 30},
    }


def test_build_processor_applies_logging_level(tmp_path) -> None:
    resolver = ConfigResolver(
        cli_args={"logging": {"level": "verbose"}, "cancel_key": "q"},
        user_config_path=tmp_path / "none.yaml",
        system_config_path=tmp_path / "none.yaml",
    )

    processor = build_processor(resolver)

    assert get_verbosity() == VerbosityLevel.VERBOSE
    assert processor.cancel_key == "q"


def test_cancel_key_must_be_one_character(tmp_path) -> None:
    resolver = ConfigResolver(
        cli_args={"cancel_key": "esc"},
        user_config_path=tmp_path / "none.yaml",
        system_config_path=tmp_path / "none.yaml",
    )

    with pytest.raises(ConfigError, match="single character"):
        build_processor(resolver)


def test_repl_runs_until_exit(tmp_path, capsys) -> None:
    resolver = ConfigResolver(
        cli_args={"output_dir": str(tmp_path)},
        user_config_path=tmp_path / "none.yaml",
        system_config_path=tmp_path / "none.yaml",
    )
    processor = build_processor(resolver)

    repl(processor, io.StringIO("Help\n\nGenerate 1 4 4 | Output r\nexit\nGenerate 1 4 4 | Output late\n"))

    out = capsys.readouterr().out
    assert "List of available commands:" in out
    assert out.rstrip().endswith("Program terminated.")
    assert (tmp_path / "r_1.jpeg").exists()
    assert not (tmp_path / "late_1.jpeg").exists()


def test_repl_stops_at_end_of_input(tmp_path, capsys) -> None:
    resolver = ConfigResolver(
        cli_args={},
        user_config_path=tmp_path / "none.yaml",
        system_config_path=tmp_path / "none.yaml",
    )

    repl(build_processor(resolver), io.StringIO(""))

    assert "Program terminated." in capsys.readouterr().out


def test_show_config_prints_values_and_sources(tmp_path, capsys) -> None:
    user_config = tmp_path / "config.yaml"
    user_config.write_text("jpeg:\n  quality: 75\n")

    code = main(["--config", str(user_config), "--bar-size", "30", "--show-config"])

    out = capsys.readouterr().out
    assert code == 0
    assert "progress.bar_size = 30 (cli)" in out
    assert "jpeg.quality = 75 (user_config)" in out
    assert "cancel_key = 'x' (default)" in out
    assert "gateway.library_path" not in out


def test_show_config_reports_broken_config_file(tmp_path, capsys) -> None:
    user_config = tmp_path / "config.yaml"
    user_config.write_text("jpeg: [unclosed\n")

    assert main(["--config", str(user_config), "--show-config"]) == 1
    assert "config.yaml" in capsys.readouterr().err
