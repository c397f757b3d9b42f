"""Command-line interface: interactive prompt or one-shot chain."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, TextIO, cast

from minimage.core import __version__
from minimage.core.cancellation import CancellationToken
from minimage.core.config import ConfigResolver
from minimage.core.errors import ConfigError, MinImageError
from minimage.core.gateway import create_gateway
from minimage.core.imageio import ImageSaver
from minimage.core.logging import console_write, get_logger, parse_verbosity, set_colors, set_verbosity
from minimage.core.processor import CommandProcessor
from minimage.core.progress import ProgressAggregator, ProgressSurface
from minimage.ui.console import create_surface
from minimage.ui.keys import KeyListener

log = get_logger(__name__)

EXIT_WORDS = frozenset({"exit", "quit"})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minimage",
        description="Run image command chains, one concurrent pipeline per image.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Verbosity
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Warnings and errors only")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    verbosity.add_argument("-d", "--debug", action="store_true", help="Debug output (everything)")

    # Config
    parser.add_argument("--config", type=Path, help="User config file path")
    parser.add_argument("--output", help="Directory images are saved into")
    parser.add_argument("--backend", choices=["reference", "native"], help="Compute backend")
    parser.add_argument("--library", help="Shared library for the native backend")
    parser.add_argument("--bar-size", type=int, help="Progress bar width in cells")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Print the effective configuration with the source of each value and exit",
    )

    parser.add_argument(
        "-c",
        "--command",
        metavar="CHAIN",
        help='Run one chain and exit, e.g. "Generate 2 64 64 | Blur 3 3 | Output demo"',
    )
    return parser


def cli_args_from_namespace(args: argparse.Namespace) -> dict[str, Any]:
    """Convert parsed arguments into the nested dict ConfigResolver expects."""
    cli_args: dict[str, Any] = {}

    def _ensure_dict(root: dict[str, Any], key: str) -> dict[str, Any]:
        val = root.get(key)
        if isinstance(val, dict):
            return cast(dict[str, Any], val)
        new: dict[str, Any] = {}
        root[key] = new
        return new

    if args.quiet:
        _ensure_dict(cli_args, "logging")["level"] = "quiet"
    elif args.verbose:
        _ensure_dict(cli_args, "logging")["level"] = "verbose"
    elif args.debug:
        _ensure_dict(cli_args, "logging")["level"] = "debug"
    if args.no_color:
        _ensure_dict(cli_args, "logging")["color"] = False

    if args.output:
        cli_args["output_dir"] = args.output
    if args.backend:
        _ensure_dict(cli_args, "gateway")["backend"] = args.backend
    if args.library:
        _ensure_dict(cli_args, "gateway")["library_path"] = args.library
    if args.bar_size is not None:
        _ensure_dict(cli_args, "progress")["bar_size"] = args.bar_size

    return cli_args


def resolve_cancel_key(resolver: ConfigResolver) -> str:
    key = resolver.resolve_str("cancel_key")
    if len(key) != 1:
        raise ConfigError(f"Config key 'cancel_key' must be a single character, got {key!r}")
    return key


def show_config(resolver: ConfigResolver) -> None:
    """Print every resolved key as ``key = value (source)``."""
    for key, entry in resolver.resolve_all().items():
        console_write(f"{key} = {entry.value!r} ({entry.source})")


def build_processor(resolver: ConfigResolver, surface: ProgressSurface | None = None) -> CommandProcessor:
    """Wire a CommandProcessor from resolved configuration.

    Raises:
        ConfigError: If any configuration value is invalid
    """
    set_verbosity(parse_verbosity(resolver.resolve_logging_level()))
    color = resolver.resolve_bool("logging.color")
    set_colors(color)

    quality = resolver.resolve_int("jpeg.quality", minimum=1)
    if quality > 100:
        raise ConfigError(f"Config key 'jpeg.quality' must be <= 100, got {quality}")

    gateway = create_gateway(resolver.resolve_backend(), resolver.resolve_library_path())
    aggregator = ProgressAggregator(
        surface if surface is not None else create_surface(color),
        bar_size=resolver.resolve_int("progress.bar_size", minimum=1),
    )
    saver = ImageSaver(resolver.resolve_str("default_prefix"), quality=quality)
    return CommandProcessor(
        gateway,
        aggregator,
        saver,
        output_dir=resolver.resolve_output_dir(),
        cancel_key=resolve_cancel_key(resolver),
    )


def run_line(processor: CommandProcessor, line: str) -> bool:
    """Process one line with a fresh token and the key listener active."""
    token = CancellationToken()
    with KeyListener(token, processor.cancel_key):
        return processor.process(line, token)


def repl(processor: CommandProcessor, stdin: TextIO | None = None) -> None:
    """Prompt for lines until ``exit``, ``quit`` or end of input."""
    source = stdin if stdin is not None else sys.stdin
    while True:
        console_write('Type "Help" to list available options')
        console_write("Enter command:")
        line = source.readline()
        if line == "":
            break
        if line.strip().lower() in EXIT_WORDS:
            break
        if line.strip() == "":
            continue
        run_line(processor, line)
    console_write("Program terminated.")


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``minimage`` command.

    Returns:
        Process exit status: 0 on success, 1 otherwise
    """
    args = build_parser().parse_args(argv)
    resolver = ConfigResolver(cli_args=cli_args_from_namespace(args), user_config_path=args.config)

    if args.show_config:
        try:
            show_config(resolver)
        except MinImageError as e:
            log.error(str(e))
            return 1
        return 0

    try:
        processor = build_processor(resolver)
    except MinImageError as e:
        log.error(str(e))
        return 1

    if args.command is not None:
        return 0 if run_line(processor, args.command) else 1

    try:
        repl(processor)
    except KeyboardInterrupt:
        console_write("\nInterrupted")
    return 0
