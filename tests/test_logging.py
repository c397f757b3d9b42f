"""Tests for logging, the log bus and the event bus."""

import pytest

from minimage.core.errors import ConfigError
from minimage.core.events import EventBus
from minimage.core.log_bus import get_log_bus
from minimage.core.logging import VerbosityLevel, get_logger, parse_verbosity, set_verbosity


@pytest.fixture
def records():
    seen = []
    bus = get_log_bus()
    bus.subscribe_all(seen.append)
    yield seen
    bus.unsubscribe_all(seen.append)


def test_verbosity_filters_messages(records, capsys) -> None:
    log = get_logger("tests.verbosity")
    set_verbosity(VerbosityLevel.QUIET)

    log.info("hidden")
    log.warning("shown")
    log.error("always")

    assert [r.plain for r in records] == ["[warning] shown", "[error] always"]
    captured = capsys.readouterr()
    assert "[warning] shown" in captured.out
    assert "[error] always" in captured.err


def test_debug_level_shows_everything(records) -> None:
    log = get_logger("tests.debug")
    set_verbosity(VerbosityLevel.DEBUG)

    log.debug("d")
    log.verbose("v")

    assert [r.level_name for r in records] == ["DEBUG", "VERBOSE"]
    assert records[0].logger_name == "tests.debug"


def test_logger_registry_reuses_instances() -> None:
    assert get_logger("tests.same") is get_logger("tests.same")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("quiet", VerbosityLevel.QUIET),
        (" Debug ", VerbosityLevel.DEBUG),
        ("2", VerbosityLevel.VERBOSE),
        (1, VerbosityLevel.NORMAL),
        (VerbosityLevel.DEBUG, VerbosityLevel.DEBUG),
    ],
)
def test_parse_verbosity(value, expected) -> None:
    assert parse_verbosity(value) == expected


@pytest.mark.parametrize("value", ["loud", 7, True, 1.5])
def test_parse_verbosity_rejects(value) -> None:
    with pytest.raises(ConfigError):
        parse_verbosity(value)


def test_failing_subscriber_does_not_break_log_bus(records, capsys) -> None:
    bus = get_log_bus()

    def broken(_record):
        raise RuntimeError("subscriber bug")

    bus.subscribe_all(broken)
    try:
        get_logger("tests.bus").warning("still delivered")
    finally:
        bus.unsubscribe_all(broken)

    assert records[-1].plain == "[warning] still delivered"
    assert "suppressed" in capsys.readouterr().err


def test_event_bus_delivers_and_isolates_errors(capsys) -> None:
    bus = EventBus()
    got = []

    def broken(_data):
        raise RuntimeError("handler bug")

    bus.subscribe("image.finished", broken)
    bus.subscribe("image.finished", got.append)
    bus.publish("image.finished", {"image_id": 1})

    assert got == [{"image_id": 1}]
    assert "handler bug" in capsys.readouterr().err

    bus.unsubscribe("image.finished", got.append)
    bus.publish("image.finished", {"image_id": 2})
    assert got == [{"image_id": 1}]
