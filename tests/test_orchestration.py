"""Tests for the concurrent orchestrator."""

import threading

import pytest

from minimage.core.cancellation import CancellationToken
from minimage.core.chain import validate
from minimage.core.errors import GatewayError
from minimage.core.events import IMAGE_FINISHED, RUN_FINISHED, RUN_STARTED, EventBus
from minimage.core.gateway.reference import ReferenceGateway
from minimage.core.orchestration import Orchestrator
from minimage.core.pipeline import ImageStatus


class FailOnceGateway(ReferenceGateway):
    """Blur fails for whichever image reaches it first."""

    def __init__(self) -> None:
        super().__init__(bands=2)
        self._lock = threading.Lock()
        self.failed = False

    def blur(self, *args, **kwargs):
        with self._lock:
            if not self.failed:
                self.failed = True
                raise GatewayError("blur kernel failed")
        super().blur(*args, **kwargs)


class BarrierGateway(ReferenceGateway):
    """Generate only returns once every image is inside it at the same time."""

    def __init__(self, parties: int) -> None:
        super().__init__(bands=2)
        self.barrier = threading.Barrier(parties, timeout=10)

    def generate(self, buffer, width, height, progress):
        self.barrier.wait()
        super().generate(buffer, width, height, progress)


class CancelOnGenerateGateway(ReferenceGateway):
    def __init__(self, token: CancellationToken) -> None:
        super().__init__(bands=2)
        self.token = token

    def generate(self, buffer, width, height, progress):
        self.token.cancel()
        super().generate(buffer, width, height, progress)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def events(bus):
    seen: list[tuple[str, dict]] = []
    bus.subscribe_all(lambda name, data: seen.append((name, data)))
    return seen


def test_all_images_complete(gateway, aggregator, bus, events) -> None:
    plan = validate("Generate 4 8 8 | Blur 3 3 | Output demo")

    outcome = Orchestrator(gateway, aggregator, event_bus=bus).run(plan, CancellationToken())

    assert outcome.completed == [0, 1, 2, 3]
    assert outcome.aborted == []
    assert outcome.should_save and outcome.succeeded
    assert all(s.prefix == "demo" for s in outcome.completed_states().values())
    assert all(r.percent_complete == 100 for r in aggregator.snapshot().values())

    names = [name for name, _data in events]
    assert names[0] == RUN_STARTED
    assert names[-1] == RUN_FINISHED
    assert names.count(IMAGE_FINISHED) == 4
    assert events[-1][1]["completed"] == [0, 1, 2, 3]


def test_pipelines_run_concurrently(aggregator, bus) -> None:
    plan = validate("Generate 3 4 4")

    outcome = Orchestrator(BarrierGateway(3), aggregator, event_bus=bus).run(plan, CancellationToken())

    assert outcome.completed == [0, 1, 2]


def test_precancelled_run_does_nothing(gateway, aggregator, surface, bus, events) -> None:
    token = CancellationToken()
    token.cancel()

    outcome = Orchestrator(gateway, aggregator, event_bus=bus).run(validate("Generate 3 4 4"), token)

    assert all(o.status is ImageStatus.CANCELLED for o in outcome.outcomes.values())
    assert set(outcome.outcomes) == {0, 1, 2}
    assert not outcome.should_save
    assert all(s.pixels is None for s in outcome.states.values())
    assert surface.resets == 0
    assert events == []


def test_failure_is_isolated_to_one_image(aggregator, bus) -> None:
    plan = validate("Generate 3 6 6 | Blur 3 3 | Output x")

    outcome = Orchestrator(FailOnceGateway(), aggregator, event_bus=bus).run(plan, CancellationToken())

    assert len(outcome.aborted) == 1
    assert len(outcome.completed) == 2
    aborted = outcome.outcomes[outcome.aborted[0]]
    assert aborted.stage_index == 1
    assert "blur kernel failed" in aborted.reason
    assert outcome.should_save
    assert not outcome.succeeded
    assert set(outcome.completed_states()) == set(outcome.completed)


def test_cancel_mid_run_stops_every_image(aggregator, bus) -> None:
    token = CancellationToken()
    plan = validate("Generate 3 6 6 | Blur 3 3 | Output x")

    outcome = Orchestrator(CancelOnGenerateGateway(token), aggregator, event_bus=bus).run(plan, token)

    assert outcome.cancelled
    assert not outcome.should_save
    assert all(o.status is ImageStatus.CANCELLED for o in outcome.outcomes.values())


def test_surface_is_finished_after_run(gateway, aggregator, surface, bus) -> None:
    Orchestrator(gateway, aggregator, event_bus=bus).run(validate("Generate 2 4 4"), CancellationToken())

    assert surface.resets == 1
    assert surface.finishes == 1
    assert "Generating 2 images..." in surface.last
