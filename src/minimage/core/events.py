"""Event bus for observing runs.

Simple pub/sub system so front-ends can follow orchestration without the
core knowing about them. Events are published from worker threads; handlers
run on the publishing thread and must be quick.
"""

from __future__ import annotations

import threading
import traceback
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from minimage.core.logging import get_logger

_logger = get_logger(__name__)

RUN_STARTED = "run.started"
IMAGE_FINISHED = "image.finished"
RUN_FINISHED = "run.finished"


class EventBus:
    """Simple event bus.

    Example:
        bus = EventBus()

        def on_image_finished(data):
            print(f"Image {data['image_id']} -> {data['status']}")

        bus.subscribe("image.finished", on_image_finished)
        bus.publish("image.finished", {"image_id": 0, "status": "completed"})
    """

    def __init__(self) -> None:
        """Initialize event bus."""
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Callable[[dict[str, Any]], None]]] = defaultdict(list)
        self._all_subscribers: list[Callable[[str, dict[str, Any]], None]] = []

    def subscribe(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        """Subscribe to an event.

        Args:
            event: Event name
            callback: Callback function (receives event data dict)
        """
        with self._lock:
            self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        """Unsubscribe from an event.

        Args:
            event: Event name
            callback: Callback function to remove
        """
        with self._lock:
            if event in self._subscribers and callback in self._subscribers[event]:
                self._subscribers[event].remove(callback)

    def subscribe_all(self, callback: Callable[[str, dict[str, Any]], None]) -> None:
        """Subscribe to all published events.

        Args:
            callback: Callback function (receives event name and event data dict)
        """
        with self._lock:
            self._all_subscribers.append(callback)

    def publish(self, event: str, data: dict[str, Any] | None = None) -> None:
        """Publish an event.

        Args:
            event: Event name
            data: Event data (optional)
        """
        data = data or {}
        with self._lock:
            exact = list(self._subscribers.get(event, []))
            catch_all = list(self._all_subscribers)

        for cb_event in exact:
            try:
                cb_event(data)
            except Exception as e:
                # Log error but don't crash the publishing pipeline.
                tb = traceback.format_exc()
                _logger.error(
                    f"Error in event handler for '{event}' (callback={cb_event}): "
                    f"{type(e).__name__}: {e}\n{tb}"
                )

        for cb_all in catch_all:
            try:
                cb_all(event, data)
            except Exception as e:
                tb = traceback.format_exc()
                _logger.error(
                    f"Error in all-event handler (event='{event}', callback={cb_all}): "
                    f"{type(e).__name__}: {e}\n{tb}"
                )

    def clear(self) -> None:
        """Clear all subscribers."""
        with self._lock:
            self._subscribers.clear()
            self._all_subscribers.clear()


# Global event bus instance
_global_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get global event bus instance.

    Returns:
        Global EventBus instance
    """
    global _global_bus
    if _global_bus is None:
        _global_bus = EventBus()
    return _global_bus
