"""Change Notifier: best-effort "schedule changed" fan-out.

Subscribers are plain callables. Delivery is synchronous on the publishing
thread, so subscribers must be quick (the web bridge only enqueues onto its
event loop). A failing subscriber is logged and skipped.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from linearvue.infra.logging import get_logger
from linearvue.runtime.schedule_types import ScheduleChanged

Subscriber = Callable[[ScheduleChanged], None]

logger = get_logger(__name__)


class ChangeNotifier:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscribers.remove(callback)
                except ValueError:
                    pass

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: ScheduleChanged) -> int:
        """Deliver ``event`` to every subscriber; returns how many succeeded."""
        with self._lock:
            subscribers = list(self._subscribers)
        delivered = 0
        for callback in subscribers:
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "change_notification_failed",
                    channel_id=event.channel_id,
                    error=str(e),
                )
        return delivered
