"""Change notifier fan-out."""

from __future__ import annotations

from linearvue.runtime.change_notifier import ChangeNotifier
from linearvue.runtime.schedule_types import ScheduleChanged


def test_publish_reaches_every_subscriber():
    notifier = ChangeNotifier()
    first, second = [], []
    notifier.subscribe(first.append)
    notifier.subscribe(second.append)

    event = ScheduleChanged(3, blocks_written=2)
    assert notifier.publish(event) == 2
    assert first == [event]
    assert second == [event]


def test_failing_subscriber_is_skipped():
    notifier = ChangeNotifier()
    received = []

    def broken(event):
        raise RuntimeError("socket closed")

    notifier.subscribe(broken)
    notifier.subscribe(received.append)
    assert notifier.publish(ScheduleChanged(1)) == 1
    assert len(received) == 1


def test_unsubscribe_is_idempotent():
    notifier = ChangeNotifier()
    received = []
    unsubscribe = notifier.subscribe(received.append)
    assert notifier.subscriber_count == 1

    unsubscribe()
    unsubscribe()
    assert notifier.subscriber_count == 0
    assert notifier.publish(ScheduleChanged(1)) == 0
    assert received == []
