"""Unit tests for change notification."""

from loomline.utils.events import ChangeEvent, ChangeNotifier


class TestChangeNotifier:
    """Test versioning and listener delivery."""

    def test_notify_bumps_version(self) -> None:
        notifier = ChangeNotifier("timeslots")

        event = notifier.notify("insert", timeslot_id="t1")

        assert notifier.version == 1
        assert event == ChangeEvent(
            source="timeslots", action="insert", version=1, details={"timeslot_id": "t1"}
        )

    def test_listeners_receive_events(self) -> None:
        notifier = ChangeNotifier("objects")
        received: list[ChangeEvent] = []
        notifier.subscribe(received.append)

        notifier.notify("add")
        notifier.notify("remove")

        assert [e.action for e in received] == ["add", "remove"]
        assert [e.version for e in received] == [1, 2]

    def test_cancel_subscription(self) -> None:
        notifier = ChangeNotifier("objects")
        received: list[ChangeEvent] = []
        subscription = notifier.subscribe(received.append)

        subscription.cancel()
        subscription.cancel()
        notifier.notify("add")

        assert received == []
        assert notifier.listener_count == 0
        assert subscription.active is False

    def test_failing_listener_does_not_stop_delivery(self) -> None:
        notifier = ChangeNotifier("placements")
        received: list[ChangeEvent] = []

        def broken(event: ChangeEvent) -> None:
            raise RuntimeError("listener bug")

        notifier.subscribe(broken)
        notifier.subscribe(received.append)

        notifier.notify("add")

        assert len(received) == 1
        assert notifier.version == 1
