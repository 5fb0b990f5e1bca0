from __future__ import annotations

import logging

import pytest

from kbinset.controller import KeyboardInsetController
from kbinset.exceptions import InsetInitializationError, SourceClosedError
from kbinset.source import LocalNotificationSource, SubscriptionHandle
from kbinset.state.events import ObstructionKind
from kbinset.state.policy import InsetPhase


def _controller() -> tuple[LocalNotificationSource, KeyboardInsetController]:
    source = LocalNotificationSource()
    return source, KeyboardInsetController(source)


def test_initial_inset_is_zero_and_idle() -> None:
    _source, controller = _controller()

    assert controller.current_inset == 0.0
    assert controller.current_inset_value() == 0.0
    assert controller.phase == InsetPhase.IDLE


def test_construction_subscribes_both_kinds_without_notifying() -> None:
    source = LocalNotificationSource()
    seen: list[float] = []

    controller = KeyboardInsetController(source)
    controller.on_change(seen.append)

    assert source.subscriber_count(ObstructionKind.SHOWN) == 1
    assert source.subscriber_count(ObstructionKind.HIDDEN) == 1
    assert seen == []


def test_shown_sets_inset() -> None:
    source, controller = _controller()

    source.post_shown(300)

    assert controller.current_inset == 300
    assert controller.phase == InsetPhase.OBSTRUCTED


def test_hidden_after_shown_resets_inset() -> None:
    source, controller = _controller()

    source.post_shown(300)
    source.post_hidden()

    assert controller.current_inset == 0
    assert controller.phase == InsetPhase.IDLE


def test_last_shown_wins() -> None:
    source, controller = _controller()

    source.post_shown(200)
    source.post_shown(350)

    assert controller.current_inset == 350


def test_negative_height_is_clamped_to_zero() -> None:
    source, controller = _controller()

    source.post_shown(-5)

    assert controller.current_inset == 0


def test_stale_shown_after_hidden_is_applied_in_arrival_order() -> None:
    source, controller = _controller()

    source.post_shown(300)
    source.post_hidden()
    # Platform race: an old show notification arrives late.
    source.post_shown(300)

    assert controller.current_inset == 300


@pytest.mark.parametrize(
    ("sequence", "expected"),
    [
        ([], 0.0),
        ([("shown", 120.0)], 120.0),
        ([("hidden", None)], 0.0),
        ([("shown", 120.0), ("hidden", None), ("shown", 80.0)], 80.0),
        ([("shown", 120.0), ("shown", 80.0), ("hidden", None)], 0.0),
        ([("hidden", None), ("hidden", None), ("shown", 44.5)], 44.5),
        ([("shown", 10.0), ("shown", float("nan"))], 0.0),
    ],
)
def test_inset_tracks_most_recent_event(sequence: list[tuple[str, float | None]], expected: float) -> None:
    source, controller = _controller()

    for kind, height in sequence:
        if kind == "shown":
            source.post_shown(height)
        else:
            source.post_hidden()

    assert controller.current_inset == expected


def test_hidden_while_idle_still_notifies() -> None:
    source, controller = _controller()
    seen: list[float] = []
    controller.on_change(seen.append)

    source.post_hidden()

    assert controller.phase == InsetPhase.IDLE
    assert seen == [0.0]


def test_repeated_shown_at_same_height_notifies_each_time() -> None:
    source, controller = _controller()
    seen: list[float] = []
    controller.on_change(seen.append)

    source.post_shown(250)
    source.post_shown(250)

    assert seen == [250, 250]


def test_two_observers_each_notified_once() -> None:
    source, controller = _controller()
    first: list[float] = []
    second: list[float] = []
    controller.on_change(first.append)
    controller.on_change(second.append)

    source.post_shown(100)

    assert first == [100]
    assert second == [100]


def test_observer_handle_remove_stops_notifications() -> None:
    source, controller = _controller()
    seen: list[float] = []
    handle = controller.on_change(seen.append)

    source.post_shown(100)
    handle.remove()
    handle.remove()
    source.post_shown(200)

    assert seen == [100]
    assert not handle.active


def test_failing_observer_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    source, controller = _controller()
    seen: list[float] = []

    def broken(_inset: float) -> None:
        raise RuntimeError("boom")

    controller.on_change(broken)
    controller.on_change(seen.append)

    with caplog.at_level(logging.ERROR):
        source.post_shown(90)

    assert seen == [90]
    assert any("Inset observer" in record.getMessage() for record in caplog.records)


def test_dispose_stops_delivery_and_freezes_inset() -> None:
    source, controller = _controller()
    seen: list[float] = []
    controller.on_change(seen.append)
    source.post_shown(300)

    controller.dispose()
    invoked = source.post_hidden()
    source.post_shown(120)

    assert invoked == 0
    assert seen == [300]
    assert controller.current_inset == 300
    assert source.subscriber_count() == 0


def test_dispose_twice_is_a_noop() -> None:
    source, controller = _controller()
    source.post_shown(40)

    controller.dispose()
    once = controller.snapshot()
    controller.dispose()

    assert controller.snapshot() == once
    assert controller.is_disposed
    assert source.subscriber_count() == 0


def test_dispose_from_inside_observer() -> None:
    source, controller = _controller()
    seen: list[float] = []

    def dispose_on_first(inset: float) -> None:
        seen.append(inset)
        controller.dispose()

    controller.on_change(dispose_on_first)

    source.post_shown(70)
    source.post_shown(80)

    assert seen == [70]
    assert controller.current_inset == 70


def test_on_change_after_dispose_returns_inactive_handle() -> None:
    _source, controller = _controller()
    controller.dispose()

    handle = controller.on_change(lambda _inset: None)

    assert not handle.active
    handle.remove()


def test_context_manager_disposes_on_exception() -> None:
    source = LocalNotificationSource()

    with pytest.raises(ValueError):
        with KeyboardInsetController(source) as controller:
            source.post_shown(10)
            raise ValueError("leave scope")

    assert controller.is_disposed
    assert source.subscriber_count() == 0


def test_construction_on_closed_source_raises() -> None:
    source = LocalNotificationSource()
    source.close()

    with pytest.raises(InsetInitializationError) as excinfo:
        KeyboardInsetController(source)

    assert isinstance(excinfo.value.__cause__, SourceClosedError)
    assert excinfo.value.kind == "shown"


class _HalfBrokenSource:
    """Accepts the first subscription and rejects the second."""

    def __init__(self) -> None:
        self.inner = LocalNotificationSource()
        self.calls = 0

    def subscribe(self, kind, callback):  # noqa: ANN001, ANN201
        self.calls += 1
        if self.calls > 1:
            raise RuntimeError("channel unavailable")
        return self.inner.subscribe(kind, callback)

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self.inner.unsubscribe(handle)


def test_partial_subscription_released_on_construction_failure() -> None:
    source = _HalfBrokenSource()

    with pytest.raises(InsetInitializationError) as excinfo:
        KeyboardInsetController(source)

    assert excinfo.value.kind == "hidden"
    assert source.inner.subscriber_count() == 0


def test_snapshot_counts_applied_events() -> None:
    source, controller = _controller()

    source.post_shown(300)
    source.post_hidden()
    snapshot = controller.snapshot()

    assert snapshot.events_applied == 2
    assert snapshot.phase == InsetPhase.IDLE
    assert snapshot.inset == 0
    assert snapshot.last_event_at is not None
    assert not snapshot.disposed


def test_overflowing_height_is_clamped_to_zero() -> None:
    source, controller = _controller()
    seen: list[float] = []
    controller.on_change(seen.append)

    source.post_shown(10**400)

    assert controller.current_inset == 0
    assert controller.phase == InsetPhase.OBSTRUCTED
    assert seen == [0]


class _StickyShownSource:
    """Refuses to release the first SHOWN subscription it is asked to drop."""

    def __init__(self) -> None:
        self.inner = LocalNotificationSource()
        self.refusals = 0

    def subscribe(self, kind, callback):  # noqa: ANN001, ANN201
        return self.inner.subscribe(kind, callback)

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        if handle.kind == ObstructionKind.SHOWN and self.refusals == 0:
            self.refusals += 1
            raise RuntimeError("channel busy")
        self.inner.unsubscribe(handle)


def test_dispose_releases_remaining_subscriptions_when_one_fails(caplog: pytest.LogCaptureFixture) -> None:
    source = _StickyShownSource()
    seen: list[float] = []
    controller = KeyboardInsetController(source)
    controller.on_change(seen.append)

    with caplog.at_level(logging.ERROR):
        controller.dispose()

    assert controller.is_disposed
    assert source.inner.subscriber_count(ObstructionKind.HIDDEN) == 0
    assert source.inner.subscriber_count(ObstructionKind.SHOWN) == 1
    assert any("Failed to release" in record.getMessage() for record in caplog.records)

    # The stuck subscription no longer reaches the controller.
    source.inner.post_shown(300)
    assert seen == []
    assert controller.current_inset == 0

    controller.dispose()

    assert source.inner.subscriber_count() == 0
