from __future__ import annotations

import asyncio

import pytest

from harvester.services.scan.cancellation import CancellationToken, CancelReason, ScanCancelledError
from harvester.services.scan.deadline import ScanDeadline
from harvester.services.scan.quiet import ActivitySnapshot, QuietWindowTracker, wait_for_quiet_window


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _snapshot(**overrides: object) -> ActivitySnapshot:
    values: dict[str, object] = {
        "load_more_visible": False,
        "unclicked_reply_buttons": 0,
        "seconds_since_intercept": 10.0,
        "seconds_since_dom_change": 10.0,
        "replays_in_flight": 0,
    }
    values.update(overrides)
    return ActivitySnapshot(**values)  # type: ignore[arg-type]


# ── Quiet window ─────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "overrides",
    [
        {"load_more_visible": True},
        {"unclicked_reply_buttons": 2},
        {"seconds_since_intercept": 1.0},
        {"seconds_since_dom_change": 0.5},
        {"replays_in_flight": 1},
    ],
)
def test_any_activity_breaks_quiet(overrides: dict[str, object]) -> None:
    assert _snapshot().is_quiet(2.5)
    assert not _snapshot(**overrides).is_quiet(2.5)


def test_tracker_requires_a_full_uninterrupted_window() -> None:
    clock = FakeClock()
    tracker = QuietWindowTracker(2.5, clock=clock)

    assert tracker.observe(_snapshot()) is False
    clock.now = 2.0
    assert tracker.observe(_snapshot()) is False
    clock.now = 2.2
    assert tracker.observe(_snapshot(replays_in_flight=1)) is False
    clock.now = 3.0
    assert tracker.observe(_snapshot()) is False
    clock.now = 5.5
    assert tracker.observe(_snapshot()) is True


@pytest.mark.asyncio
async def test_wait_for_quiet_window_returns_true_once_quiet() -> None:
    probes = iter([_snapshot(load_more_visible=True), _snapshot(), _snapshot(), _snapshot()])

    async def probe() -> ActivitySnapshot:
        return next(probes, _snapshot())

    assert await wait_for_quiet_window(
        probe,
        window_seconds=0.0,
        check_seconds=0.0,
        cancel=CancellationToken(),
    )


@pytest.mark.asyncio
async def test_wait_for_quiet_window_gives_up_after_max_wait() -> None:
    async def probe() -> ActivitySnapshot:
        return _snapshot(load_more_visible=True)

    assert not await wait_for_quiet_window(
        probe,
        window_seconds=0.01,
        check_seconds=0.01,
        cancel=CancellationToken(),
        max_wait_seconds=0.05,
    )


@pytest.mark.asyncio
async def test_wait_for_quiet_window_stops_when_cancelled() -> None:
    cancel = CancellationToken()

    async def probe() -> ActivitySnapshot:
        cancel.cancel(CancelReason.STOPPED)
        return _snapshot(replays_in_flight=3)

    assert not await wait_for_quiet_window(probe, window_seconds=1.0, check_seconds=1.0, cancel=cancel)


# ── Deadline ─────────────────────────────────────────────────────────


def test_deadline_extends_on_progress_up_to_the_cap() -> None:
    clock = FakeClock(100.0)
    deadline = ScanDeadline(base_seconds=1200, extension_seconds=300, max_seconds=2100, clock=clock)

    assert deadline.deadline == 1300.0
    assert deadline.observe_progress(0) is False
    assert deadline.observe_progress(3) is True
    assert deadline.allowed_seconds == 1500
    assert deadline.observe_progress(3) is False
    assert deadline.observe_progress(4) is True
    assert deadline.observe_progress(9) is True
    assert deadline.allowed_seconds == 2100
    assert deadline.observe_progress(12) is False
    assert deadline.allowed_seconds == 2100


def test_deadline_expiry_and_message() -> None:
    clock = FakeClock()
    deadline = ScanDeadline(base_seconds=1200, extension_seconds=300, max_seconds=2100, clock=clock)

    clock.now = 1199.0
    assert not deadline.expired()
    assert deadline.remaining() == 1.0
    clock.now = 1200.0
    assert deadline.expired()
    assert deadline.remaining() == 0.0
    assert deadline.timeout_message() == "Scan timed out after 20 minutes. Results so far have been saved."


# ── Cancellation ─────────────────────────────────────────────────────


def test_cancellation_records_the_first_reason_only() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()

    assert token.cancel(CancelReason.TIMED_OUT, "late") is True
    assert token.cancel(CancelReason.STOPPED) is False
    assert token.is_cancelled
    assert token.reason is CancelReason.TIMED_OUT
    assert token.message == "late"
    with pytest.raises(ScanCancelledError) as excinfo:
        token.raise_if_cancelled()
    assert excinfo.value.reason is CancelReason.TIMED_OUT


@pytest.mark.asyncio
async def test_cancellation_sleep_reports_interruption() -> None:
    token = CancellationToken()

    assert await token.sleep(0) is True
    assert await token.sleep(0.001) is True

    token.cancel(CancelReason.STOPPED)
    assert await token.sleep(5.0) is False
    await token.wait()


@pytest.mark.asyncio
async def test_cancellation_pause_raises_once_cancelled() -> None:
    token = CancellationToken()

    await token.pause(0)

    async def stop_soon() -> None:
        await asyncio.sleep(0.01)
        token.cancel(CancelReason.STOPPED, "Stopped")

    stopper = asyncio.create_task(stop_soon())
    with pytest.raises(ScanCancelledError) as excinfo:
        await token.pause(5.0)
    await stopper
    assert excinfo.value.reason is CancelReason.STOPPED
