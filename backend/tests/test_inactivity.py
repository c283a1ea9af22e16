"""
Inactivity monitor tests (simulated clock, manual scheduler).

Verifies:
- WARNING at 25:00, EXPIRED at 30:00, expiry fires exactly once
- Activity before the warning re-arms the deadline (no warning fires)
- Remaining time comes from the stored deadline
- cancel() leaves no pending timers
- The expiry action clears verification best-effort and redirects
"""

import heapq
import itertools

import pytest

from storefront.inactivity import (
    INACTIVITY_REDIRECT,
    InactivityMonitor,
    MonitorState,
    expire_admin_session,
)

MINUTE = 60.0


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class ManualScheduler:
    """Runs callbacks in due order as the fake clock is advanced."""

    class Handle:
        def __init__(self):
            self.cancelled = False

        def cancel(self):
            self.cancelled = True

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self._queue = []
        self._seq = itertools.count()

    def call_later(self, delay, callback):
        handle = self.Handle()
        heapq.heappush(self._queue, (self.clock.now + delay, next(self._seq), handle, callback))
        return handle

    def pending(self):
        return [item for item in self._queue if not item[2].cancelled]

    def advance_to(self, target):
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.clock.now = due
            callback()
        self.clock.now = target


@pytest.fixture
def harness():
    clock = FakeClock()
    scheduler = ManualScheduler(clock)
    events = {"warning": 0, "expire": 0}

    def on_warning(remaining):
        events["warning"] += 1

    def on_expire():
        events["expire"] += 1

    monitor = InactivityMonitor(
        on_warning=on_warning,
        on_expire=on_expire,
        clock=clock,
        scheduler=scheduler,
    )
    return monitor, scheduler, clock, events


class TestTransitions:
    def test_warning_then_expiry_once(self, harness):
        monitor, scheduler, _, events = harness
        monitor.start()

        scheduler.advance_to(25 * MINUTE - 1)
        assert monitor.state is MonitorState.ACTIVE
        assert events["warning"] == 0

        scheduler.advance_to(25 * MINUTE)
        assert monitor.state is MonitorState.WARNING
        assert events["warning"] == 1

        scheduler.advance_to(30 * MINUTE)
        assert monitor.state is MonitorState.EXPIRED
        assert events == {"warning": 1, "expire": 1}

        scheduler.advance_to(90 * MINUTE)
        monitor.tick()
        assert events == {"warning": 1, "expire": 1}
        assert scheduler.pending() == []

    def test_activity_before_warning_rearms(self, harness):
        monitor, scheduler, _, events = harness
        monitor.start()

        scheduler.advance_to(20 * MINUTE)
        assert monitor.record_activity() is True

        scheduler.advance_to(44 * MINUTE)
        assert monitor.state is MonitorState.ACTIVE
        assert events["warning"] == 0

        scheduler.advance_to(45 * MINUTE)
        assert monitor.state is MonitorState.WARNING

        scheduler.advance_to(50 * MINUTE)
        assert monitor.state is MonitorState.EXPIRED
        assert events["expire"] == 1

    def test_activity_during_warning_returns_to_active(self, harness):
        monitor, scheduler, _, events = harness
        monitor.start()

        scheduler.advance_to(26 * MINUTE)
        assert monitor.state is MonitorState.WARNING

        monitor.reset()
        assert monitor.state is MonitorState.ACTIVE

        scheduler.advance_to(50 * MINUTE)
        assert monitor.state is MonitorState.ACTIVE
        assert events["expire"] == 0

    def test_activity_after_expiry_is_ignored(self, harness):
        monitor, scheduler, _, events = harness
        monitor.start()
        scheduler.advance_to(30 * MINUTE)

        assert monitor.record_activity() is False
        assert monitor.state is MonitorState.EXPIRED
        with pytest.raises(RuntimeError):
            monitor.start()


class TestRemainingAndTeardown:
    def test_remaining_from_deadline(self, harness):
        monitor, scheduler, clock, _ = harness
        assert monitor.remaining() == 30 * MINUTE

        monitor.start()
        scheduler.advance_to(10 * MINUTE + 0.5)
        assert monitor.remaining() == pytest.approx(20 * MINUTE - 0.5)

        # A late tick still reports the true remaining time
        clock.now = 12 * MINUTE
        assert monitor.tick() == pytest.approx(18 * MINUTE)

    def test_cancel_leaves_no_timers(self, harness):
        monitor, scheduler, _, events = harness
        monitor.start()
        scheduler.advance_to(5 * MINUTE)

        monitor.cancel()
        assert scheduler.pending() == []

        scheduler.advance_to(60 * MINUTE)
        assert events == {"warning": 0, "expire": 0}
        assert monitor.record_activity() is False

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            InactivityMonitor(timeout=60, warning_before=120)


class FakeSessionClient:
    def __init__(self, fail_clear=False):
        self.fail_clear = fail_clear
        self.calls = []

    def clear_admin_verification(self, reason="sign_out"):
        self.calls.append(("clear", reason))
        if self.fail_clear:
            raise ConnectionError("offline")
        return True

    def sign_out(self, clear_verification=True):
        self.calls.append(("sign_out", clear_verification))
        return True


class TestExpiryAction:
    def test_clears_signs_out_and_redirects(self):
        client = FakeSessionClient()
        redirects = []

        target = expire_admin_session(client, redirects.append)

        assert client.calls == [("clear", "inactivity"), ("sign_out", False)]
        assert redirects == [INACTIVITY_REDIRECT] == [target]

    def test_clear_failure_does_not_block(self):
        client = FakeSessionClient(fail_clear=True)
        redirects = []

        expire_admin_session(client, redirects.append)

        assert ("sign_out", False) in client.calls
        assert redirects == ["/auth/signin?reason=inactivity"]

    def test_monitor_drives_expiry_action(self, harness):
        _, scheduler, clock, _ = harness
        client = FakeSessionClient()
        redirects = []
        monitor = InactivityMonitor(
            on_expire=lambda: expire_admin_session(client, redirects.append),
            clock=clock,
            scheduler=scheduler,
        )
        monitor.start()

        scheduler.advance_to(31 * MINUTE)
        assert redirects == [INACTIVITY_REDIRECT]
