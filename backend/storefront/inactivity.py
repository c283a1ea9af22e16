# Overview: Inactivity monitor for the admin working session; deadline-based timers with warning and expiry.

"""
Inactivity Monitor

Forces the admin out of the panel after a fixed idle budget, independent
of the server session lifetime.

    ACTIVE --(idle >= timeout - warning_before)--> WARNING
    ACTIVE/WARNING --(idle >= timeout)--> EXPIRED
    ACTIVE/WARNING --(record_activity)--> ACTIVE (deadline re-armed)

The monitor stores one absolute deadline. The warning and expiry timers
are armed relative to it and every tick recomputes the remaining time
from it, so scheduling jitter never accumulates.

Timers come from a scheduler object with call_later(delay, callback)
returning a handle with cancel(). ThreadingScheduler is the default;
tests drive a manual scheduler and a fake clock.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from enum import Enum
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

IDLE_TIMEOUT = timedelta(minutes=30)
WARNING_BEFORE = timedelta(minutes=5)
TICK_INTERVAL = timedelta(seconds=1)

INACTIVITY_REDIRECT = "/auth/signin?reason=inactivity"


class MonitorState(str, Enum):
    ACTIVE = "active"
    WARNING = "warning"
    EXPIRED = "expired"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Runs each callback on a daemon threading.Timer."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(max(0.0, delay), callback)
        timer.daemon = True
        timer.start()
        return timer


def _seconds(value: timedelta | float) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


class InactivityMonitor:
    def __init__(
        self,
        on_warning: Callable[[float], None] | None = None,
        on_expire: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Scheduler | None = None,
        timeout: timedelta | float = IDLE_TIMEOUT,
        warning_before: timedelta | float = WARNING_BEFORE,
        tick_interval: timedelta | float = TICK_INTERVAL,
        on_tick: Callable[[float], None] | None = None,
    ) -> None:
        self.timeout = _seconds(timeout)
        self.warning_before = _seconds(warning_before)
        self.tick_interval = _seconds(tick_interval)
        if not 0 < self.warning_before < self.timeout:
            raise ValueError("warning_before must be positive and shorter than timeout")
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")

        self._on_warning = on_warning
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._clock = clock
        self._scheduler = scheduler or ThreadingScheduler()

        self._lock = threading.RLock()
        self._state = MonitorState.ACTIVE
        self._deadline: float | None = None
        self._warning_timer: TimerHandle | None = None
        self._expire_timer: TimerHandle | None = None
        self._tick_timer: TimerHandle | None = None

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def running(self) -> bool:
        return self._deadline is not None and self._state is not MonitorState.EXPIRED

    def start(self) -> None:
        """Arm the monitor with a fresh deadline. Restarting an expired monitor is not allowed."""
        with self._lock:
            if self._state is MonitorState.EXPIRED:
                raise RuntimeError("Monitor already expired; create a new one for the next session")
            self._arm()

    def record_activity(self) -> bool:
        """
        A user interaction happened: back to ACTIVE with a new deadline.

        Ignored (returns False) before start(), after cancel() and after expiry.
        """
        with self._lock:
            if not self.running:
                return False
            self._arm()
            return True

    reset = record_activity

    def cancel(self) -> None:
        """Tear down every pending timer. The monitor stays in its current state."""
        with self._lock:
            self._cancel_timers()
            self._deadline = None

    def remaining(self) -> float:
        """Seconds until expiry, recomputed from the stored deadline."""
        with self._lock:
            if self._state is MonitorState.EXPIRED:
                return 0.0
            if self._deadline is None:
                return self.timeout
            return max(0.0, self._deadline - self._clock())

    def tick(self) -> float:
        """
        Recompute remaining time and apply any due transition.

        Returns the remaining seconds. Called by the interval timer and safe
        to call directly.
        """
        fire_warning = fire_expire = False
        with self._lock:
            if not self.running:
                return self.remaining()

            remaining = max(0.0, self._deadline - self._clock())
            if remaining <= 0:
                fire_expire = self._transition_to_expired()
            else:
                if remaining <= self.warning_before:
                    fire_warning = self._transition_to_warning()
                self._tick_timer = self._scheduler.call_later(self.tick_interval, self.tick)

        self._notify(fire_warning, fire_expire, remaining, ticked=True)
        return remaining

    # -- internals ---------------------------------------------------------

    def _arm(self) -> None:
        self._cancel_timers()
        now = self._clock()
        self._state = MonitorState.ACTIVE
        self._deadline = now + self.timeout
        self._warning_timer = self._scheduler.call_later(self.timeout - self.warning_before, self._warning_due)
        self._expire_timer = self._scheduler.call_later(self.timeout, self._expire_due)
        self._tick_timer = self._scheduler.call_later(self.tick_interval, self.tick)

    def _cancel_timers(self) -> None:
        for timer in (self._warning_timer, self._expire_timer, self._tick_timer):
            if timer is not None:
                timer.cancel()
        self._warning_timer = self._expire_timer = self._tick_timer = None

    def _transition_to_warning(self) -> bool:
        if self._state is not MonitorState.ACTIVE:
            return False
        self._state = MonitorState.WARNING
        return True

    def _transition_to_expired(self) -> bool:
        if self._state is MonitorState.EXPIRED:
            return False
        self._state = MonitorState.EXPIRED
        self._cancel_timers()
        return True

    def _warning_due(self) -> None:
        # Stale timers from before a reset see a later deadline and do nothing
        with self._lock:
            if not self.running:
                return
            remaining = max(0.0, self._deadline - self._clock())
            fire = remaining <= self.warning_before and self._transition_to_warning()
        self._notify(fire, False, remaining)

    def _expire_due(self) -> None:
        with self._lock:
            if not self.running:
                return
            remaining = max(0.0, self._deadline - self._clock())
            fire = remaining <= 0 and self._transition_to_expired()
        self._notify(False, fire, 0.0)

    def _notify(self, fire_warning: bool, fire_expire: bool, remaining: float, ticked: bool = False) -> None:
        if ticked and not fire_expire and self._on_tick is not None:
            self._on_tick(remaining)
        if fire_warning and self._on_warning is not None:
            self._on_warning(remaining)
        if fire_expire:
            logger.info("Admin session expired after %.0f seconds of inactivity", self.timeout)
            if self._on_expire is not None:
                self._on_expire()


def expire_admin_session(client, redirect: Callable[[str], None]) -> str:
    """
    Expiry action for the admin panel.

    Clears server-side admin verification (best-effort), invalidates the
    local session, then redirects to the sign-in page with the reason code.
    """
    try:
        client.clear_admin_verification(reason="inactivity")
    except Exception:
        logger.warning("Could not clear admin verification on inactivity expiry", exc_info=True)

    try:
        client.sign_out(clear_verification=False)
    except Exception:
        logger.warning("Could not revoke the admin session on inactivity expiry", exc_info=True)

    redirect(INACTIVITY_REDIRECT)
    return INACTIVITY_REDIRECT
