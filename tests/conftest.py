"""Shared fixtures: a manual clock and timers driven by it"""

from datetime import datetime, timedelta, timezone

import pytest

from alert_router.alerts.models import Alert


class ManualClock:
    """Clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeTimer:
    def __init__(self, deadline: datetime, callback):
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class FakeTimers:
    """Timer factory whose timers fire when the manual clock passes their deadline"""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.timers = []

    def __call__(self, delay, callback):
        timer = FakeTimer(self.clock.now + timedelta(seconds=delay), callback)
        self.timers.append(timer)
        return timer

    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in deadline order"""
        target = self.clock.now + timedelta(seconds=seconds)
        while True:
            due = [t for t in self.pending() if t.deadline <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.deadline)
            self.clock.now = max(self.clock.now, timer.deadline)
            timer.fired = True
            timer.callback()
        self.clock.now = target


@pytest.fixture
def start_time():
    return datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(start_time):
    return ManualClock(start_time)


@pytest.fixture
def timers(clock):
    return FakeTimers(clock)


@pytest.fixture
def make_alert(clock):
    """Build a firing alert (or a resolved one with resolved=True) at the clock's time"""
    def _make(resolved=False, ends_in=300, annotations=None, **labels):
        now = clock()
        if resolved:
            ends_at = now
        else:
            ends_at = now + timedelta(seconds=ends_in)
        return Alert(
            labels=labels,
            starts_at=now,
            ends_at=ends_at,
            annotations=annotations or {},
            updated_at=now,
        )
    return _make
