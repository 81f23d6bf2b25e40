import asyncio

import pytest

from Harmony.cooldowns import CooldownTracker
from tests.conftest import ManualScheduler


def _tracker(scheduler: ManualScheduler) -> CooldownTracker:
    return CooldownTracker(clock=scheduler.clock, scheduler=scheduler.schedule)


def test_zero_cooldown_is_never_active(scheduler):
    tracker = _tracker(scheduler)
    for _ in range(3):
        assert tracker.check("ping", "u1", 0).on_cooldown is False
    assert tracker.snapshot() == {}
    assert scheduler.pending == []


def test_second_use_inside_window_reports_remaining(scheduler):
    tracker = _tracker(scheduler)
    assert tracker.check("ban", "u1", 5).on_cooldown is False
    scheduler.advance(2)
    status = tracker.check("ban", "u1", 5)
    assert status.on_cooldown is True
    assert status.remaining_seconds == pytest.approx(3.0)


def test_users_and_commands_are_independent(scheduler):
    tracker = _tracker(scheduler)
    tracker.check("ban", "u1", 5)
    assert tracker.check("ban", "u2", 5).on_cooldown is False
    assert tracker.check("kick", "u1", 5).on_cooldown is False


def test_active_check_refreshes_timestamp(scheduler):
    tracker = _tracker(scheduler)
    tracker.check("ban", "u1", 5)
    scheduler.advance(2)
    tracker.check("ban", "u1", 5)
    assert tracker.last_invocation("ban", "u1") == 2000


def test_first_timer_ends_refreshed_window(scheduler):
    tracker = _tracker(scheduler)
    tracker.check("ban", "u1", 5)  # t=0, expires at t=5
    scheduler.advance(2)
    assert tracker.check("ban", "u1", 5).on_cooldown is True  # t=2, stamp refreshed
    scheduler.advance(4)  # t=6: the t=0 timer removed the entry
    assert tracker.last_invocation("ban", "u1") is None
    assert tracker.check("ban", "u1", 5).on_cooldown is False


def test_expired_entries_leave_no_empty_buckets(scheduler):
    tracker = _tracker(scheduler)
    tracker.check("ban", "u1", 1)
    scheduler.advance(1)
    assert tracker.snapshot() == {}


def test_explicit_now_overrides_clock(scheduler):
    tracker = _tracker(scheduler)
    tracker.check("ban", "u1", 10, now_ms=1_000)
    status = tracker.check("ban", "u1", 10, now_ms=4_000)
    assert status.remaining_seconds == pytest.approx(7.0)


@pytest.mark.asyncio
async def test_default_scheduler_uses_event_loop_and_clear_cancels():
    tracker = CooldownTracker()
    tracker.check("ban", "u1", 60)
    assert tracker.check("ban", "u1", 60).on_cooldown is True
    tracker.clear()
    assert tracker.snapshot() == {}
    assert tracker.check("ban", "u1", 60).on_cooldown is False
    tracker.clear()


@pytest.mark.asyncio
async def test_default_scheduler_expires_entries():
    tracker = CooldownTracker()
    tracker.check("ping", "u1", 0.01)
    await asyncio.sleep(0.05)
    assert tracker.last_invocation("ping", "u1") is None
