import threading

import pytest

from mds.defs import Err, MdsError
from mds.lpc import (
    LpcEvent,
    PowerManager,
    RunMode,
    SleepMode,
    TickClock,
)


class FakeOps:
    def __init__(self, step=None, reach=None):
        self.step = step
        self.reach = reach
        self.sleep_calls = []
        self.run_calls = []

    def sleep(self, mode, ticks):
        self.sleep_calls.append((mode, ticks))
        return ticks if self.step is None else min(self.step, ticks)

    def run(self, run):
        self.run_calls.append(run)
        return run if self.reach is None else self.reach


class FakeDevice:
    def __init__(self, name, journal):
        self.name = name
        self.journal = journal

    def suspend(self, sleep):
        self.journal.append(("suspend", self.name, sleep))

    def resume(self, run):
        self.journal.append(("resume", self.name, run))


def make(default_sleep=SleepMode.DEEP, default_run=RunMode.NORMAL, threshold=10, **kwargs):
    clock = TickClock()
    ops = FakeOps(**kwargs)
    mgr = PowerManager(ops, threshold, default_sleep, default_run, clock)
    return mgr, ops, clock


def test_init_switches_to_default_run():
    mgr, ops, _ = make()
    assert mgr.run_mode() == RunMode.NORMAL
    assert ops.run_calls == [RunMode.NORMAL]


def test_init_low_default_needs_no_switch():
    mgr, ops, _ = make(default_run=RunMode.LOW)
    assert mgr.run_mode() == RunMode.LOW
    assert ops.run_calls == []


def test_request_and_release_run():
    mgr, ops, _ = make()
    events = []
    mgr.set_hook(lambda event, mode: events.append((event, mode)))
    mgr.request_run(RunMode.HIGH)
    assert mgr.run_mode() == RunMode.HIGH
    assert [e for e, _ in events] == [LpcEvent.RUN_REQUEST, LpcEvent.RUN_BEFORE, LpcEvent.RUN_AFTER]
    mgr.release_run(RunMode.HIGH)
    assert mgr.run_mode() == RunMode.NORMAL
    assert ops.run_calls[-1] == RunMode.NORMAL


def test_request_lock_keeps_run_mode():
    mgr, ops, _ = make()
    calls = len(ops.run_calls)
    mgr.request_run(RunMode.LOCK)
    assert mgr.run_mode() == RunMode.NORMAL
    assert len(ops.run_calls) == calls


def test_failed_run_switch_reports_reached_mode():
    clock = TickClock()
    ops = FakeOps(reach=RunMode.LOW)
    mgr = PowerManager(ops, 0, SleepMode.DEEP, RunMode.NORMAL, clock)
    assert mgr.run_mode() == RunMode.LOW


def test_idle_sleeps_in_default_mode():
    mgr, ops, clock = make()
    journal = []
    mgr.register_device(FakeDevice("a", journal))
    journal.clear()
    clock.set_sleep_tick(100)
    mgr.idle()
    assert ops.sleep_calls == [(SleepMode.DEEP, 100)]
    assert clock.count() == 100
    assert journal == [("suspend", "a", SleepMode.DEEP), ("resume", "a", RunMode.NORMAL)]


def test_idle_below_threshold_uses_idle_mode():
    mgr, ops, clock = make(threshold=10)
    journal = []
    mgr.register_device(FakeDevice("a", journal))
    journal.clear()
    clock.set_sleep_tick(5)
    mgr.idle()
    assert ops.sleep_calls == [(SleepMode.IDLE, 5)]
    assert journal == []


def test_idle_hook_events():
    mgr, _, clock = make()
    events = []
    mgr.set_hook(lambda event, mode: events.append((event, mode)))
    clock.set_sleep_tick(100)
    mgr.idle()
    assert events == [(LpcEvent.SLEEP_ENTER, SleepMode.DEEP), (LpcEvent.SLEEP_EXIT, SleepMode.DEEP)]


def test_idle_repeats_partial_sleeps_until_plan_met():
    mgr, ops, clock = make(step=30)
    plan = 100
    clock.set_sleep_tick(plan)
    mgr.idle()
    assert clock.count() == plan
    slept = 0
    for mode, ticks in ops.sleep_calls:
        assert mode == SleepMode.DEEP
        assert ticks == plan - slept
        slept += min(30, ticks)
    assert slept == plan


def test_sleep_vote_limits_depth():
    mgr, ops, clock = make()
    mgr.request_sleep(SleepMode.LIGHT)
    clock.set_sleep_tick(100)
    mgr.idle()
    assert ops.sleep_calls[-1][0] == SleepMode.LIGHT
    mgr.release_sleep(SleepMode.LIGHT)
    clock.set_sleep_tick(100)
    mgr.idle()
    assert ops.sleep_calls[-1][0] == SleepMode.DEEP


def test_sleep_votes_are_capped():
    mgr, ops, clock = make()
    for _ in range(300):
        mgr.request_sleep(SleepMode.LIGHT)
    for _ in range(255):
        mgr.release_sleep(SleepMode.LIGHT)
    clock.set_sleep_tick(100)
    mgr.idle()
    assert ops.sleep_calls[-1][0] == SleepMode.DEEP


def test_release_without_vote_is_harmless():
    mgr, ops, clock = make()
    events = []
    mgr.set_hook(lambda event, mode: events.append(event))
    mgr.release_sleep(SleepMode.LIGHT)
    assert events == [LpcEvent.SLEEP_RELEASE]
    clock.set_sleep_tick(100)
    mgr.idle()
    assert ops.sleep_calls[-1][0] == SleepMode.DEEP


def test_set_sleep_default_changes_mode():
    mgr, ops, clock = make()
    mgr.set_sleep_default(SleepMode.LIGHT, 0)
    clock.set_sleep_tick(3)
    mgr.idle()
    assert ops.sleep_calls == [(SleepMode.LIGHT, 3)]


def test_device_order():
    mgr, _, clock = make()
    journal = []
    mgr.register_device(FakeDevice("a", journal))
    mgr.register_device(FakeDevice("b", journal))
    assert journal == [("resume", "a", RunMode.NORMAL), ("resume", "b", RunMode.NORMAL)]
    journal.clear()
    clock.set_sleep_tick(100)
    mgr.idle()
    assert [(kind, name) for kind, name, _ in journal] == [
        ("suspend", "b"), ("suspend", "a"), ("resume", "a"), ("resume", "b"),
    ]


def test_unregister_device():
    mgr, ops, clock = make()
    journal = []
    device = FakeDevice("a", journal)
    mgr.register_device(device)
    mgr.unregister_device(device)
    mgr.unregister_device(device)
    journal.clear()
    clock.set_sleep_tick(100)
    mgr.idle()
    assert journal == []
    assert clock.count() == 100
    assert mgr.run_mode() == RunMode.NORMAL
    assert ops.sleep_calls == [(SleepMode.DEEP, 100)]


def test_force_sleep():
    mgr, ops, _ = make()
    journal = []
    mgr.register_device(FakeDevice("a", journal))
    journal.clear()
    assert mgr.force_sleep(SleepMode.SHUTDOWN, 42) == 42
    assert ops.sleep_calls == [(SleepMode.SHUTDOWN, 42)]
    assert journal == [("suspend", "a", SleepMode.SHUTDOWN)]


def test_no_ops_idle_does_nothing():
    mgr = PowerManager(None, 0, SleepMode.DEEP, RunMode.HIGH, TickClock())
    mgr.idle()
    assert mgr.run_mode() == RunMode.LOW
    with pytest.raises(MdsError) as info:
        mgr.force_sleep(SleepMode.DEEP, 1)
    assert info.value.code == Err.EIO


def test_ops_without_sleep_rejected():
    with pytest.raises(MdsError) as info:
        PowerManager(object(), 0, SleepMode.DEEP, RunMode.NORMAL, TickClock())
    assert info.value.code == Err.EINVAL


def test_invalid_modes_rejected():
    mgr, _, _ = make()
    with pytest.raises(ValueError):
        mgr.request_sleep(9)
    with pytest.raises(ValueError):
        mgr.request_run(9)


def test_wait_run_already_reached():
    mgr, _, _ = make()
    assert mgr.wait_run(RunMode.LOW, 10) == RunMode.NORMAL


def test_wait_run_times_out():
    mgr, _, _ = make()
    with pytest.raises(MdsError) as info:
        mgr.wait_run(RunMode.HIGH, 20)
    assert info.value.code == Err.ETIME


def test_wait_run_woken_by_request():
    mgr, _, _ = make()
    timer = threading.Timer(0.05, mgr.request_run, args=(RunMode.HIGH,))
    timer.start()
    try:
        assert mgr.wait_run(RunMode.HIGH, 5000) == RunMode.HIGH
    finally:
        timer.join()


def test_statistics_and_clear():
    mgr, _, clock = make()
    mgr.clear_statistics()
    clock.advance(50)
    mgr.request_run(RunMode.HIGH)
    stats = mgr.statistics()
    assert stats[RunMode.NORMAL] == 50
    assert stats[RunMode.HIGH] == 0
    mgr.clear_statistics()
    assert all(value == 0 for value in mgr.statistics().values())


def test_tick_clock():
    clock = TickClock()
    clock.set_sleep_tick(25)
    clock.advance(10)
    assert clock.get_sleep_tick() == 15
    clock.compensate_tick(20)
    assert clock.get_sleep_tick() == 0
    assert clock.count() == 30
    with pytest.raises(ValueError):
        clock.advance(-1)