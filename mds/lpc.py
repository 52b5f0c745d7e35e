"""Low-power control: sleep and run mode voting, device suspend/resume and run-time statistics."""

from __future__ import annotations

import logging
import threading
import time
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

from .defs import TICK_FOREVER, Err, MdsError

TICK_HZ = 1000
"""Ticks per second, used when waiting in real time."""

VOTE_MAX = 0xFF
"""Most votes one mode can collect."""

_log = logging.getLogger(__name__)


class SleepMode(IntEnum):
    IDLE = 0
    LIGHT = 1
    DEEP = 2
    RESET = 3
    SHUTDOWN = 4


class RunMode(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2
    LOCK = 3


class LpcEvent(IntEnum):
    SLEEP_ENTER = 0
    SLEEP_EXIT = 1
    SLEEP_REQUEST = 2
    SLEEP_RELEASE = 3
    RUN_BEFORE = 4
    RUN_AFTER = 5
    RUN_REQUEST = 6
    RUN_RELEASE = 7


Hook = Callable[[LpcEvent, int], None]


class TickClock:
    """Kernel tick counter and the number of ticks until the next scheduled wake-up."""

    def __init__(self) -> None:
        self._count = 0
        self._wake = 0
        self._lock = threading.Lock()

    def count(self) -> int:
        with self._lock:
            return self._count

    def advance(self, ticks: int) -> None:
        """Let ``ticks`` ticks pass."""
        if ticks < 0:
            raise ValueError("ticks must not be negative")
        with self._lock:
            self._count += ticks

    def get_sleep_tick(self) -> int:
        """Ticks left until the next wake-up, 0 when it is due."""
        with self._lock:
            return max(0, self._wake - self._count)

    def set_sleep_tick(self, ticks: int) -> None:
        """Schedule the next wake-up ``ticks`` ticks from now."""
        if ticks < 0:
            raise ValueError("ticks must not be negative")
        with self._lock:
            self._wake = self._count + ticks

    def compensate_tick(self, ticks: int) -> None:
        """Account for ``ticks`` ticks spent asleep."""
        self.advance(max(0, ticks))


class PowerManager:
    """Chooses sleep and run modes from votes and drives ``ops`` and registered devices.

    ``ops`` provides ``sleep(mode, ticks) -> ticks_slept`` and optionally
    ``run(mode) -> mode_reached``. Devices may provide ``suspend(sleep_mode)``
    and ``resume(run_mode)``.
    """

    def __init__(
        self,
        ops: Any,
        threshold: int = 0,
        sleep: SleepMode = SleepMode.IDLE,
        run: RunMode = RunMode.NORMAL,
        clock: Optional[TickClock] = None,
    ) -> None:
        if ops is not None and not callable(getattr(ops, "sleep", None)):
            raise MdsError(Err.EINVAL, "power manager ops need a sleep operation")
        self._ops = ops
        self._clock = clock if clock is not None else TickClock()
        self._threshold = threshold
        self._sleep_default = SleepMode(sleep)
        self._run_default = RunMode(run)
        self._run_mode = RunMode.LOW
        self._hook: Optional[Hook] = None
        self._sleep_votes: Dict[SleepMode, int] = {mode: 0 for mode in SleepMode}
        self._run_votes: Dict[RunMode, int] = {mode: 0 for mode in RunMode}
        self._devices: List[Any] = []
        self._lock = threading.RLock()
        self._cond = threading.Condition(self._lock)
        self._last_tick = self._clock.count()
        self._run_time: Dict[RunMode, int] = {mode: 0 for mode in RunMode}

        with self._lock:
            self._run_switch()

    @property
    def clock(self) -> TickClock:
        return self._clock

    def _notify(self, event: LpcEvent, mode: int) -> None:
        if self._hook is not None:
            self._hook(event, mode)

    def _ops_run(self) -> Optional[Callable[[RunMode], int]]:
        if self._ops is None:
            return None
        run = getattr(self._ops, "run", None)
        return run if callable(run) else None

    def _suspend_devices(self, sleep: SleepMode) -> None:
        for device in list(self._devices):
            suspend = getattr(device, "suspend", None)
            if callable(suspend):
                suspend(sleep)

    def _resume_devices(self, run: RunMode) -> None:
        for device in reversed(list(self._devices)):
            resume = getattr(device, "resume", None)
            if callable(resume):
                resume(run)

    def _sleep_update(self) -> SleepMode:
        with self._lock:
            for mode in SleepMode:
                if mode >= self._sleep_default:
                    break
                if self._sleep_votes[mode] > 0:
                    return mode
            return self._sleep_default

    def _run_update(self) -> RunMode:
        with self._lock:
            for mode in reversed(RunMode):
                if mode <= self._run_default:
                    break
                if self._run_votes[mode] > 0:
                    return mode
            return self._run_default

    def _account_run_time(self) -> None:
        now = self._clock.count()
        self._run_time[self._run_mode] += now - self._last_tick
        self._last_tick = now

    def _sleep_switch(self) -> None:
        mode = self._sleep_update()
        real = 0
        plan = self._clock.get_sleep_tick()
        ticks = plan

        if mode <= SleepMode.IDLE or ticks <= self._threshold:
            mode = SleepMode.IDLE

        self._notify(LpcEvent.SLEEP_ENTER, mode)
        if mode > SleepMode.IDLE:
            self._suspend_devices(mode)

        while True:
            with self._lock:
                delta = self._ops.sleep(mode, ticks)
                real += delta
                self._clock.compensate_tick(delta)
            if delta <= 0 or real >= plan:
                break
            ticks = self._clock.get_sleep_tick()
            if ticks <= 0 or mode != self._sleep_update():
                break

        run = self._run_update()
        ops_run = self._ops_run()
        if ops_run is not None:
            self._run_mode = RunMode(ops_run(run))
        if self._run_mode != run:
            self._account_run_time()
            _log.error(
                "[lpc] resume to run:%d fail but run:%d after sleep:%d",
                run, self._run_mode, mode,
            )

        if mode > SleepMode.IDLE:
            self._resume_devices(self._run_mode)

        self._cond.notify_all()
        self._notify(LpcEvent.SLEEP_EXIT, mode)

        _log.warning(
            "[lpc] sleepMode:%d plan:%d real:%d resume runMode:%d",
            mode, plan, real, self._run_mode,
        )

    def _run_switch(self) -> None:
        run = self._run_update()
        if run == self._run_mode or run == RunMode.LOCK:
            return

        self._account_run_time()
        self._notify(LpcEvent.RUN_BEFORE, self._run_mode)

        ops_run = self._ops_run()
        if ops_run is not None:
            self._run_mode = RunMode(ops_run(run))
            if self._run_mode != run:
                _log.error("[lpc] switch to run:%d fail but run:%d", run, self._run_mode)

        self._resume_devices(self._run_mode)
        self._notify(LpcEvent.RUN_AFTER, self._run_mode)
        self._cond.notify_all()

    def idle(self) -> None:
        """Idle-time entry: sleep as deep as the votes allow, then settle the run mode."""
        if self._ops is None:
            return
        with self._lock:
            self._sleep_switch()
            self._run_switch()

    def set_hook(self, hook: Optional[Hook]) -> None:
        """Install ``hook(event, mode)``, called on every mode change and vote."""
        self._hook = hook

    def set_sleep_default(self, sleep: SleepMode, threshold: int) -> None:
        """Set the deepest sleep mode and the fewest ticks worth sleeping for."""
        sleep = SleepMode(sleep)
        with self._lock:
            self._sleep_default = sleep
            self._threshold = threshold

    def request_sleep(self, sleep: SleepMode) -> None:
        """Vote to keep sleep no deeper than ``sleep``."""
        sleep = SleepMode(sleep)
        self._notify(LpcEvent.SLEEP_REQUEST, sleep)
        with self._lock:
            if self._sleep_votes[sleep] < VOTE_MAX:
                self._sleep_votes[sleep] += 1
                return
        _log.error("[lpc] request sleep(%d) vote is full", sleep)

    def release_sleep(self, sleep: SleepMode) -> None:
        """Withdraw one vote made with :meth:`request_sleep`."""
        sleep = SleepMode(sleep)
        self._notify(LpcEvent.SLEEP_RELEASE, sleep)
        with self._lock:
            if self._sleep_votes[sleep] > 0:
                self._sleep_votes[sleep] -= 1
                return
        _log.error("[lpc] request sleep(%d) vote is empty", sleep)

    def force_sleep(self, sleep: SleepMode, ticks: int) -> int:
        """Suspend all devices and sleep in ``sleep`` regardless of votes; return the ticks slept."""
        sleep = SleepMode(sleep)
        if self._ops is None:
            raise MdsError(Err.EIO, "power manager has no ops")
        with self._lock:
            self._suspend_devices(sleep)
            return self._ops.sleep(sleep, ticks)

    def run_mode(self) -> RunMode:
        return self._run_mode

    def request_run(self, run: RunMode) -> None:
        """Vote for at least ``run``; switches at once when it raises the run mode."""
        run = RunMode(run)
        self._notify(LpcEvent.RUN_REQUEST, run)
        with self._lock:
            if self._run_votes[run] < VOTE_MAX:
                self._run_votes[run] += 1
                self._run_switch()

    def release_run(self, run: RunMode) -> None:
        """Withdraw one vote made with :meth:`request_run`."""
        run = RunMode(run)
        self._notify(LpcEvent.RUN_RELEASE, run)
        with self._lock:
            if self._run_votes[run] > 0:
                self._run_votes[run] -= 1
                self._run_switch()

    def wait_run(self, run: RunMode, timeout: int = TICK_FOREVER) -> RunMode:
        """Block until the run mode reaches ``run`` (and is not locked).

        ``timeout`` is in ticks; :class:`MdsError` with ``ETIME`` is raised
        when it runs out.
        """
        run = RunMode(run)
        seconds = None if timeout == TICK_FOREVER else max(0, timeout) / TICK_HZ
        start = time.monotonic()
        if not self._cond.acquire(timeout=-1 if seconds is None else seconds):
            raise MdsError(Err.ETIME, "timed out waiting for the run lock")
        try:
            remaining = None if seconds is None else max(0.0, seconds - (time.monotonic() - start))
            reached = self._cond.wait_for(
                lambda: self._run_mode >= run and self._run_mode != RunMode.LOCK,
                remaining,
            )
            current = self._run_mode
        finally:
            self._cond.release()
        _log.warning("[lpc] wait run:%d curr:%d timeout:%d ok:%s", run, current, timeout, reached)
        if not reached:
            raise MdsError(Err.ETIME, f"run mode {run.name} not reached")
        return current

    def register_device(self, device: Any) -> None:
        """Add ``device`` and resume it into the current run mode."""
        with self._lock:
            self._devices.insert(0, device)
        resume = getattr(device, "resume", None)
        if callable(resume):
            resume(self._run_mode)

    def unregister_device(self, device: Any) -> None:
        """Remove ``device``; nothing happens if it is not registered."""
        with self._lock:
            if device in self._devices:
                self._devices.remove(device)

    def clear_statistics(self) -> None:
        """Reset the time spent in each run mode."""
        with self._lock:
            for mode in RunMode:
                self._run_time[mode] = 0
            self._last_tick = self._clock.count()

    def statistics(self) -> Dict[RunMode, int]:
        """Ticks accounted to each run mode so far."""
        with self._lock:
            return dict(self._run_time)