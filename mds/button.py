"""Polled push-button state machine with debounce, click, repeat and hold events.

State diagram (``[State]``, ``(action)``, ``{event}``)::

    [None] -> press -> [Pressed] -> release -> [Released] -> >click_ticks -> {click} -> [None]
    [Pressed] -> >hold_ticks -> [Hold] -> release -> [None]
    [Released] -> press -> [Repeat] -> release -> [Released]
    [Repeat] -> >click_ticks released -> [None]
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Callable, Iterator, List, Optional, Tuple

from .defs import Err, MdsError

DEFAULT_CLICK_TICKS = 150
DEFAULT_HOLD_TICKS = 300

_U8_MASK = 0xFF


class ButtonEvent(IntEnum):
    NONE = 0
    CLICK = 1
    REPEAT = 2
    RELEASE = 3
    PRESS = 4
    HOLD = 5


class ButtonState(IntEnum):
    NONE = 0
    RELEASED = 1
    PRESSED = 2
    REPEAT = 3
    HOLD = 4


@dataclass
class ButtonConfig:
    """How a button is read and timed.

    ``click_ticks`` and ``hold_ticks`` of 0 select the defaults.
    """

    get_level: Optional[Callable[[], int]] = None
    click_ticks: int = 0
    hold_ticks: int = 0
    released_level: int = 0
    debounce_out: int = 0
    callback: Optional[Callable[["Button", ButtonEvent], None]] = None


class Button:
    """One button; call :meth:`poll` periodically with the elapsed ticks."""

    def __init__(self, config: ButtonConfig) -> None:
        if config.get_level is None:
            raise MdsError(Err.EINVAL, "button needs a level reader")
        self.config = replace(
            config,
            click_ticks=config.click_ticks or DEFAULT_CLICK_TICKS,
            hold_ticks=config.hold_ticks or DEFAULT_HOLD_TICKS,
        )
        self.state = ButtonState.REPEAT
        self._level = self.config.released_level
        self._faked = False
        self._faked_level = 0
        self._ticks = 0
        self._debounce = 0
        self._repeat = 0
        self._group: Optional[ButtonGroup] = None
        self._handlers = {
            ButtonState.NONE: self._state_none,
            ButtonState.RELEASED: self._state_released,
            ButtonState.PRESSED: self._state_pressed,
            ButtonState.REPEAT: self._state_repeat,
            ButtonState.HOLD: self._state_hold,
        }

    def _read_level(self) -> int:
        return self._faked_level if self._faked else self.config.get_level()

    def _emit(self, event: ButtonEvent) -> None:
        if self.config.callback is not None:
            self.config.callback(self, event)

    def _is_down(self) -> bool:
        return self._level != self.config.released_level

    def _state_none(self) -> None:
        if self._is_down():
            self._emit(ButtonEvent.PRESS)
            self._ticks = 0
            self._repeat = 0
            self.state = ButtonState.PRESSED
        else:
            self._emit(ButtonEvent.NONE)

    def _state_released(self) -> None:
        if self._is_down():
            self._emit(ButtonEvent.PRESS)
            self._ticks = 0
            self._repeat = (self._repeat + 1) & _U8_MASK
            self.state = ButtonState.REPEAT
        elif self._ticks > self.config.click_ticks:
            if self._repeat == 1:
                self._emit(ButtonEvent.CLICK)
            elif self._repeat > 1:
                self._emit(ButtonEvent.REPEAT)
            self.state = ButtonState.NONE

    def _state_pressed(self) -> None:
        if not self._is_down():
            self._emit(ButtonEvent.RELEASE)
            self._ticks = 0
            self._repeat = 1
            self.state = ButtonState.RELEASED
        elif self._ticks > self.config.hold_ticks:
            self._emit(ButtonEvent.HOLD)
            self.state = ButtonState.HOLD

    def _state_repeat(self) -> None:
        if not self._is_down():
            self._emit(ButtonEvent.RELEASE)
            if self._ticks <= self.config.click_ticks:
                self._ticks = 0
                self.state = ButtonState.RELEASED
            else:
                self.state = ButtonState.NONE
        elif self._repeat == 0:
            self.state = ButtonState.NONE
            self._state_none()

    def _state_hold(self) -> None:
        if self._is_down():
            self._emit(ButtonEvent.HOLD)
        else:
            self._emit(ButtonEvent.RELEASE)
            self._ticks = 0
            self.state = ButtonState.NONE

    def poll(self, interval: int) -> None:
        """Sample the level, debounce it and advance the state machine by ``interval`` ticks."""
        level = self._read_level()
        if level == self._level:
            self._debounce = 0
        else:
            self._debounce = (self._debounce + 1) & _U8_MASK
            if self._debounce > self.config.debounce_out:
                self._level = level
                self._debounce = 0

        if self.state > ButtonState.NONE:
            self._ticks += interval

        self._handlers[self.state]()

    def is_pressed(self) -> bool:
        """True while the debounced level differs from the released level."""
        return self._is_down()

    def tick_count(self) -> int:
        return self._ticks

    def repeat_count(self) -> int:
        return self._repeat

    def faked_state(self) -> Tuple[bool, int]:
        """Return ``(faked, faked_level)``."""
        return self._faked, self._faked_level

    def fake(self, faked: bool, level: int) -> None:
        """Override the real level with ``level`` while ``faked`` is true."""
        self._faked = bool(faked)
        self._faked_level = level


class ButtonGroup:
    """A set of buttons polled together, in insertion order."""

    def __init__(self) -> None:
        self._buttons: List[Button] = []

    def add(self, button: Button) -> None:
        """Append ``button``; it leaves any group it was in before."""
        if button._group is not None:
            button._group.remove(button)
        self._buttons.append(button)
        button._group = self

    def remove(self, button: Button) -> None:
        """Take ``button`` out of this group; nothing happens if it is not in it."""
        if button._group is self:
            self._buttons.remove(button)
            button._group = None

    def poll(self, interval: int) -> None:
        for button in list(self._buttons):
            button.poll(interval)

    def __iter__(self) -> Iterator[Button]:
        return iter(list(self._buttons))

    def __len__(self) -> int:
        return len(self._buttons)

    def __contains__(self, button: object) -> bool:
        return button in self._buttons