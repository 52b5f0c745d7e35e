# mds

Building blocks for embedded-style software, written in plain Python with no
third-party dependencies.

- `mds.defs`: error codes (`Err`, and `MdsError`, which carries an `Err` in
  its `code` attribute). It also has the `Weekday` and `Month` enums, the
  byte-order helpers `get_u16_be`, `put_u16_be`, `get_u16_le`, `put_u16_le`,
  `get_u32_be`, `put_u32_be`, `get_u32_le` and `put_u32_le`, and the helpers
  `value_range` (clamp) and `value_align` (round down to a power of two).
- `mds.log`: `Logger`. It formats messages printf-style and passes those at
  or below its `build_level` to a sink, which writes to stderr by default.
  Its methods are `through`, `fatal`, `error`, `warn`, `info`, `debug` and
  `panic`. `panic` writes a `[PANIC]` line and raises `PanicError`.
- `mds.button`: a debounced push-button state machine (`Button`,
  `ButtonConfig`, `ButtonGroup`). It reports `ButtonEvent` values: `PRESS`,
  `RELEASE`, `CLICK`, `REPEAT`, `HOLD` and `NONE`. `click_ticks` and
  `hold_ticks` default to 150 and 300. A button's level can be overridden
  with `Button.fake`.
- `mds.paths`: `normalize_path` and `join_path` for absolute slash-separated
  paths.
- `mds.vfs`: a virtual file system layer. Subclasses of `FileSystemDriver`
  are registered by name with `VirtualFileSystem.register` and mounted at
  paths. Files are then opened as `FileDescriptor` objects, which also work
  as context managers.
- `mds.lpc`: `PowerManager`. It picks sleep and run modes (`SleepMode`,
  `RunMode`) from votes, suspends and resumes registered devices, calls an
  optional hook with `LpcEvent` values, and counts the ticks spent in each
  run mode. Time comes from a `TickClock`.

## Installation

```
pip install .
```

## Example: polling a button

```python
from mds.button import Button, ButtonConfig, ButtonEvent, ButtonGroup

level = {"value": 0}
events = []

button = Button(ButtonConfig(
    get_level=lambda: level["value"],
    released_level=0,
    callback=lambda btn, event: events.append(event),
))
group = ButtonGroup()
group.add(button)

level["value"] = 1
for _ in range(5):
    group.poll(10)   # call periodically, passing the elapsed ticks

assert events == [ButtonEvent.PRESS]
assert button.is_pressed()
```

## Example: paths

```python
from mds.paths import join_path

join_path("/data", "../logs/./today.txt")   # "/logs/today.txt"
```

## Example: a small in-memory driver

```python
from mds.vfs import FileSystemDriver, OpenFlag, VirtualFileSystem

class MemoryDriver(FileSystemDriver):
    def __init__(self):
        super().__init__("memfs")
        self.files = {}

    def open(self, fd):
        fd.data = self.files.setdefault(fd.node.path, bytearray())

    def write(self, fd, data):
        fd.data.extend(data)
        return len(data)

    def read(self, fd, size):
        chunk = bytes(fd.data[fd.pos:fd.pos + size])
        fd.pos += len(chunk)
        return chunk

vfs = VirtualFileSystem()
vfs.register(MemoryDriver())
vfs.mount(None, "/mem", "memfs")

with vfs.open("/mem/notes.txt", OpenFlag.RDWR) as fd:
    fd.write(b"hello")
with vfs.open("/mem/notes.txt") as fd:
    assert fd.read(5) == b"hello"
```

An operation that a driver does not override fails with `MdsError`. The
code is `ENOENT` for `open` and `EIO` for the others.

## Example: low-power control

```python
from mds.lpc import PowerManager, RunMode, SleepMode, TickClock

class Ops:
    def sleep(self, mode, ticks):
        return ticks          # pretend to sleep the whole time asked

    def run(self, mode):
        return mode           # every run mode is reachable

clock = TickClock()
pm = PowerManager(Ops(), threshold=10, sleep=SleepMode.DEEP,
                  run=RunMode.NORMAL, clock=clock)
pm.request_run(RunMode.HIGH)
assert pm.run_mode() == RunMode.HIGH

clock.set_sleep_tick(100)
pm.idle()                     # sleeps in DEEP, then settles the run mode
print(pm.statistics())
```

## Errors

Where an operation fails with one of the system's error codes, this package
raises `MdsError`. The exception carries the matching `Err` member in its
`code` attribute.

## What this package does not do

- It does not talk to hardware. Buttons are read through the `get_level`
  function you supply.
- It ships no file system drivers. `mds.vfs` only keeps the mount table and
  the open-file records, and passes calls on to the drivers you register.
  There is no storage of its own.
- `PowerManager` does not put a machine to sleep. It calls the `sleep` and
  `run` operations you give it, and counts time on a `TickClock` that you
  advance.

## Running the tests

```
pip install .[test]
pytest
```