"""Core definitions: error codes, calendar enums, byte packing and value helpers."""

from __future__ import annotations

from enum import IntEnum

TICK_FOREVER = -1
"""Timeout value meaning 'wait without limit'."""

BITS_OF_BYTE = 8

TIME_NSEC_OF_SEC = 1_000_000_000
TIME_USEC_OF_SEC = 1_000_000
TIME_MSEC_OF_SEC = 1000
TIME_USEC_OF_MSEC = 1000
TIME_SEC_OF_MIN = 60
TIME_MSEC_OF_MIN = TIME_MSEC_OF_SEC * TIME_SEC_OF_MIN
TIME_MIN_OF_HOUR = 60
TIME_SEC_OF_HOUR = TIME_SEC_OF_MIN * TIME_MIN_OF_HOUR
TIME_MSEC_OF_HOUR = TIME_MSEC_OF_SEC * TIME_SEC_OF_HOUR
TIME_HOUR_OF_DAY = 24
TIME_MIN_OF_DAY = TIME_MIN_OF_HOUR * TIME_HOUR_OF_DAY
TIME_SEC_OF_DAY = TIME_SEC_OF_MIN * TIME_MIN_OF_DAY
TIME_MSEC_OF_DAY = TIME_MSEC_OF_SEC * TIME_SEC_OF_DAY
TIME_DAY_OF_WEEK = 7
TIME_DAY_OF_YEAR = 365


class Err(IntEnum):
    """Error codes, numbered like their POSIX counterparts (negated)."""

    EOK = 0
    EPERM = -1
    ENOENT = -2
    EINTR = -4
    EIO = -5
    EAGAIN = -11
    ENOMEM = -12
    EACCES = -13
    EFAULT = -14
    EBUSY = -16
    EEXIST = -17
    ENODEV = -19
    ENOTDIR = -20
    EISDIR = -21
    EINVAL = -22
    ERANGE = -34
    ETIME = -62
    ENODEF = -(2**31 - 1)


class MdsError(Exception):
    """An operation failed with one of the :class:`Err` codes."""

    def __init__(self, code: Err, message: str = "") -> None:
        self.code = Err(code)
        self.message = message or self.code.name
        super().__init__(f"{self.code.name}: {self.message}")


class Weekday(IntEnum):
    SUN = 0
    MON = 1
    TUE = 2
    WED = 3
    THU = 4
    FRI = 5
    SAT = 6


class Month(IntEnum):
    JAN = 1
    FEB = 2
    MAR = 3
    APR = 4
    MAY = 5
    JUN = 6
    JUL = 7
    AUG = 8
    SEP = 9
    OCT = 10
    NOV = 11
    DEC = 12


def _get(data: bytes, size: int, order: str) -> int:
    if len(data) < size:
        raise ValueError(f"need at least {size} bytes, got {len(data)}")
    return int.from_bytes(bytes(data[:size]), order)


def _put(value: int, size: int, order: str) -> bytes:
    return (value & ((1 << (size * BITS_OF_BYTE)) - 1)).to_bytes(size, order)


def get_u16_be(data: bytes) -> int:
    """Read an unsigned 16-bit big-endian value from the start of ``data``."""
    return _get(data, 2, "big")


def put_u16_be(value: int) -> bytes:
    """Encode the low 16 bits of ``value`` big-endian."""
    return _put(value, 2, "big")


def get_u16_le(data: bytes) -> int:
    """Read an unsigned 16-bit little-endian value from the start of ``data``."""
    return _get(data, 2, "little")


def put_u16_le(value: int) -> bytes:
    """Encode the low 16 bits of ``value`` little-endian."""
    return _put(value, 2, "little")


def get_u32_be(data: bytes) -> int:
    """Read an unsigned 32-bit big-endian value from the start of ``data``."""
    return _get(data, 4, "big")


def put_u32_be(value: int) -> bytes:
    """Encode the low 32 bits of ``value`` big-endian."""
    return _put(value, 4, "big")


def get_u32_le(data: bytes) -> int:
    """Read an unsigned 32-bit little-endian value from the start of ``data``."""
    return _get(data, 4, "little")


def put_u32_le(value: int) -> bytes:
    """Encode the low 32 bits of ``value`` little-endian."""
    return _put(value, 4, "little")


def value_range(value, low, high):
    """Clamp ``value`` into ``[low, high]``."""
    if value <= low:
        return low
    if value >= high:
        return high
    return value


def value_align(value: int, align: int) -> int:
    """Round ``value`` down to a multiple of the power-of-two ``align``."""
    if align <= 0 or align & (align - 1):
        raise ValueError("align must be a positive power of two")
    return value & ~(align - 1)