"""Absolute path normalisation and joining for the virtual file system."""

from __future__ import annotations

from typing import List, Optional

from .defs import Err, MdsError


def _skip_slashes(path: str, index: int) -> int:
    while index < len(path) and path[index] == "/":
        index += 1
    return index


def normalize_path(path: str) -> str:
    """Collapse repeated slashes, ``./`` and ``../`` segments of ``path``.

    Raises :class:`MdsError` with ``EINVAL`` when ``../`` would climb
    above the start of the path.
    """
    out: List[str] = []
    i = 0
    n = len(path)

    while i < n:
        if path[i] == ".":
            nxt = path[i + 1] if i + 1 < n else ""
            if nxt == "/":
                i = _skip_slashes(path, i + 1)
                continue
            if nxt == "." and i + 2 < n and path[i + 2] == "/":
                i = _skip_slashes(path, i + 2)
                if not out:
                    raise MdsError(Err.EINVAL, f"path climbs above its root: {path!r}")
                out.pop()
                while out and out[-1] != "/":
                    out.pop()

        start = i
        while i < n and path[i] != "/":
            i += 1
        out.append(path[start:i])
        if i < n and path[i] == "/":
            out.append("/")
            i = _skip_slashes(path, i)

    result = "".join(out)
    if result.endswith("/"):
        result = result[:-1]
    return result or "/"


def join_path(dirpath: Optional[str], filepath: Optional[str]) -> str:
    """Join ``filepath`` onto ``dirpath`` unless it is absolute, then normalise.

    A relative ``filepath`` needs a ``dirpath``; otherwise, or when
    ``filepath`` is missing, :class:`MdsError` with ``EINVAL`` is raised.
    """
    if filepath is None:
        raise MdsError(Err.EINVAL, "no file path")
    if filepath.startswith("/"):
        return normalize_path(filepath)
    if dirpath is None:
        raise MdsError(Err.EINVAL, f"relative path without a directory: {filepath!r}")
    return normalize_path(f"{dirpath}/{filepath}")