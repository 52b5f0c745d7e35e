"""Virtual file system layer: mount table, open-file bookkeeping and dispatch to drivers."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntFlag
from typing import Any, Dict, List, Optional

from .defs import Err, MdsError
from .paths import join_path

NAME_SIZE = 255
"""Longest file name a directory entry holds."""


class OpenFlag(IntFlag):
    RDONLY = 0x0001
    WRONLY = 0x0002
    RDWR = 0x0003
    APPEND = 0x0010
    CREAT = 0x0020
    TRUNC = 0x0040


class FileFlag(IntFlag):
    NONE = 0x0000
    RDONLY = 0x0001
    WRONLY = 0x0002
    RDWR = 0x0003
    OPEN = 0x0008
    APPEND = 0x0010
    CREAT = 0x0020
    TRUNC = 0x0040
    EOF = 0x0080


@dataclass
class FileStat:
    dev: Any = None
    ino: int = 0
    mode: int = 0
    rdev: Any = None
    size: int = 0
    blksize: int = 0
    blocks: int = 0
    atime: int = 0
    mtime: int = 0
    ctime: int = 0


@dataclass
class FsStat:
    blocks: int = 0
    bfree: int = 0
    bavail: int = 0
    files: int = 0
    ffree: int = 0
    fsid: int = 0
    namelen: int = NAME_SIZE


@dataclass
class Dirent:
    name: str
    ino: int = 0
    off: int = 0
    reclen: int = 0
    type: int = 0


class FileSystemDriver:
    """Base for file system implementations.

    Subclasses override the operations they support. ``mkfs(device)``,
    ``mount(fs)``, ``unmount(fs)`` and ``close(fd)`` are optional hooks that a
    subclass may define; when absent the call simply succeeds. Any other
    operation left out makes the call fail (``ENOENT`` for open, ``EIO``
    otherwise).
    """

    def __init__(self, name: str) -> None:
        self.name = name

    def statfs(self, fs: "FileSystem") -> FsStat:
        raise MdsError(Err.EIO, "statfs not supported")

    def unlink(self, fs: "FileSystem", path: str) -> None:
        raise MdsError(Err.EIO, "unlink not supported")

    def rename(self, fs: "FileSystem", oldpath: str, newpath: str) -> None:
        raise MdsError(Err.EIO, "rename not supported")

    def stat(self, fs: "FileSystem", path: str) -> FileStat:
        raise MdsError(Err.EIO, "stat not supported")

    def open(self, fd: "FileDescriptor") -> None:
        raise MdsError(Err.ENOENT, "open not supported")

    def ioctl(self, fd: "FileDescriptor", cmd: int, args: Any) -> Any:
        raise MdsError(Err.EIO, "ioctl not supported")

    def read(self, fd: "FileDescriptor", size: int) -> bytes:
        raise MdsError(Err.EIO, "read not supported")

    def write(self, fd: "FileDescriptor", data: bytes) -> int:
        raise MdsError(Err.EIO, "write not supported")

    def flush(self, fd: "FileDescriptor") -> None:
        raise MdsError(Err.EIO, "flush not supported")

    def lseek(self, fd: "FileDescriptor", offset: int) -> int:
        raise MdsError(Err.EIO, "lseek not supported")

    def ftruncate(self, fd: "FileDescriptor", length: int) -> None:
        raise MdsError(Err.EIO, "ftruncate not supported")

    def getdents(self, fd: "FileDescriptor", count: int) -> List[Dirent]:
        raise MdsError(Err.EIO, "getdents not supported")


def _supports(driver: FileSystemDriver, name: str) -> bool:
    return getattr(type(driver), name, None) is not getattr(FileSystemDriver, name, None)


@dataclass(eq=False)
class FileSystem:
    """One mounted file system."""

    path: str
    device: Any
    driver: FileSystemDriver
    data: Any = None
    nodes: List["FileNode"] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def relative(self, abspath: str) -> str:
        """The part of ``abspath`` below this mount point."""
        return abspath[len(self.path):]

    def find_node(self, path: str) -> Optional["FileNode"]:
        return next((node for node in self.nodes if node.path == path), None)


@dataclass(eq=False)
class FileNode:
    """A file that is open at least once, shared between its descriptors."""

    path: str
    fs: FileSystem
    ref_count: int = 1
    data: Any = None


class FileDescriptor:
    """An open file. Use :meth:`VirtualFileSystem.open` to get one."""

    def __init__(self, node: Optional[FileNode], flags: int) -> None:
        self.node = node
        self.pos = 0
        self.flags = FileFlag(int(flags))
        self.data: Any = None

    @property
    def closed(self) -> bool:
        return self.node is None or not (self.flags & FileFlag.OPEN)

    def _driver(self, operation: str) -> FileSystemDriver:
        if self.closed:
            raise MdsError(Err.EACCES, "file is not open")
        driver = self.node.fs.driver
        if not _supports(driver, operation):
            raise MdsError(Err.EIO, f"{operation} not supported")
        return driver

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; a failing read marks the descriptor at EOF."""
        driver = self._driver("read")
        try:
            return driver.read(self, size)
        except MdsError:
            self.flags |= FileFlag.EOF
            raise

    def write(self, data: bytes) -> int:
        return self._driver("write").write(self, bytes(data))

    def flush(self) -> None:
        self._driver("flush").flush(self)

    def seek(self, offset: int) -> int:
        """Move to ``offset`` as the driver resolves it and return the new position."""
        pos = self._driver("lseek").lseek(self, offset)
        if pos >= 0:
            self.pos = pos
        return pos

    def truncate(self, length: int) -> None:
        self._driver("ftruncate").ftruncate(self, length)

    def getdents(self, count: int) -> List[Dirent]:
        return self._driver("getdents").getdents(self, count)

    def ioctl(self, cmd: int, args: Any = None) -> Any:
        return self._driver("ioctl").ioctl(self, cmd, args)

    def close(self) -> None:
        """Close the descriptor; the shared node goes once its last user closes."""
        if self.node is None:
            raise MdsError(Err.EACCES, "file is not open")
        node = self.node
        fs = node.fs
        with fs.lock:
            if _supports(fs.driver, "close"):
                fs.driver.close(self)
            self.node = None
            self.pos = 0
            self.flags = FileFlag.NONE
            node.ref_count -= 1
            if node.ref_count <= 0:
                if node in fs.nodes:
                    fs.nodes.remove(node)
                if node.ref_count < 0:
                    raise MdsError(Err.ERANGE, "file node closed too often")

    def __enter__(self) -> "FileDescriptor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.node is not None:
            self.close()


class VirtualFileSystem:
    """Mount table and entry point for file operations."""

    def __init__(self) -> None:
        self._drivers: Dict[str, FileSystemDriver] = {}
        self._mounts: List[FileSystem] = []
        self._lock = threading.RLock()

    @property
    def mounts(self) -> List[FileSystem]:
        with self._lock:
            return list(self._mounts)

    def register(self, driver: FileSystemDriver) -> None:
        """Make ``driver`` available under its name."""
        with self._lock:
            if driver.name in self._drivers:
                raise MdsError(Err.EEXIST, f"driver already registered: {driver.name}")
            self._drivers[driver.name] = driver

    def _find_driver(self, fs_name: str) -> FileSystemDriver:
        driver = self._drivers.get(fs_name)
        if driver is None:
            raise MdsError(Err.EIO, f"unknown file system: {fs_name}")
        return driver

    def _lookup(self, abspath: str) -> Optional[FileSystem]:
        with self._lock:
            for fs in self._mounts:
                if abspath.startswith(fs.path):
                    rest = abspath[len(fs.path):]
                    if rest == "" or rest.startswith("/"):
                        return fs
        return None

    def _overlaps(self, abspath: str) -> bool:
        for fs in self._mounts:
            if abspath == fs.path:
                return True
            if abspath.startswith(fs.path + "/") or fs.path.startswith(abspath + "/"):
                return True
        return False

    def mkfs(self, device: Any, fs_name: str) -> None:
        """Format ``device`` with the named driver; the device must not be mounted."""
        with self._lock:
            if any(fs.device is device for fs in self._mounts):
                raise MdsError(Err.EBUSY, "device is mounted")
        driver = self._find_driver(fs_name)
        if _supports(driver, "mkfs"):
            driver.mkfs(device)

    def mount(self, device: Any, path: str, fs_name: str, data: Any = None) -> FileSystem:
        """Mount ``device`` at ``path`` using the named driver."""
        driver = self._find_driver(fs_name)
        abspath = join_path(None, path)
        with self._lock:
            if abspath == "/" or self._overlaps(abspath):
                raise MdsError(Err.EEXIST, f"mount point in use: {abspath}")
            fs = FileSystem(path=abspath, device=device, driver=driver, data=data)
            if _supports(driver, "mount"):
                driver.mount(fs)
            self._mounts.append(fs)
            return fs

    def unmount(self, path: str) -> None:
        """Unmount the file system holding ``path``; it must have no open files."""
        abspath = join_path(None, path)
        with self._lock:
            fs = self._lookup(abspath)
            if fs is None:
                raise MdsError(Err.ENOENT, f"nothing mounted at {abspath}")
            with fs.lock:
                if fs.nodes:
                    raise MdsError(Err.EBUSY, "file system has open files")
                if _supports(fs.driver, "unmount"):
                    fs.driver.unmount(fs)
                self._mounts.remove(fs)

    def statfs(self, path: str) -> FsStat:
        fs = self._lookup(path)
        if fs is None or not _supports(fs.driver, "statfs"):
            raise MdsError(Err.EIO, f"cannot stat file system at {path}")
        return fs.driver.statfs(fs)

    def open(self, path: str, flags: int = OpenFlag.RDONLY) -> FileDescriptor:
        """Open ``path`` and return a descriptor for it."""
        abspath = join_path(None, path)
        fs = self._lookup(abspath)
        if fs is None or not _supports(fs.driver, "open"):
            raise MdsError(Err.ENOENT, f"no file system for {abspath}")
        fspath = fs.relative(abspath)
        with fs.lock:
            node = fs.find_node(fspath)
            if node is not None:
                node.ref_count += 1
            else:
                node = FileNode(path=fspath, fs=fs)
                fs.nodes.append(node)
            fd = FileDescriptor(node, int(flags) | FileFlag.OPEN)
            try:
                fs.driver.open(fd)
            except BaseException:
                node.ref_count -= 1
                if node.ref_count == 0 and node in fs.nodes:
                    fs.nodes.remove(node)
                fd.node = None
                fd.pos = 0
                fd.flags = FileFlag.NONE
                raise
            return fd

    def _resolve(self, path: str, operation: str):
        abspath = join_path(None, path)
        fs = self._lookup(abspath)
        if fs is None:
            raise MdsError(Err.ENOENT, f"no file system for {abspath}")
        if not _supports(fs.driver, operation):
            raise MdsError(Err.EIO, f"{operation} not supported")
        return fs, fs.relative(abspath)

    def unlink(self, path: str) -> None:
        """Remove ``path``; it must not be open."""
        fs, fspath = self._resolve(path, "unlink")
        with fs.lock:
            busy = fs.find_node(fspath) is not None
        if busy:
            raise MdsError(Err.EBUSY, f"file is open: {path}")
        fs.driver.unlink(fs, fspath)

    def rename(self, oldpath: str, newpath: str) -> None:
        """Rename within one file system; ``oldpath`` must not be open."""
        oldabs = join_path(None, oldpath)
        newabs = join_path(None, newpath)
        oldfs = self._lookup(oldabs)
        newfs = self._lookup(newabs)
        if oldfs is not newfs:
            raise MdsError(Err.EFAULT, "rename across file systems")
        if oldfs is None:
            raise MdsError(Err.ENOENT, f"no file system for {oldabs}")
        if not _supports(oldfs.driver, "rename"):
            raise MdsError(Err.EIO, "rename not supported")
        oldfspath = oldfs.relative(oldabs)
        newfspath = newfs.relative(newabs)
        with oldfs.lock:
            busy = oldfs.find_node(oldfspath) is not None
        if busy:
            raise MdsError(Err.EBUSY, f"file is open: {oldpath}")
        oldfs.driver.rename(oldfs, oldfspath, newfspath)

    def stat(self, path: str) -> FileStat:
        fs, fspath = self._resolve(path, "stat")
        return fs.driver.stat(fs, fspath)