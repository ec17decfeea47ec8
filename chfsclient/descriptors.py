"""The table of open files: descriptor numbers, positions and write buffers."""

from __future__ import annotations

import errno
import os
import threading
from dataclasses import dataclass, field

INITIAL_TABLE_SIZE = 100


def _error(code: int) -> OSError:
    return OSError(code, os.strerror(code))


@dataclass(eq=False)
class OpenFile:
    """State of one open descriptor.

    ``buf`` is a write-back buffer of the table's buffer size, or ``None`` when
    buffering is off. ``buf_off`` is the file offset the buffer starts at,
    ``buf_pos`` how many bytes of it are valid and ``buf_dirty`` whether they
    still have to be written out.
    """

    path: str
    mode: int
    chunk_size: int
    pos: int = 0
    buf: bytearray | None = None
    buf_off: int = 0
    buf_pos: int = 0
    buf_dirty: bool = False
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)


class FdTable:
    """Maps small integers to :class:`OpenFile` records; the lowest free number is reused."""

    def __init__(self, buf_size: int = 0) -> None:
        self.buf_size = buf_size
        self._lock = threading.Lock()
        self._files: list[OpenFile | None] = [None] * INITIAL_TABLE_SIZE

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for f in self._files if f is not None)

    def create(self, path: str, mode: int, chunk_size: int) -> int:
        """Open a record for ``path`` and return its descriptor number."""
        entry = OpenFile(
            path=path,
            mode=mode,
            chunk_size=chunk_size,
            buf=bytearray(self.buf_size) if self.buf_size > 0 else None,
        )
        with self._lock:
            fd = next((i for i, f in enumerate(self._files) if f is None), None)
            if fd is None:
                fd = len(self._files)
                self._files.extend([None] * len(self._files))
            self._files[fd] = entry
        return fd

    def _get_unlocked(self, fd: int) -> OpenFile:
        if fd < 0 or fd >= len(self._files) or self._files[fd] is None:
            raise _error(errno.EBADF)
        return self._files[fd]

    def get(self, fd: int) -> OpenFile:
        """The record of ``fd``; raises ``OSError(EBADF)`` if it is not open."""
        with self._lock:
            return self._get_unlocked(fd)

    def clear(self, fd: int) -> None:
        """Release ``fd``; raises ``OSError(EBADF)`` if it is not open."""
        with self._lock:
            self._get_unlocked(fd)
            self._files[fd] = None

    def set_pos(self, fd: int, pos: int) -> int:
        """Set the file position; a negative position raises ``EINVAL``."""
        entry = self.get(fd)
        if pos < 0:
            raise _error(errno.EINVAL)
        with entry.lock:
            entry.pos = pos
        return pos

    def get_pos(self, fd: int) -> int:
        """The current file position of ``fd``."""
        entry = self.get(fd)
        with entry.lock:
            return entry.pos

    def fetch_and_add(self, fd: int, size: int) -> int:
        """Advance the position by ``size`` and return the old one.

        Raises ``EINVAL`` and leaves the position alone if it would go negative.
        """
        entry = self.get(fd)
        with entry.lock:
            pos = entry.pos
            if pos + size < 0:
                raise _error(errno.EINVAL)
            entry.pos = pos + size
            return pos

    def clear_all(self) -> None:
        """Close every descriptor."""
        with self._lock:
            self._files = [None] * INITIAL_TABLE_SIZE