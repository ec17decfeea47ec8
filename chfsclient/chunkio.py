"""Placement of inodes on the ring and chunked reads and writes of file content.

A file's content is cut into chunks of ``chunk_size`` bytes. Chunk 0 is stored
under the file's own key (the path and a NUL byte); chunk ``i`` under the path,
a NUL, the decimal index and another NUL. Each key lives on the server the ring
assigns it to; a server that cannot be reached is dropped from the ring and the
lookup is repeated.
"""

from __future__ import annotations

import errno
import os
from typing import Callable, Iterator, TypeVar

from .errors import RpcError, raise_for_kv
from .fs_client import FsClient, FsRequest
from .kv_err import KvError
from .log import log_error, log_notice
from .ring_list import RingList
from .types import FsStat

DEFAULT_RDMA_THRESH = 32768

T = TypeVar("T")


def path_index(path: str, index: int) -> bytes:
    """The key of chunk ``index`` of ``path``."""
    key = path.encode("utf-8") + b"\0"
    if index == 0:
        return key
    return key + str(index).encode("ascii") + b"\0"


def _chunks(offset: int, size: int, chunk_size: int) -> Iterator[tuple[int, int, int, int]]:
    """Yield ``(index, local_pos, start, length)`` for each chunk a range touches."""
    pos, end = offset, offset + size
    while pos < end:
        index, local = divmod(pos, chunk_size)
        length = min(end - pos, chunk_size - local)
        yield index, local, pos - offset, length
        pos += length


def _check_chunk_size(chunk_size: int) -> None:
    if chunk_size <= 0:
        raise OSError(errno.EINVAL, os.strerror(errno.EINVAL))


class ChunkStore:
    """Routes inode calls to the owning server and splits content into chunks."""

    def __init__(
        self,
        ring: RingList,
        fs: FsClient,
        client_address: str = "",
        rdma_thresh: int = DEFAULT_RDMA_THRESH,
        uid: int = 0,
        gid: int = 0,
    ) -> None:
        self.ring = ring
        self.fs = fs
        self.client_address = client_address
        self.rdma_thresh = rdma_thresh
        self.uid = uid
        self.gid = gid

    def _retry(self, key: bytes, diag: str, call: Callable[[str], T]) -> T:
        while True:
            target = self.ring.lookup(key)
            if target is None:
                log_error(f"{diag}: no server")
                raise RpcError(f"{diag}: no server")
            try:
                return call(target)
            except RpcError as e:
                log_notice(f"{diag}: remove {target} due to {e.status}")
                self.ring.remove(target)

    def inode_create(
        self, key: bytes, mode: int, chunk_size: int, data: bytes = b""
    ) -> int:
        """Create the inode ``key``; return the server status."""
        return self._retry(
            key,
            "rpc_inode_create_data",
            lambda t: self.fs.inode_create(
                t, key, self.uid, self.gid, mode, chunk_size, data
            ),
        )

    def inode_stat(self, key: bytes) -> tuple[int, FsStat | None]:
        """Return the status and metadata of the inode ``key``."""
        return self._retry(key, "rpc_inode_stat", lambda t: self.fs.inode_stat(t, key))

    def inode_truncate(self, key: bytes, length: int) -> int:
        """Cut the inode ``key`` to ``length`` bytes; return the status."""
        return self._retry(
            key, "rpc_inode_truncate", lambda t: self.fs.inode_truncate(t, key, length)
        )

    def inode_remove(self, key: bytes) -> int:
        """Remove the inode ``key``; return the status."""
        return self._retry(
            key, "rpc_inode_remove", lambda t: self.fs.inode_remove(t, key)
        )

    def _async_write(
        self, key: bytes, data, offset: int, mode: int, chunk_size: int
    ) -> FsRequest:
        if len(data) <= self.rdma_thresh:
            call = lambda t: self.fs.async_inode_write(
                t, key, data, offset, mode, chunk_size
            )
        else:
            call = lambda t: self.fs.async_inode_write_rdma(
                t, key, self.client_address, data, offset, mode, chunk_size
            )
        return self._retry(key, "async_rpc_inode_write", call)

    def _async_read(self, key: bytes, size: int, offset: int) -> FsRequest:
        if size <= self.rdma_thresh:
            call = lambda t: self.fs.async_inode_read(t, key, size, offset)
        else:
            call = lambda t: self.fs.async_inode_read_rdma(
                t, key, self.client_address, size, offset
            )
        return self._retry(key, "rpc_async_inode_read", call)

    def inode_read(self, key: bytes, size: int, offset: int) -> tuple[int, bytes]:
        """Read up to ``size`` bytes of the inode ``key``; return ``(status, data)``."""
        return self._async_read(key, size, offset).wait()

    def pwrite(
        self,
        path: str,
        data,
        offset: int,
        mode: int,
        chunk_size: int,
        async_access: bool = False,
    ) -> int:
        """Write ``data`` at ``offset`` of ``path``; return the bytes written."""
        _check_chunk_size(chunk_size)
        view = memoryview(bytes(data))
        if len(view) == 0:
            return 0
        if async_access:
            return self._pwrite_async(path, view, offset, mode, chunk_size)
        return self._pwrite_sync(path, view, offset, mode, chunk_size)

    def _pwrite_sync(
        self, path: str, view: memoryview, offset: int, mode: int, chunk_size: int
    ) -> int:
        written = 0
        size = len(view)
        while written < size:
            index, local = divmod(offset + written, chunk_size)
            length = min(size - written, chunk_size - local)
            err, n = self._async_write(
                path_index(path, index),
                view[written:written + length],
                local,
                mode,
                chunk_size,
            ).wait()
            raise_for_kv(err)
            if n == 0:
                break
            written += n
        return written

    def _pwrite_async(
        self, path: str, view: memoryview, offset: int, mode: int, chunk_size: int
    ) -> int:
        requests: list[FsRequest] = []
        try:
            for index, local, start, length in _chunks(offset, len(view), chunk_size):
                requests.append(
                    self._async_write(
                        path_index(path, index),
                        view[start:start + length],
                        local,
                        mode,
                        chunk_size,
                    )
                )
        except RpcError:
            self._drain(requests)
            raise

        written = 0
        first_error: OSError | None = None
        for request in requests:
            try:
                err, n = request.wait()
                raise_for_kv(err)
            except OSError as e:
                if first_error is None:
                    first_error = e
            else:
                written += n
        if first_error is not None:
            raise first_error
        return written

    @staticmethod
    def _drain(requests: list[FsRequest]) -> None:
        for request in reversed(requests):
            try:
                request.wait()
            except OSError:
                pass

    def pread(
        self,
        path: str,
        size: int,
        offset: int,
        chunk_size: int,
        async_access: bool = False,
    ) -> bytes:
        """Read up to ``size`` bytes at ``offset`` of ``path``."""
        _check_chunk_size(chunk_size)
        if async_access:
            return self._pread_async(path, size, offset, chunk_size)
        return self._pread_sync(path, size, offset, chunk_size)

    def _pread_sync(self, path: str, size: int, offset: int, chunk_size: int) -> bytes:
        parts: list[bytes] = []
        pos, remaining, first = offset, size, True
        while True:
            index, local = divmod(pos, chunk_size)
            try:
                err, chunk = self.inode_read(path_index(path, index), remaining, local)
                if err not in (KvError.SUCCESS, KvError.NO_ENTRY):
                    raise_for_kv(err)
            except OSError:
                if first:
                    raise
                break
            first = False
            if err == KvError.NO_ENTRY or not chunk:
                break
            parts.append(chunk)
            n = len(chunk)
            if local + n < chunk_size:
                break
            remaining -= n
            pos += n
            if remaining <= 0:
                break
        return b"".join(parts)

    def _pread_async(self, path: str, size: int, offset: int, chunk_size: int) -> bytes:
        if size == 0:
            return b""
        requests: list[tuple[FsRequest, int]] = []
        try:
            for index, local, _, length in _chunks(offset, size, chunk_size):
                requests.append(
                    (self._async_read(path_index(path, index), length, local), length)
                )
        except RpcError:
            self._drain([r for r, _ in requests])
            raise

        out = bytearray(size)
        filled = valid = hole = 0
        first_error: RpcError | None = None
        for request, length in requests:
            try:
                err, chunk = request.wait()
            except RpcError as e:
                if first_error is None:
                    first_error = e
                filled += length
                continue
            if err == KvError.NO_ENTRY:
                hole += length
            elif err == KvError.SUCCESS:
                n = len(chunk)
                out[filled:filled + n] = chunk
                valid += hole + n
                hole = length - n
            filled += length
        if first_error is not None:
            raise first_error
        return bytes(out[:valid])